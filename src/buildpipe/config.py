# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Project configuration models and the ``buildpipe.toml`` loader."""

from __future__ import annotations

import math
import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Final

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigError
from .models import DEFAULT_PROFILE, BuildConfig, CheckKind
from .platform import HostPlatform, default_link_inputs
from .postinstall import DEFAULT_MAN_CONVERTER, SUPPORTED_SHELLS, PostInstallPlan
from .store import StoreSettings

CONFIG_FILE_NAME: Final[str] = "buildpipe.toml"
JOBS_ENV_VAR: Final[str] = "BUILDPIPE_JOBS"


def default_parallel_jobs() -> int:
    """Return roughly 75% of the available CPU cores, never fewer than one."""

    cores = os.cpu_count() or 1
    return max(1, math.floor(cores * 0.75))


class PackageMeta(BaseModel):
    """Identity and descriptive metadata of the package being built."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    version: str = "latest"
    main_program: str | None = None
    description: str = ""
    homepage: str = ""
    license: str = ""

    @property
    def program(self) -> str:
        return self.main_program or self.name


class BuildSection(BaseModel):
    """Feature selection and compile settings; ``git`` is the fixed default feature."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    features: tuple[str, ...] = ("git",)
    default_features: bool = False
    profile: str = DEFAULT_PROFILE
    target_platform: str | None = None
    extra_link_inputs: tuple[str, ...] | None = None

    def to_build_config(self, host: HostPlatform) -> BuildConfig:
        """Return the immutable per-build config, filling link inputs from ``host``."""

        link_inputs = self.extra_link_inputs if self.extra_link_inputs is not None else default_link_inputs(host)
        return BuildConfig(
            features=frozenset(self.features),
            default_features=self.default_features,
            extra_link_inputs=tuple(link_inputs),
            profile=self.profile,
            target_platform=self.target_platform,
        )


class ToolchainSection(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    file: Path | None = None
    verify_with_rustup: bool = False


class PostInstallSection(BaseModel):
    """Manual pages and shell completions installed after compiling."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    man_pages: tuple[str, ...] = ()
    converter: tuple[str, ...] = DEFAULT_MAN_CONVERTER
    completions: dict[str, str] = Field(default_factory=dict)

    @field_validator("completions")
    @classmethod
    def _known_shells(cls, value: dict[str, str]) -> dict[str, str]:
        unknown = sorted(set(value) - set(SUPPORTED_SHELLS))
        if unknown:
            raise ValueError(f"unsupported completion shell(s): {', '.join(unknown)}")
        return value

    def plan(self) -> PostInstallPlan:
        """Return the declared steps: manual pages first, then completions by shell."""

        plan = PostInstallPlan()
        for source in self.man_pages:
            plan.man_page(source, converter=self.converter)
        for shell in SUPPORTED_SHELLS:
            if shell in self.completions:
                plan.shell_completion(shell, self.completions[shell])
        return plan


class CheckSettings(BaseModel):
    """Settings for the verification tasks."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    enabled: tuple[CheckKind, ...] = CheckKind.ordered()
    formatter: tuple[str, ...] = ("treefmt", "--no-cache")
    advisory_db: Path | None = None
    lint_args: tuple[str, ...] = ("--deny", "warnings")
    test_partitions: int = Field(default=1, ge=1)


class StoreSection(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: str = "directory"
    directory: Path = Path(".buildpipe/store")

    def settings(self, root: Path) -> StoreSettings:
        if self.kind not in {"memory", "directory"}:
            raise ConfigError(f"unsupported store kind {self.kind!r}")
        directory = self.directory if self.directory.is_absolute() else root / self.directory
        return StoreSettings(kind="memory" if self.kind == "memory" else "directory", directory=directory)


class ExecutionSection(BaseModel):
    """Process execution policy applied to every external tool."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    jobs: int = Field(default_factory=default_parallel_jobs, ge=1)
    timeout_seconds: float | None = Field(default=None, gt=0)
    work_root: Path | None = None
    cargo: str = "cargo"


class ProjectConfig(BaseModel):
    """Complete configuration for one package repository."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    root: Path
    package: PackageMeta
    build: BuildSection = Field(default_factory=BuildSection)
    toolchain: ToolchainSection = Field(default_factory=ToolchainSection)
    post_install: PostInstallSection = Field(default_factory=PostInstallSection)
    checks: CheckSettings = Field(default_factory=CheckSettings)
    store: StoreSection = Field(default_factory=StoreSection)
    execution: ExecutionSection = Field(default_factory=ExecutionSection)

    def toolchain_file(self) -> Path | None:
        configured = self.toolchain.file
        if configured is None:
            return None
        return configured if configured.is_absolute() else self.root / configured


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Configuration at {path} is not valid TOML: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Configuration at {path} could not be read: {exc}") from exc


def _package_from_manifest(root: Path) -> dict[str, Any]:
    """Return ``[package]`` defaults derived from ``Cargo.toml`` when present."""

    manifest = root / "Cargo.toml"
    if not manifest.is_file():
        return {}
    package = _read_toml(manifest).get("package")
    if not isinstance(package, Mapping):
        return {}
    derived: dict[str, Any] = {}
    for key in ("name", "version", "description", "homepage", "license"):
        value = package.get(key)
        if isinstance(value, str):
            derived[key] = value
    return derived


def load_project_config(root: Path, *, env: Mapping[str, str] | None = None) -> ProjectConfig:
    """Load ``buildpipe.toml`` from ``root``, falling back to ``Cargo.toml`` metadata.

    Args:
        root: Repository root directory.
        env: Environment consulted for overrides; defaults to :data:`os.environ`.

    Returns:
        ProjectConfig: Validated configuration.

    Raises:
        ConfigError: If the configuration is malformed or names no package.
    """

    if not root.is_dir():
        raise ConfigError(f"Project root {root} does not exist")
    document: dict[str, Any] = {}
    config_path = root / CONFIG_FILE_NAME
    if config_path.is_file():
        document = _read_toml(config_path)

    declared = document.pop("package", None) or {}
    if not isinstance(declared, Mapping):
        raise ConfigError(f"[package] in {config_path} must be a table, got {type(declared).__name__}")
    package = {**_package_from_manifest(root), **declared}
    if "name" not in package:
        raise ConfigError(f"No package name found in {CONFIG_FILE_NAME} or Cargo.toml under {root}")

    environment = os.environ if env is None else env
    jobs_override = environment.get(JOBS_ENV_VAR)
    execution = document.get("execution") or {}
    if jobs_override and isinstance(execution, Mapping):
        document["execution"] = {**execution, "jobs": jobs_override}

    try:
        return ProjectConfig.model_validate({"root": root, "package": package, **document})
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration for {root}: {exc}") from exc


__all__ = [
    "BuildSection",
    "CONFIG_FILE_NAME",
    "CheckSettings",
    "ExecutionSection",
    "JOBS_ENV_VAR",
    "PackageMeta",
    "PostInstallSection",
    "ProjectConfig",
    "StoreSection",
    "ToolchainSection",
    "default_parallel_jobs",
    "load_project_config",
]

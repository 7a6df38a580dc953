# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Immutable records exchanged between pipeline stages."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Final

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_PROFILE: Final[str] = "release"


class ToolchainSpec(BaseModel):
    """Pinned compiler toolchain shared read-only by every compiler invocation.

    Attributes:
        channel: Channel string exactly as declared (``stable``, ``1.75.0``,
            ``nightly-2024-01-01``).
        compiler_version: Version identity passed to the toolchain provisioner.
        installed_components: Sorted components implied by the profile plus the
            declared extras; always contains ``rustc`` and ``rust-std``.
        targets: Additional compilation targets requested by the descriptor.
        profile: Rustup installation profile name.
        source: Descriptor file the spec was resolved from.
    """

    model_config = ConfigDict(frozen=True)

    channel: str
    compiler_version: str
    installed_components: tuple[str, ...]
    targets: tuple[str, ...] = ()
    profile: str = "default"
    source: Path | None = None

    def identity(self) -> str:
        """Return a stable string identifying this toolchain for fingerprints."""

        components = ",".join(self.installed_components)
        targets = ",".join(sorted(self.targets))
        return f"{self.compiler_version}|{self.profile}|{components}|{targets}"

    def has_component(self, name: str) -> bool:
        return name in self.installed_components


class BuildConfig(BaseModel):
    """Per-build configuration supplied once and immutable for the build.

    Only :attr:`profile`, :attr:`target_platform` and :attr:`extra_link_inputs`
    influence dependency compilation; feature flags are package-local.
    """

    model_config = ConfigDict(frozen=True)

    features: frozenset[str] = Field(default_factory=lambda: frozenset({"git"}))
    default_features: bool = False
    extra_link_inputs: tuple[str, ...] = ()
    profile: str = DEFAULT_PROFILE
    target_platform: str | None = None

    @field_validator("features", mode="before")
    @classmethod
    def _coerce_features(cls, value: object) -> object:
        """Accept comma separated strings alongside iterables of feature names."""

        if isinstance(value, str):
            return frozenset(token.strip() for token in value.split(",") if token.strip())
        return value

    def dependency_inputs(self) -> tuple[str, ...]:
        """Return the config fields that affect dependency compilation.

        Returns:
            tuple[str, ...]: ``key=value`` tokens in a fixed order.
        """

        return (
            f"profile={self.profile}",
            f"target={self.target_platform or 'host'}",
            f"link={','.join(sorted(self.extra_link_inputs))}",
        )

    def profile_dir(self) -> str:
        """Return the ``target/`` subdirectory cargo uses for :attr:`profile`."""

        return "debug" if self.profile == "dev" else self.profile


class DependencyFingerprint(BaseModel):
    """Content hash over the dependency declaration, lockfile and toolchain."""

    model_config = ConfigDict(frozen=True)

    digest: str
    inputs: tuple[str, ...] = ()

    def __str__(self) -> str:
        return self.digest

    @property
    def short(self) -> str:
        return self.digest[:16]


class ArtifactSet(BaseModel):
    """Metadata describing one committed set of compiled dependency products."""

    model_config = ConfigDict(frozen=True)

    fingerprint: str
    files: tuple[str, ...]
    digest: str


class CheckKind(str, Enum):
    """Verification tasks supported by the check runner, in reporting order."""

    FORMATTING = "formatting"
    AUDIT = "audit"
    LINT = "lint"
    TEST = "test"

    @classmethod
    def ordered(cls) -> tuple[CheckKind, ...]:
        return (cls.FORMATTING, cls.AUDIT, cls.LINT, cls.TEST)


class CheckResult(BaseModel):
    """Outcome of a single verification task."""

    model_config = ConfigDict(frozen=True)

    name: str
    passed: bool
    diagnostics: str = ""
    duration_seconds: float = 0.0


class PackageArtifact(BaseModel):
    """Final bundle assembled by the package builder.

    Attributes:
        name: Package name.
        version: Version string substituted into generated manual pages.
        binary: Installed executable inside :attr:`output_dir`.
        man_pages: Installed manual pages.
        completions: Installed completion script per shell.
        output_dir: Root of the assembled bundle.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    binary: Path
    man_pages: tuple[Path, ...] = ()
    completions: dict[str, Path] = Field(default_factory=dict)
    output_dir: Path


__all__ = [
    "ArtifactSet",
    "BuildConfig",
    "CheckKind",
    "CheckResult",
    "DEFAULT_PROFILE",
    "DependencyFingerprint",
    "PackageArtifact",
    "ToolchainSpec",
]

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Resolve the pinned compiler toolchain from a rustup descriptor file."""

from __future__ import annotations

import logging
import re
import tomllib
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any, Final, Protocol

from .errors import ToolchainResolutionError
from .models import ToolchainSpec
from .process import CommandOptions, ToolRunner, combined_output, run_command

LOGGER = logging.getLogger(__name__)

TOOLCHAIN_FILE_NAMES: Final[tuple[str, ...]] = ("rust-toolchain.toml", "rust-toolchain")
REQUIRED_COMPONENTS: Final[frozenset[str]] = frozenset({"rustc", "rust-std"})

_CHANNEL_RE: Final[re.Pattern[str]] = re.compile(
    r"^(?:stable|beta|nightly|\d+\.\d+(?:\.\d+)?)(?:-\d{4}-\d{2}-\d{2})?$",
)

KNOWN_COMPONENTS: Final[frozenset[str]] = frozenset(
    {
        "cargo",
        "clippy",
        "llvm-tools",
        "llvm-tools-preview",
        "miri",
        "rls",
        "rust-analysis",
        "rust-analyzer",
        "rust-docs",
        "rust-mingw",
        "rust-src",
        "rust-std",
        "rustc",
        "rustc-codegen-cranelift-preview",
        "rustc-dev",
        "rustfmt",
    },
)

_MINIMAL: Final[frozenset[str]] = frozenset({"rustc", "rust-std", "cargo"})
PROFILE_COMPONENTS: Final[Mapping[str, frozenset[str]]] = {
    "minimal": _MINIMAL,
    "default": _MINIMAL | {"rust-docs", "rustfmt", "clippy"},
    "complete": KNOWN_COMPONENTS - {"rls", "rust-mingw"},
}


class ToolchainProvisioner(Protocol):
    """External collaborator that knows which toolchains can be installed."""

    def unavailable(self, channel: str, components: Sequence[str]) -> str | None:
        """Return a reason when ``channel`` or one of ``components`` is unavailable."""
        ...


class RustupProvisioner:
    """Query ``rustup`` for an installed toolchain and its components."""

    def __init__(self, runner: ToolRunner = run_command, *, executable: str = "rustup") -> None:
        self._runner = runner
        self._executable = executable

    def unavailable(self, channel: str, components: Sequence[str]) -> str | None:
        """Return why ``channel`` cannot be used, or ``None`` when everything is installed.

        Args:
            channel: Toolchain channel to query.
            components: Components that must be installed for ``channel``.

        Returns:
            str | None: Reason naming the missing channel or component.
        """

        completed = self._runner(
            [self._executable, "component", "list", "--installed", "--toolchain", channel],
            CommandOptions(),
        )
        if completed.returncode != 0:
            return f"toolchain {channel} is not available: {combined_output(completed)}"
        installed = [line.strip() for line in completed.stdout.splitlines() if line.strip()]
        for component in components:
            if not any(entry == component or entry.startswith(f"{component}-") for entry in installed):
                return f"component {component} is not available for toolchain {channel}"
        return None


class ToolchainResolver:
    """Turn a version-descriptor file into a :class:`ToolchainSpec`.

    Resolution is deterministic and side-effect free apart from reading the
    descriptor and, when a provisioner is configured, asking it about
    availability.
    """

    def __init__(self, provisioner: ToolchainProvisioner | None = None) -> None:
        self._provisioner = provisioner

    def resolve(self, path: Path) -> ToolchainSpec:
        """Return the toolchain declared by ``path``.

        Args:
            path: ``rust-toolchain.toml`` or legacy ``rust-toolchain`` file.

        Returns:
            ToolchainSpec: Immutable toolchain specification.

        Raises:
            ToolchainResolutionError: If the file is missing or malformed, or
                names an unknown or unavailable channel, profile or component.
        """

        if not path.is_file():
            raise ToolchainResolutionError("toolchain descriptor not found", path=path)
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ToolchainResolutionError(f"toolchain descriptor unreadable: {exc}", path=path) from exc

        table = self._parse(text, path)
        channel = _require_channel(table, path)
        profile = _coerce_str(table.get("profile", "default"), "profile", path)
        if profile not in PROFILE_COMPONENTS:
            raise ToolchainResolutionError(f"unknown toolchain profile {profile!r}", path=path)
        declared = _coerce_str_list(table.get("components", []), "components", path)
        unknown = sorted(set(declared) - KNOWN_COMPONENTS)
        if unknown:
            raise ToolchainResolutionError(f"unknown toolchain component(s): {', '.join(unknown)}", path=path)
        targets = tuple(sorted(set(_coerce_str_list(table.get("targets", []), "targets", path))))

        components = tuple(sorted(PROFILE_COMPONENTS[profile] | set(declared) | REQUIRED_COMPONENTS))
        if self._provisioner is not None:
            reason = self._provisioner.unavailable(channel, components)
            if reason is not None:
                raise ToolchainResolutionError(reason, path=path)

        spec = ToolchainSpec(
            channel=channel,
            compiler_version=channel,
            installed_components=components,
            targets=targets,
            profile=profile,
            source=path,
        )
        LOGGER.debug("toolchain=%s components=%s", spec.compiler_version, ",".join(components))
        return spec

    @staticmethod
    def _parse(text: str, path: Path) -> Mapping[str, Any]:
        if path.suffix != ".toml" and "[toolchain]" not in text:
            # Legacy single-line descriptor holding only the channel name.
            lines = [line.strip() for line in text.splitlines() if line.strip() and not line.strip().startswith("#")]
            if len(lines) != 1:
                raise ToolchainResolutionError("legacy descriptor must contain exactly one channel", path=path)
            return {"channel": lines[0], "profile": "default"}
        try:
            document = tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            raise ToolchainResolutionError(f"malformed toolchain descriptor: {exc}", path=path) from exc
        table = document.get("toolchain")
        if not isinstance(table, Mapping):
            raise ToolchainResolutionError("descriptor lacks a [toolchain] table", path=path)
        return table


def find_toolchain_file(root: Path) -> Path:
    """Return the first descriptor present in ``root``, preferring the TOML form."""

    for name in TOOLCHAIN_FILE_NAMES:
        candidate = root / name
        if candidate.is_file():
            return candidate
    return root / TOOLCHAIN_FILE_NAMES[0]


def _require_channel(table: Mapping[str, Any], path: Path) -> str:
    if "channel" not in table:
        raise ToolchainResolutionError("descriptor does not name a channel", path=path)
    channel = _coerce_str(table["channel"], "channel", path).strip()
    if not _CHANNEL_RE.match(channel):
        raise ToolchainResolutionError(f"invalid toolchain channel {channel!r}", path=path)
    return channel


def _coerce_str(value: object, key: str, path: Path) -> str:
    if not isinstance(value, str):
        raise ToolchainResolutionError(f"toolchain.{key} must be a string", path=path)
    return value


def _coerce_str_list(value: object, key: str, path: Path) -> list[str]:
    if not isinstance(value, Iterable) or isinstance(value, (str, bytes)):
        raise ToolchainResolutionError(f"toolchain.{key} must be a list of strings", path=path)
    items = list(value)
    if not all(isinstance(item, str) for item in items):
        raise ToolchainResolutionError(f"toolchain.{key} must be a list of strings", path=path)
    return items


__all__ = [
    "KNOWN_COMPONENTS",
    "PROFILE_COMPONENTS",
    "RustupProvisioner",
    "ToolchainProvisioner",
    "ToolchainResolver",
    "find_toolchain_file",
]

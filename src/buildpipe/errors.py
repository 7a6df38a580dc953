# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Error taxonomy shared by every pipeline stage."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path


class BuildPipeError(RuntimeError):
    """Base class for failures surfaced by the build pipeline."""


class ConfigError(BuildPipeError):
    """Raised when configuration input is invalid."""


class UnsupportedPlatformError(BuildPipeError):
    """Raised when the host system has no known platform mapping."""


class ToolchainResolutionError(BuildPipeError):
    """Raised when the toolchain descriptor cannot be turned into a spec."""

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        """Initialise the error with the descriptor location.

        Args:
            message: Human-readable reason for the failure.
            path: Descriptor file that was being resolved.
        """

        location = f" ({path})" if path is not None else ""
        super().__init__(f"{message}{location}")
        self.path = path


class SourceViewError(BuildPipeError):
    """Raised when a source view cannot be produced for ``root``."""

    def __init__(self, message: str, *, root: Path) -> None:
        super().__init__(f"{message}: {root}")
        self.root = root


class DependencyBuildError(BuildPipeError):
    """Raised when compiling the dependency set fails.

    Attributes:
        fingerprint: Digest of the dependency inputs that failed to build.
        dependency: Name of the crate reported by the compiler, when known.
        diagnostics: Raw compiler output.
    """

    def __init__(self, *, fingerprint: str, dependency: str | None, diagnostics: str) -> None:
        name = dependency or "<unknown dependency>"
        super().__init__(f"Failed to compile dependency {name} for fingerprint {fingerprint[:16]}")
        self.fingerprint = fingerprint
        self.dependency = dependency
        self.diagnostics = diagnostics


class FeatureConflictError(BuildPipeError):
    """Raised when the requested feature combination cannot produce a build."""

    def __init__(self, message: str, *, features: Iterable[str], default_features: bool) -> None:
        self.features = tuple(sorted(features))
        self.default_features = default_features
        rendered = ",".join(self.features) or "<none>"
        super().__init__(f"{message} (features={rendered}, default_features={default_features})")


class PackageBuildError(BuildPipeError):
    """Raised when compiling the package sources fails."""

    def __init__(self, message: str, *, diagnostics: str = "") -> None:
        super().__init__(message)
        self.diagnostics = diagnostics


class PostInstallError(BuildPipeError):
    """Raised when a named post-install step fails.

    Attributes:
        step: Name of the failing step, e.g. ``man:eza.1``.
        diagnostics: Tool output or validation message explaining the failure.
    """

    def __init__(self, step: str, diagnostics: str) -> None:
        super().__init__(f"Post-install step '{step}' failed: {diagnostics.strip() or 'no output'}")
        self.step = step
        self.diagnostics = diagnostics


class CheckFailure(BuildPipeError):
    """Signal a failed verification task; converted into a failed check result."""

    def __init__(self, check: str, diagnostics: str) -> None:
        super().__init__(f"Check '{check}' failed")
        self.check = check
        self.diagnostics = diagnostics


__all__ = [
    "BuildPipeError",
    "CheckFailure",
    "ConfigError",
    "DependencyBuildError",
    "FeatureConflictError",
    "PackageBuildError",
    "PostInstallError",
    "SourceViewError",
    "ToolchainResolutionError",
    "UnsupportedPlatformError",
]

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Resolve feature flag selection into an explicit, immutable compile setting."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Final

from .errors import FeatureConflictError
from .models import BuildConfig

_FEATURE_NAME_RE: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_+\-./]*$")


@dataclass(frozen=True, slots=True)
class ResolvedFeatures:
    """Explicit feature state built once per build invocation.

    Attributes:
        default_features: Whether the package's default feature set is enabled.
        features: Explicitly enabled features, sorted.
    """

    default_features: bool
    features: tuple[str, ...]

    def cargo_args(self) -> list[str]:
        """Return the cargo flags selecting this feature state."""

        args: list[str] = []
        if not self.default_features:
            args.append("--no-default-features")
        if self.features:
            args.extend(["--features", ",".join(self.features)])
        return args

    def describe(self) -> str:
        enabled = ",".join(self.features) or "<none>"
        return f"default_features={'on' if self.default_features else 'off'} features={enabled}"


def resolve_features(config: BuildConfig) -> ResolvedFeatures:
    """Return the explicit feature state for ``config``.

    Args:
        config: Build configuration supplied for this build.

    Returns:
        ResolvedFeatures: Immutable feature selection.

    Raises:
        FeatureConflictError: If default features are disabled while no explicit
            feature is requested, or a feature name is not a valid identifier.
    """

    invalid = sorted(name for name in config.features if not _FEATURE_NAME_RE.match(name))
    if invalid:
        raise FeatureConflictError(
            f"invalid feature name(s): {', '.join(invalid)}",
            features=config.features,
            default_features=config.default_features,
        )
    if not config.default_features and not config.features:
        raise FeatureConflictError(
            "default features are disabled and no explicit feature is enabled",
            features=config.features,
            default_features=config.default_features,
        )
    return ResolvedFeatures(default_features=config.default_features, features=tuple(sorted(config.features)))


__all__ = ["ResolvedFeatures", "resolve_features"]

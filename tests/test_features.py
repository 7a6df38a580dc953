# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Tests for feature flag resolution."""

from __future__ import annotations

import pytest

from buildpipe.errors import FeatureConflictError
from buildpipe.features import resolve_features
from buildpipe.models import BuildConfig


def test_default_config_enables_git_only() -> None:
    resolved = resolve_features(BuildConfig())

    assert resolved.default_features is False
    assert resolved.features == ("git",)
    assert resolved.cargo_args() == ["--no-default-features", "--features", "git"]


def test_features_accept_comma_separated_string() -> None:
    resolved = resolve_features(BuildConfig(features="vendored-libgit2, git"))

    assert resolved.features == ("git", "vendored-libgit2")


def test_default_features_without_explicit_features() -> None:
    resolved = resolve_features(BuildConfig(features=frozenset(), default_features=True))

    assert resolved.cargo_args() == []
    assert resolved.describe() == "default_features=on features=<none>"


def test_no_features_at_all_is_a_conflict() -> None:
    with pytest.raises(FeatureConflictError) as excinfo:
        resolve_features(BuildConfig(features=frozenset(), default_features=False))

    assert excinfo.value.features == ()
    assert excinfo.value.default_features is False


def test_invalid_feature_name_is_rejected() -> None:
    with pytest.raises(FeatureConflictError, match="invalid feature name"):
        resolve_features(BuildConfig(features={"git", "bad feature"}))

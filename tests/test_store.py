# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Tests for dependency artifact stores."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from buildpipe import store as store_module
from buildpipe.errors import ConfigError
from buildpipe.store import (
    STORE_ENV_VAR,
    ArtifactStore,
    DirectoryArtifactStore,
    InMemoryArtifactStore,
    StoreSettings,
    create_artifact_store,
    settings_from_environment,
)


def _staging(root: Path, marker: str = "one") -> Path:
    (root / "release" / "deps").mkdir(parents=True)
    (root / "release" / "deps" / "liblibc.rlib").write_text(marker, encoding="utf-8")
    (root / "release" / ".fingerprint").mkdir()
    (root / "release" / ".fingerprint" / "libc.json").write_text("{}", encoding="utf-8")
    return root


@pytest.fixture(params=["memory", "directory"])
def artifact_store(request: pytest.FixtureRequest, tmp_path: Path) -> ArtifactStore:
    if request.param == "memory":
        return InMemoryArtifactStore()
    return DirectoryArtifactStore(tmp_path / "store")


def test_commit_then_restore(artifact_store: ArtifactStore, tmp_path: Path) -> None:
    staging = _staging(tmp_path / "staging")

    artifacts = artifact_store.commit("abc", staging)
    destination = tmp_path / "restored"
    artifact_store.restore("abc", destination)

    assert artifact_store.contains("abc")
    assert artifacts.files == ("release/.fingerprint/libc.json", "release/deps/liblibc.rlib")
    assert artifact_store.load("abc") == artifacts
    assert (destination / "release" / "deps" / "liblibc.rlib").read_text(encoding="utf-8") == "one"


def test_entries_are_append_only(artifact_store: ArtifactStore, tmp_path: Path) -> None:
    first = artifact_store.commit("abc", _staging(tmp_path / "first", "one"))
    second = artifact_store.commit("abc", _staging(tmp_path / "second", "two"))

    destination = tmp_path / "restored"
    artifact_store.restore("abc", destination)

    assert second == first
    assert (destination / "release" / "deps" / "liblibc.rlib").read_text(encoding="utf-8") == "one"


def test_restore_of_unknown_key_raises(artifact_store: ArtifactStore, tmp_path: Path) -> None:
    assert artifact_store.load("missing") is None
    assert not artifact_store.contains("missing")
    with pytest.raises(KeyError):
        artifact_store.restore("missing", tmp_path / "out")


def test_concurrent_directory_commits_publish_one_entry(tmp_path: Path) -> None:
    store = DirectoryArtifactStore(tmp_path / "store")
    stagings = [_staging(tmp_path / f"staging-{index}", f"writer-{index}") for index in range(4)]

    with ThreadPoolExecutor(max_workers=4) as executor:
        results = list(executor.map(lambda staging: store.commit("abc", staging), stagings))

    assert len({result.digest for result in results}) == 1
    assert sorted(path.name for path in store.root.iterdir()) == ["abc"]


def test_directory_store_persists_across_instances(tmp_path: Path) -> None:
    DirectoryArtifactStore(tmp_path / "store").commit("abc", _staging(tmp_path / "staging"))

    reopened = DirectoryArtifactStore(tmp_path / "store")

    assert reopened.contains("abc")


def test_settings_from_environment() -> None:
    assert settings_from_environment({}) is None
    assert settings_from_environment({STORE_ENV_VAR: "memory"}) == StoreSettings(kind="memory")
    assert settings_from_environment({STORE_ENV_VAR: "directory:/var/cache/bp"}) == StoreSettings(
        kind="directory",
        directory=Path("/var/cache/bp"),
    )


@pytest.mark.parametrize("value", ["directory", "directory:", "redis://localhost"])
def test_invalid_store_selection_raises(value: str) -> None:
    with pytest.raises(ConfigError):
        settings_from_environment({STORE_ENV_VAR: value})


def test_environment_overrides_configured_store(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    configured = StoreSettings(kind="directory", directory=tmp_path / "store")
    assert isinstance(create_artifact_store(configured), DirectoryArtifactStore)

    monkeypatch.setenv(STORE_ENV_VAR, "memory")

    assert isinstance(create_artifact_store(configured), InMemoryArtifactStore)


def test_interrupted_directory_commit_leaves_no_entry(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    store = DirectoryArtifactStore(tmp_path / "store")
    staging = _staging(tmp_path / "staging")

    def _interrupt(src: object, dst: object) -> None:
        raise KeyboardInterrupt

    monkeypatch.setattr(store_module.os, "replace", _interrupt)

    with pytest.raises(KeyboardInterrupt):
        store.commit("abc", staging)

    assert not store.contains("abc")
    assert store.load("abc") is None
    assert not [path for path in store.root.iterdir() if path.name.startswith(".pending-")]

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Persistent stores for compiled dependency artifacts keyed by fingerprint."""

from __future__ import annotations

import hashlib
import json
import os
import shutil
import uuid
from abc import abstractmethod
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from threading import RLock
from typing import Final, Literal, Protocol, runtime_checkable

from .errors import ConfigError
from .models import ArtifactSet

StoreKind = Literal["memory", "directory"]
STORE_ENV_VAR: Final[str] = "BUILDPIPE_STORE"
_MEMORY_KIND: Final[StoreKind] = "memory"
_DIRECTORY_KIND: Final[StoreKind] = "directory"
MANIFEST_NAME: Final[str] = "manifest.json"
FILES_DIR: Final[str] = "files"


@runtime_checkable
class ArtifactStore(Protocol):
    """Define the get/put contract for dependency artifact stores.

    Entries are append-only: once a key is committed its contents never change
    and a second commit for the same key returns the existing set. Commits are
    atomic, so an interrupted commit leaves no entry behind.
    """

    @abstractmethod
    def contains(self, key: str) -> bool:
        """Return whether an entry for ``key`` has been committed."""
        raise NotImplementedError

    @abstractmethod
    def load(self, key: str) -> ArtifactSet | None:
        """Return metadata for ``key`` when present.

        Args:
            key: Dependency fingerprint digest.

        Returns:
            ArtifactSet | None: Stored metadata, or ``None`` for a miss.
        """
        raise NotImplementedError

    @abstractmethod
    def restore(self, key: str, destination: Path) -> None:
        """Copy the products stored for ``key`` into ``destination``.

        Raises:
            KeyError: If ``key`` has not been committed.
        """
        raise NotImplementedError

    @abstractmethod
    def commit(self, key: str, staging: Path) -> ArtifactSet:
        """Persist the tree rooted at ``staging`` under ``key`` and return its metadata."""
        raise NotImplementedError


def _iter_tree(root: Path) -> Iterator[tuple[str, Path]]:
    """Yield ``(relative posix path, absolute path)`` for every file under ``root`` in sorted order."""

    for path in sorted(candidate for candidate in root.rglob("*") if candidate.is_file()):
        yield path.relative_to(root).as_posix(), path


def _digest_files(files: Mapping[str, bytes]) -> str:
    hasher = hashlib.sha256()
    for name in sorted(files):
        hasher.update(name.encode("utf-8"))
        hasher.update(b"\0")
        hasher.update(hashlib.sha256(files[name]).digest())
    return hasher.hexdigest()


class InMemoryArtifactStore(ArtifactStore):
    """Keep committed artifacts in process memory; useful for single sessions and tests."""

    def __init__(self) -> None:
        self._entries: dict[str, tuple[ArtifactSet, dict[str, bytes]]] = {}
        self._lock = RLock()

    def contains(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def load(self, key: str) -> ArtifactSet | None:
        with self._lock:
            entry = self._entries.get(key)
        return entry[0] if entry is not None else None

    def restore(self, key: str, destination: Path) -> None:
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            raise KeyError(key)
        for name, payload in entry[1].items():
            target = destination / name
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(payload)

    def commit(self, key: str, staging: Path) -> ArtifactSet:
        files = {name: path.read_bytes() for name, path in _iter_tree(staging)}
        artifact = ArtifactSet(fingerprint=key, files=tuple(sorted(files)), digest=_digest_files(files))
        with self._lock:
            existing = self._entries.get(key)
            if existing is not None:
                return existing[0]
            self._entries[key] = (artifact, files)
        return artifact


class DirectoryArtifactStore(ArtifactStore):
    """Content-addressed directory store with atomic, append-only commits.

    Each entry lives in ``<root>/<key>/`` holding a ``files/`` tree and a
    ``manifest.json`` describing it. A commit is staged in a uniquely named
    sibling directory and published with :func:`os.replace`.
    """

    def __init__(self, root: Path) -> None:
        self._root = root
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def contains(self, key: str) -> bool:
        return (self._entry_dir(key) / MANIFEST_NAME).is_file()

    def load(self, key: str) -> ArtifactSet | None:
        manifest = self._entry_dir(key) / MANIFEST_NAME
        if not manifest.is_file():
            return None
        try:
            return ArtifactSet.model_validate_json(manifest.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None

    def restore(self, key: str, destination: Path) -> None:
        files_dir = self._entry_dir(key) / FILES_DIR
        if not self.contains(key):
            raise KeyError(key)
        destination.mkdir(parents=True, exist_ok=True)
        shutil.copytree(files_dir, destination, dirs_exist_ok=True)

    def commit(self, key: str, staging: Path) -> ArtifactSet:
        """Publish ``staging`` under ``key``; concurrent writers never expose partial entries.

        Args:
            key: Dependency fingerprint digest.
            staging: Directory holding the compiled products to persist.

        Returns:
            ArtifactSet: Metadata for the committed entry, or for the entry a
            concurrent writer committed first.
        """

        existing = self.load(key)
        if existing is not None:
            return existing

        pending = self._root / f".pending-{key}-{uuid.uuid4().hex}"
        try:
            shutil.copytree(staging, pending / FILES_DIR)
            files = {name: path.read_bytes() for name, path in _iter_tree(pending / FILES_DIR)}
            artifact = ArtifactSet(fingerprint=key, files=tuple(sorted(files)), digest=_digest_files(files))
            (pending / MANIFEST_NAME).write_text(
                json.dumps(artifact.model_dump(mode="json"), indent=2, sort_keys=True),
                encoding="utf-8",
            )
            try:
                os.replace(pending, self._entry_dir(key))
            except OSError:
                # Another writer published the key first.
                winner = self.load(key)
                if winner is None:
                    raise
                return winner
            return artifact
        finally:
            shutil.rmtree(pending, ignore_errors=True)

    def _entry_dir(self, key: str) -> Path:
        return self._root / key


@dataclass(frozen=True, slots=True)
class StoreSettings:
    """Define artifact store selection parameters.

    Attributes:
        kind: ``"memory"`` keeps artifacts for the current process only;
            ``"directory"`` persists them across sessions.
        directory: Store root used when ``kind`` is ``"directory"``.
    """

    kind: StoreKind = _MEMORY_KIND
    directory: Path | None = None


def settings_from_environment(env: Mapping[str, str] | None = None) -> StoreSettings | None:
    """Parse ``BUILDPIPE_STORE`` (``memory`` or ``directory:<path>``) when set.

    Raises:
        ConfigError: If the variable names an unsupported store or omits the
            directory path.
    """

    environment = os.environ if env is None else env
    specification = environment.get(STORE_ENV_VAR)
    if not specification:
        return None
    token, _, remainder = specification.partition(":")
    kind = token.strip().lower()
    if kind == _MEMORY_KIND:
        return StoreSettings(kind=_MEMORY_KIND)
    if kind == _DIRECTORY_KIND:
        path_token = remainder.strip()
        if not path_token:
            raise ConfigError(f"{STORE_ENV_VAR}=directory requires a directory path")
        return StoreSettings(kind=_DIRECTORY_KIND, directory=Path(path_token).expanduser())
    raise ConfigError(f"Unsupported artifact store specified via {STORE_ENV_VAR}: {specification!r}")


def create_artifact_store(settings: StoreSettings | None = None) -> ArtifactStore:
    """Build the store described by ``settings``, honouring environment overrides first."""

    resolved = settings_from_environment() or settings or StoreSettings()
    if resolved.kind == _MEMORY_KIND:
        return InMemoryArtifactStore()
    if resolved.directory is None:
        raise ConfigError("StoreSettings.directory must be set for directory-backed stores")
    return DirectoryArtifactStore(resolved.directory)


__all__ = [
    "ArtifactStore",
    "DirectoryArtifactStore",
    "InMemoryArtifactStore",
    "STORE_ENV_VAR",
    "StoreSettings",
    "create_artifact_store",
    "settings_from_environment",
]

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Filtered, deterministically ordered views over the package source tree."""

from __future__ import annotations

import hashlib
import os
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Final

from .errors import SourceViewError

SourcePredicate = Callable[[PurePosixPath], bool]

ALWAYS_EXCLUDE_DIRS: Final[frozenset[str]] = frozenset(
    {".git", ".hg", ".jj", ".svn", ".direnv", ".buildpipe", "node_modules"},
)
ROOT_OUTPUT_DIRS: Final[frozenset[str]] = frozenset({"target"})
ROOT_OUTPUT_PREFIX: Final[str] = "result"
_BACKUP_SUFFIXES: Final[tuple[str, ...]] = ("~", ".swp", ".swo", ".orig", ".rej")
_CARGO_FILE_NAMES: Final[frozenset[str]] = frozenset({"Cargo.lock"})
_CARGO_SUFFIXES: Final[frozenset[str]] = frozenset({".rs", ".toml"})
MAN_SEGMENT: Final[str] = "man"
COMPLETIONS_SEGMENT: Final[str] = "completions"


class ViewMode(str, Enum):
    """Purpose a source view is produced for."""

    COMPILE = "compile"
    PACKAGE = "package"


@dataclass(frozen=True, slots=True)
class SourceEntry:
    """One file of a source view, addressed by its POSIX path relative to the root."""

    path: str
    content: bytes


@dataclass(frozen=True, slots=True)
class SourceView:
    """Immutable, lexicographically ordered sequence of ``(path, content)`` pairs."""

    root: Path
    mode: ViewMode
    entries: tuple[SourceEntry, ...]

    def paths(self) -> tuple[str, ...]:
        return tuple(entry.path for entry in self.entries)

    def get(self, path: str) -> bytes | None:
        """Return the content stored for ``path`` or ``None`` when absent."""

        for entry in self.entries:
            if entry.path == path:
                return entry.content
        return None

    def select(self, predicate: SourcePredicate) -> tuple[SourceEntry, ...]:
        return tuple(entry for entry in self.entries if predicate(PurePosixPath(entry.path)))

    def digest(self) -> str:
        """Return a SHA-256 digest over every path and its content, in view order."""

        hasher = hashlib.sha256()
        for entry in self.entries:
            hasher.update(entry.path.encode("utf-8"))
            hasher.update(b"\0")
            hasher.update(entry.content)
            hasher.update(b"\0")
        return hasher.hexdigest()

    def materialize(self, destination: Path) -> Path:
        """Write every entry beneath ``destination`` and return it."""

        destination.mkdir(parents=True, exist_ok=True)
        for entry in self.entries:
            target = destination / entry.path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(entry.content)
        return destination


def is_cargo_source(path: PurePosixPath) -> bool:
    """Return whether ``path`` belongs to the compilable source set.

    The set covers Rust sources, manifests and other TOML configuration, the
    lockfile, and the legacy ``.cargo/config`` file.
    """

    if path.name in _CARGO_FILE_NAMES or path.suffix in _CARGO_SUFFIXES:
        return True
    return path.name == "config" and path.parent.name == ".cargo"


def has_segment(segment: str) -> SourcePredicate:
    """Return a predicate matching paths that contain the directory ``segment``."""

    def _matches(path: PurePosixPath) -> bool:
        return segment in path.parent.parts

    return _matches


def _is_noise(path: PurePosixPath) -> bool:
    name = path.name
    if name.endswith(_BACKUP_SUFFIXES):
        return True
    return name.startswith(".#")


COMPILE_PREDICATES: Final[tuple[SourcePredicate, ...]] = (is_cargo_source,)
PACKAGE_PREDICATES: Final[tuple[SourcePredicate, ...]] = (
    is_cargo_source,
    has_segment(MAN_SEGMENT),
    has_segment(COMPLETIONS_SEGMENT),
)


def predicates_for(mode: ViewMode) -> tuple[SourcePredicate, ...]:
    return PACKAGE_PREDICATES if mode is ViewMode.PACKAGE else COMPILE_PREDICATES


def _is_root_output(name: str) -> bool:
    return name in ROOT_OUTPUT_DIRS or name.startswith(ROOT_OUTPUT_PREFIX)


def _iter_files(root: Path) -> Iterator[PurePosixPath]:
    """Yield root-relative file paths, skipping VCS metadata and build output.

    VCS and tool directories are pruned at any depth. Build output (``target``
    and ``result*`` links) only counts at the repository root, so nested
    modules such as ``src/result/`` stay visible.
    """

    for dirpath, dirnames, filenames in os.walk(root, followlinks=False):
        current = Path(dirpath)
        at_root = current == root
        dirnames[:] = [
            name
            for name in dirnames
            if name not in ALWAYS_EXCLUDE_DIRS and not (at_root and _is_root_output(name))
        ]
        for filename in filenames:
            candidate = current / filename
            if at_root and candidate.is_symlink() and filename.startswith(ROOT_OUTPUT_PREFIX):
                continue
            if not candidate.is_file():
                continue
            relative = PurePosixPath(candidate.relative_to(root).as_posix())
            if not _is_noise(relative):
                yield relative


def _collect(root: Path, mode: ViewMode, predicates: Sequence[SourcePredicate]) -> SourceView:
    if not root.is_dir():
        raise SourceViewError("source root does not exist", root=root)
    selected = sorted(
        (path for path in _iter_files(root) if any(predicate(path) for predicate in predicates)),
        key=str,
    )
    entries = tuple(SourceEntry(path=str(path), content=(root / path).read_bytes()) for path in selected)
    return SourceView(root=root, mode=mode, entries=entries)


def build_view(root: Path, mode: ViewMode) -> SourceView:
    """Return the filtered view of ``root`` for ``mode``.

    Args:
        root: Repository root directory.
        mode: ``COMPILE`` for compilable sources only, ``PACKAGE`` to also keep
            manual-page and shell-completion directories.

    Returns:
        SourceView: Entries in lexicographic path order.

    Raises:
        SourceViewError: If ``root`` does not exist.
    """

    return _collect(root, mode, predicates_for(mode))


def snapshot_tree(root: Path) -> SourceView:
    """Return every non-ignored file under ``root``; used by the formatting check."""

    return _collect(root, ViewMode.PACKAGE, (lambda _path: True,))


__all__ = [
    "ALWAYS_EXCLUDE_DIRS",
    "COMPLETIONS_SEGMENT",
    "MAN_SEGMENT",
    "ROOT_OUTPUT_DIRS",
    "SourceEntry",
    "SourcePredicate",
    "SourceView",
    "ViewMode",
    "build_view",
    "has_segment",
    "is_cargo_source",
    "predicates_for",
    "snapshot_tree",
]

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Dependency-only compilation cached by a content fingerprint."""

from __future__ import annotations

import hashlib
import logging
import re
import tempfile
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from threading import Lock
from typing import Final

from .compiler import TARGET_DIR_NAME, CargoCommand
from .errors import DependencyBuildError
from .models import ArtifactSet, BuildConfig, DependencyFingerprint, ToolchainSpec
from .process import CommandOptions, ToolRunner, combined_output, run_command
from .sources import SourceView
from .store import ArtifactStore

LOGGER = logging.getLogger(__name__)

FINGERPRINT_DELIMITER: Final[bytes] = b"::"
_FAILED_CRATE_RE: Final[re.Pattern[str]] = re.compile(r"could not compile `([^`]+)`")
_BINARY_STUB: Final[bytes] = b"fn main() {}\n"
_BINARY_DIRS: Final[frozenset[str]] = frozenset({"bin", "tests", "benches", "examples"})

# (subcommand, extra args) pairs run against the dummy tree on a cache miss.
DEFAULT_DEPENDENCY_STEPS: Final[tuple[tuple[str, tuple[str, ...]], ...]] = (
    ("build", ()),
    ("test", ("--no-run",)),
)


def is_dependency_input(path: PurePosixPath) -> bool:
    """Return whether ``path`` declares dependencies or their resolution."""

    if path.name in {"Cargo.toml", "Cargo.lock"}:
        return True
    return path.parent.name == ".cargo" and path.name in {"config", "config.toml"}


def compute_fingerprint(view: SourceView, toolchain: ToolchainSpec, config: BuildConfig) -> DependencyFingerprint:
    """Return the fingerprint deciding whether compiled dependencies can be reused.

    Package-local feature flags are deliberately absent; only manifests, the
    lockfile, cargo configuration, the toolchain identity and the
    dependency-relevant build settings are hashed.

    Args:
        view: Compile view of the package.
        toolchain: Resolved toolchain specification.
        config: Build configuration for this invocation.

    Returns:
        DependencyFingerprint: SHA-256 digest plus the names of hashed inputs.
    """

    hasher = hashlib.sha256()
    inputs: list[str] = []
    for entry in view.select(is_dependency_input):
        hasher.update(entry.path.encode("utf-8"))
        hasher.update(FINGERPRINT_DELIMITER)
        hasher.update(entry.content)
        hasher.update(FINGERPRINT_DELIMITER)
        inputs.append(entry.path)
    hasher.update(toolchain.identity().encode("utf-8"))
    inputs.append(f"toolchain={toolchain.compiler_version}")
    for token in config.dependency_inputs():
        hasher.update(FINGERPRINT_DELIMITER)
        hasher.update(token.encode("utf-8"))
        inputs.append(token)
    return DependencyFingerprint(digest=hasher.hexdigest(), inputs=tuple(inputs))


def _stub_for(path: PurePosixPath) -> bytes:
    if path.name in {"main.rs", "build.rs"} or _BINARY_DIRS.intersection(path.parent.parts):
        return _BINARY_STUB
    return b""


def write_dummy_tree(view: SourceView, destination: Path) -> Path:
    """Materialize ``view`` with every Rust source replaced by a stub.

    Manifests, the lockfile and cargo configuration are written unchanged so
    cargo resolves and compiles exactly the declared dependency graph.
    """

    destination.mkdir(parents=True, exist_ok=True)
    for entry in view.entries:
        relative = PurePosixPath(entry.path)
        content = _stub_for(relative) if relative.suffix == ".rs" else entry.content
        target = destination / entry.path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
    return destination


@dataclass(frozen=True, slots=True)
class ArtifactCache:
    """Read-only handle to one committed set of dependency artifacts.

    Attributes:
        fingerprint: Fingerprint the artifacts are stored under.
        artifacts: Metadata describing the stored products.
        store: Backing store holding the products.
        rebuilt: ``True`` when this handle was produced by compiling dependencies.
    """

    fingerprint: DependencyFingerprint
    artifacts: ArtifactSet
    store: ArtifactStore
    rebuilt: bool = False

    def restore_into(self, workdir: Path) -> Path:
        """Copy the cached ``target/`` tree into ``workdir`` and return its location."""

        target = workdir / TARGET_DIR_NAME
        self.store.restore(self.fingerprint.digest, target)
        return target


class DependencyCache:
    """Compile external dependencies at most once per fingerprint."""

    def __init__(
        self,
        store: ArtifactStore,
        *,
        runner: ToolRunner = run_command,
        options: CommandOptions | None = None,
        steps: Sequence[tuple[str, Sequence[str]]] = DEFAULT_DEPENDENCY_STEPS,
        cargo: str = "cargo",
        work_root: Path | None = None,
    ) -> None:
        self._store = store
        self._runner = runner
        self._options = options or CommandOptions()
        self._steps = tuple((subcommand, tuple(extra)) for subcommand, extra in steps)
        self._cargo = cargo
        self._work_root = work_root
        self._locks: dict[str, Lock] = {}
        self._locks_guard = Lock()
        self.compilations = 0

    @property
    def store(self) -> ArtifactStore:
        return self._store

    def build_deps_only(self, view: SourceView, toolchain: ToolchainSpec, config: BuildConfig) -> ArtifactCache:
        """Return cached dependency artifacts, compiling them only on a miss.

        Args:
            view: Compile view of the package sources.
            toolchain: Resolved toolchain specification.
            config: Build configuration for this invocation.

        Returns:
            ArtifactCache: Handle to the committed artifacts.

        Raises:
            DependencyBuildError: If a dependency fails to compile; nothing is
                committed in that case.
        """

        fingerprint = compute_fingerprint(view, toolchain, config)
        with self._lock_for(fingerprint.digest):
            existing = self._store.load(fingerprint.digest)
            if existing is not None:
                LOGGER.debug("dependency cache hit fingerprint=%s", fingerprint.short)
                return ArtifactCache(fingerprint=fingerprint, artifacts=existing, store=self._store)
            LOGGER.info("compiling dependencies fingerprint=%s", fingerprint.short)
            artifacts = self._compile(view, toolchain, config, fingerprint)
            return ArtifactCache(fingerprint=fingerprint, artifacts=artifacts, store=self._store, rebuilt=True)

    def _compile(
        self,
        view: SourceView,
        toolchain: ToolchainSpec,
        config: BuildConfig,
        fingerprint: DependencyFingerprint,
    ) -> ArtifactSet:
        cargo = CargoCommand(toolchain=toolchain, config=config, executable=self._cargo)
        with tempfile.TemporaryDirectory(prefix="buildpipe-deps-", dir=self._work_root) as scratch:
            workdir = write_dummy_tree(view, Path(scratch) / "src")
            options = self._options.with_cwd(workdir).with_env(cargo.environment(workdir))
            self.compilations += 1
            for subcommand, extra in self._steps:
                completed = self._runner(cargo.args(subcommand, *extra), options)
                if completed.returncode != 0:
                    diagnostics = combined_output(completed)
                    raise DependencyBuildError(
                        fingerprint=fingerprint.digest,
                        dependency=_failed_crate(diagnostics),
                        diagnostics=diagnostics,
                    )
            target = workdir / TARGET_DIR_NAME
            target.mkdir(parents=True, exist_ok=True)
            return self._store.commit(fingerprint.digest, target)

    def _lock_for(self, digest: str) -> Lock:
        with self._locks_guard:
            return self._locks.setdefault(digest, Lock())


def _failed_crate(diagnostics: str) -> str | None:
    matches = _FAILED_CRATE_RE.findall(diagnostics)
    return matches[-1] if matches else None


__all__ = [
    "ArtifactCache",
    "DEFAULT_DEPENDENCY_STEPS",
    "DependencyCache",
    "compute_fingerprint",
    "is_dependency_input",
    "write_dummy_tree",
]

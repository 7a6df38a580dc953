# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Default build target, runnable and formatter exposed for external consumers."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from threading import Lock

from .models import PackageArtifact
from .pipeline import Pipeline


class EntryPointResolver:
    """Compose pipeline outputs into the three default bindings.

    The resolver adds no failure modes of its own: errors from the underlying
    stage propagate unchanged and leave the binding unresolved.
    """

    def __init__(self, pipeline: Pipeline, *, output_dir: Path | None = None) -> None:
        self._pipeline = pipeline
        self._output_dir = output_dir
        self._artifact: PackageArtifact | None = None
        self._lock = Lock()

    @property
    def resolved(self) -> bool:
        return self._artifact is not None

    def default_build_target(self) -> PackageArtifact:
        """Return the package artifact, building it on first use."""

        with self._lock:
            if self._artifact is None:
                self._artifact = self._pipeline.build(self._output_dir)
            return self._artifact

    def default_runnable(self) -> Path:
        """Return the path of the main program inside the default build target."""

        return self.default_build_target().binary

    def default_formatter(self) -> Callable[[], str]:
        """Return the formatter bound to the repository in fix mode."""

        return self._pipeline.format


__all__ = ["EntryPointResolver"]

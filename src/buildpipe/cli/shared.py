# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Shared utilities for CLI commands (logging, errors, pipeline construction)."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Final

import typer
from rich.console import Console
from rich.logging import RichHandler

from ..console import StageReporter
from ..errors import BuildPipeError, DependencyBuildError, PackageBuildError
from ..pipeline import Pipeline

RootOption = Annotated[
    Path,
    typer.Option("--root", "-r", help="Repository root containing Cargo.toml.", file_okay=False, resolve_path=True),
]
EmojiOption = Annotated[bool, typer.Option("--emoji/--no-emoji", help="Decorate progress output with emoji.")]
DebugOption = Annotated[bool, typer.Option("--debug", help="Emit debug logging for every tool invocation.")]

_LOG_FORMAT: Final[str] = "%(message)s"


@dataclass(slots=True)
class CLILogger:
    """Adapter writing CLI status lines through a Rich console."""

    console: Console
    use_emoji: bool

    def ok(self, message: str) -> None:
        self.console.print(f"{'✅ ' if self.use_emoji else ''}{message}", style="green")

    def fail(self, message: str) -> None:
        self.console.print(f"{'❌ ' if self.use_emoji else ''}{message}", style="bold red")

    def detail(self, text: str) -> None:
        """Print raw tool output without markup interpretation."""

        if text.strip():
            self.console.print(text.rstrip(), markup=False, highlight=False)

    def reporter(self) -> StageReporter:
        return StageReporter(console=self.console, use_color=not self.console.no_color, use_emoji=self.use_emoji)


def build_cli_logger(*, emoji: bool, debug: bool = False) -> CLILogger:
    """Return a logger bound to a fresh console and configure stdlib logging.

    Args:
        emoji: Whether status lines may include emoji glyphs.
        debug: Whether ``buildpipe`` debug records are shown.

    Returns:
        CLILogger: Logger instance bound to a dedicated Rich console.
    """

    console = Console(highlight=False)
    handler = RichHandler(console=console, show_path=False, show_time=False)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    package_logger = logging.getLogger("buildpipe")
    package_logger.handlers = [handler]
    package_logger.setLevel(logging.DEBUG if debug else logging.WARNING)
    package_logger.propagate = False
    return CLILogger(console=console, use_emoji=emoji)


def create_pipeline(root: Path, *, logger: CLILogger) -> Pipeline:
    """Return the pipeline for ``root``; commands resolve it through this hook."""

    return Pipeline.from_root(root, reporter=logger.reporter())


@contextmanager
def reported_errors(logger: CLILogger) -> Iterator[None]:
    """Translate pipeline failures into a diagnostic and a non-zero exit.

    Raises:
        typer.Exit: With status 1 for any :class:`BuildPipeError`.
    """

    try:
        yield
    except BuildPipeError as exc:
        logger.fail(str(exc))
        logger.detail(_diagnostics_of(exc))
        raise typer.Exit(code=1) from exc


def _diagnostics_of(exc: BuildPipeError) -> str:
    if isinstance(exc, (DependencyBuildError, PackageBuildError)):
        return exc.diagnostics
    return ""


__all__ = [
    "CLILogger",
    "DebugOption",
    "EmojiOption",
    "RootOption",
    "build_cli_logger",
    "create_pipeline",
    "reported_errors",
]

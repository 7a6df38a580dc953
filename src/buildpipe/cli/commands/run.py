# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""``run``: build the package, then execute its main program."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from ...entrypoints import EntryPointResolver
from ...process import run_attached
from .. import shared
from ..shared import DebugOption, EmojiOption, RootOption

ProgramArgs = Annotated[
    list[str] | None,
    typer.Argument(help="Arguments forwarded to the program; separate them with '--'."),
]


def run_command(
    args: ProgramArgs = None,
    root: RootOption = Path("."),
    emoji: EmojiOption = True,
    debug: DebugOption = False,
) -> None:
    """Build the default target and run its main program with ``args``."""

    logger = shared.build_cli_logger(emoji=emoji, debug=debug)
    with shared.reported_errors(logger):
        runnable = EntryPointResolver(shared.create_pipeline(root, logger=logger)).default_runnable()
    raise typer.Exit(code=run_attached([str(runnable), *(args or [])]))


def register(app: typer.Typer) -> None:
    app.command(name="run", help="Build then execute the default runnable.")(run_command)


__all__ = ["register", "run_command"]

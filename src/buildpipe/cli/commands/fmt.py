# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""``format``: run the repository formatter in fix or check mode."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from ...entrypoints import EntryPointResolver
from ...errors import CheckFailure
from .. import shared
from ..shared import DebugOption, EmojiOption, RootOption

CheckOnlyOption = Annotated[
    bool,
    typer.Option("--check", help="Report formatting differences without touching the tree."),
]


def format_command(
    root: RootOption = Path("."),
    check: CheckOnlyOption = False,
    emoji: EmojiOption = True,
    debug: DebugOption = False,
) -> None:
    """Format the whole repository, not only the compile view."""

    logger = shared.build_cli_logger(emoji=emoji, debug=debug)
    with shared.reported_errors(logger):
        pipeline = shared.create_pipeline(root, logger=logger)
        if not check:
            logger.detail(EntryPointResolver(pipeline).default_formatter()())
            logger.ok("formatted repository")
            return
        try:
            output = pipeline.verify_formatting()
        except CheckFailure as failure:
            logger.fail("formatting differs")
            logger.detail(failure.diagnostics)
            raise typer.Exit(code=1) from failure
    logger.detail(output)
    logger.ok("formatting is clean")


def register(app: typer.Typer) -> None:
    app.command(name="format", help="Run the formatter (fix mode unless --check).")(format_command)


__all__ = ["format_command", "register"]

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""``build``: assemble the default package target."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from ...entrypoints import EntryPointResolver
from .. import shared
from ..shared import DebugOption, EmojiOption, RootOption

OutputOption = Annotated[
    Path | None,
    typer.Option("--out-link", "-o", help="Directory receiving the assembled package (default: <root>/result)."),
]


def build_command(
    root: RootOption = Path("."),
    out_link: OutputOption = None,
    emoji: EmojiOption = True,
    debug: DebugOption = False,
) -> None:
    """Build the package, generate manual pages and install completions."""

    logger = shared.build_cli_logger(emoji=emoji, debug=debug)
    with shared.reported_errors(logger):
        resolver = EntryPointResolver(shared.create_pipeline(root, logger=logger), output_dir=out_link)
        artifact = resolver.default_build_target()
    logger.ok(f"{artifact.name} {artifact.version}: {artifact.binary}")
    for page in artifact.man_pages:
        logger.detail(f"  man  {page}")
    for shell, script in sorted(artifact.completions.items()):
        logger.detail(f"  {shell:<5}{script}")


def register(app: typer.Typer) -> None:
    app.command(name="build", help="Build the package (exit 0 on success).")(build_command)


__all__ = ["build_command", "register"]

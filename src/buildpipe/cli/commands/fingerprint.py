# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""``fingerprint``: print the dependency cache key without compiling."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from .. import shared
from ..shared import DebugOption, RootOption

VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="List the inputs that were hashed.")]


def fingerprint_command(
    root: RootOption = Path("."),
    verbose: VerboseOption = False,
    debug: DebugOption = False,
) -> None:
    """Print the dependency fingerprint for the current tree and toolchain."""

    logger = shared.build_cli_logger(emoji=False, debug=debug)
    with shared.reported_errors(logger):
        fingerprint = shared.create_pipeline(root, logger=logger).fingerprint()
    typer.echo(fingerprint.digest)
    if verbose:
        for item in fingerprint.inputs:
            typer.echo(f"  {item}")


def register(app: typer.Typer) -> None:
    app.command(name="fingerprint", help="Show the dependency cache fingerprint.")(fingerprint_command)


__all__ = ["fingerprint_command", "register"]

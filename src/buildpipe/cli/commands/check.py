# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""``check``: run the verification tasks and report every result."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from ...models import CheckKind, CheckResult
from .. import shared
from ..shared import CLILogger, DebugOption, EmojiOption, RootOption

ChecksOption = Annotated[
    list[CheckKind] | None,
    typer.Option("--check", "-c", help="Check to run; repeat for several (default: configured set).", case_sensitive=False),
]


def check_command(
    checks: ChecksOption = None,
    root: RootOption = Path("."),
    emoji: EmojiOption = True,
    debug: DebugOption = False,
) -> None:
    """Run the requested checks; exit non-zero when any of them fails."""

    logger = shared.build_cli_logger(emoji=emoji, debug=debug)
    with shared.reported_errors(logger):
        pipeline = shared.create_pipeline(root, logger=logger)
        results = pipeline.check(checks or None)
    exit_code = report_results(results, logger=logger)
    raise typer.Exit(code=exit_code)


def report_results(results: Sequence[CheckResult], *, logger: CLILogger) -> int:
    """Render ``results`` as a table followed by per-check diagnostics.

    Args:
        results: Check results in reporting order.
        logger: CLI logger owning the output console.

    Returns:
        int: ``1`` when any check failed, otherwise ``0``.
    """

    table = Table(title="checks", show_lines=False)
    table.add_column("check")
    table.add_column("status")
    table.add_column("time", justify="right")
    for result in results:
        status = "[green]pass[/green]" if result.passed else "[bold red]FAIL[/bold red]"
        table.add_row(result.name, status, f"{result.duration_seconds:.1f}s")
    logger.console.print(table)

    failed = [result for result in results if not result.passed]
    for result in failed:
        logger.fail(f"{result.name} failed")
        logger.detail(result.diagnostics)
    if failed:
        return 1
    logger.ok(f"{len(results)} check(s) passed")
    return 0


def register(app: typer.Typer) -> None:
    app.command(name="check", help="Run formatting, audit, lint and test checks.")(check_command)


__all__ = ["check_command", "register", "report_results"]

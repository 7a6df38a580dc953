# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""CLI command registry."""

from __future__ import annotations

import typer

from . import build, check, fingerprint, fmt, run

__all__ = ["register_commands"]


def register_commands(app: typer.Typer) -> None:
    """Register every pipeline command on ``app``.

    Args:
        app: Typer application receiving the command registrations.
    """

    build.register(app)
    run.register(app)
    fmt.register(app)
    check.register(app)
    fingerprint.register(app)

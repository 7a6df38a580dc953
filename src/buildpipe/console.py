# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Stage progress reporting with optional colour and emoji decoration."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Final

from rich.console import Console
from rich.rule import Rule
from rich.text import Text

_GLYPHS: Final[dict[str, str]] = {
    "info": "ℹ️ ",
    "ok": "✅ ",
    "warn": "⚠️ ",
}
_STYLES: Final[dict[str, str]] = {
    "info": "cyan",
    "ok": "green",
    "warn": "yellow",
}

LOGGER = logging.getLogger("buildpipe")


@dataclass(slots=True)
class StageReporter:
    """Print pipeline stage progress through a Rich console while mirroring it to ``logging``.

    Attributes:
        console: Destination console; the CLI passes its own so output interleaves.
        use_color: Whether stage rules and status styles are rendered.
        use_emoji: Whether status glyphs prefix each message.
    """

    console: Console = field(default_factory=lambda: Console(highlight=False))
    use_color: bool = True
    use_emoji: bool = True

    def stage(self, title: str) -> None:
        """Print a header announcing the pipeline stage ``title``."""

        if self.use_color:
            self.console.print()
            self.console.print(Rule(title, style="blue"))
        else:
            self.console.print(f"\n--- {title} ---", markup=False, highlight=False)
        LOGGER.debug("stage=%s", title)

    def info(self, message: str) -> None:
        self._emit("info", message, logging.INFO)

    def ok(self, message: str) -> None:
        self._emit("ok", message, logging.INFO)

    def warn(self, message: str) -> None:
        self._emit("warn", message, logging.WARNING)

    def _emit(self, kind: str, message: str, level: int) -> None:
        glyph = _GLYPHS[kind] if self.use_emoji else ""
        text = Text(f"{glyph}{message}")
        if self.use_color:
            text.stylize(_STYLES[kind])
        self.console.print(text)
        LOGGER.log(level, message)


def quiet_reporter() -> StageReporter:
    """Return a reporter that stays silent on the terminal but still logs."""

    return StageReporter(console=Console(quiet=True), use_color=False, use_emoji=False)


__all__ = ["LOGGER", "StageReporter", "quiet_reporter"]

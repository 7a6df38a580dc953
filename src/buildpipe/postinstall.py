# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Named post-install steps generating manual pages and installing completions."""

from __future__ import annotations

import logging
import re
import shutil
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Final, Protocol

from .errors import PostInstallError
from .process import CommandOptions, ToolRunner, combined_output

LOGGER = logging.getLogger(__name__)

VERSION_PLACEHOLDER: Final[str] = "$version"
DEFAULT_MAN_CONVERTER: Final[tuple[str, ...]] = ("pandoc", "--standalone", "-f", "markdown", "-t", "man")
SUPPORTED_SHELLS: Final[tuple[str, ...]] = ("bash", "fish", "zsh")
_MAN_SECTION_RE: Final[re.Pattern[str]] = re.compile(r"\.([1-9])[a-z]*$")
_YAML_TITLE_RE: Final[re.Pattern[str]] = re.compile(r"^title:\s*\S", re.MULTILINE)


@dataclass(frozen=True, slots=True)
class InstallContext:
    """Inputs shared by every step of one post-install run.

    Attributes:
        source_root: Materialized package view the step reads from.
        install_root: Scoped output area; discarded by the caller on failure.
        scratch: Directory for intermediate files.
        version: Caller-supplied version substituted into manual pages.
        runner: Tool runner used for external converters.
        options: Base command options (timeouts, environment).
    """

    source_root: Path
    install_root: Path
    scratch: Path
    version: str
    runner: ToolRunner
    options: CommandOptions = field(default_factory=CommandOptions)


class PostInstallStep(Protocol):
    """A named operation run after a successful compile."""

    @property
    def name(self) -> str:
        """Return the identifier used to attribute failures."""
        ...

    def run(self, context: InstallContext) -> tuple[Path, ...]:
        """Execute the step and return the installed paths.

        Raises:
            PostInstallError: If the step cannot complete.
        """
        ...


def has_title_block(markdown: str) -> bool:
    """Return whether ``markdown`` declares the title pandoc needs for a man page.

    Both the ``% title`` block and a YAML metadata block with ``title:`` count.
    """

    stripped = markdown.lstrip()
    if stripped.startswith("---"):
        _, _, remainder = stripped.partition("\n")
        header, _, _ = remainder.partition("\n---")
        return bool(_YAML_TITLE_RE.search(header))
    first_line = stripped.splitlines()[0] if stripped else ""
    return first_line.startswith("%") and bool(first_line[1:].strip())


def substitute_version(markdown: str, version: str) -> str:
    return markdown.replace(VERSION_PLACEHOLDER, version)


@dataclass(frozen=True, slots=True)
class ManPageStep:
    """Convert ``man/<page>.md`` into a troff manual page and install it.

    Attributes:
        source: Markdown source relative to the package root, e.g. ``man/eza.1.md``.
        converter: Converter command; the input path, ``-o`` and the output path
            are appended.
    """

    source: str
    converter: tuple[str, ...] = DEFAULT_MAN_CONVERTER

    @property
    def page(self) -> str:
        name = PurePosixPath(self.source).name
        return name[: -len(".md")] if name.endswith(".md") else name

    @property
    def section(self) -> str:
        match = _MAN_SECTION_RE.search(self.page)
        if match is None:
            raise PostInstallError(self.name, f"cannot infer manual section from {self.page!r}")
        return match.group(1)

    @property
    def name(self) -> str:
        return f"man:{self.page}"

    def run(self, context: InstallContext) -> tuple[Path, ...]:
        source_path = context.source_root / self.source
        if not source_path.is_file():
            raise PostInstallError(self.name, f"manual page source {self.source} is missing")
        try:
            markdown = substitute_version(source_path.read_text(encoding="utf-8"), context.version)
        except UnicodeDecodeError as exc:
            raise PostInstallError(self.name, f"{self.source} is not valid UTF-8: {exc}") from exc
        if not has_title_block(markdown):
            raise PostInstallError(self.name, f"{self.source} lacks the required title section")

        rendered_input = context.scratch / f"{self.page}.md"
        rendered_output = context.scratch / self.page
        rendered_input.write_text(markdown, encoding="utf-8")
        completed = context.runner(
            [*self.converter, str(rendered_input), "-o", str(rendered_output)],
            context.options.with_cwd(context.source_root),
        )
        if completed.returncode != 0:
            raise PostInstallError(self.name, combined_output(completed))
        if not rendered_output.is_file() or rendered_output.stat().st_size == 0:
            raise PostInstallError(self.name, "converter produced no output")

        destination = context.install_root / "share" / "man" / f"man{self.section}" / self.page
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(rendered_output, destination)
        return (destination,)


@dataclass(frozen=True, slots=True)
class ShellCompletionStep:
    """Copy a fixed completion script into the shell's conventional location."""

    shell: str
    source: str

    def __post_init__(self) -> None:
        if self.shell not in SUPPORTED_SHELLS:
            raise ValueError(f"unsupported shell {self.shell!r}; expected one of {', '.join(SUPPORTED_SHELLS)}")

    @property
    def name(self) -> str:
        return f"completion:{self.shell}"

    def destination(self, install_root: Path) -> Path:
        """Return where the script for :attr:`shell` is installed beneath ``install_root``."""

        filename = PurePosixPath(self.source).name
        share = install_root / "share"
        if self.shell == "bash":
            return share / "bash-completion" / "completions" / filename.removesuffix(".bash")
        if self.shell == "fish":
            return share / "fish" / "vendor_completions.d" / filename
        return share / "zsh" / "site-functions" / filename

    def run(self, context: InstallContext) -> tuple[Path, ...]:
        source_path = context.source_root / self.source
        if not source_path.is_file():
            raise PostInstallError(self.name, f"completion script {self.source} is missing")
        destination = self.destination(context.install_root)
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source_path, destination)
        return (destination,)


class PostInstallPlan:
    """Builder collecting post-install steps in declaration order."""

    def __init__(self) -> None:
        self._steps: list[PostInstallStep] = []

    def man_page(self, source: str, *, converter: Sequence[str] = DEFAULT_MAN_CONVERTER) -> PostInstallPlan:
        self._steps.append(ManPageStep(source=source, converter=tuple(converter)))
        return self

    def shell_completion(self, shell: str, source: str) -> PostInstallPlan:
        self._steps.append(ShellCompletionStep(shell=shell, source=source))
        return self

    def add(self, step: PostInstallStep) -> PostInstallPlan:
        self._steps.append(step)
        return self

    def steps(self) -> tuple[PostInstallStep, ...]:
        return tuple(self._steps)


def run_post_install(steps: Sequence[PostInstallStep], context: InstallContext) -> dict[str, tuple[Path, ...]]:
    """Run ``steps`` in order, stopping at the first failure.

    Outputs of steps that already completed stay in ``context.install_root``.

    Args:
        steps: Steps in declaration order.
        context: Shared install context.

    Returns:
        dict[str, tuple[Path, ...]]: Installed paths keyed by step name.

    Raises:
        PostInstallError: Naming the first failing step.
    """

    outputs: dict[str, tuple[Path, ...]] = {}
    context.scratch.mkdir(parents=True, exist_ok=True)
    context.install_root.mkdir(parents=True, exist_ok=True)
    for step in steps:
        LOGGER.debug("post-install step=%s", step.name)
        try:
            outputs[step.name] = step.run(context)
        except OSError as exc:
            raise PostInstallError(step.name, str(exc)) from exc
    return outputs


__all__ = [
    "DEFAULT_MAN_CONVERTER",
    "InstallContext",
    "ManPageStep",
    "PostInstallPlan",
    "PostInstallStep",
    "SUPPORTED_SHELLS",
    "ShellCompletionStep",
    "VERSION_PLACEHOLDER",
    "has_title_block",
    "run_post_install",
    "substitute_version",
]

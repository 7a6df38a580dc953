# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Shell-free wrappers used for every external tool invocation."""

from __future__ import annotations

import logging
import os
import shutil

# Bandit: subprocess usage is intentional; arguments are always lists and
# ``shell=True`` is never used.
import subprocess  # nosec B404
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path
from subprocess import CompletedProcess
from typing import Final, Protocol

LOGGER = logging.getLogger(__name__)

TIMEOUT_EXIT_CODE: Final[int] = 124
NOT_FOUND_EXIT_CODE: Final[int] = 127


@dataclass(frozen=True, slots=True)
class CommandOptions:
    """Execution options for one external tool invocation.

    Attributes:
        cwd: Working directory for the process.
        env: Variables layered on top of the inherited environment.
        timeout: Caller-supplied limit in seconds; ``None`` waits indefinitely.
        check: Raise :class:`SubprocessExecutionError` on non-zero exit status.
    """

    cwd: Path | None = None
    env: Mapping[str, str] = field(default_factory=dict)
    timeout: float | None = None
    check: bool = False

    def with_cwd(self, cwd: Path) -> CommandOptions:
        """Return a copy bound to ``cwd``."""

        return replace(self, cwd=cwd)

    def with_env(self, updates: Mapping[str, str]) -> CommandOptions:
        """Return a copy whose environment layer also contains ``updates``.

        Args:
            updates: Variables to add or replace.

        Returns:
            CommandOptions: New options instance; ``self`` is left untouched.

        Raises:
            TypeError: If ``updates`` maps anything other than strings.
        """

        merged = dict(self.env)
        for key, value in updates.items():
            if not isinstance(key, str) or not isinstance(value, str):
                raise TypeError("environment overrides must map strings to strings")
            merged[key] = value
        return replace(self, env=merged)

    def with_timeout(self, timeout: float | None) -> CommandOptions:
        if timeout is not None and timeout < 0:
            raise ValueError("timeout must be non-negative")
        return replace(self, timeout=timeout)


class SubprocessExecutionError(RuntimeError):
    """Raised when a process exits with a non-zero status while ``check`` is true."""

    def __init__(self, command: Sequence[str], returncode: int, stdout: str, stderr: str) -> None:
        super().__init__(f"Command '{command[0]}' exited with status {returncode}. stderr: {stderr or '<none>'}")
        self.command = tuple(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class ToolRunner(Protocol):
    """Callable contract used by pipeline components to start external tools."""

    def __call__(self, args: Sequence[str], options: CommandOptions) -> CompletedProcess[str]:
        """Run ``args`` and return the completed process with captured text output."""
        ...


def _ensure_text(value: str | bytes | None) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return value.decode(errors="ignore")


def _resolve_executable(args: Sequence[str], search_path: str | None) -> list[str] | None:
    """Return ``args`` with the executable resolved, or ``None`` when it is missing.

    Raises:
        ValueError: If ``args`` is empty.
    """

    if not args:
        raise ValueError("subprocess command requires at least one argument")
    head, *rest = args
    if Path(head).is_absolute():
        return [head, *rest]
    resolved = shutil.which(head, path=search_path)
    if resolved is None:
        return None
    return [resolved, *rest]


def combined_output(completed: CompletedProcess[str]) -> str:
    """Return stdout and stderr joined the way a terminal would show them."""

    parts = [part.rstrip("\n") for part in (completed.stdout, completed.stderr) if part]
    return "\n".join(parts)


def run_command(args: Sequence[str], options: CommandOptions | None = None) -> CompletedProcess[str]:
    """Execute ``args`` with captured text output and a closed stdin.

    Missing executables and timeouts are reported the way a shell would: exit
    status 127 and 124 respectively, with an explanatory message on stderr.

    Args:
        args: Command and argument sequence to execute.
        options: Execution options; defaults apply when omitted.

    Returns:
        CompletedProcess[str]: Completed process metadata.

    Raises:
        SubprocessExecutionError: When ``options.check`` is true and the
            process exits with a non-zero status.
    """

    resolved_options = options or CommandOptions()
    env = dict(os.environ)
    env.update(resolved_options.env)
    normalized = _resolve_executable(args, env.get("PATH"))
    if normalized is None:
        completed: CompletedProcess[str] = CompletedProcess(
            args=list(args),
            returncode=NOT_FOUND_EXIT_CODE,
            stdout="",
            stderr=f"Executable '{args[0]}' was not found on PATH",
        )
    else:
        LOGGER.debug("command=%s cwd=%s", " ".join(normalized), resolved_options.cwd)
        try:
            completed = subprocess.run(  # nosec B603 - argument list, no shell
                normalized,
                cwd=str(resolved_options.cwd) if resolved_options.cwd is not None else None,
                env=env,
                check=False,
                capture_output=True,
                text=True,
                timeout=resolved_options.timeout,
                stdin=subprocess.DEVNULL,
            )
        except subprocess.TimeoutExpired as exc:
            stderr = _ensure_text(exc.stderr)
            timeout_msg = f"Command timed out after {resolved_options.timeout:.1f}s"
            completed = CompletedProcess(
                args=normalized,
                returncode=TIMEOUT_EXIT_CODE,
                stdout=_ensure_text(exc.stdout),
                stderr=f"{stderr}\n{timeout_msg}" if stderr else timeout_msg,
            )

    if resolved_options.check and completed.returncode != 0:
        raise SubprocessExecutionError(list(args), completed.returncode, completed.stdout, completed.stderr)
    return completed


def run_attached(args: Sequence[str], options: CommandOptions | None = None) -> int:
    """Run ``args`` attached to the current terminal and return its exit status."""

    resolved_options = options or CommandOptions()
    env = dict(os.environ)
    env.update(resolved_options.env)
    normalized = _resolve_executable(args, env.get("PATH"))
    if normalized is None:
        LOGGER.error("Executable '%s' was not found", args[0])
        return NOT_FOUND_EXIT_CODE
    completed = subprocess.run(  # nosec B603 - argument list, no shell
        normalized,
        cwd=str(resolved_options.cwd) if resolved_options.cwd is not None else None,
        env=env,
        check=False,
    )
    return completed.returncode


__all__ = [
    "CommandOptions",
    "NOT_FOUND_EXIT_CODE",
    "SubprocessExecutionError",
    "TIMEOUT_EXIT_CODE",
    "ToolRunner",
    "combined_output",
    "run_attached",
    "run_command",
]

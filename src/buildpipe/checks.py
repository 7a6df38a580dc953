# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Independent verification tasks run against the cached dependency artifacts."""

from __future__ import annotations

import difflib
import logging
import tempfile
import time
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final, Protocol

from .compiler import CargoCommand
from .deps import ArtifactCache
from .errors import CheckFailure
from .models import BuildConfig, CheckKind, CheckResult, ToolchainSpec
from .process import CommandOptions, ToolRunner, combined_output, run_command
from .sources import SourceView, snapshot_tree

LOGGER = logging.getLogger(__name__)

DEFAULT_FORMATTER: Final[tuple[str, ...]] = ("treefmt", "--no-cache")
DEFAULT_LINT_ARGS: Final[tuple[str, ...]] = ("--deny", "warnings")
_TERSE_TEST_SUFFIX: Final[str] = ": test"


def partition_tests(names: Iterable[str], count: int) -> list[tuple[str, ...]]:
    """Split ``names`` into ``count`` disjoint, deterministic shards.

    Names are de-duplicated and sorted, then dealt round-robin so shard sizes
    differ by at most one. The union of all shards equals the input set.

    Args:
        names: Test identifiers.
        count: Number of shards; must be positive.

    Returns:
        list[tuple[str, ...]]: Exactly ``count`` shards (some may be empty).

    Raises:
        ValueError: If ``count`` is smaller than one.
    """

    if count < 1:
        raise ValueError("partition count must be at least 1")
    ordered = sorted(set(names))
    return [tuple(ordered[index::count]) for index in range(count)]


def parse_test_list(output: str) -> list[str]:
    """Return test names from ``cargo test -- --list --format terse`` output."""

    return [line[: -len(_TERSE_TEST_SUFFIX)] for line in output.splitlines() if line.endswith(_TERSE_TEST_SUFFIX)]


@dataclass(frozen=True, slots=True)
class CheckContext:
    """Read-only inputs shared by every check; each check gets its own ``workdir``.

    Attributes:
        repo_root: Repository root; read by the formatting check only.
        view: Compile view of the package.
        cache: Dependency artifacts; restored by copy into each work directory.
        toolchain: Resolved toolchain specification.
        config: Build configuration used for dependency compilation.
        runner: Tool runner used for all external tools.
        options: Base command options.
        work_root: Parent for scoped working directories.
    """

    repo_root: Path
    view: SourceView
    cache: ArtifactCache
    toolchain: ToolchainSpec
    config: BuildConfig
    runner: ToolRunner = run_command
    options: CommandOptions = field(default_factory=CommandOptions)
    work_root: Path | None = None
    cargo: str = "cargo"

    def cargo_command(self) -> CargoCommand:
        return CargoCommand(toolchain=self.toolchain, config=self.config, executable=self.cargo)

    def prepare_workdir(self, prefix: str) -> tempfile.TemporaryDirectory[str]:
        return tempfile.TemporaryDirectory(prefix=f"buildpipe-{prefix}-", dir=self.work_root)

    def compile_workdir(self, scratch: Path) -> tuple[Path, CommandOptions]:
        """Materialize the compile view plus cached artifacts into ``scratch``."""

        workdir = self.view.materialize(scratch / "src")
        self.cache.restore_into(workdir)
        cargo = self.cargo_command()
        return workdir, self.options.with_cwd(workdir).with_env(cargo.environment(workdir))


class Check(Protocol):
    """A verification task; raises :class:`CheckFailure` to report failure."""

    kind: CheckKind

    def run(self, context: CheckContext) -> str:
        """Execute the check and return diagnostic text on success."""
        ...


@dataclass(frozen=True, slots=True)
class FormattingCheck:
    """Run the formatter on a scratch copy of the repository and diff the result.

    In fix mode the formatter runs in place on :attr:`CheckContext.repo_root`.
    """

    command: tuple[str, ...] = DEFAULT_FORMATTER
    kind: CheckKind = CheckKind.FORMATTING

    def run(self, context: CheckContext) -> str:
        return self.verify(context.repo_root, context.runner, context.options, work_root=context.work_root)

    def verify(
        self,
        repo_root: Path,
        runner: ToolRunner = run_command,
        options: CommandOptions | None = None,
        *,
        work_root: Path | None = None,
    ) -> str:
        """Report a unified diff of what the formatter would change in ``repo_root``.

        The dependency cache is not needed, so this also backs ``format --check``.

        Raises:
            CheckFailure: If the formatter fails or would modify any file.
        """

        snapshot = snapshot_tree(repo_root)
        with tempfile.TemporaryDirectory(prefix="buildpipe-fmt-", dir=work_root) as scratch_name:
            tree = snapshot.materialize(Path(scratch_name) / "tree")
            completed = runner(list(self.command), (options or CommandOptions()).with_cwd(tree))
            if completed.returncode != 0:
                raise CheckFailure(self.kind.value, combined_output(completed))
            diff = _tree_diff(snapshot, tree)
        if diff:
            raise CheckFailure(self.kind.value, diff)
        return combined_output(completed)

    def fix(self, repo_root: Path, runner: ToolRunner = run_command, options: CommandOptions | None = None) -> str:
        """Format ``repo_root`` in place and return the formatter output.

        Raises:
            CheckFailure: If the formatter exits with a non-zero status.
        """

        completed = runner(list(self.command), (options or CommandOptions()).with_cwd(repo_root))
        if completed.returncode != 0:
            raise CheckFailure(self.kind.value, combined_output(completed))
        return combined_output(completed)


def _tree_diff(snapshot: SourceView, tree: Path) -> str:
    chunks: list[str] = []
    for entry in snapshot.entries:
        candidate = tree / entry.path
        after = candidate.read_bytes() if candidate.is_file() else b""
        if after == entry.content:
            continue
        chunks.extend(
            difflib.unified_diff(
                entry.content.decode("utf-8", errors="replace").splitlines(keepends=True),
                after.decode("utf-8", errors="replace").splitlines(keepends=True),
                fromfile=f"a/{entry.path}",
                tofile=f"b/{entry.path}",
            ),
        )
    return "".join(chunks)


@dataclass(frozen=True, slots=True)
class AuditCheck:
    """Cross-reference the lockfile against a local advisory database."""

    advisory_db: Path | None = None
    executable: str = "cargo"
    kind: CheckKind = CheckKind.AUDIT

    def run(self, context: CheckContext) -> str:
        lockfile = context.view.get("Cargo.lock")
        if lockfile is None:
            raise CheckFailure(self.kind.value, "Cargo.lock is missing from the compile view")
        with context.prepare_workdir("audit") as scratch_name:
            scratch = Path(scratch_name)
            (scratch / "Cargo.lock").write_bytes(lockfile)
            command = [self.executable, "audit", "--file", str(scratch / "Cargo.lock")]
            if self.advisory_db is not None:
                command.extend(["--db", str(self.advisory_db), "--no-fetch"])
            completed = context.runner(command, context.options.with_cwd(scratch))
        if completed.returncode != 0:
            raise CheckFailure(self.kind.value, combined_output(completed))
        return combined_output(completed)


@dataclass(frozen=True, slots=True)
class LintCheck:
    """Static analysis in zero-tolerance mode: every warning is a failure."""

    extra_args: tuple[str, ...] = DEFAULT_LINT_ARGS
    kind: CheckKind = CheckKind.LINT

    def run(self, context: CheckContext) -> str:
        with context.prepare_workdir("lint") as scratch_name:
            _, options = context.compile_workdir(Path(scratch_name))
            command = context.cargo_command().args("clippy", "--all-targets", trailing=self.extra_args)
            completed = context.runner(command, options)
        if completed.returncode != 0:
            raise CheckFailure(self.kind.value, combined_output(completed))
        return combined_output(completed)


@dataclass(frozen=True, slots=True)
class TestCheck:
    """Run the test suite split into ``partitions`` shards on independent workers."""

    __test__ = False

    partitions: int = 1
    jobs: int = 1
    kind: CheckKind = CheckKind.TEST

    def run(self, context: CheckContext) -> str:
        names = self._list_tests(context)
        shards = partition_tests(names, self.partitions)
        with ThreadPoolExecutor(max_workers=max(1, min(self.jobs, len(shards)))) as executor:
            results = list(executor.map(lambda item: self._run_shard(context, *item), enumerate(shards)))
        failures = [f"shard {index + 1}/{len(shards)}:\n{output}" for index, passed, output in results if not passed]
        if failures:
            raise CheckFailure(self.kind.value, "\n".join(failures))
        return f"{len(names)} test(s) passed across {len(shards)} partition(s)"

    def _list_tests(self, context: CheckContext) -> list[str]:
        with context.prepare_workdir("test-list") as scratch_name:
            _, options = context.compile_workdir(Path(scratch_name))
            command = context.cargo_command().args("test", trailing=("--list", "--format", "terse"))
            completed = context.runner(command, options)
        if completed.returncode != 0:
            raise CheckFailure(self.kind.value, combined_output(completed))
        return parse_test_list(completed.stdout)

    def _run_shard(self, context: CheckContext, index: int, shard: tuple[str, ...]) -> tuple[int, bool, str]:
        if not shard:
            return index, True, ""
        with context.prepare_workdir(f"test-{index}") as scratch_name:
            _, options = context.compile_workdir(Path(scratch_name))
            command = context.cargo_command().args("test", trailing=("--exact", *shard))
            completed = context.runner(command, options)
        LOGGER.debug("test shard=%d tests=%d returncode=%d", index, len(shard), completed.returncode)
        return index, completed.returncode == 0, combined_output(completed)


class CheckRunner:
    """Run requested checks concurrently; one failing check never stops another."""

    def __init__(self, checks: Sequence[Check], *, jobs: int = 4) -> None:
        self._checks = {check.kind: check for check in checks}
        self._jobs = max(1, jobs)

    def run_checks(self, context: CheckContext, kinds: Iterable[CheckKind]) -> list[CheckResult]:
        """Return one result per requested check in the fixed reporting order.

        Args:
            context: Shared read-only inputs.
            kinds: Checks to run; duplicates are ignored.

        Returns:
            list[CheckResult]: Results ordered formatting, audit, lint, test.

        Raises:
            KeyError: If a requested check has no configured implementation.
        """

        requested = set(kinds)
        selected = [self._checks[kind] for kind in CheckKind.ordered() if kind in requested]
        with ThreadPoolExecutor(max_workers=self._jobs) as executor:
            futures = [executor.submit(_run_isolated, check, context) for check in selected]
            return [future.result() for future in futures]


def _run_isolated(check: Check, context: CheckContext) -> CheckResult:
    started = time.monotonic()
    name = check.kind.value
    try:
        diagnostics = check.run(context)
        passed = True
    except CheckFailure as failure:
        diagnostics = failure.diagnostics
        passed = False
    except Exception as exc:  # noqa: BLE001 - failures stay per check
        diagnostics = f"{type(exc).__name__}: {exc}"
        passed = False
    duration = time.monotonic() - started
    LOGGER.debug("check=%s passed=%s duration=%.2fs", name, passed, duration)
    return CheckResult(name=name, passed=passed, diagnostics=diagnostics, duration_seconds=duration)


__all__ = [
    "AuditCheck",
    "Check",
    "CheckContext",
    "CheckRunner",
    "FormattingCheck",
    "LintCheck",
    "TestCheck",
    "partition_tests",
    "parse_test_list",
]

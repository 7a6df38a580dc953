# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Scripted stand-ins for cargo, pandoc, treefmt and rustup."""

from __future__ import annotations

import hashlib
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from subprocess import CompletedProcess
from threading import Lock

from buildpipe.process import NOT_FOUND_EXIT_CODE, CommandOptions

STUB_MAIN = b"fn main() {}\n"
DEPENDENCY_ARTIFACT = "deps/liblibc-0123abcd.rlib"


@dataclass(frozen=True)
class Call:
    args: tuple[str, ...]
    options: CommandOptions
    dummy_tree: bool = False

    @property
    def tool(self) -> str:
        return Path(self.args[0]).name

    @property
    def subcommand(self) -> str | None:
        return self.args[1] if len(self.args) > 1 else None


@dataclass
class FakeTools:
    """Record every invocation and emulate just enough tool behaviour for the pipeline.

    Attributes:
        program: Binary name written by a successful package build.
        tests: Test names reported by ``cargo test -- --list``.
        failing_tests: Names that make a test shard fail.
        failing_dependency: Crate reported as failing during dependency builds.
        package_error: Compiler output returned by a failing package build.
        lint_warnings: Output that makes clippy fail.
        advisories: Output that makes cargo-audit fail.
        formatter_rewrites: Relative path to replacement content written by treefmt.
        pandoc_returncode: Exit status of the man page converter.
        rustup_installed: Components reported by ``rustup component list``,
            or ``None`` when the toolchain is unknown.
    """

    program: str = "eza"
    tests: list[str] = field(default_factory=list)
    failing_tests: set[str] = field(default_factory=set)
    failing_dependency: str | None = None
    package_error: str | None = None
    lint_warnings: str | None = None
    advisories: str | None = None
    formatter_rewrites: dict[str, str] = field(default_factory=dict)
    pandoc_returncode: int = 0
    rustup_installed: list[str] | None = None
    calls: list[Call] = field(default_factory=list)
    _lock: Lock = field(default_factory=Lock, repr=False)

    def __call__(self, args: Sequence[str], options: CommandOptions) -> CompletedProcess[str]:
        call = Call(tuple(args), options, dummy_tree=_is_dummy_tree(options))
        with self._lock:
            self.calls.append(call)
        handler = getattr(self, f"_{call.tool}", None)
        if handler is None:
            return _done(args, NOT_FOUND_EXIT_CODE, stderr=f"{call.tool}: not found")
        return handler(call)

    def calls_for(self, tool: str, subcommand: str | None = None) -> list[Call]:
        with self._lock:
            return [
                call
                for call in self.calls
                if call.tool == tool and (subcommand is None or call.subcommand == subcommand)
            ]

    def dependency_builds(self) -> list[Call]:
        return [call for call in self.calls_for("cargo", "build") if call.dummy_tree]

    def package_builds(self) -> list[Call]:
        return [call for call in self.calls_for("cargo", "build") if not call.dummy_tree]

    # -- cargo ---------------------------------------------------------------

    def _cargo(self, call: Call) -> CompletedProcess[str]:
        if call.subcommand == "build":
            return self._cargo_build(call)
        if call.subcommand == "test":
            return self._cargo_test(call)
        if call.subcommand == "clippy":
            if self.lint_warnings is not None:
                return _done(call.args, 101, stderr=self.lint_warnings)
            return _done(call.args, 0, stderr="Finished release profile")
        if call.subcommand == "audit":
            if self.advisories is not None:
                return _done(call.args, 1, stdout=self.advisories)
            return _done(call.args, 0, stdout="0 vulnerabilities found")
        return _done(call.args, 1, stderr=f"unsupported cargo subcommand {call.subcommand}")

    def _cargo_build(self, call: Call) -> CompletedProcess[str]:
        target = _profile_dir(call)
        if call.dummy_tree:
            if self.failing_dependency is not None:
                return _done(
                    call.args,
                    101,
                    stderr=f"error[E0425]: oops\nerror: could not compile `{self.failing_dependency}`",
                )
            _write(target / DEPENDENCY_ARTIFACT, b"rlib:libc")
            return _done(call.args, 0)
        if not (target / DEPENDENCY_ARTIFACT).is_file():
            return _done(call.args, 101, stderr="error: dependency artifacts were not restored")
        if self.package_error is not None:
            return _done(call.args, 101, stderr=self.package_error)
        _write(target / self.program, _binary_for(call))
        return _done(call.args, 0)

    def _cargo_test(self, call: Call) -> CompletedProcess[str]:
        trailing = _trailing(call.args)
        if "--no-run" in call.args:
            _write(_profile_dir(call) / DEPENDENCY_ARTIFACT, b"rlib:libc")
            return _done(call.args, 0)
        if "--list" in trailing:
            listing = "".join(f"{name}: test\n" for name in self.tests)
            return _done(call.args, 0, stdout=f"{listing}\n{len(self.tests)} tests, 0 benchmarks\n")
        names = [name for name in trailing if name != "--exact"]
        failed = sorted(self.failing_tests.intersection(names))
        if failed:
            lines = "".join(f"test {name} ... FAILED\n" for name in failed)
            return _done(call.args, 101, stdout=lines)
        return _done(call.args, 0, stdout=f"test result: ok. {len(names)} passed")

    # -- other tools -----------------------------------------------------------

    def _pandoc(self, call: Call) -> CompletedProcess[str]:
        if self.pandoc_returncode != 0:
            return _done(call.args, self.pandoc_returncode, stderr="pandoc: conversion failed")
        output = Path(call.args[call.args.index("-o") + 1])
        source = Path(call.args[call.args.index("-o") - 1])
        title = source.read_text(encoding="utf-8").splitlines()[0].lstrip("% ")
        _write(output, f'.TH "{title}"\n'.encode())
        return _done(call.args, 0)

    def _treefmt(self, call: Call) -> CompletedProcess[str]:
        assert call.options.cwd is not None
        for relative, content in self.formatter_rewrites.items():
            _write(call.options.cwd / relative, content.encode())
        return _done(call.args, 0, stderr=f"formatted {len(self.formatter_rewrites)} files")

    def _rustup(self, call: Call) -> CompletedProcess[str]:
        if self.rustup_installed is None:
            return _done(call.args, 1, stderr="error: toolchain is not installed")
        return _done(call.args, 0, stdout="\n".join(self.rustup_installed) + "\n")


def _done(args: Sequence[str], returncode: int, *, stdout: str = "", stderr: str = "") -> CompletedProcess[str]:
    return CompletedProcess(args=list(args), returncode=returncode, stdout=stdout, stderr=stderr)


def _write(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)


def _is_dummy_tree(options: CommandOptions) -> bool:
    if options.cwd is None:
        return False
    main = options.cwd / "src" / "main.rs"
    return main.is_file() and main.read_bytes() == STUB_MAIN


def _profile_dir(call: Call) -> Path:
    profile = call.args[call.args.index("--profile") + 1]
    return Path(call.options.env["CARGO_TARGET_DIR"]) / ("debug" if profile == "dev" else profile)


def _trailing(args: Sequence[str]) -> list[str]:
    return list(args[args.index("--") + 1 :]) if "--" in args else []


def _binary_for(call: Call) -> bytes:
    """Derive binary bytes from the Rust sources, the cargo flags and the link flags."""

    assert call.options.cwd is not None
    hasher = hashlib.sha256()
    for path in sorted(call.options.cwd.rglob("*.rs")):
        if "target" in path.relative_to(call.options.cwd).parts:
            continue
        hasher.update(path.relative_to(call.options.cwd).as_posix().encode())
        hasher.update(path.read_bytes())
    hasher.update(" ".join(call.args[1:]).encode())
    hasher.update(call.options.env.get("RUSTFLAGS", "").encode())
    return b"ELF" + hasher.digest()


__all__ = ["Call", "DEPENDENCY_ARTIFACT", "FakeTools", "STUB_MAIN"]

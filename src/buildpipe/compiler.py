# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Shared construction of compiler invocations.

Dependency builds, package builds and checks must agree on the compiler
environment; any drift in ``RUSTFLAGS`` or the toolchain would make cargo
discard the cached dependency artifacts.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final

from .models import BuildConfig, ToolchainSpec
from .platform import link_rustflags

SOURCE_DATE_EPOCH: Final[str] = "315532800"
TARGET_DIR_NAME: Final[str] = "target"


@dataclass(frozen=True, slots=True)
class CargoCommand:
    """Builder for ``cargo`` argument lists bound to one toolchain and build config."""

    toolchain: ToolchainSpec
    config: BuildConfig
    executable: str = "cargo"
    locked: bool = True
    extra_env: dict[str, str] = field(default_factory=dict)

    def args(self, subcommand: str, *extra: str, trailing: Sequence[str] = ()) -> list[str]:
        """Return ``cargo <subcommand> --profile <p> [--locked] [--target t] <extra> [-- <trailing>]``."""

        command = [self.executable, subcommand, "--profile", self.config.profile]
        if self.locked:
            command.append("--locked")
        if self.config.target_platform:
            command.extend(["--target", self.config.target_platform])
        command.extend(extra)
        if trailing:
            command.append("--")
            command.extend(trailing)
        return command

    def environment(self, workdir: Path) -> dict[str, str]:
        """Return the environment layer used for every compiler call rooted at ``workdir``."""

        env = {
            "CARGO_TARGET_DIR": str(workdir / TARGET_DIR_NAME),
            "CARGO_INCREMENTAL": "0",
            "CARGO_TERM_COLOR": "never",
            "RUSTUP_TOOLCHAIN": self.toolchain.channel,
            "SOURCE_DATE_EPOCH": SOURCE_DATE_EPOCH,
        }
        rustflags = link_rustflags(self.config.extra_link_inputs)
        if rustflags:
            env["RUSTFLAGS"] = " ".join(rustflags)
        env.update(self.extra_env)
        return env

    def output_dir(self, workdir: Path) -> Path:
        """Return the directory cargo writes final binaries for this profile into."""

        target = workdir / TARGET_DIR_NAME
        if self.config.target_platform:
            target = target / self.config.target_platform
        return target / self.config.profile_dir()


__all__ = ["CargoCommand", "SOURCE_DATE_EPOCH", "TARGET_DIR_NAME"]

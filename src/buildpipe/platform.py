# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Host platform detection and the native link inputs each platform needs."""

from __future__ import annotations

import platform
from enum import Enum
from typing import Final

from .errors import UnsupportedPlatformError

_ARCH_ALIASES: Final[dict[str, str]] = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "aarch64": "aarch64",
    "arm64": "aarch64",
}
_SYSTEM_ALIASES: Final[dict[str, str]] = {"linux": "linux", "darwin": "darwin"}


class HostPlatform(str, Enum):
    """Systems the pipeline is parameterized over."""

    X86_64_LINUX = "x86_64-linux"
    AARCH64_LINUX = "aarch64-linux"
    X86_64_DARWIN = "x86_64-darwin"
    AARCH64_DARWIN = "aarch64-darwin"

    @property
    def is_darwin(self) -> bool:
        return self.value.endswith("-darwin")

    @classmethod
    def from_parts(cls, system: str, machine: str) -> HostPlatform:
        """Map ``platform.system()``/``platform.machine()`` values to a member.

        Raises:
            UnsupportedPlatformError: If the pair has no mapping.
        """

        arch = _ARCH_ALIASES.get(machine.lower())
        kernel = _SYSTEM_ALIASES.get(system.lower())
        if arch is None or kernel is None:
            raise UnsupportedPlatformError(f"unsupported host platform: {system}/{machine}")
        return cls(f"{arch}-{kernel}")

    @classmethod
    def detect(cls) -> HostPlatform:
        return cls.from_parts(platform.system(), platform.machine())


def default_link_inputs(host: HostPlatform) -> tuple[str, ...]:
    """Return the extra native libraries linked into the package on ``host``.

    Entries use rustc ``-l`` syntax, so frameworks read ``framework=Name``.
    """

    inputs = ["z"]
    if host.is_darwin:
        inputs.extend(["iconv", "framework=Security"])
    return tuple(inputs)


def link_rustflags(link_inputs: tuple[str, ...]) -> list[str]:
    """Translate link inputs into ``RUSTFLAGS`` tokens."""

    return [f"-l{entry}" for entry in link_inputs]


__all__ = ["HostPlatform", "default_link_inputs", "link_rustflags"]

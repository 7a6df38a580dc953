# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Tests for host platform detection."""

from __future__ import annotations

import pytest

from buildpipe.errors import UnsupportedPlatformError
from buildpipe.platform import HostPlatform, default_link_inputs, link_rustflags


@pytest.mark.parametrize(
    ("system", "machine", "expected"),
    [
        ("Linux", "x86_64", HostPlatform.X86_64_LINUX),
        ("Linux", "aarch64", HostPlatform.AARCH64_LINUX),
        ("Darwin", "x86_64", HostPlatform.X86_64_DARWIN),
        ("Darwin", "arm64", HostPlatform.AARCH64_DARWIN),
        ("linux", "AMD64", HostPlatform.X86_64_LINUX),
    ],
)
def test_from_parts_maps_supported_hosts(system: str, machine: str, expected: HostPlatform) -> None:
    assert HostPlatform.from_parts(system, machine) is expected


@pytest.mark.parametrize(("system", "machine"), [("Windows", "AMD64"), ("Linux", "riscv64"), ("FreeBSD", "x86_64")])
def test_unsupported_hosts_raise(system: str, machine: str) -> None:
    with pytest.raises(UnsupportedPlatformError):
        HostPlatform.from_parts(system, machine)


def test_darwin_links_iconv_and_security_framework() -> None:
    assert default_link_inputs(HostPlatform.X86_64_LINUX) == ("z",)
    assert default_link_inputs(HostPlatform.AARCH64_DARWIN) == ("z", "iconv", "framework=Security")
    assert link_rustflags(("z", "framework=Security")) == ["-lz", "-lframework=Security"]

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Shared pytest fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from buildpipe.config import JOBS_ENV_VAR, load_project_config
from buildpipe.pipeline import Pipeline
from buildpipe.platform import HostPlatform
from buildpipe.store import STORE_ENV_VAR, InMemoryArtifactStore
from tests.helpers.fake_tools import FakeTools

CARGO_TOML = """\
[package]
name = "eza"
version = "0.18.2"
description = "A modern, maintained replacement for ls"
license = "EUPL-1.2"

[features]
default = ["git"]
git = ["dep:git2"]

[dependencies]
libc = "0.2"
git2 = { version = "0.18", optional = true }
"""

CARGO_LOCK = """\
version = 3

[[package]]
name = "libc"
version = "0.2.153"
"""

BUILDPIPE_TOML = """\
[post_install]
man_pages = ["man/eza.1.md", "man/eza_colors.5.md"]

[post_install.completions]
bash = "completions/bash/eza"
fish = "completions/fish/eza.fish"
zsh = "completions/zsh/_eza"

[build]
extra_link_inputs = ["z"]

[checks]
test_partitions = 2

[store]
kind = "memory"

[execution]
jobs = 2
"""

SAMPLE_FILES = {
    "Cargo.toml": CARGO_TOML,
    "Cargo.lock": CARGO_LOCK,
    "buildpipe.toml": BUILDPIPE_TOML,
    "rust-toolchain.toml": '[toolchain]\nchannel = "1.75.0"\ncomponents = ["clippy", "rustfmt"]\nprofile = "minimal"\n',
    "README.md": "# eza\n",
    "build.rs": "fn main() { println!(\"cargo:rerun-if-changed=build.rs\"); }\n",
    "src/main.rs": "mod output;\nfn main() { output::render(); }\n",
    "src/output/mod.rs": "pub fn render() {}\n",
    "tests/cli.rs": "#[test]\nfn lists_directory() {}\n",
    "man/eza.1.md": "% eza(1) $version\n\n# NAME\n\neza - a modern replacement for ls\n",
    "man/eza_colors.5.md": "% eza_colors(5) $version\n\n# NAME\n\neza_colors - customising file colours\n",
    "completions/bash/eza": "complete -F _eza eza\n",
    "completions/fish/eza.fish": "complete -c eza -l long\n",
    "completions/zsh/_eza": "#compdef eza\n",
    "docs/notes.txt": "not part of any view\n",
}

SAMPLE_TESTS = [
    "output::tests::grid",
    "output::tests::long",
    "fs::tests::dotfiles",
    "fs::tests::hidden",
    "theme::tests::colours",
]


def write_tree(root: Path, files: dict[str, str]) -> Path:
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(STORE_ENV_VAR, raising=False)
    monkeypatch.delenv(JOBS_ENV_VAR, raising=False)


@pytest.fixture
def sample_repo(tmp_path: Path) -> Path:
    """Return an eza-like repository with manual pages and completions."""

    return write_tree(tmp_path / "eza", SAMPLE_FILES)


@pytest.fixture
def fake_tools() -> FakeTools:
    return FakeTools(tests=list(SAMPLE_TESTS))


@pytest.fixture
def store() -> InMemoryArtifactStore:
    return InMemoryArtifactStore()


@pytest.fixture
def pipeline(sample_repo: Path, fake_tools: FakeTools, store: InMemoryArtifactStore) -> Pipeline:
    return Pipeline(
        load_project_config(sample_repo, env={}),
        runner=fake_tools,
        store=store,
        host=HostPlatform.X86_64_LINUX,
    )

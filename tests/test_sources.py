# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Tests for compile and package source views."""

from __future__ import annotations

from pathlib import Path

import pytest

from buildpipe.errors import SourceViewError
from buildpipe.sources import ViewMode, build_view, snapshot_tree
from tests.conftest import write_tree


def test_compile_view_keeps_only_cargo_sources(sample_repo: Path) -> None:
    view = build_view(sample_repo, ViewMode.COMPILE)

    assert view.paths() == (
        "Cargo.lock",
        "Cargo.toml",
        "build.rs",
        "buildpipe.toml",
        "rust-toolchain.toml",
        "src/main.rs",
        "src/output/mod.rs",
        "tests/cli.rs",
    )
    assert view.get("src/main.rs") == (sample_repo / "src" / "main.rs").read_bytes()
    assert view.get("README.md") is None


def test_package_view_adds_man_and_completion_sources(sample_repo: Path) -> None:
    compile_view = build_view(sample_repo, ViewMode.COMPILE)
    package_view = build_view(sample_repo, ViewMode.PACKAGE)

    extra = set(package_view.paths()) - set(compile_view.paths())

    assert set(compile_view.paths()) < set(package_view.paths())
    assert extra == {
        "completions/bash/eza",
        "completions/fish/eza.fish",
        "completions/zsh/_eza",
        "man/eza.1.md",
        "man/eza_colors.5.md",
    }


def test_views_are_sorted_and_stable(sample_repo: Path) -> None:
    first = build_view(sample_repo, ViewMode.PACKAGE)
    second = build_view(sample_repo, ViewMode.PACKAGE)

    assert list(first.paths()) == sorted(first.paths())
    assert first.digest() == second.digest()


def test_build_output_and_vcs_metadata_are_excluded(sample_repo: Path) -> None:
    write_tree(
        sample_repo,
        {
            "target/release/build/out/generated.rs": "// generated\n",
            ".git/hooks/pre-commit.rs": "// hook\n",
            ".direnv/flake.toml": "x = 1\n",
            "result/share/man/man1/eza.1.md": "% stale\n",
            ".buildpipe/store/abc/files/release/out.rs": "// cached\n",
            "src/main.rs~": "backup\n",
            "src/.#lock.rs": "emacs lock\n",
        },
    )

    paths = build_view(sample_repo, ViewMode.PACKAGE).paths()

    assert not [path for path in paths if path.startswith(("target/", ".git/", ".direnv/", "result", ".buildpipe/"))]
    assert "src/main.rs~" not in paths
    assert "src/.#lock.rs" not in paths


def test_nested_result_and_target_modules_are_sources(sample_repo: Path) -> None:
    write_tree(
        sample_repo,
        {
            "src/result/mod.rs": "pub mod table;\n",
            "src/results/mod.rs": "// results\n",
            "src/target/mod.rs": "// target\n",
            "target/debug/out.rs": "// generated\n",
        },
    )

    paths = build_view(sample_repo, ViewMode.COMPILE).paths()

    assert {"src/result/mod.rs", "src/results/mod.rs", "src/target/mod.rs"} <= set(paths)
    assert "target/debug/out.rs" not in paths


def test_root_result_symlink_is_excluded(sample_repo: Path, tmp_path: Path) -> None:
    outside = tmp_path / "store-path"
    write_tree(outside, {"share/man/man1/eza.1.md": "% stale\n"})
    (sample_repo / "result").symlink_to(outside, target_is_directory=True)

    paths = build_view(sample_repo, ViewMode.PACKAGE).paths()

    assert not [path for path in paths if path.startswith("result")]


def test_legacy_cargo_config_is_a_compile_input(sample_repo: Path) -> None:
    write_tree(sample_repo, {".cargo/config": "[build]\njobs = 2\n"})

    assert ".cargo/config" in build_view(sample_repo, ViewMode.COMPILE).paths()


def test_materialize_reproduces_entries(sample_repo: Path, tmp_path: Path) -> None:
    view = build_view(sample_repo, ViewMode.COMPILE)

    copy = view.materialize(tmp_path / "copy")

    assert build_view(copy, ViewMode.COMPILE).digest() == view.digest()


def test_snapshot_tree_covers_every_tracked_file(sample_repo: Path) -> None:
    paths = snapshot_tree(sample_repo).paths()

    assert "README.md" in paths
    assert "docs/notes.txt" in paths


def test_missing_root_raises(tmp_path: Path) -> None:
    with pytest.raises(SourceViewError) as excinfo:
        build_view(tmp_path / "absent", ViewMode.COMPILE)

    assert excinfo.value.root == tmp_path / "absent"

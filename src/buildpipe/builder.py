# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Compile the package against cached dependencies and assemble the final bundle."""

from __future__ import annotations

import logging
import os
import shutil
import stat
import tempfile
import uuid
from collections.abc import Sequence
from pathlib import Path

from .compiler import CargoCommand
from .console import StageReporter, quiet_reporter
from .deps import ArtifactCache
from .errors import PackageBuildError
from .features import ResolvedFeatures, resolve_features
from .models import BuildConfig, PackageArtifact, ToolchainSpec
from .postinstall import InstallContext, PostInstallStep, ShellCompletionStep, run_post_install
from .process import CommandOptions, ToolRunner, combined_output, run_command
from .sources import SourceView

LOGGER = logging.getLogger(__name__)

_EXECUTABLE_MODE = stat.S_IRWXU | stat.S_IRGRP | stat.S_IXGRP | stat.S_IROTH | stat.S_IXOTH


def _remove_existing(path: Path) -> None:
    """Clear ``path`` so a staged bundle can be renamed onto it; symlinks are unlinked, not followed."""

    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)


class PackageBuilder:
    """Run the strictly sequential compile, post-install and assemble stages.

    Each stage only runs when the previous one succeeded and no
    :class:`PackageArtifact` is returned on failure. Intermediate work happens in
    a scoped temporary directory that is removed whatever the outcome.
    """

    def __init__(
        self,
        *,
        name: str,
        version: str,
        main_program: str | None = None,
        runner: ToolRunner = run_command,
        options: CommandOptions | None = None,
        cargo: str = "cargo",
        work_root: Path | None = None,
        reporter: StageReporter | None = None,
    ) -> None:
        self.name = name
        self.version = version
        self.main_program = main_program or name
        self._runner = runner
        self._options = options or CommandOptions()
        self._cargo = cargo
        self._work_root = work_root
        self._reporter = reporter or quiet_reporter()

    def build(
        self,
        view: SourceView,
        cache: ArtifactCache,
        toolchain: ToolchainSpec,
        config: BuildConfig,
        steps: Sequence[PostInstallStep],
        *,
        output_dir: Path,
    ) -> PackageArtifact:
        """Build the package and return the assembled artifact.

        Args:
            view: Package view (compile view plus manual-page and completion sources).
            cache: Dependency artifacts produced by the dependency cache.
            toolchain: Resolved toolchain specification.
            config: Build configuration; features are resolved before compiling.
            steps: Post-install steps in declared order.
            output_dir: Caller-chosen location of the assembled bundle.

        Returns:
            PackageArtifact: Binary plus installed manual pages and completions.

        Raises:
            FeatureConflictError: If the feature selection is unusable.
            PackageBuildError: If compilation fails or produces no binary.
            PostInstallError: If a post-install step fails.
        """

        features = resolve_features(config)
        with tempfile.TemporaryDirectory(prefix="buildpipe-pkg-", dir=self._work_root) as scratch_name:
            scratch = Path(scratch_name)
            workdir = view.materialize(scratch / "src")
            cache.restore_into(workdir)

            self._reporter.stage("compile")
            binary = self._compile(workdir, toolchain, config, features)

            self._reporter.stage("post-install")
            context = InstallContext(
                source_root=workdir,
                install_root=scratch / "install",
                scratch=scratch / "post-install",
                version=self.version,
                runner=self._runner,
                options=self._options,
            )
            outputs = run_post_install(steps, context)

            self._reporter.stage("assemble")
            return self._assemble(binary, context.install_root, outputs, steps, output_dir)

    def _compile(
        self,
        workdir: Path,
        toolchain: ToolchainSpec,
        config: BuildConfig,
        features: ResolvedFeatures,
    ) -> Path:
        cargo = CargoCommand(toolchain=toolchain, config=config, executable=self._cargo)
        command = cargo.args("build", *features.cargo_args())
        LOGGER.info("building %s %s", self.name, features.describe())
        completed = self._runner(command, self._options.with_cwd(workdir).with_env(cargo.environment(workdir)))
        if completed.returncode != 0:
            raise PackageBuildError(f"compiling {self.name} failed", diagnostics=combined_output(completed))
        binary = cargo.output_dir(workdir) / self.main_program
        if not binary.is_file():
            raise PackageBuildError(f"compiler produced no binary at {binary.relative_to(workdir)}")
        return binary

    def _assemble(
        self,
        binary: Path,
        install_root: Path,
        outputs: dict[str, tuple[Path, ...]],
        steps: Sequence[PostInstallStep],
        output_dir: Path,
    ) -> PackageArtifact:
        """Publish the bundle to ``output_dir`` in one rename once every stage succeeded."""

        output_dir.parent.mkdir(parents=True, exist_ok=True)
        staging = output_dir.parent / f".{output_dir.name}.{uuid.uuid4().hex}"
        try:
            installed_binary = staging / "bin" / self.main_program
            installed_binary.parent.mkdir(parents=True)
            shutil.copyfile(binary, installed_binary)
            installed_binary.chmod(_EXECUTABLE_MODE)
            if install_root.is_dir():
                shutil.copytree(install_root, staging, dirs_exist_ok=True)
            _remove_existing(output_dir)
            os.replace(staging, output_dir)
        except OSError as exc:
            raise PackageBuildError(f"publishing {self.name} to {output_dir} failed", diagnostics=str(exc)) from exc
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        def relocate(path: Path) -> Path:
            return output_dir / path.relative_to(install_root)

        man_pages: list[Path] = []
        completions: dict[str, Path] = {}
        for step in steps:
            installed = tuple(relocate(path) for path in outputs.get(step.name, ()))
            if isinstance(step, ShellCompletionStep):
                completions.update({step.shell: path for path in installed})
            elif step.name.startswith("man:"):
                man_pages.extend(installed)
        return PackageArtifact(
            name=self.name,
            version=self.version,
            binary=output_dir / "bin" / self.main_program,
            man_pages=tuple(man_pages),
            completions=completions,
            output_dir=output_dir,
        )


__all__ = ["PackageBuilder"]

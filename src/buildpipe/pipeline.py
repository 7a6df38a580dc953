# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Wire configuration into the ordered build and check pipeline."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Final

from .builder import PackageBuilder
from .checks import AuditCheck, CheckContext, CheckRunner, FormattingCheck, LintCheck, TestCheck
from .config import ProjectConfig, load_project_config
from .console import StageReporter, quiet_reporter
from .deps import ArtifactCache, DependencyCache, compute_fingerprint
from .models import BuildConfig, CheckKind, CheckResult, DependencyFingerprint, PackageArtifact, ToolchainSpec
from .platform import HostPlatform
from .process import CommandOptions, ToolRunner, run_command
from .sources import SourceView, ViewMode, build_view
from .store import ArtifactStore, create_artifact_store
from .toolchain import RustupProvisioner, ToolchainProvisioner, ToolchainResolver, find_toolchain_file

LOGGER = logging.getLogger(__name__)

DEFAULT_OUTPUT_DIR: Final[str] = "result"


@dataclass(frozen=True, slots=True)
class PreparedInputs:
    """Outputs of the fatal-on-failure stages shared by builds and checks."""

    toolchain: ToolchainSpec
    compile_view: SourceView
    package_view: SourceView
    build_config: BuildConfig
    cache: ArtifactCache


class Pipeline:
    """Run toolchain resolution, dependency caching, then package build and checks.

    Toolchain, source-view and dependency failures abort before any package or
    check work starts. Their outputs are memoized for the lifetime of the
    pipeline so a build and a check in the same session share one dependency
    cache lookup.
    """

    def __init__(
        self,
        project: ProjectConfig,
        *,
        runner: ToolRunner = run_command,
        store: ArtifactStore | None = None,
        host: HostPlatform | None = None,
        provisioner: ToolchainProvisioner | None = None,
        reporter: StageReporter | None = None,
    ) -> None:
        self.project = project
        self._runner = runner
        self._host = host
        self._reporter = reporter or quiet_reporter()
        self._options = CommandOptions(timeout=project.execution.timeout_seconds)
        if provisioner is None and project.toolchain.verify_with_rustup:
            provisioner = RustupProvisioner(runner)
        self._resolver = ToolchainResolver(provisioner)
        self._store = store or create_artifact_store(project.store.settings(project.root))
        self._deps = DependencyCache(
            self._store,
            runner=runner,
            options=self._options,
            cargo=project.execution.cargo,
            work_root=project.execution.work_root,
        )
        self._prepared: PreparedInputs | None = None
        self._prepare_lock = Lock()

    @classmethod
    def from_root(
        cls,
        root: Path,
        *,
        runner: ToolRunner = run_command,
        store: ArtifactStore | None = None,
        reporter: StageReporter | None = None,
    ) -> Pipeline:
        """Load the project configuration under ``root`` and build a pipeline for it."""

        return cls(load_project_config(root), runner=runner, store=store, reporter=reporter)

    @property
    def root(self) -> Path:
        return self.project.root

    @property
    def dependency_cache(self) -> DependencyCache:
        return self._deps

    def host(self) -> HostPlatform:
        if self._host is None:
            self._host = HostPlatform.detect()
        return self._host

    def build_config(self) -> BuildConfig:
        return self.project.build.to_build_config(self.host())

    def resolve_toolchain(self) -> ToolchainSpec:
        path = self.project.toolchain_file() or find_toolchain_file(self.root)
        return self._resolver.resolve(path)

    def fingerprint(self) -> DependencyFingerprint:
        """Return the dependency fingerprint without compiling anything."""

        return compute_fingerprint(build_view(self.root, ViewMode.COMPILE), self.resolve_toolchain(), self.build_config())

    def prepare(self) -> PreparedInputs:
        """Resolve the toolchain, build both views and the dependency cache once.

        Raises:
            ToolchainResolutionError: If the toolchain descriptor is unusable.
            SourceViewError: If the project root is missing.
            DependencyBuildError: If dependencies fail to compile.
        """

        with self._prepare_lock:
            if self._prepared is not None:
                return self._prepared
            self._reporter.stage("toolchain")
            toolchain = self.resolve_toolchain()
            self._reporter.info(f"toolchain {toolchain.compiler_version} ({toolchain.profile})")
            compile_view = build_view(self.root, ViewMode.COMPILE)
            package_view = build_view(self.root, ViewMode.PACKAGE)
            config = self.build_config()

            self._reporter.stage("dependencies")
            cache = self._deps.build_deps_only(compile_view, toolchain, config)
            verb = "compiled" if cache.rebuilt else "reused"
            self._reporter.ok(f"{verb} dependency artifacts {cache.fingerprint.short}")
            self._prepared = PreparedInputs(
                toolchain=toolchain,
                compile_view=compile_view,
                package_view=package_view,
                build_config=config,
                cache=cache,
            )
            return self._prepared

    def package_builder(self) -> PackageBuilder:
        package = self.project.package
        return PackageBuilder(
            name=package.name,
            version=package.version,
            main_program=package.program,
            runner=self._runner,
            options=self._options,
            cargo=self.project.execution.cargo,
            work_root=self.project.execution.work_root,
            reporter=self._reporter,
        )

    def build(self, output_dir: Path | None = None) -> PackageArtifact:
        """Build and assemble the package into ``output_dir`` (``<root>/result`` by default)."""

        prepared = self.prepare()
        destination = output_dir or self.root / DEFAULT_OUTPUT_DIR
        artifact = self.package_builder().build(
            prepared.package_view,
            prepared.cache,
            prepared.toolchain,
            prepared.build_config,
            self.project.post_install.plan().steps(),
            output_dir=destination,
        )
        self._reporter.ok(f"built {artifact.name} {artifact.version} -> {artifact.output_dir}")
        return artifact

    def formatting_check(self) -> FormattingCheck:
        return FormattingCheck(command=self.project.checks.formatter)

    def check_runner(self) -> CheckRunner:
        settings = self.project.checks
        jobs = self.project.execution.jobs
        advisory_db = settings.advisory_db
        if advisory_db is not None and not advisory_db.is_absolute():
            advisory_db = self.root / advisory_db
        return CheckRunner(
            [
                self.formatting_check(),
                AuditCheck(advisory_db=advisory_db, executable=self.project.execution.cargo),
                LintCheck(extra_args=settings.lint_args),
                TestCheck(partitions=settings.test_partitions, jobs=jobs),
            ],
            jobs=jobs,
        )

    def check_context(self, prepared: PreparedInputs) -> CheckContext:
        return CheckContext(
            repo_root=self.root,
            view=prepared.compile_view,
            cache=prepared.cache,
            toolchain=prepared.toolchain,
            config=prepared.build_config,
            runner=self._runner,
            options=self._options,
            work_root=self.project.execution.work_root,
            cargo=self.project.execution.cargo,
        )

    def check(self, kinds: Iterable[CheckKind] | None = None) -> list[CheckResult]:
        """Run the requested checks (the configured set by default) and return every result."""

        prepared = self.prepare()
        requested = tuple(kinds) if kinds is not None else self.project.checks.enabled
        self._reporter.stage("checks")
        if CheckKind.LINT in requested and not prepared.toolchain.has_component("clippy"):
            self._reporter.warn(f"toolchain {prepared.toolchain.channel} does not install clippy")
        return self.check_runner().run_checks(self.check_context(prepared), requested)

    def build_and_check(
        self,
        kinds: Iterable[CheckKind] | None = None,
        *,
        output_dir: Path | None = None,
    ) -> tuple[PackageArtifact, list[CheckResult]]:
        """Run the package build and the checks concurrently against one dependency cache."""

        self.prepare()
        with ThreadPoolExecutor(max_workers=2) as executor:
            build_future = executor.submit(self.build, output_dir)
            check_future = executor.submit(self.check, kinds)
            results = check_future.result()
            return build_future.result(), results

    def format(self) -> str:
        """Run the formatter in fix mode over the repository."""

        return self.formatting_check().fix(self.root, self._runner, self._options)

    def verify_formatting(self) -> str:
        """Run the formatter in check mode without touching the repository.

        Raises:
            CheckFailure: Carrying the diff when formatting differs.
        """

        return self.formatting_check().verify(
            self.root,
            self._runner,
            self._options,
            work_root=self.project.execution.work_root,
        )


__all__ = ["DEFAULT_OUTPUT_DIR", "Pipeline", "PreparedInputs"]

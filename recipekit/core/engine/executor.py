"""
Lifecycle executor — the sequencer that runs one recipe end to end.

Flow:
    acquire → resolve → build → install → verify

Each stage is a blocking call whose postcondition must hold before the
next one starts. The executor keeps no state between invocations: all
per-run files live in a fresh work directory that is removed when the
run ends. Any descriptor can be run by any executor; nothing is
subclassed per recipe.

The stage methods raise the typed errors from ``recipekit.core.errors``.
``run()`` drives them in order and turns the outcome into a
``LifecycleReport``: it never raises a ``RecipeError`` itself.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from recipekit.adapters.shell.command import CommandRunner, run_command
from recipekit.core.config.settings import ExecutorSettings
from recipekit.core.engine.archive import unpack_source
from recipekit.core.engine.build import run_build
from recipekit.core.engine.fetch import acquire as fetch_and_check
from recipekit.core.engine.probes import verify as run_probes
from recipekit.core.engine.publish import CopyFile, copy_file, publish, require_binary
from recipekit.core.engine.toolchain import resolve_toolchain
from recipekit.core.errors import FetchError, RecipeError
from recipekit.core.models.lifecycle import LifecycleReport, ProbeResult, Stage, StageRecord
from recipekit.core.models.recipe import RecipeDescriptor

logger = logging.getLogger(__name__)


class LifecycleExecutor:
    """Run recipes through fetch, resolve, build, install, and verify.

    Args:
        settings: Timeouts, work root, and build PATH.
        runner: Command runner for build steps and probes.
        copy: File copy used while publishing (fault-injection seam).
    """

    def __init__(
        self,
        settings: ExecutorSettings | None = None,
        runner: CommandRunner = run_command,
        copy: CopyFile = copy_file,
    ):
        self.settings = settings or ExecutorSettings()
        self._runner = runner
        self._copy = copy

    # ── Stages ──────────────────────────────────────────────────

    def acquire(self, recipe: RecipeDescriptor, workdir: Path) -> Path:
        """Download the source archive into ``workdir`` and check its digest."""
        return fetch_and_check(
            recipe.url,
            recipe.algorithm,
            recipe.expected_hexdigest,
            workdir / "download",
            timeout=self.settings.fetch_timeout,
        )

    def resolve(self, recipe: RecipeDescriptor) -> dict[str, str]:
        """Ensure every build dependency is present on the host."""
        return resolve_toolchain(recipe.dependencies, self.settings.search_path())

    def build(self, recipe: RecipeDescriptor, archive: Path, workdir: Path) -> Path:
        """Unpack and run the build steps; returns the staging prefix."""
        build_dir = unpack_source(archive, workdir / "src")
        staging = workdir / "stage"
        run_build(
            recipe,
            build_dir,
            staging,
            search_path=self.settings.search_path(),
            jobs=self.settings.jobs,
            timeout=self.settings.step_timeout,
            runner=self._runner,
        )
        return staging

    def install(self, recipe: RecipeDescriptor, staging: Path, prefix: Path) -> list[Path]:
        """Atomically publish the staging prefix into ``prefix``."""
        require_binary(staging, recipe.name)
        return publish(staging, prefix, copy=self._copy)

    def verify(
        self,
        recipe: RecipeDescriptor,
        prefix: Path,
        results: list[ProbeResult] | None = None,
    ) -> list[ProbeResult]:
        """Run the verification probes against ``prefix/bin/<name>``."""
        return run_probes(
            recipe,
            binary_path(recipe, prefix),
            timeout=self.settings.probe_timeout,
            runner=self._runner,
            results=results,
        )

    # ── Orchestration ───────────────────────────────────────────

    def run(self, recipe: RecipeDescriptor, prefix: Path) -> LifecycleReport:
        """Run the full lifecycle for ``recipe`` into ``prefix``.

        Returns:
            LifecycleReport in state ``verified`` or ``failed``. On a
            verify failure the files stay installed and the report is
            flagged ``installed_unverified``.
        """
        prefix = prefix.expanduser().absolute()
        report = LifecycleReport(recipe=recipe.name, version=recipe.version, prefix=str(prefix))
        logger.info("Installing %s %s into %s", recipe.name, recipe.display_version, prefix)

        try:
            workdir = self._make_workdir(recipe)
        except OSError as e:
            # Downloads land in the work directory, so this fails the fetch stage
            error = FetchError(
                f"Cannot create a work directory in {self.settings.work_root}: {e}",
                url=recipe.url,
            )
            logger.error("%s: %s", recipe.name, error.message)
            report.advance(StageRecord(
                stage=Stage.FETCH, status="failed", detail=error.message, error=error.to_dict()
            ))
            report.finish()
            return report

        try:
            archive = self._stage(
                report, Stage.FETCH,
                lambda: self.acquire(recipe, workdir),
                lambda path: path.name,
            )
            self._stage(
                report, Stage.RESOLVE,
                lambda: self.resolve(recipe),
                lambda found: ", ".join(f"{k}={v}" for k, v in found.items()) or "no build dependencies",
            )
            staging = self._stage(
                report, Stage.BUILD,
                lambda: self.build(recipe, archive, workdir),
                lambda _: f"{len(recipe.install_steps)} step(s)",
            )
            installed = self._stage(
                report, Stage.INSTALL,
                lambda: self.install(recipe, staging, prefix),
                lambda paths: f"{len(paths)} file(s)",
            )
            report.installed_files = [str(p.relative_to(prefix)) for p in installed]
            self._stage(
                report, Stage.VERIFY,
                lambda: self.verify(recipe, prefix, report.probes),
                lambda probes: f"{len(probes)} probe(s) passed",
            )
        except RecipeError as e:
            logger.error("%s: %s failed (%s): %s", recipe.name, e.stage, e.kind, e.message)
            if report.installed_unverified:
                logger.warning(
                    "%s is installed in %s but did NOT pass verification", recipe.name, prefix
                )
        finally:
            self._cleanup(workdir)
            report.finish()

        if report.ok:
            logger.info("✓ %s %s verified", recipe.name, recipe.display_version)
        return report

    def verify_installed(self, recipe: RecipeDescriptor, prefix: Path) -> LifecycleReport:
        """Re-run the probes against an already installed prefix."""
        prefix = prefix.expanduser().absolute()
        report = LifecycleReport(recipe=recipe.name, version=recipe.version, prefix=str(prefix))
        try:
            self._stage(
                report, Stage.VERIFY,
                lambda: self.verify(recipe, prefix, report.probes),
                lambda probes: f"{len(probes)} probe(s) passed",
            )
        except RecipeError as e:
            logger.error("%s: verification failed: %s", recipe.name, e.message)
        finally:
            report.finish()
        return report

    # ── Internals ───────────────────────────────────────────────

    @staticmethod
    def _stage(
        report: LifecycleReport,
        stage: Stage,
        action: Callable[[], Any],
        describe: Callable[[Any], str],
    ) -> Any:
        start = time.monotonic()
        try:
            value = action()
        except RecipeError as e:
            report.advance(StageRecord(
                stage=stage,
                status="failed",
                duration_ms=int((time.monotonic() - start) * 1000),
                detail=e.message,
                error=e.to_dict(),
            ))
            raise
        report.advance(StageRecord(
            stage=stage,
            duration_ms=int((time.monotonic() - start) * 1000),
            detail=describe(value),
        ))
        logger.debug("stage %s ok", stage.value)
        return value

    def _make_workdir(self, recipe: RecipeDescriptor) -> Path:
        root = Path(self.settings.work_root)
        root.mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix=f"recipekit-{recipe.name}-", dir=root))

    def _cleanup(self, workdir: Path) -> None:
        if self.settings.keep_workdir:
            logger.info("Keeping work directory %s", workdir)
            return
        shutil.rmtree(workdir, ignore_errors=True)


def binary_path(recipe: RecipeDescriptor, prefix: Path) -> Path:
    """Location of the installed tool: ``<prefix>/bin/<name>``."""
    return prefix / "bin" / recipe.name

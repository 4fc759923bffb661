"""
Install use case — from a recipe file to a verified install.

This is the vertical slice the CLI calls: load settings, parse the
recipe, take the prefix lock, run the lifecycle, and hand back a
result the CLI can print as text or JSON.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from recipekit.core.config.loader import load_recipe
from recipekit.core.config.settings import ConfigError, ExecutorSettings, load_settings
from recipekit.core.engine.executor import LifecycleExecutor
from recipekit.core.errors import MalformedRecipeError
from recipekit.core.models.lifecycle import LifecycleReport
from recipekit.core.models.recipe import RecipeDescriptor
from recipekit.core.persistence.prefix_lock import PrefixLockError, prefix_lock

logger = logging.getLogger(__name__)


@dataclass
class InstallResult:
    """Result of an install or test invocation."""

    recipe: RecipeDescriptor | None = None
    report: LifecycleReport | None = None
    error: str | None = None
    error_stage: str | None = None
    error_kind: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.report is not None and self.report.ok

    def to_dict(self) -> dict:
        result: dict[str, Any] = {"ok": self.ok}
        if self.error:
            result["error"] = {
                "stage": self.error_stage,
                "kind": self.error_kind,
                "message": self.error,
            }
            return result
        if self.report:
            result["report"] = self.report.to_dict()
        return result


def _prepare(
    recipe_path: Path,
    settings_path: Path | None,
    overrides: dict[str, Any] | None,
    result: InstallResult,
) -> ExecutorSettings | None:
    try:
        settings = load_settings(settings_path, overrides=overrides)
    except ConfigError as e:
        result.error, result.error_stage, result.error_kind = str(e), "config", "config_error"
        return None

    try:
        result.recipe = load_recipe(recipe_path)
    except MalformedRecipeError as e:
        result.error, result.error_stage, result.error_kind = e.message, e.stage, e.kind
        return None

    return settings


def run_install(
    recipe_path: Path,
    prefix: Path,
    settings_path: Path | None = None,
    overrides: dict[str, Any] | None = None,
    lock: bool = True,
    executor: LifecycleExecutor | None = None,
) -> InstallResult:
    """Fetch, build, install, and verify the recipe at ``recipe_path``.

    Args:
        recipe_path: Recipe YAML file.
        prefix: Install prefix.
        settings_path: Optional recipekit.yml.
        overrides: Settings given on the command line.
        lock: Hold the prefix lock for the whole run.
        executor: Pre-built executor (tests); built from settings otherwise.
    """
    result = InstallResult()
    settings = _prepare(recipe_path, settings_path, overrides, result)
    if settings is None:
        return result
    assert result.recipe is not None

    executor = executor or LifecycleExecutor(settings)

    if not lock:
        result.report = executor.run(result.recipe, prefix)
        return result

    try:
        with prefix_lock(prefix, blocking=False):
            result.report = executor.run(result.recipe, prefix)
    except PrefixLockError as e:
        result.error, result.error_stage, result.error_kind = str(e), "lock", "prefix_locked"

    return result


def run_verify(
    recipe_path: Path,
    prefix: Path,
    settings_path: Path | None = None,
    overrides: dict[str, Any] | None = None,
    executor: LifecycleExecutor | None = None,
) -> InstallResult:
    """Re-run the recipe's probes against an existing install."""
    result = InstallResult()
    settings = _prepare(recipe_path, settings_path, overrides, result)
    if settings is None:
        return result
    assert result.recipe is not None

    executor = executor or LifecycleExecutor(settings)
    result.report = executor.verify_installed(result.recipe, prefix)
    return result

"""
Build stage — run the recipe's steps against a staging prefix.

Steps run in declared order inside the unpacked source tree. Each
step's ``{var}`` placeholders are substituted first; ``{prefix}``
always points at the staging prefix in the run's work directory, so a
failing build can never leave anything in the real install prefix.
The first non-zero exit stops the build. Steps are never retried.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from recipekit.adapters.shell.command import CommandRunner, run_command
from recipekit.core.errors import BuildError
from recipekit.core.models.recipe import RecipeDescriptor

logger = logging.getLogger(__name__)


def build_variables(
    recipe: RecipeDescriptor,
    prefix: Path,
    build_dir: Path,
    jobs: int = 1,
) -> dict[str, str]:
    """Placeholder values available to every build step.

    - ``{prefix}``    — staging install prefix
    - ``{bin}``       — ``{prefix}/bin``
    - ``{name}``      — recipe name (the binary name)
    - ``{version}``   — recipe version (may be empty)
    - ``{buildpath}`` — unpacked source directory (step cwd)
    - ``{jobs}``      — parallel job count
    """
    return {
        "prefix": str(prefix),
        "bin": str(prefix / "bin"),
        "name": recipe.name,
        "version": recipe.version,
        "buildpath": str(build_dir),
        "jobs": str(jobs),
    }


def substitute_vars(command: tuple[str, ...] | list[str], variables: dict[str, str]) -> list[str]:
    """Replace ``{key}`` tokens in a command array; unknown tokens are kept."""
    result: list[str] = []
    for token in command:
        for key, value in variables.items():
            token = token.replace(f"{{{key}}}", value)
        result.append(token)
    return result


def build_environment(search_path: str, prefix: Path, jobs: int) -> dict[str, str]:
    """Environment for build steps: inherited, with the build PATH and prefix."""
    env = os.environ.copy()
    env["PATH"] = search_path
    env["PREFIX"] = str(prefix)
    env["MAKEFLAGS"] = f"-j{jobs}"
    return env


def run_build(
    recipe: RecipeDescriptor,
    build_dir: Path,
    prefix: Path,
    *,
    search_path: str,
    jobs: int = 1,
    timeout: int = 1800,
    runner: CommandRunner = run_command,
) -> list[str]:
    """Execute every build step in order.

    Args:
        recipe: The descriptor whose ``install_steps`` run.
        build_dir: Unpacked source directory; each step's cwd.
        prefix: Staging prefix substituted for ``{prefix}``.
        search_path: PATH for resolving step executables.
        jobs: Value for ``{jobs}`` and ``MAKEFLAGS``.
        timeout: Per-step timeout; an overrunning step is killed.
        runner: Command runner (injectable for tests).

    Returns:
        Captured output of each step, in order.

    Raises:
        BuildError: On the first step that fails, times out, or cannot start.
    """
    prefix.mkdir(parents=True, exist_ok=True)
    variables = build_variables(recipe, prefix, build_dir, jobs)
    env = build_environment(search_path, prefix, jobs)
    outputs: list[str] = []
    total = len(recipe.install_steps)

    for index, step in enumerate(recipe.install_steps):
        command = substitute_vars(step, variables)
        logger.info("[%d/%d] %s", index + 1, total, " ".join(command))

        result = runner(command, cwd=str(build_dir), env=env, timeout=timeout)
        outputs.append(result.output)

        if not result.ok:
            logger.error("Build step %d failed: %s", index, result.describe_failure())
            raise BuildError(
                f"Build step {index} ({' '.join(command)}) {result.describe_failure()}",
                step_index=index,
                command=command,
                output=result.output,
                returncode=result.returncode,
            )

    return outputs

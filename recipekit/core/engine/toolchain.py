"""
Resolve stage — check that every build toolchain is on the host.

Build dependencies are only needed while compiling; they are looked up
on the build PATH and never recorded in the installed artifact.
"""

from __future__ import annotations

import logging
import shutil

from recipekit.core.errors import MissingDependencyError

logger = logging.getLogger(__name__)


def resolve_toolchain(dependencies: tuple[str, ...] | list[str], search_path: str) -> dict[str, str]:
    """Locate each named toolchain binary.

    Args:
        dependencies: Tool names in declared order (e.g. ``("go",)``).
        search_path: PATH string to search.

    Returns:
        ``{name: absolute_path}`` for every dependency.

    Raises:
        MissingDependencyError: Naming the first unmet dependency and
            listing every missing one.
    """
    found: dict[str, str] = {}
    missing: list[str] = []

    for tool in dependencies:
        path = shutil.which(tool, path=search_path)
        if path:
            found[tool] = path
            logger.debug("toolchain %s → %s", tool, path)
        else:
            missing.append(tool)

    if missing:
        logger.error("Missing build dependencies: %s", ", ".join(missing))
        raise MissingDependencyError(missing[0], missing)

    return found

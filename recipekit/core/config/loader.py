"""
Recipe loader — reads recipe YAML into an immutable descriptor.

This is the only entry point for turning recipe text into a
``RecipeDescriptor``. It reads YAML, validates it against the Pydantic
model, and either returns a fully populated descriptor or raises
``MalformedRecipeError`` naming the offending field. Parsing has no
side effects: no network, no filesystem writes.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from recipekit.core.errors import MalformedRecipeError
from recipekit.core.models.recipe import RecipeDescriptor

logger = logging.getLogger(__name__)

# Fields every recipe must declare (``dependencies`` and ``version`` are optional)
REQUIRED_FIELDS = (
    "name",
    "description",
    "homepage",
    "url",
    "digest",
    "license",
    "install_steps",
    "verification",
)

# Canonical field order used by serialize_recipe()
FIELD_ORDER = (
    "name",
    "description",
    "homepage",
    "url",
    "digest",
    "version",
    "license",
    "dependencies",
    "install_steps",
    "verification",
)


def parse_recipe(text: str, source: str = "<recipe>") -> RecipeDescriptor:
    """Parse recipe text into a descriptor.

    Args:
        text: Raw YAML recipe.
        source: Label used in error messages (usually the file path).

    Returns:
        Validated, frozen RecipeDescriptor.

    Raises:
        MalformedRecipeError: Invalid YAML, missing or invalid field,
            no build steps, no probes, or an empty digest.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise MalformedRecipeError(f"Invalid YAML in {source}: {e}") from e

    if not isinstance(data, dict):
        raise MalformedRecipeError(
            f"Expected a YAML mapping in {source}, got {type(data).__name__}"
        )

    for key in REQUIRED_FIELDS:
        if key not in data or data[key] is None:
            raise MalformedRecipeError(
                f"Missing required field '{key}' in {source}", field=key
            )

    if data["digest"] == "":
        raise MalformedRecipeError(f"Empty digest in {source}", field="digest")

    if isinstance(data["install_steps"], list) and not data["install_steps"]:
        raise MalformedRecipeError(
            f"No build steps in {source}: 'install_steps' is empty",
            field="install_steps",
        )

    try:
        recipe = RecipeDescriptor.model_validate(data)
    except ValidationError as e:
        raise _malformed_from_validation(e, source) from e

    logger.debug(
        "Parsed recipe '%s' %s (%d steps, %d probes)",
        recipe.name,
        recipe.display_version,
        len(recipe.install_steps),
        len(recipe.verification),
    )
    return recipe


def serialize_recipe(recipe: RecipeDescriptor) -> str:
    """Render a descriptor back to canonical recipe YAML.

    ``parse_recipe(serialize_recipe(r)) == r`` holds for every descriptor.
    """
    dumped = recipe.model_dump(mode="json")
    ordered: dict[str, Any] = {key: dumped[key] for key in FIELD_ORDER}
    for optional in ("version", "dependencies"):
        if not ordered[optional]:
            del ordered[optional]
    return yaml.safe_dump(
        ordered,
        sort_keys=False,
        default_flow_style=None,
        allow_unicode=True,
        width=100,
    )


def load_recipe(path: Path) -> RecipeDescriptor:
    """Load and validate a recipe file.

    Raises:
        MalformedRecipeError: If the file is missing, unreadable, or invalid.
    """
    if not path.is_file():
        raise MalformedRecipeError(f"Recipe file not found: {path}")

    logger.debug("Loading recipe from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise MalformedRecipeError(f"Cannot read {path}: {e}") from e

    recipe = parse_recipe(raw, source=str(path))
    logger.info("Loaded recipe '%s' %s", recipe.name, recipe.display_version)
    return recipe


def _malformed_from_validation(error: ValidationError, source: str) -> MalformedRecipeError:
    """Turn a Pydantic error into a MalformedRecipeError naming the field."""
    problems = []
    field = None
    for item in error.errors():
        loc = ".".join(str(part) for part in item.get("loc", ()))
        if field is None and item.get("loc"):
            field = str(item["loc"][0])
        msg = item.get("msg", "invalid value")
        if item.get("type") == "extra_forbidden":
            msg = "unknown field"
        problems.append(f"{loc or '<root>'}: {msg}")

    return MalformedRecipeError(
        f"Invalid recipe {source}: " + "; ".join(problems),
        field=field,
    )

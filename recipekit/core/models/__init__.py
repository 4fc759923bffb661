"""
Domain models — the recipe record and the lifecycle report.

    from recipekit.core.models import RecipeDescriptor, LifecycleReport
"""

from recipekit.core.models.lifecycle import (
    LifecycleReport,
    LifecycleState,
    ProbeResult,
    Stage,
    StageRecord,
)
from recipekit.core.models.recipe import RecipeDescriptor, VerificationProbe

__all__ = [
    # lifecycle.py
    "LifecycleReport",
    "LifecycleState",
    "ProbeResult",
    # recipe.py
    "RecipeDescriptor",
    "Stage",
    "StageRecord",
    "VerificationProbe",
]

"""recipekit — run build-and-verify recipes for command-line tools."""

__version__ = "0.1.0"

"""
Executor settings — timeouts, work directory, and build environment.

Settings are resolved in precedence order:
    CLI option  >  RECIPEKIT_* env var  >  recipekit.yml  >  default

The settings file is optional. When ``--config`` is not given, the
loader walks up from the current directory looking for
``recipekit.yml``, the same way the project loader finds its config.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

SETTINGS_FILE = "recipekit.yml"
ENV_PREFIX = "RECIPEKIT_"

# env var suffix → settings field
_ENV_FIELDS = {
    "WORK_ROOT": "work_root",
    "FETCH_TIMEOUT": "fetch_timeout",
    "STEP_TIMEOUT": "step_timeout",
    "PROBE_TIMEOUT": "probe_timeout",
    "BUILD_PATH": "build_path",
    "JOBS": "jobs",
    "KEEP_WORKDIR": "keep_workdir",
}


class ConfigError(Exception):
    """Raised when executor settings are invalid or unreadable."""


class ExecutorSettings(BaseModel):
    """Knobs the lifecycle executor reads; never mutated during a run."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    work_root: str = Field(default_factory=tempfile.gettempdir)
    fetch_timeout: int = Field(default=60, gt=0)       # seconds
    step_timeout: int = Field(default=1800, gt=0)      # seconds, per build step
    probe_timeout: int = Field(default=30, gt=0)       # seconds, per probe
    build_path: list[str] = Field(default_factory=list)  # extra PATH entries for builds
    jobs: int = Field(default_factory=lambda: os.cpu_count() or 1, gt=0)
    keep_workdir: bool = False

    def search_path(self) -> str:
        """PATH used to resolve toolchains and run build steps."""
        parts = [*self.build_path, os.environ.get("PATH", os.defpath)]
        return os.pathsep.join(p for p in parts if p)


def find_settings_file(start_dir: Path | None = None) -> Path | None:
    """Search for recipekit.yml starting from the given directory, walking up."""
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / SETTINGS_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def _env_overrides(environ: dict[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for suffix, field in _ENV_FIELDS.items():
        value = environ.get(ENV_PREFIX + suffix)
        if value is None or value == "":
            continue
        if field == "build_path":
            overrides[field] = [p for p in value.split(os.pathsep) if p]
        elif field == "keep_workdir":
            overrides[field] = value.strip().lower() in ("1", "true", "yes", "on")
        else:
            overrides[field] = value
    return overrides


def load_settings(
    path: Path | None = None,
    overrides: dict[str, Any] | None = None,
    environ: dict[str, str] | None = None,
) -> ExecutorSettings:
    """Build executor settings from file, environment, and explicit overrides.

    Args:
        path: Explicit settings file. If None, searches upward for recipekit.yml.
        overrides: Values from the CLI; ``None`` values are ignored.
        environ: Environment mapping (default: ``os.environ``).

    Raises:
        ConfigError: If the file is unreadable or any value is invalid.
    """
    data: dict[str, Any] = {}

    if path is None:
        path = find_settings_file()
    elif not path.is_file():
        raise ConfigError(f"Settings file not found: {path}")

    if path is not None:
        logger.debug("Loading settings from %s", path)
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise ConfigError(f"Cannot read {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if raw is not None and not isinstance(raw, dict):
            raise ConfigError(f"Expected a YAML mapping in {path}, got {type(raw).__name__}")
        data.update(raw or {})

    data.update(_env_overrides(dict(os.environ) if environ is None else environ))
    data.update({k: v for k, v in (overrides or {}).items() if v is not None})

    try:
        return ExecutorSettings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings: {e}") from e

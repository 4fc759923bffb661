"""
Logging configuration — one-time setup for the recipekit CLI.

Every module logs through ``logging.getLogger(__name__)``; this module
only decides where those records go and how they look.

Level precedence:
    --debug / --verbose / --quiet  >  RECIPEKIT_LOG_LEVEL  >  WARNING

A second, always-detailed destination can be added with
RECIPEKIT_LOG_FILE (level from RECIPEKIT_LOG_FILE_LEVEL).
"""

from __future__ import annotations

import logging
import os
import sys

# ── Format tiers ────────────────────────────────────────────────
# (max level, format, datefmt): first tier whose max level covers
# the console level wins.
_CONSOLE_TIERS: tuple[tuple[int, str, str | None], ...] = (
    (logging.DEBUG, "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
    (logging.CRITICAL, "%(message)s", None),
)

_FILE_FORMAT = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Loggers kept at WARNING unless running with --debug
_NOISY_LOGGERS = ("urllib3", "charset_normalizer")


def level_from_flags(
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    environ: dict[str, str] | None = None,
) -> str:
    """Resolve the console level name from CLI flags and environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    env = os.environ if environ is None else environ
    return env.get("RECIPEKIT_LOG_LEVEL", "WARNING")


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Configure the root logger for the whole process.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional path for a detailed log file.
        log_file_level: Level for the file handler (default: ``level``).
        quiet_third_party: Hold noisy library loggers at WARNING unless
            the console is at DEBUG.
    """
    console_level = _parse_level(level)
    fmt, datefmt = next(
        (f, d) for limit, f, d in _CONSOLE_TIERS if console_level <= limit
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root_level = console_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        root_level = min(root_level, file_level)

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(file_level)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
        root.addHandler(file_handler)

    root.setLevel(root_level)

    if quiet_third_party and console_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False


def _parse_level(level: str | None) -> int:
    """Level name → numeric level; unknown names fall back to WARNING."""
    numeric = getattr(logging, (level or "").upper(), None)
    return numeric if isinstance(numeric, int) else logging.WARNING

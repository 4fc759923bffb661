"""
Prefix lock — serialize installs that target the same prefix.

Two invocations of the same recipe against one install prefix are not
safe to interleave. The CLI takes an exclusive advisory ``flock`` for
the whole lifecycle; a second caller either waits or, with
``blocking=False``, fails immediately.

The lock file sits next to the prefix, never inside it
(``/opt/tools`` → ``/opt/.tools.recipekit.lock``). Taking the lock does
not create the prefix: only the install stage writes there, so a run
that fails before install leaves the prefix exactly as it found it.
"""

from __future__ import annotations

import fcntl
import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)

LOCK_SUFFIX = ".recipekit.lock"


class PrefixLockError(Exception):
    """Raised when the prefix lock cannot be taken."""


def lock_path_for(prefix: Path) -> Path:
    """Sibling lock file for ``prefix``."""
    prefix = prefix.expanduser().absolute()
    return prefix.parent / f".{prefix.name}{LOCK_SUFFIX}"


@contextmanager
def prefix_lock(prefix: Path, blocking: bool = True) -> Iterator[Path]:
    """Hold an exclusive lock on ``prefix`` for the duration of the block."""
    lock_path = lock_path_for(prefix)
    try:
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(lock_path, os.O_RDWR | os.O_CREAT, 0o644)
    except OSError as e:
        raise PrefixLockError(f"Cannot lock {prefix}: {e}") from e
    try:
        flags = fcntl.LOCK_EX if blocking else fcntl.LOCK_EX | fcntl.LOCK_NB
        try:
            fcntl.flock(fd, flags)
        except BlockingIOError as e:
            raise PrefixLockError(f"{prefix} is locked by another install") from e
        logger.debug("Locked %s", lock_path)
        try:
            yield lock_path
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            logger.debug("Unlocked %s", lock_path)
    finally:
        os.close(fd)

"""
Install stage — publish staged build outputs to the install prefix.

Publishing is all-or-nothing:

1. **stage**: every file is copied next to its final location under
   a hidden temporary name (``.<name>.<token>.partial``).
2. **commit**: each temporary file is renamed over its target; a file
   it replaces is first renamed aside (``.<name>.<token>.orig``).
3. **cleanup**: the set-aside originals are deleted.

Any failure during stage or commit rolls back: partial copies are
removed, replaced files restored, and directories created by this
install removed again. The prefix ends up exactly as it was.
"""

from __future__ import annotations

import logging
import os
import shutil
import uuid
from collections.abc import Callable
from pathlib import Path

from recipekit.core.errors import InstallError

logger = logging.getLogger(__name__)

CopyFile = Callable[[Path, Path], None]


def copy_file(src: Path, dst: Path) -> None:
    """Copy one staged file with its mode bits; symlinks stay symlinks."""
    shutil.copy2(src, dst, follow_symlinks=False)


def staged_files(staging: Path) -> list[Path]:
    """Files and symlinks under ``staging``, relative and sorted."""
    found: list[Path] = []
    for root, dirs, files in os.walk(staging):
        root_path = Path(root)
        for name in files:
            found.append((root_path / name).relative_to(staging))
        for name in dirs:
            if (root_path / name).is_symlink():
                found.append((root_path / name).relative_to(staging))
    return sorted(found)


def require_binary(staging: Path, name: str) -> Path:
    """The staged ``bin/<name>`` must exist and be executable.

    Raises:
        InstallError: Before any prefix mutation, if the build did not
            produce the tool.
    """
    binary = staging / "bin" / name
    if not binary.is_file():
        raise InstallError(
            f"Build produced no bin/{name}; nothing to install",
            path=f"bin/{name}",
        )
    if not os.access(binary, os.X_OK):
        raise InstallError(f"bin/{name} is not executable", path=f"bin/{name}")
    return binary


class _Transaction:
    """Bookkeeping for one publish, so it can be undone."""

    def __init__(self, prefix: Path):
        self.prefix = prefix
        self.token = uuid.uuid4().hex[:8]
        self.created_dirs: list[Path] = []
        self.pending: list[tuple[Path, Path]] = []     # (temp, target)
        self.backups: list[tuple[Path, Path]] = []     # (backup, target)
        self.committed: list[Path] = []

    def hidden(self, target: Path, suffix: str) -> Path:
        return target.with_name(f".{target.name}.{self.token}.{suffix}")

    def ensure_dir(self, directory: Path) -> None:
        missing: list[Path] = []
        current = directory
        while not current.exists():
            missing.append(current)
            if current.parent == current:
                break
            current = current.parent
        for path in reversed(missing):
            path.mkdir()
            self.created_dirs.append(path)

    def rollback(self) -> None:
        for target in reversed(self.committed):
            _quietly(target.unlink, missing_ok=True)
        for backup, target in reversed(self.backups):
            _quietly(os.replace, backup, target)
        for temp, _ in self.pending:
            _quietly(temp.unlink, missing_ok=True)
        for directory in reversed(self.created_dirs):
            _quietly(directory.rmdir)

    def discard_backups(self) -> None:
        for backup, _ in self.backups:
            _quietly(backup.unlink, missing_ok=True)


def _quietly(func: Callable, *args, **kwargs) -> None:
    """Best-effort cleanup call; failures are logged, not raised."""
    try:
        func(*args, **kwargs)
    except OSError as e:
        logger.error("Rollback step %s%s failed: %s", func.__name__, args, e)


def publish(
    staging: Path,
    prefix: Path,
    *,
    copy: CopyFile = copy_file,
) -> list[Path]:
    """Atomically publish every file under ``staging`` into ``prefix``.

    Args:
        staging: Staging prefix the build installed into.
        prefix: Real install prefix.
        copy: File copy function (injectable for fault-injection tests).

    Returns:
        Installed paths, sorted.

    Raises:
        InstallError: The prefix has been restored to its previous state.
    """
    files = staged_files(staging)
    txn = _Transaction(prefix)
    logger.info("Publishing %d file(s) to %s", len(files), prefix)

    try:
        txn.ensure_dir(prefix)

        # ── Stage ──
        for rel in files:
            target = prefix / rel
            txn.ensure_dir(target.parent)
            if target.is_dir() and not target.is_symlink():
                raise InstallError(
                    f"Cannot install {rel}: a directory is in the way",
                    prefix=str(prefix),
                    path=str(rel),
                )
            temp = txn.hidden(target, "partial")
            txn.pending.append((temp, target))
            copy(staging / rel, temp)

        # ── Commit ──
        for temp, target in txn.pending:
            if target.exists() or target.is_symlink():
                backup = txn.hidden(target, "orig")
                os.replace(target, backup)
                txn.backups.append((backup, target))
            os.replace(temp, target)
            txn.committed.append(target)

    except Exception as e:
        logger.error("Install into %s failed, rolling back: %s", prefix, e)
        txn.rollback()
        if isinstance(e, InstallError):
            raise
        raise InstallError(
            f"Install into {prefix} failed: {e}",
            prefix=str(prefix),
        ) from e

    txn.discard_backups()
    installed = [target for _, target in txn.pending]
    for path in installed:
        logger.debug("installed %s", path)
    return installed

"""
Archive unpacking — turn the fetched source into a build directory.

Tarballs (any compression ``tarfile`` understands) and zip files are
extracted; anything else is treated as a single-file source and copied
in as-is. When an archive holds exactly one top-level directory, that
directory is the build directory, the way GitHub release tarballs
(``tool-0.1.0/...``) are laid out.
"""

from __future__ import annotations

import logging
import shutil
import tarfile
import zipfile
from pathlib import Path

from recipekit.core.errors import BuildError

logger = logging.getLogger(__name__)


def unpack_source(archive: Path, dest: Path) -> Path:
    """Extract ``archive`` under ``dest`` and return the build directory.

    Raises:
        BuildError: If the archive is corrupt or unsafe to extract.
    """
    dest.mkdir(parents=True, exist_ok=True)

    try:
        if tarfile.is_tarfile(archive):
            with tarfile.open(archive) as tar:
                tar.extractall(dest, filter="data")
        elif zipfile.is_zipfile(archive):
            with zipfile.ZipFile(archive) as zf:
                _check_zip_members(zf, dest)
                zf.extractall(dest)
        else:
            logger.debug("%s is not an archive, using it as a single-file source", archive.name)
            shutil.copy2(archive, dest / archive.name)
    except (tarfile.TarError, zipfile.BadZipFile, OSError) as e:
        raise BuildError(f"Cannot unpack {archive.name}: {e}") from e

    entries = [p for p in dest.iterdir() if not p.name.startswith(".")]
    if len(entries) == 1 and entries[0].is_dir():
        build_dir = entries[0]
    else:
        build_dir = dest

    logger.debug("Build directory: %s", build_dir)
    return build_dir


def _check_zip_members(zf: zipfile.ZipFile, dest: Path) -> None:
    root = dest.resolve()
    for member in zf.namelist():
        target = (dest / member).resolve()
        if target != root and root not in target.parents:
            raise BuildError(f"Refusing to extract {member!r}: path escapes the build directory")

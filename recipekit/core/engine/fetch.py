"""
Source acquisition — download the archive and check its digest.

The archive is streamed into the run's work directory while being
hashed, so integrity is known the moment the download ends. Nothing
here ever writes to the install prefix.
"""

from __future__ import annotations

import hashlib
import logging
import urllib.error
import urllib.request
from pathlib import Path
from urllib.parse import unquote, urlparse

from recipekit import __version__
from recipekit.core.errors import FetchError, IntegrityError

logger = logging.getLogger(__name__)

_CHUNK = 64 * 1024
_USER_AGENT = f"recipekit/{__version__}"


def compute_digest(path: Path, algorithm: str = "sha256") -> str:
    """Hex digest of a file, read in chunks."""
    h = hashlib.new(algorithm)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            h.update(chunk)
    return h.hexdigest()


def archive_filename(url: str) -> str:
    """Local filename for a downloaded URL (last path segment)."""
    name = unquote(urlparse(url).path.rstrip("/").rsplit("/", 1)[-1])
    return name or "source"


def download(
    url: str,
    dest_dir: Path,
    *,
    algorithm: str = "sha256",
    timeout: int = 60,
) -> tuple[Path, str]:
    """Stream ``url`` into ``dest_dir`` and hash it on the way.

    Returns:
        ``(path, hexdigest)`` of the downloaded file.

    Raises:
        FetchError: On any transport failure; no partial file is left.
    """
    dest_dir.mkdir(parents=True, exist_ok=True)
    target = dest_dir / archive_filename(url)
    partial = target.with_name(target.name + ".part")
    h = hashlib.new(algorithm)
    size = 0

    logger.info("Fetching %s", url)
    request = urllib.request.Request(url, headers={"User-Agent": _USER_AGENT})
    try:
        with urllib.request.urlopen(request, timeout=timeout) as resp, open(partial, "wb") as out:
            for chunk in iter(lambda: resp.read(_CHUNK), b""):
                h.update(chunk)
                out.write(chunk)
                size += len(chunk)
    except urllib.error.HTTPError as e:
        partial.unlink(missing_ok=True)
        raise FetchError(f"HTTP {e.code} fetching {url}: {e.reason}", url=url) from e
    except urllib.error.URLError as e:
        partial.unlink(missing_ok=True)
        raise FetchError(f"Cannot fetch {url}: {e.reason}", url=url) from e
    except (TimeoutError, OSError, ValueError) as e:
        partial.unlink(missing_ok=True)
        raise FetchError(f"Cannot fetch {url}: {e}", url=url) from e

    partial.replace(target)
    logger.debug("Fetched %d bytes → %s", size, target)
    return target, h.hexdigest()


def acquire(
    url: str,
    digest_algorithm: str,
    expected_hexdigest: str,
    dest_dir: Path,
    timeout: int = 60,
) -> Path:
    """Download ``url`` and refuse it unless the digest matches.

    Raises:
        FetchError: Transport failure.
        IntegrityError: Computed digest differs from ``expected_hexdigest``;
            the downloaded file is removed before raising.
    """
    path, actual = download(url, dest_dir, algorithm=digest_algorithm, timeout=timeout)
    if actual.lower() != expected_hexdigest.lower():
        path.unlink(missing_ok=True)
        logger.error("Digest mismatch for %s", url)
        raise IntegrityError(
            url,
            expected=f"{digest_algorithm}:{expected_hexdigest.lower()}",
            actual=f"{digest_algorithm}:{actual}",
        )
    logger.info("Digest verified (%s:%s…)", digest_algorithm, actual[:12])
    return path

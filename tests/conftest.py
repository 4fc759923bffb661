"""
Shared test fixtures and configuration.

Recipes under test build a tiny shell-script "tool" from a local
tarball fetched over a ``file://`` URL, so no test needs the network.
"""

import hashlib
import io
import os
import tarfile
import textwrap
from pathlib import Path

import pytest

from recipekit.core.config.settings import ExecutorSettings
from recipekit.core.models.recipe import RecipeDescriptor

TOOL_NAME = "port-chaser"

BUILD_STEPS = [
    ["mkdir", "-p", "{bin}", "{prefix}/share/doc/{name}"],
    ["cp", "port-chaser.sh", "{bin}/{name}"],
    ["chmod", "755", "{bin}/{name}"],
    ["cp", "README", "{prefix}/share/doc/{name}/README"],
]

PROBES = [
    {"run": "--version", "expect": "Port Chaser"},
    {"run": "--version", "expect": "0.1.0"},
]


def tool_script(version: str = "0.1.0", display: str = "Port Chaser") -> str:
    return textwrap.dedent(f"""\
        #!/bin/sh
        if [ "$1" = "--version" ]; then
          echo "{display} v{version}"
          exit 0
        fi
        echo "usage: port-chaser [--version]"
    """)


def write_tarball(path: Path, files: dict[str, str], top: str | None = None) -> Path:
    """Write a .tar.gz holding ``files`` (name → text), optionally under ``top/``."""
    with tarfile.open(path, "w:gz") as tar:
        for name, content in files.items():
            data = content.encode()
            info = tarfile.TarInfo(f"{top}/{name}" if top else name)
            info.size = len(data)
            info.mode = 0o755 if name.endswith(".sh") else 0o644
            tar.addfile(info, io.BytesIO(data))
    return path


def sha256_of(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def make_archive(tmp_path: Path):
    """Factory: build a source tarball whose tool prints ``<display> v<version>``."""

    def _make(version: str = "0.1.0", display: str = "Port Chaser") -> Path:
        archive_dir = tmp_path / "archives"
        archive_dir.mkdir(exist_ok=True)
        return write_tarball(
            archive_dir / f"v{version}.tar.gz",
            {
                "port-chaser.sh": tool_script(version, display),
                "README": f"{display} {version}\n",
            },
            top=f"port-chaser-{version}",
        )

    return _make


@pytest.fixture
def make_recipe():
    """Factory: descriptor for an archive, with any field overridden."""

    def _make(archive: Path, **overrides) -> RecipeDescriptor:
        data = {
            "name": TOOL_NAME,
            "description": "Terminal UI-based port management tool for developers",
            "homepage": "https://github.com/manson/port-chaser",
            "url": archive.as_uri(),
            "digest": f"sha256:{sha256_of(archive)}",
            "license": "MIT",
            "version": "0.1.0",
            "dependencies": ["sh"],
            "install_steps": BUILD_STEPS,
            "verification": PROBES,
        }
        data.update(overrides)
        return RecipeDescriptor.model_validate(data)

    return _make


@pytest.fixture
def settings(tmp_path: Path) -> ExecutorSettings:
    """Executor settings confined to the test's temp directory."""
    return ExecutorSettings(
        work_root=str(tmp_path / "work"),
        fetch_timeout=10,
        step_timeout=30,
        probe_timeout=10,
        jobs=1,
    )


def snapshot(root: Path) -> dict[str, tuple]:
    """Content and mode of every entry under ``root`` (empty if missing)."""
    if not root.exists():
        return {}
    state: dict[str, tuple] = {}
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames + filenames:
            path = Path(dirpath) / name
            rel = str(path.relative_to(root))
            if path.is_symlink():
                state[rel] = ("link", os.readlink(path))
            elif path.is_dir():
                state[rel] = ("dir", path.stat().st_mode)
            else:
                state[rel] = ("file", path.read_bytes(), path.stat().st_mode)
    return state


@pytest.fixture
def take_snapshot():
    """The ``snapshot`` helper, as a fixture."""
    return snapshot

"""
RecipeDescriptor — the immutable parsed form of a recipe.

A descriptor is pure data: metadata, the source locator and its
digest, the build toolchains, the build steps, and the probes that
confirm the installed binary is the right one. It never performs I/O.
One descriptor exists per released version of a tool; a version bump
means a new descriptor, never a mutation.
"""

from __future__ import annotations

import hashlib
import re
import shlex
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Binary names end up as ``bin/<name>``; keep them path-safe
_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._+-]*$")
_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")

# ``.../v0.1.0.tar.gz`` or ``tool-1.2.3.zip`` → ``0.1.0`` / ``1.2.3``
_ARCHIVE_SUFFIX_RE = re.compile(r"(\.tar(\.\w+)?|\.tgz|\.tbz2?|\.txz|\.zip)$")
_URL_VERSION_RE = re.compile(r"v?(\d+(?:\.\d+)+(?:[-+][0-9A-Za-z.]+)?)$")

DEFAULT_DIGEST_ALGORITHM = "sha256"
SUPPORTED_SCHEMES = {"http", "https", "file", "ftp"}


def version_from_url(url: str) -> str:
    """Derive a version string from the last path segment of a URL."""
    segment = urlparse(url).path.rstrip("/").rsplit("/", 1)[-1]
    segment = _ARCHIVE_SUFFIX_RE.sub("", segment)
    match = _URL_VERSION_RE.search(segment)
    return match.group(1) if match else ""


def split_digest(digest: str) -> tuple[str, str]:
    """Split ``algo:hex`` (or bare hex) into ``(algo, hex)``."""
    if ":" in digest:
        algo, hexdigest = digest.split(":", 1)
        return algo.strip().lower(), hexdigest.strip().lower()
    return DEFAULT_DIGEST_ALGORITHM, digest.strip().lower()


class VerificationProbe(BaseModel):
    """A post-install invocation and the substring its output must contain."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    run: str                        # arguments appended to the installed binary
    expect: str = Field(min_length=1)

    @property
    def args(self) -> list[str]:
        return shlex.split(self.run)

    def __str__(self) -> str:
        return f"{self.run} → {self.expect!r}"


class RecipeDescriptor(BaseModel):
    """Everything needed to fetch, build, install, and verify one tool."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # ── Metadata ─────────────────────────────────────────────────
    name: str
    description: str = Field(min_length=1)
    homepage: str = Field(min_length=1)
    license: str = Field(min_length=1)
    version: str = ""

    # ── Source ───────────────────────────────────────────────────
    url: str = Field(min_length=1)
    digest: str = Field(min_length=1)

    # ── Build ────────────────────────────────────────────────────
    dependencies: tuple[str, ...] = ()
    install_steps: tuple[tuple[str, ...], ...] = Field(min_length=1)

    # ── Verification ─────────────────────────────────────────────
    verification: tuple[VerificationProbe, ...] = Field(min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _derive_version(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("version") and isinstance(data.get("url"), str):
            data = {**data, "version": version_from_url(data["url"])}
        return data

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        if not _NAME_RE.match(value):
            raise ValueError(
                "must be a non-empty identifier of letters, digits, '.', '_', '+' or '-'"
            )
        return value

    @field_validator("description", "homepage", "license", "url", "digest")
    @classmethod
    def _check_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        scheme = urlparse(value).scheme.lower()
        if scheme not in SUPPORTED_SCHEMES:
            raise ValueError(
                f"unsupported URL scheme {scheme!r} "
                f"(expected one of: {', '.join(sorted(SUPPORTED_SCHEMES))})"
            )
        return value

    @field_validator("digest")
    @classmethod
    def _check_digest(cls, value: str) -> str:
        algo, hexdigest = split_digest(value)
        if algo not in hashlib.algorithms_available:
            raise ValueError(f"unknown digest algorithm {algo!r}")
        if not hexdigest or not _HEX_RE.match(hexdigest):
            raise ValueError("digest must be a hexadecimal string")
        expected_len = hashlib.new(algo).digest_size * 2
        if len(hexdigest) != expected_len:
            raise ValueError(
                f"{algo} digest must be {expected_len} hex characters, got {len(hexdigest)}"
            )
        return value

    @field_validator("dependencies", mode="before")
    @classmethod
    def _check_dependencies(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, (list, tuple)):
            seen: set[str] = set()
            for dep in value:
                if not isinstance(dep, str) or not dep.strip():
                    raise ValueError("each dependency must be a non-empty string")
                if dep in seen:
                    raise ValueError(f"duplicate dependency {dep!r}")
                seen.add(dep)
        return value

    @field_validator("install_steps", mode="before")
    @classmethod
    def _split_steps(cls, value: Any) -> Any:
        if not isinstance(value, (list, tuple)):
            return value
        steps = []
        for index, step in enumerate(value):
            if isinstance(step, str):
                try:
                    step = shlex.split(step)
                except ValueError as e:
                    raise ValueError(f"step {index}: {e}") from e
            if not step:
                raise ValueError(f"step {index} is empty")
            steps.append(step)
        return steps

    @field_validator("verification", mode="before")
    @classmethod
    def _coerce_probes(cls, value: Any) -> Any:
        if not isinstance(value, (list, tuple)):
            return value
        probes = []
        for item in value:
            # ``[run, expect]`` pairs are accepted alongside mappings
            if isinstance(item, (list, tuple)) and len(item) == 2:
                item = {"run": item[0], "expect": item[1]}
            probes.append(item)
        return probes

    # ── Derived ──────────────────────────────────────────────────

    @property
    def algorithm(self) -> str:
        return split_digest(self.digest)[0]

    @property
    def expected_hexdigest(self) -> str:
        return split_digest(self.digest)[1]

    @property
    def display_version(self) -> str:
        return self.version or "unversioned"

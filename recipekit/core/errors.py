"""
Error taxonomy — one exception per lifecycle failure mode.

Every error is terminal for the current invocation. Each carries the
stage it belongs to and a short ``kind`` used in CLI output and JSON
reports, so an operator can tell what failed without re-running.
"""

from __future__ import annotations

from typing import Any

# Captured subprocess output is tail-truncated to this many characters
OUTPUT_TAIL = 2000


def _tail(text: str, limit: int = OUTPUT_TAIL) -> str:
    """Keep the last ``limit`` characters of captured output."""
    if len(text) <= limit:
        return text
    return "…" + text[-limit:]


class RecipeError(Exception):
    """Base class for all recipe lifecycle failures."""

    stage = "unknown"
    kind = "recipe_error"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "stage": self.stage,
            "kind": self.kind,
            "message": self.message,
        }
        data.update(self.details)
        return data


class MalformedRecipeError(RecipeError):
    """The recipe text could not be turned into a descriptor."""

    stage = "parse"
    kind = "malformed_recipe"

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message, field=field)
        self.field = field


class FetchError(RecipeError):
    """The source archive could not be downloaded."""

    stage = "fetch"
    kind = "fetch_error"

    def __init__(self, message: str, url: str = ""):
        super().__init__(message, url=url)
        self.url = url


class IntegrityError(RecipeError):
    """The downloaded archive does not match the recipe's digest."""

    stage = "fetch"
    kind = "integrity_error"

    def __init__(self, url: str, expected: str, actual: str):
        super().__init__(
            f"Digest mismatch for {url}: expected {expected}, got {actual}",
            url=url,
            expected=expected,
            actual=actual,
        )
        self.url = url
        self.expected = expected
        self.actual = actual


class MissingDependencyError(RecipeError):
    """A build-time toolchain is not present on the host."""

    stage = "resolve"
    kind = "missing_dependency"

    def __init__(self, dependency: str, missing: list[str] | None = None):
        missing = missing or [dependency]
        super().__init__(
            f"Missing build dependency: {dependency}"
            + (f" (all missing: {', '.join(missing)})" if len(missing) > 1 else ""),
            dependency=dependency,
            missing=missing,
        )
        self.dependency = dependency
        self.missing = missing


class BuildError(RecipeError):
    """A build step exited non-zero, timed out, or could not start."""

    stage = "build"
    kind = "build_error"

    def __init__(
        self,
        message: str,
        step_index: int = -1,
        command: list[str] | None = None,
        output: str = "",
        returncode: int | None = None,
    ):
        output = _tail(output)
        super().__init__(
            message,
            step_index=step_index,
            command=command or [],
            output=output,
            returncode=returncode,
        )
        self.step_index = step_index
        self.command = command or []
        self.output = output
        self.returncode = returncode


class InstallError(RecipeError):
    """Publishing build outputs to the install prefix failed."""

    stage = "install"
    kind = "install_error"

    def __init__(self, message: str, prefix: str = "", path: str = ""):
        super().__init__(message, prefix=prefix, path=path)
        self.prefix = prefix
        self.path = path


class VerificationFailedError(RecipeError):
    """A post-install probe did not observe its expected output."""

    stage = "verify"
    kind = "verification_failed"

    def __init__(
        self,
        run: str,
        expect: str,
        output: str,
        returncode: int | None = None,
        reason: str = "",
    ):
        output = _tail(output)
        message = f"Probe '{run}' expected {expect!r}"
        message += f": {reason}" if reason else f" in output: {output.strip()!r}"
        super().__init__(
            message,
            probe={"run": run, "expect": expect},
            output=output,
            returncode=returncode,
        )
        self.run = run
        self.expect = expect
        self.output = output
        self.returncode = returncode

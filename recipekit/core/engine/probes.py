"""
Verify stage — run the recipe's probes against the installed binary.

This is the only check that the installed artifact is the *right*
version rather than merely something that compiled. Each probe runs
``<prefix>/bin/<name> <args>`` and must print its expected substring
(stdout or stderr). Probes run in declared order; the first miss stops
verification.
"""

from __future__ import annotations

import logging
from pathlib import Path

from recipekit.adapters.shell.command import CommandRunner, run_command
from recipekit.core.errors import VerificationFailedError
from recipekit.core.models.lifecycle import ProbeResult
from recipekit.core.models.recipe import RecipeDescriptor, VerificationProbe

logger = logging.getLogger(__name__)


def run_probe(
    probe: VerificationProbe,
    binary: Path,
    *,
    timeout: int = 30,
    runner: CommandRunner = run_command,
) -> ProbeResult:
    """Run one probe and report whether its expectation held."""
    result = runner([str(binary), *probe.args], timeout=timeout)
    passed = result.error is None and not result.timed_out and probe.expect in result.output

    if passed and result.returncode != 0:
        logger.warning(
            "Probe '%s' matched but exited with code %s", probe.run, result.returncode
        )

    output = result.output if result.error is None else result.error
    if result.timed_out:
        output += f"\n[timed out after {timeout}s]"

    return ProbeResult(
        run=probe.run,
        expect=probe.expect,
        output=output,
        returncode=result.returncode,
        passed=passed,
    )


def verify(
    recipe: RecipeDescriptor,
    binary: Path,
    *,
    timeout: int = 30,
    runner: CommandRunner = run_command,
    results: list[ProbeResult] | None = None,
) -> list[ProbeResult]:
    """Run every probe of ``recipe`` against ``binary``.

    Args:
        results: Optional list that receives each ProbeResult as it is
            produced, so callers keep the passing ones even on failure.

    Raises:
        VerificationFailedError: Naming the first probe whose expected
            substring was not observed, with the actual output.
    """
    collected = results if results is not None else []

    for probe in recipe.verification:
        outcome = run_probe(probe, binary, timeout=timeout, runner=runner)
        collected.append(outcome)

        if not outcome.passed:
            logger.error("✗ probe %s", probe)
            reason = ""
            if outcome.returncode is None:
                reason = outcome.output or "probe did not run to completion"
            raise VerificationFailedError(
                probe.run,
                probe.expect,
                output=outcome.output,
                returncode=outcome.returncode,
                reason=reason,
            )
        logger.info("✓ probe %s", probe)

    return collected

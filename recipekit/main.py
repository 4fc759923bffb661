"""
recipekit — CLI entrypoint.

Usage:
    recipekit --help
    recipekit check port-chaser.yml
    recipekit install port-chaser.yml --prefix ~/.local
    recipekit test port-chaser.yml --prefix ~/.local
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from recipekit import __version__
from recipekit.core.observability.logging_config import level_from_flags, setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="recipekit")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, dir_okay=False),
    default=None,
    help="Path to recipekit.yml settings (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """recipekit — fetch, build, install, and verify tools from recipes."""
    ctx.ensure_object(dict)
    ctx.obj["quiet"] = quiet
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    setup_logging(
        level=level_from_flags(debug=debug, verbose=verbose, quiet=quiet),
        log_file=os.environ.get("RECIPEKIT_LOG_FILE"),
        log_file_level=os.environ.get("RECIPEKIT_LOG_FILE_LEVEL"),
        quiet_third_party=not debug,
    )


def _fail(stage: str | None, kind: str | None, message: str) -> None:
    """Print a failure to stderr and exit non-zero."""
    click.secho(f"❌ {stage or 'error'}: {kind or 'error'}", fg="red", bold=True, err=True)
    click.echo(f"   {message}", err=True)
    sys.exit(1)


# ── check / show ────────────────────────────────────────────────────


@cli.command("check")
@click.argument("recipe", type=click.Path(dir_okay=False))
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def check(recipe: str, as_json: bool) -> None:
    """Parse and validate a recipe without running it."""
    from recipekit.core.config.loader import load_recipe
    from recipekit.core.errors import MalformedRecipeError

    try:
        descriptor = load_recipe(Path(recipe))
    except MalformedRecipeError as e:
        if as_json:
            click.echo(json.dumps({"valid": False, "error": e.to_dict()}, indent=2))
            sys.exit(1)
        _fail(e.stage, e.kind, e.message)
        return

    if as_json:
        click.echo(json.dumps(
            {"valid": True, "recipe": descriptor.model_dump(mode="json")}, indent=2
        ))
        return

    click.secho("✅ Recipe is valid", fg="green", bold=True)
    click.echo(f"   Name:         {descriptor.name} {descriptor.display_version}")
    click.echo(f"   License:      {descriptor.license}")
    click.echo(f"   Source:       {descriptor.url}")
    click.echo(f"   Build deps:   {', '.join(descriptor.dependencies) or '(none)'}")
    click.echo(f"   Build steps:  {len(descriptor.install_steps)}")
    click.echo(f"   Probes:       {len(descriptor.verification)}")


@cli.command("show")
@click.argument("recipe", type=click.Path(dir_okay=False))
def show(recipe: str) -> None:
    """Print a recipe in canonical form."""
    from recipekit.core.config.loader import load_recipe, serialize_recipe
    from recipekit.core.errors import MalformedRecipeError

    try:
        descriptor = load_recipe(Path(recipe))
    except MalformedRecipeError as e:
        _fail(e.stage, e.kind, e.message)
        return

    click.echo(serialize_recipe(descriptor), nl=False)


@cli.command("digest")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--algorithm", "-a", default="sha256", show_default=True, help="hashlib algorithm.")
def digest(path: str, algorithm: str) -> None:
    """Print the ``algo:hex`` digest of a source archive."""
    import hashlib

    from recipekit.core.engine.fetch import compute_digest

    if algorithm.lower() not in hashlib.algorithms_available:
        raise click.BadParameter(f"unknown algorithm {algorithm!r}", param_hint="--algorithm")

    click.echo(f"{algorithm.lower()}:{compute_digest(Path(path), algorithm.lower())}")


# ── install / test ──────────────────────────────────────────────────


def _settings_overrides(
    work_root: str | None,
    step_timeout: int | None,
    keep_workdir: bool,
) -> dict:
    return {
        "work_root": work_root,
        "step_timeout": step_timeout,
        "keep_workdir": True if keep_workdir else None,
    }


def _print_report(result, quiet: bool) -> None:
    report = result.report
    assert report is not None

    if not quiet:
        click.secho(
            f"\n📦 {report.recipe} {report.version or ''}".rstrip(), fg="cyan", bold=True
        )
        click.echo(f"   prefix: {report.prefix}")
        for record in report.stages:
            marker = "✓" if record.ok else "✗"
            color = "green" if record.ok else "red"
            click.secho(f"   {marker} {record.stage.value:<8}", fg=color, nl=False)
            click.echo(f" {record.detail}  ({record.duration_ms}ms)")
        click.echo()

    if report.ok:
        click.secho(f"✅ {report.recipe} verified", fg="green", bold=True)
        return

    error = report.error or {}
    if report.installed_unverified:
        click.secho(
            f"⚠️  {report.recipe} is installed in {report.prefix} but failed verification",
            fg="yellow",
            err=True,
        )
    if error.get("output"):
        click.echo("   output:", err=True)
        for line in str(error["output"]).rstrip().splitlines()[-20:]:
            click.echo(f"     {line}", err=True)
    _fail(error.get("stage"), error.get("kind"), error.get("message", "unknown failure"))


@cli.command("install")
@click.argument("recipe", type=click.Path(dir_okay=False))
@click.option(
    "--prefix", "-p", required=True, type=click.Path(file_okay=False), help="Install prefix."
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--work-root", default=None, help="Directory for per-run work directories.")
@click.option("--step-timeout", type=int, default=None, help="Seconds allowed per build step.")
@click.option("--keep-workdir", is_flag=True, help="Keep the work directory for debugging.")
@click.option("--no-lock", is_flag=True, help="Do not lock the prefix (caller serializes).")
@click.pass_context
def install(
    ctx: click.Context,
    recipe: str,
    prefix: str,
    as_json: bool,
    work_root: str | None,
    step_timeout: int | None,
    keep_workdir: bool,
    no_lock: bool,
) -> None:
    """Fetch, build, install, and verify RECIPE into --prefix."""
    from recipekit.core.use_cases.install import run_install

    result = run_install(
        Path(recipe),
        Path(prefix),
        settings_path=ctx.obj.get("config_path"),
        overrides=_settings_overrides(work_root, step_timeout, keep_workdir),
        lock=not no_lock,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.ok else 1)

    if result.error:
        _fail(result.error_stage, result.error_kind, result.error)

    _print_report(result, ctx.obj.get("quiet", False))


@cli.command("test")
@click.argument("recipe", type=click.Path(dir_okay=False))
@click.option(
    "--prefix", "-p", required=True, type=click.Path(file_okay=False), help="Install prefix."
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def test(ctx: click.Context, recipe: str, prefix: str, as_json: bool) -> None:
    """Run RECIPE's verification probes against an existing install."""
    from recipekit.core.use_cases.install import run_verify

    result = run_verify(Path(recipe), Path(prefix), settings_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.ok else 1)

    if result.error:
        _fail(result.error_stage, result.error_kind, result.error)

    _print_report(result, ctx.obj.get("quiet", False))


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()

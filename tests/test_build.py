"""
Tests for the resolve and build stages.
"""

import os
from pathlib import Path

import pytest

from recipekit.adapters.shell.command import CommandResult, run_command
from recipekit.core.engine.build import build_variables, run_build, substitute_vars
from recipekit.core.engine.toolchain import resolve_toolchain
from recipekit.core.errors import BuildError, MissingDependencyError

PATH = os.environ.get("PATH", os.defpath)


@pytest.fixture
def build_dir(tmp_path: Path) -> Path:
    d = tmp_path / "src"
    d.mkdir()
    (d / "port-chaser.sh").write_text("#!/bin/sh\necho 'Port Chaser v0.1.0'\n")
    (d / "README").write_text("Port Chaser\n")
    return d


class TestSubstitution:
    def test_known_placeholders(self, tmp_path: Path, make_archive, make_recipe):
        recipe = make_recipe(make_archive())
        variables = build_variables(recipe, tmp_path / "stage", tmp_path / "src", jobs=4)
        cmd = substitute_vars(
            ("go", "build", "-o", "{bin}/{name}", "-p", "{jobs}", "{buildpath}/cmd"), variables
        )
        assert cmd == [
            "go", "build", "-o", f"{tmp_path}/stage/bin/port-chaser",
            "-p", "4", f"{tmp_path}/src/cmd",
        ]

    def test_version_placeholder(self, tmp_path: Path, make_archive, make_recipe):
        recipe = make_recipe(make_archive())
        variables = build_variables(recipe, tmp_path, tmp_path)
        assert substitute_vars(["-X", "main.version={version}"], variables) == [
            "-X", "main.version=0.1.0",
        ]

    def test_unknown_placeholder_kept(self):
        assert substitute_vars(["{unknown}", "{name}"], {"name": "x"}) == ["{unknown}", "x"]


class TestResolveToolchain:
    def test_present(self):
        found = resolve_toolchain(("sh",), PATH)
        assert Path(found["sh"]).name == "sh"

    def test_no_dependencies(self):
        assert resolve_toolchain((), PATH) == {}

    def test_missing(self):
        with pytest.raises(MissingDependencyError) as exc:
            resolve_toolchain(("sh", "no-such-toolchain-xyz", "nor-this-one"), PATH)
        assert exc.value.dependency == "no-such-toolchain-xyz"
        assert exc.value.missing == ["no-such-toolchain-xyz", "nor-this-one"]
        assert exc.value.stage == "resolve"

    def test_extra_build_path(self, tmp_path: Path):
        tool = tmp_path / "toolchain" / "fakego"
        tool.parent.mkdir()
        tool.write_text("#!/bin/sh\n")
        tool.chmod(0o755)
        found = resolve_toolchain(("fakego",), f"{tool.parent}{os.pathsep}{PATH}")
        assert found["fakego"] == str(tool)


class TestRunBuild:
    def test_steps_install_into_staging(self, tmp_path, build_dir, make_archive, make_recipe):
        recipe = make_recipe(make_archive())
        staging = tmp_path / "stage"
        outputs = run_build(recipe, build_dir, staging, search_path=PATH, timeout=30)
        assert len(outputs) == len(recipe.install_steps)
        assert os.access(staging / "bin" / "port-chaser", os.X_OK)
        assert (staging / "share" / "doc" / "port-chaser" / "README").is_file()

    def test_first_failure_stops_build(self, tmp_path, build_dir, make_archive, make_recipe):
        recipe = make_recipe(
            make_archive(),
            install_steps=[
                ["touch", "first"],
                ["sh", "-c", "echo boom; exit 3"],
                ["touch", "third"],
            ],
        )
        with pytest.raises(BuildError) as exc:
            run_build(recipe, build_dir, tmp_path / "stage", search_path=PATH, timeout=30)

        err = exc.value
        assert err.step_index == 1
        assert err.returncode == 3
        assert "boom" in err.output
        assert err.command == ["sh", "-c", "echo boom; exit 3"]
        assert (build_dir / "first").exists()
        assert not (build_dir / "third").exists()

    def test_step_timeout(self, tmp_path, build_dir, make_archive, make_recipe):
        recipe = make_recipe(make_archive(), install_steps=[["sleep", "10"]])
        with pytest.raises(BuildError, match="timed out"):
            run_build(recipe, build_dir, tmp_path / "stage", search_path=PATH, timeout=1)

    def test_missing_executable(self, tmp_path, build_dir, make_archive, make_recipe):
        recipe = make_recipe(make_archive(), install_steps=[["no-such-compiler-xyz", "build"]])
        with pytest.raises(BuildError, match="Cannot execute") as exc:
            run_build(recipe, build_dir, tmp_path / "stage", search_path=PATH)
        assert exc.value.returncode is None

    def test_environment_passed_to_runner(self, tmp_path, build_dir, make_archive, make_recipe):
        calls = []

        def fake_runner(command, *, cwd=None, env=None, timeout=300):
            calls.append((command, cwd, env))
            return CommandResult(command=command, returncode=0, output="ok")

        recipe = make_recipe(make_archive(), install_steps=[["make", "-j{jobs}"]])
        staging = tmp_path / "stage"
        run_build(recipe, build_dir, staging, search_path="/opt/go/bin", jobs=3, runner=fake_runner)

        command, cwd, env = calls[0]
        assert command == ["make", "-j3"]
        assert cwd == str(build_dir)
        assert env["PATH"] == "/opt/go/bin"
        assert env["PREFIX"] == str(staging)
        assert env["MAKEFLAGS"] == "-j3"


class TestRunCommand:
    def test_captures_combined_output(self, tmp_path):
        result = run_command(["sh", "-c", "echo out; echo err >&2"], cwd=str(tmp_path))
        assert result.ok
        assert "out" in result.output
        assert "err" in result.output

    def test_timeout_kills_children(self):
        result = run_command(["sh", "-c", "sleep 10 & sleep 10"], timeout=1)
        assert result.timed_out
        assert not result.ok
        assert result.describe_failure() == "timed out after 1s"

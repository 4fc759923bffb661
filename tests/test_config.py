"""
Tests for executor settings — file, environment, and override precedence.
"""

import os
import textwrap
from pathlib import Path

import pytest
from pydantic import ValidationError

from recipekit.core.config.settings import (
    ConfigError,
    ExecutorSettings,
    find_settings_file,
    load_settings,
)


@pytest.fixture
def settings_yml(tmp_path: Path) -> Path:
    """Create a recipekit.yml in a temp directory."""
    content = textwrap.dedent("""\
        work_root: /var/tmp/recipekit
        step_timeout: 600
        build_path:
          - /usr/local/go/bin
        jobs: 2
    """)
    path = tmp_path / "recipekit.yml"
    path.write_text(content)
    return path


class TestDefaults:
    def test_defaults(self):
        settings = ExecutorSettings()
        assert settings.fetch_timeout == 60
        assert settings.step_timeout == 1800
        assert settings.probe_timeout == 30
        assert settings.jobs >= 1
        assert settings.keep_workdir is False

    def test_frozen(self):
        settings = ExecutorSettings()
        with pytest.raises(ValidationError):
            settings.jobs = 8

    def test_search_path_prepends_build_path(self, monkeypatch):
        monkeypatch.setenv("PATH", "/usr/bin")
        settings = ExecutorSettings(build_path=["/usr/local/go/bin"])
        assert settings.search_path() == f"/usr/local/go/bin{os.pathsep}/usr/bin"


class TestLoadSettings:
    def test_from_file(self, settings_yml: Path):
        settings = load_settings(settings_yml, environ={})
        assert settings.work_root == "/var/tmp/recipekit"
        assert settings.step_timeout == 600
        assert settings.build_path == ["/usr/local/go/bin"]
        assert settings.fetch_timeout == 60

    def test_env_beats_file(self, settings_yml: Path):
        settings = load_settings(
            settings_yml,
            environ={"RECIPEKIT_STEP_TIMEOUT": "120", "RECIPEKIT_KEEP_WORKDIR": "yes"},
        )
        assert settings.step_timeout == 120
        assert settings.keep_workdir is True
        assert settings.jobs == 2

    def test_overrides_beat_env(self, settings_yml: Path):
        settings = load_settings(
            settings_yml,
            overrides={"step_timeout": 30, "work_root": None},
            environ={"RECIPEKIT_STEP_TIMEOUT": "120"},
        )
        assert settings.step_timeout == 30
        assert settings.work_root == "/var/tmp/recipekit"

    def test_env_build_path_split(self, settings_yml: Path):
        settings = load_settings(
            settings_yml, environ={"RECIPEKIT_BUILD_PATH": f"/a{os.pathsep}/b"}
        )
        assert settings.build_path == ["/a", "/b"]

    def test_empty_file(self, tmp_path: Path):
        path = tmp_path / "recipekit.yml"
        path.write_text("")
        assert load_settings(path, environ={}).step_timeout == 1800

    def test_explicit_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_settings(tmp_path / "nope.yml", environ={})

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "recipekit.yml"
        path.write_text("jobs: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_settings(path, environ={})

    def test_not_a_mapping(self, tmp_path: Path):
        path = tmp_path / "recipekit.yml"
        path.write_text("- jobs\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_settings(path, environ={})

    def test_invalid_value(self, settings_yml: Path):
        with pytest.raises(ConfigError, match="Invalid settings"):
            load_settings(settings_yml, environ={"RECIPEKIT_JOBS": "many"})

    def test_unknown_key(self, tmp_path: Path):
        path = tmp_path / "recipekit.yml"
        path.write_text("parallelism: 4\n")
        with pytest.raises(ConfigError):
            load_settings(path, environ={})


class TestFindSettingsFile:
    def test_in_current_dir(self, settings_yml: Path):
        assert find_settings_file(settings_yml.parent) == settings_yml.resolve()

    def test_in_parent_dir(self, settings_yml: Path):
        child = settings_yml.parent / "recipes" / "go"
        child.mkdir(parents=True)
        assert find_settings_file(child) == settings_yml.resolve()

    def test_not_found(self, tmp_path: Path):
        found = find_settings_file(tmp_path)
        assert found is None or found.parent != tmp_path

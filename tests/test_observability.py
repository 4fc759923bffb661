"""
Tests for observability — logging setup and level resolution.
"""

import logging
from pathlib import Path

import pytest

from recipekit.core.observability.logging_config import level_from_flags, setup_logging


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    level = root.level
    yield
    for handler in list(root.handlers):
        if type(handler) in (logging.StreamHandler, logging.FileHandler):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
    logging.raiseExceptions = True


class TestLevelFromFlags:
    def test_debug_wins(self):
        assert level_from_flags(debug=True, verbose=True, quiet=True, environ={}) == "DEBUG"

    def test_verbose(self):
        assert level_from_flags(verbose=True, environ={}) == "INFO"

    def test_quiet(self):
        assert level_from_flags(quiet=True, environ={}) == "ERROR"

    def test_env_fallback(self):
        assert level_from_flags(environ={"RECIPEKIT_LOG_LEVEL": "INFO"}) == "INFO"

    def test_default(self):
        assert level_from_flags(environ={}) == "WARNING"


class TestSetupLogging:
    def test_console_level(self):
        setup_logging("INFO")
        root = logging.getLogger()
        assert root.level == logging.INFO
        assert len(root.handlers) == 1

    def test_unknown_level_falls_back(self):
        setup_logging("CHATTY")
        assert logging.getLogger().level == logging.WARNING

    def test_log_file_gets_detail(self, tmp_path: Path):
        log_file = tmp_path / "recipekit.log"
        setup_logging("WARNING", log_file=str(log_file), log_file_level="DEBUG")
        assert logging.getLogger().level == logging.DEBUG

        logging.getLogger("recipekit.core.engine.build").debug("[1/1] go build")
        for handler in logging.getLogger().handlers:
            handler.flush()
        text = log_file.read_text()
        assert "recipekit.core.engine.build" in text
        assert "[1/1] go build" in text

    def test_third_party_quieted(self):
        setup_logging("INFO")
        assert logging.getLogger("urllib3").level == logging.WARNING

    def test_repeat_setup_does_not_stack_handlers(self):
        setup_logging("INFO")
        setup_logging("INFO")
        assert len(logging.getLogger().handlers) == 1

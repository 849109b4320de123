"""
Configuration and logging setup tests.
"""
import logging

import pytest

from error_capture.core import config
from error_capture.core.config import _env_flag, build_client_config
from error_capture.utils.logging_config import ColoredFormatter, setup_logging


# ===================================================================
# Environment flags
# ===================================================================
@pytest.mark.parametrize("raw, expected", [
    ("true", True), ("1", True), ("YES", True), (" on ", True),
    ("false", False), ("0", False), ("no", False), ("", False),
])
def test_env_flag_values(monkeypatch, raw, expected):
    monkeypatch.setenv("ERROR_CAPTURE_TEST_FLAG", raw)
    assert _env_flag("ERROR_CAPTURE_TEST_FLAG", not expected) is expected


def test_env_flag_default(monkeypatch):
    monkeypatch.delenv("ERROR_CAPTURE_TEST_FLAG", raising=False)
    assert _env_flag("ERROR_CAPTURE_TEST_FLAG", True) is True
    assert _env_flag("ERROR_CAPTURE_TEST_FLAG", False) is False


# ===================================================================
# Client configuration
# ===================================================================
def test_build_client_config():
    cfg = build_client_config(port=9000)
    assert cfg.enabled is True
    assert cfg.server_url == "http://localhost:9000/_dev/errors"
    assert cfg.max_stack_depth == config.MAX_STACK_DEPTH
    assert cfg.max_stored_errors == config.MAX_STORED_ERRORS
    assert cfg.debounce_time == config.DEBOUNCE_TIME_MS

    wire = cfg.to_wire()
    assert wire["serverUrl"] == "http://localhost:9000/_dev/errors"
    assert "debounceTime" in wire


def test_build_client_config_disabled():
    assert build_client_config(enabled=False).enabled is False


# ===================================================================
# Logging
# ===================================================================
@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def test_setup_logging_console_only(restore_root_logger):
    setup_logging(level="warning", log_dir=None)
    root = restore_root_logger
    assert root.level == logging.WARNING
    assert len(root.handlers) == 1
    assert isinstance(root.handlers[0].formatter, ColoredFormatter)
    assert logging.getLogger("error_capture").level == logging.WARNING


def test_setup_logging_writes_file(restore_root_logger, tmp_path):
    setup_logging(level=logging.INFO, log_dir=str(tmp_path))
    files = list(tmp_path.glob("error_capture_*.log"))
    assert len(files) == 1
    assert "Logging initialized" in files[0].read_text()


def test_unknown_level_falls_back_to_info(restore_root_logger):
    setup_logging(level="chatty", log_dir=None)
    assert restore_root_logger.level == logging.INFO


def test_colored_formatter_plain_for_custom_level():
    record = logging.LogRecord("x", 25, __file__, 1, "hello", None, None)
    assert "\x1b" not in ColoredFormatter().format(record)

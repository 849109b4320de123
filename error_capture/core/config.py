"""
Configuration
=============
Loads environment variables from .env file using python-dotenv.

Environment Variables:
    ERROR_CAPTURE_PORT            — Port for the standalone capture server (default: 8082)
    ERROR_CAPTURE_LOCALHOST_ONLY  — Bind to localhost only (default: true)
    MAX_STORED_ERRORS             — Capacity of the in-memory error store (default: 1000)
    LOG_TO_CONSOLE                — Render captured errors to stderr (default: true)
    PROJECT_ROOT                  — Root used to classify stack frames as local source
    MAX_STACK_DEPTH               — Frames the browser reporter keeps per error (default: 50)
    DEBOUNCE_TIME_MS              — Client-side debounce for duplicate errors (default: 100)
    LOG_LEVEL                     — Root logging level (default: INFO)
    LOG_DIR                       — Directory for daily log files; empty disables file logging

Client Configuration:
    build_client_config() packages the subset of these settings that the
    browser-side reporter needs (server URL, limits, debounce) so the dev
    server can hand it to the page.
"""
import os
from dotenv import load_dotenv

from error_capture.core.constants import DEFAULT_MAX_STORED_ERRORS, ERRORS_PATH
from error_capture.models.error_payload import ErrorCaptureConfig

load_dotenv()


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


ERROR_CAPTURE_PORT = int(os.getenv("ERROR_CAPTURE_PORT", 8082))
ERROR_CAPTURE_LOCALHOST_ONLY = _env_flag("ERROR_CAPTURE_LOCALHOST_ONLY", True)
MAX_STORED_ERRORS = int(os.getenv("MAX_STORED_ERRORS", DEFAULT_MAX_STORED_ERRORS))
LOG_TO_CONSOLE = _env_flag("LOG_TO_CONSOLE", True)
PROJECT_ROOT = os.getenv("PROJECT_ROOT") or os.getcwd()

# Client reporter limits
MAX_STACK_DEPTH = int(os.getenv("MAX_STACK_DEPTH", 50))
DEBOUNCE_TIME_MS = int(os.getenv("DEBOUNCE_TIME_MS", 100))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_DIR = os.getenv("LOG_DIR", "logs")


def build_client_config(
    port: int = ERROR_CAPTURE_PORT,
    enabled: bool = True,
) -> ErrorCaptureConfig:
    """Build the configuration object handed to the browser reporter."""
    return ErrorCaptureConfig(
        enabled=enabled,
        server_url=f"http://localhost:{port}{ERRORS_PATH}",
        log_to_console=LOG_TO_CONSOLE,
        max_stack_depth=MAX_STACK_DEPTH,
        max_stored_errors=MAX_STORED_ERRORS,
        debounce_time=DEBOUNCE_TIME_MS,
    )

"""
Shared fixtures: payload builders and fresh stores/apps per test.
Each test gets its own ErrorStore, so no state leaks between tests.
"""
import io

import pytest
from fastapi.testclient import TestClient

from error_capture.models.error_payload import ErrorDiagnosticPayload
from error_capture.server.app_factory import create_app
from error_capture.services.error_store import ErrorStore


def make_raw_payload(
    error_id="e1",
    message="Cannot read properties of undefined",
    component="c-account-list",
    file_name="modules/c/accountList/accountList.js",
    line_number=42,
    severity="error",
    timestamp="2024-05-01T12:00:00.000Z",
    stack="",
    frames=None,
    **extra,
):
    """Build a camelCase wire payload as the browser reporter would send it."""
    raw = {
        "errorId": error_id,
        "timestamp": timestamp,
        "error": {
            "message": message,
            "name": "TypeError",
            "stack": stack,
            "sanitizedStack": frames if frames is not None else [],
        },
        "component": {"name": component, "namespace": "c", "tagName": "c-account-list",
                      "lifecycle": "connectedCallback", "filePath": None},
        "runtime": {"userAgent": "Mozilla/5.0", "viewport": {"width": 1280, "height": 800},
                    "url": "http://localhost:3333/", "frameworkVersion": "6.2.0",
                    "isDevelopment": True},
        "state": {"props": {"recordId": "001"}, "publicProperties": ["recordId"], "isConnected": True},
        "source": {"fileName": file_name, "lineNumber": line_number, "columnNumber": 7},
        "metadata": {"severity": severity, "wasHandled": False, "occurrenceCount": 1, "tags": []},
    }
    raw.update(extra)
    return raw


def make_payload(**kwargs) -> ErrorDiagnosticPayload:
    return ErrorDiagnosticPayload.model_validate(make_raw_payload(**kwargs))


@pytest.fixture
def store():
    return ErrorStore(max_size=1000)


@pytest.fixture
def app_factory():
    """Build a standalone app around a fresh store; returns (app, store)."""
    def _build(max_size=1000, project_root="", log_to_console=False):
        error_store = ErrorStore(max_size=max_size)
        app = create_app(error_store, project_root=project_root, log_to_console=log_to_console)
        return app, error_store

    return _build


@pytest.fixture
def client(app_factory):
    app, error_store = app_factory()
    with TestClient(app) as test_client:
        test_client.error_store = error_store
        yield test_client


@pytest.fixture
def console():
    return io.StringIO()

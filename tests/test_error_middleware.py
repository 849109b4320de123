"""
Integration Tests — Error Capture Middleware
=============================================
The /_dev/errors HTTP surface exercised through FastAPI's TestClient:
capture, query filters, clear, statistics, CORS and failure isolation.
Also covers attaching the middleware to an existing application.
"""
import io
from unittest.mock import MagicMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from error_capture.api.middleware import ErrorCaptureMiddleware, _parse_limit
from error_capture.core.constants import CORS_HEADERS, DEFAULT_QUERY_LIMIT
from error_capture.server.app_factory import attach_error_capture, reset_error_store
from error_capture.services.error_store import ErrorStore

from conftest import make_raw_payload


CHROME_STACK = (
    "TypeError: boom\n"
    "    at connectedCallback (webpack:///./modules/c/foo/foo.js:10:3)\n"
    "    at callHook (node_modules/@lwc/engine/index.js:410:20)"
)


# ===================================================================
# POST /_dev/errors
# ===================================================================
def test_post_stores_error(client):
    resp = client.post("/_dev/errors", json=make_raw_payload(error_id="e1"))
    assert resp.status_code == 201
    assert resp.json() == {
        "success": True,
        "errorId": "e1",
        "message": "Error captured successfully",
    }
    assert client.error_store.get_error_count() == 1


def test_post_duplicate_merges(client):
    client.post("/_dev/errors", json=make_raw_payload(error_id="e1"))
    client.post("/_dev/errors", json=make_raw_payload(error_id="e2"))

    body = client.get("/_dev/errors").json()
    assert body["count"] == 1
    assert body["errors"][0]["errorId"] == "e1"
    assert body["errors"][0]["metadata"]["occurrenceCount"] == 2


def test_post_invalid_json_returns_400(client):
    resp = client.post(
        "/_dev/errors", content=b"{not json", headers={"Content-Type": "application/json"}
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid error payload"
    assert client.error_store.get_error_count() == 0


def test_post_schema_mismatch_returns_400(client):
    raw = make_raw_payload()
    del raw["error"]["sanitizedStack"]
    resp = client.post("/_dev/errors", json=raw)
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "Invalid error payload"
    assert "sanitizedStack" in body["message"]
    assert client.error_store.get_error_count() == 0


def _loose_frame(raw):
    raw["error"]["sanitizedStack"] = [{"functionName": "f", "lineNumber": 1}]


def _loose_severity(raw):
    raw["metadata"]["severity"] = "info"


def _loose_user_agent(raw):
    raw["runtime"]["userAgent"] = None


def _loose_tags(raw):
    raw["metadata"]["tags"] = None


@pytest.mark.parametrize("loosen", [_loose_frame, _loose_severity, _loose_user_agent, _loose_tags])
def test_post_accepts_loosely_typed_optional_fields(client, loosen):
    raw = make_raw_payload()
    loosen(raw)
    resp = client.post("/_dev/errors", json=raw)
    assert resp.status_code == 201
    assert client.error_store.get_error("e1") is not None


def test_post_backfills_frames_from_raw_stack(app_factory):
    app, store = app_factory(project_root="/proj")
    with TestClient(app) as c:
        c.post("/_dev/errors", json=make_raw_payload(stack=CHROME_STACK))
    frames = store.get_error("e1").error.sanitized_stack
    assert [f.function_name for f in frames] == ["connectedCallback", "callHook"]
    assert frames[0].file_name == "./modules/c/foo/foo.js"
    assert frames[0].is_local_source is True
    assert frames[1].is_local_source is False


def test_post_keeps_client_frames(client):
    frames = [{"functionName": "mine", "fileName": "a.js", "lineNumber": 1,
               "columnNumber": 1, "isLocalSource": True}]
    client.post("/_dev/errors", json=make_raw_payload(stack=CHROME_STACK, frames=frames))
    stored = client.error_store.get_error("e1").error.sanitized_stack
    assert [f.function_name for f in stored] == ["mine"]


def test_post_store_failure_returns_500(client):
    with patch.object(client.error_store, "add_error", side_effect=RuntimeError("disk on fire")):
        resp = client.post("/_dev/errors", json=make_raw_payload())
    assert resp.status_code == 500
    assert resp.json() == {
        "error": "Internal server error",
        "message": "Failed to process error report",
    }
    # the server keeps serving after an isolated failure
    assert client.get("/_dev/errors").status_code == 200


def test_post_echoes_to_console():
    store = ErrorStore()
    console = io.StringIO()
    app = FastAPI()
    app.add_middleware(ErrorCaptureMiddleware, error_store=store, console=console)

    with TestClient(app) as c:
        c.post("/_dev/errors", json=make_raw_payload(error_id="e42"))

    output = console.getvalue()
    assert "[ErrorCapture] Runtime error detected: e42" in output
    assert "Cannot read properties of undefined" in output
    # StringIO is not a TTY
    assert "\x1b" not in output


def test_post_console_disabled():
    console = io.StringIO()
    app = FastAPI()
    app.add_middleware(
        ErrorCaptureMiddleware, error_store=ErrorStore(), log_to_console=False, console=console
    )
    with TestClient(app) as c:
        c.post("/_dev/errors", json=make_raw_payload())
    assert console.getvalue() == ""


def test_post_logs_capture():
    logger = MagicMock()
    app = FastAPI()
    app.add_middleware(
        ErrorCaptureMiddleware, error_store=ErrorStore(), log_to_console=False, logger=logger
    )
    with TestClient(app) as c:
        c.post("/_dev/errors", json=make_raw_payload(error_id="e7"))
    assert logger.debug.called
    assert "e7" in logger.debug.call_args[0]


# ===================================================================
# GET /_dev/errors
# ===================================================================
def _post_many(client, n, **kwargs):
    for i in range(1, n + 1):
        client.post("/_dev/errors", json=make_raw_payload(error_id=f"e{i}", message=f"m{i}", **kwargs))


def test_get_limit_returns_most_recent(client):
    _post_many(client, 5)
    body = client.get("/_dev/errors?limit=2").json()
    assert body["success"] is True
    assert body["count"] == 2
    assert [e["errorId"] for e in body["errors"]] == ["e4", "e5"]


def test_get_invalid_limit_uses_default(client):
    _post_many(client, 3)
    for value in ("abc", "0", "-4"):
        assert client.get(f"/_dev/errors?limit={value}").json()["count"] == 3


def test_get_component_filter(client):
    client.post("/_dev/errors", json=make_raw_payload(error_id="a", message="m1", component="c-a"))
    client.post("/_dev/errors", json=make_raw_payload(error_id="b", message="m2", component="c-b"))
    body = client.get("/_dev/errors", params={"component": "c-b"}).json()
    assert [e["errorId"] for e in body["errors"]] == ["b"]


def test_get_severity_filter(client):
    client.post("/_dev/errors", json=make_raw_payload(error_id="a", message="m1", severity="warning"))
    client.post("/_dev/errors", json=make_raw_payload(error_id="b", message="m2", severity="fatal"))
    body = client.get("/_dev/errors?severity=fatal").json()
    assert [e["errorId"] for e in body["errors"]] == ["b"]


def test_get_unknown_severity_ignored(client):
    _post_many(client, 2)
    assert client.get("/_dev/errors?severity=bogus").json()["count"] == 2


def test_get_empty_store(client):
    assert client.get("/_dev/errors").json() == {"success": True, "count": 0, "errors": []}


def test_parse_limit():
    assert _parse_limit(None) == DEFAULT_QUERY_LIMIT
    assert _parse_limit("5") == 5
    assert _parse_limit("1.5") == DEFAULT_QUERY_LIMIT
    assert _parse_limit("0") == DEFAULT_QUERY_LIMIT


# ===================================================================
# DELETE /_dev/errors and GET /_dev/errors/stats
# ===================================================================
def test_delete_clears_store(client):
    client.post("/_dev/errors", json=make_raw_payload(error_id="e1", message="m1"))
    client.post("/_dev/errors", json=make_raw_payload(error_id="e2", message="m2"))

    resp = client.delete("/_dev/errors")
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": "Cleared 2 errors", "clearedCount": 2}
    assert client.get("/_dev/errors").json()["count"] == 0


def test_stats(client):
    client.post("/_dev/errors", json=make_raw_payload(error_id="e1", message="m1"))
    client.post("/_dev/errors", json=make_raw_payload(error_id="e2", message="m1"))
    client.post("/_dev/errors", json=make_raw_payload(error_id="e3", message="m2", severity="fatal"))

    body = client.get("/_dev/errors/stats").json()
    assert body["success"] is True
    assert body["statistics"] == {
        "totalErrors": 2,
        "totalOccurrences": 3,
        "byComponent": {"c-account-list": 2},
        "bySeverity": {"error": 1, "fatal": 1},
    }


def test_stats_failure_returns_500(client):
    with patch.object(client.error_store, "get_statistics", side_effect=RuntimeError("nope")):
        resp = client.get("/_dev/errors/stats")
    assert resp.status_code == 500
    assert resp.json()["message"] == "nope"


# ===================================================================
# CORS and pass-through
# ===================================================================
def test_options_preflight(client):
    resp = client.options("/_dev/errors")
    assert resp.status_code == 204
    for key, value in CORS_HEADERS.items():
        assert resp.headers[key] == value


def test_cors_headers_on_responses(client):
    resp = client.get("/_dev/errors")
    assert resp.headers["Access-Control-Allow-Origin"] == "*"
    resp = client.post("/_dev/errors", content=b"oops")
    assert resp.status_code == 400
    assert resp.headers["Access-Control-Allow-Origin"] == "*"


def test_other_routes_pass_through():
    store = ErrorStore()
    app = FastAPI()

    @app.get("/app/hello")
    async def hello():
        return {"hello": "world"}

    @app.post("/_dev/errors/other")
    async def other():
        return {"handled": "downstream"}

    attach_error_capture(app, store, log_to_console=False)
    assert app.state.error_store is store

    with TestClient(app) as c:
        resp = c.get("/app/hello")
        assert resp.json() == {"hello": "world"}
        assert "Access-Control-Allow-Origin" not in resp.headers

        # unmatched method+path under the prefix reaches the wrapped app
        resp = c.post("/_dev/errors/other")
        assert resp.json() == {"handled": "downstream"}
        assert resp.headers["Access-Control-Allow-Origin"] == "*"

        assert c.post("/_dev/errors", json=make_raw_payload()).status_code == 201
    assert store.get_error_count() == 1


# ===================================================================
# Store reset
# ===================================================================
def test_reset_error_store_swaps_every_reader(app_factory):
    app, original = app_factory(max_size=5)
    with TestClient(app) as c:
        c.post("/_dev/errors", json=make_raw_payload(error_id="old"))

        fresh = reset_error_store(app)
        assert fresh is not original
        assert app.state.error_store is fresh
        assert fresh.max_size == 5

        assert c.get("/_dev/errors").json()["count"] == 0
        assert c.get("/_dev/health").json()["errors"] == 0

        c.post("/_dev/errors", json=make_raw_payload(error_id="new"))
        assert [e.error_id for e in fresh.get_errors()] == ["new"]

    # the previous store is not touched
    assert [e.error_id for e in original.get_errors()] == ["old"]


def test_reset_error_store_with_capacity(app_factory):
    app, _ = app_factory()
    assert reset_error_store(app, max_size=2).max_size == 2


def test_middleware_requires_a_store():
    with pytest.raises(ValueError):
        ErrorCaptureMiddleware(FastAPI())


# ===================================================================
# Request logging
# ===================================================================
def test_request_logging_defers_formatting(client, caplog):
    with caplog.at_level("INFO", logger="error_capture.api.middleware"):
        client.get("/_dev/errors")

    records = [r for r in caplog.records if r.name == "error_capture.api.middleware"]
    incoming = next(r for r in records if r.msg.startswith("Incoming"))
    outgoing = next(r for r in records if r.msg.startswith("Outgoing"))
    assert incoming.msg == "Incoming: %s %s from %s"
    assert incoming.args[:2] == ("GET", "/_dev/errors")
    assert outgoing.args[2] == 200
    assert "Status: 200" in outgoing.getMessage()

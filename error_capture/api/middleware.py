"""
Error Capture Middleware
========================
HTTP ingestion and query surface for runtime errors reported by the browser.

Routes (checked in this order; everything else is passed through untouched):
    OPTIONS /_dev/errors*      — CORS preflight, 204
    GET     /_dev/errors/stats — store statistics
    POST    /_dev/errors       — capture one ErrorDiagnosticPayload
    GET     /_dev/errors       — query (?component=, ?severity=, ?limit=)
    DELETE  /_dev/errors       — clear the store

Every response on a /_dev/errors* path carries permissive CORS headers so a
page served from another origin (the org, a preview host) can report back.

Failure handling:
    - Malformed JSON or a payload failing schema decoding → 400, not stored
    - Any exception while handling a request → 500, logged, isolated

The store, or a provider for it, is injected; the middleware never creates one.
"""
import json
import logging
import sys
import time
from typing import Callable, Optional, TextIO

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from error_capture.core.constants import (
    CORS_HEADERS,
    DEFAULT_QUERY_LIMIT,
    ERRORS_PATH,
    SEVERITIES,
    STATS_PATH,
)
from error_capture.core.output_formatter import format_console_banner, format_error_for_cli
from error_capture.models.error_payload import ErrorDiagnosticPayload
from error_capture.parser.payload_validator import decode_error_payload
from error_capture.parser.stack_trace_parser import parse_stack_trace
from error_capture.services.error_store import ErrorStore

_logger = logging.getLogger(__name__)


def _parse_limit(raw: Optional[str]) -> int:
    """Positive integer from the query string, DEFAULT_QUERY_LIMIT otherwise."""
    if raw is None:
        return DEFAULT_QUERY_LIMIT
    try:
        value = int(raw)
    except ValueError:
        return DEFAULT_QUERY_LIMIT
    return value if value > 0 else DEFAULT_QUERY_LIMIT


def _internal_error(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "message": message},
    )


# ---------------------------------------------------------------------------
# Request Logging Middleware
# ---------------------------------------------------------------------------
class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        client_host = request.client.host if request.client else "unknown"
        _logger.info("Incoming: %s %s from %s", request.method, request.url.path, client_host)

        try:
            response = await call_next(request)
            process_time = (time.time() - start_time) * 1000
            _logger.info(
                "Outgoing: %s %s - Status: %d - Time: %.2fms",
                request.method, request.url.path, response.status_code, process_time,
            )
            return response
        except Exception as e:
            _logger.error("Request failed: %s %s - Error: %s", request.method, request.url.path, e)
            raise


# ---------------------------------------------------------------------------
# Error Capture Middleware
# ---------------------------------------------------------------------------
class ErrorCaptureMiddleware(BaseHTTPMiddleware):
    """
    Serve the /_dev/errors endpoints from an injected ErrorStore.

    Parameters
    ----------
    app : ASGIApp
        The wrapped application (the component dev server or the standalone
        capture app).
    error_store : ErrorStore | None
        Shared store; the same instance must be handed to every consumer.
    store_provider : Callable[[], ErrorStore] | None
        Resolves the store on every request instead of a fixed instance.
        attach_error_capture() passes one reading ``app.state.error_store``
        so the app state and the middleware always agree.
    project_root : str
        Used only to classify stack frames as local source when the client
        sent a raw stack without parsed frames.
    log_to_console : bool
        Render each captured error to the console stream.
    logger : logging.Logger | None
        Structured logger; defaults to this module's logger.
    console : TextIO | None
        Stream for rendered errors; resolved to sys.stderr at write time
        when None.
    """

    def __init__(
        self,
        app,
        error_store: Optional[ErrorStore] = None,
        project_root: str = "",
        log_to_console: bool = True,
        logger: Optional[logging.Logger] = None,
        console: Optional[TextIO] = None,
        store_provider: Optional[Callable[[], ErrorStore]] = None,
    ) -> None:
        super().__init__(app)
        if store_provider is None:
            if error_store is None:
                raise ValueError("ErrorCaptureMiddleware needs error_store or store_provider")

            def store_provider() -> ErrorStore:
                return error_store

        self._store_provider = store_provider
        self.project_root = project_root
        self.log_to_console = log_to_console
        self.logger = logger or _logger
        self.console = console

    @property
    def error_store(self) -> ErrorStore:
        return self._store_provider()

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if not path.startswith(ERRORS_PATH):
            return await call_next(request)

        if request.method == "OPTIONS":
            return Response(status_code=204, headers=CORS_HEADERS)

        response = await self._route(request)
        if response is None:
            response = await call_next(request)

        response.headers.update(CORS_HEADERS)
        return response

    async def _route(self, request: Request) -> Optional[Response]:
        path = request.url.path
        method = request.method

        if method == "GET" and path == STATS_PATH:
            return self._handle_stats()

        if path == ERRORS_PATH:
            if method == "POST":
                return await self._handle_capture(request)
            if method == "GET":
                return self._handle_query(request)
            if method == "DELETE":
                return self._handle_clear()

        return None

    # ------------------------------------------------------------------
    # POST /_dev/errors
    # ------------------------------------------------------------------
    async def _handle_capture(self, request: Request) -> Response:
        try:
            body = await request.body()
            try:
                raw = json.loads(body)
            except ValueError:
                return JSONResponse(
                    status_code=400,
                    content={
                        "error": "Invalid error payload",
                        "message": "Request body is not valid JSON",
                    },
                )

            result = decode_error_payload(raw)
            if not result.ok:
                return JSONResponse(
                    status_code=400,
                    content={
                        "error": "Invalid error payload",
                        "message": "Payload does not match ErrorDiagnosticPayload schema: "
                        + "; ".join(result.errors),
                    },
                )

            payload = result.payload
            if payload.error.stack and not payload.error.sanitized_stack:
                payload.error.sanitized_stack = parse_stack_trace(
                    payload.error.stack, self.project_root or None
                )

            self.error_store.add_error(payload)

            if self.log_to_console:
                self._echo(payload)

            self.logger.debug(
                "Error captured: %s - %s: %s",
                payload.error_id, payload.error.name, payload.error.message,
            )

            return JSONResponse(
                status_code=201,
                content={
                    "success": True,
                    "errorId": payload.error_id,
                    "message": "Error captured successfully",
                },
            )
        except Exception as e:
            self.logger.error("Failed to process error report: %s", e, exc_info=True)
            return _internal_error("Failed to process error report")

    def _echo(self, payload: ErrorDiagnosticPayload) -> None:
        stream = self.console or sys.stderr
        colorize = bool(getattr(stream, "isatty", lambda: False)())
        formatted = format_error_for_cli(payload, show_full_stack=False, colorize=colorize)
        stream.write(format_console_banner(payload, colorize=colorize))
        stream.write(formatted + "\n\n")
        stream.flush()

    # ------------------------------------------------------------------
    # GET /_dev/errors
    # ------------------------------------------------------------------
    def _handle_query(self, request: Request) -> Response:
        try:
            params = request.query_params
            errors = self.error_store.get_errors()

            component = params.get("component")
            if component is not None:
                errors = [e for e in errors if e.component.name == component]

            severity = params.get("severity")
            if severity in SEVERITIES:
                errors = [e for e in errors if e.metadata.severity == severity]

            errors = errors[-_parse_limit(params.get("limit")):]

            return JSONResponse(
                content={
                    "success": True,
                    "count": len(errors),
                    "errors": [e.to_wire() for e in errors],
                }
            )
        except Exception as e:
            self.logger.error("Failed to query errors: %s", e, exc_info=True)
            return _internal_error(str(e))

    # ------------------------------------------------------------------
    # DELETE /_dev/errors
    # ------------------------------------------------------------------
    def _handle_clear(self) -> Response:
        try:
            count = self.error_store.clear_errors()

            if count > 0:
                self.logger.info("[ErrorCapture] Cleared %d error(s) from store", count)
            self.logger.debug("Cleared %d stored errors", count)

            return JSONResponse(
                content={
                    "success": True,
                    "message": f"Cleared {count} errors",
                    "clearedCount": count,
                }
            )
        except Exception as e:
            self.logger.error("Failed to clear errors: %s", e, exc_info=True)
            return _internal_error(str(e))

    # ------------------------------------------------------------------
    # GET /_dev/errors/stats
    # ------------------------------------------------------------------
    def _handle_stats(self) -> Response:
        try:
            stats = self.error_store.get_statistics()
            return JSONResponse(content={"success": True, "statistics": stats.to_wire()})
        except Exception as e:
            self.logger.error("Failed to compute error statistics: %s", e, exc_info=True)
            return _internal_error(str(e))

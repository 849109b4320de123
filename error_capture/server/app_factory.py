"""
Application Factory
===================
Builds the ASGI application that serves the error capture endpoints.

Entry points:
    attach_error_capture(app, store, ...)  — mount the /_dev/errors middleware
                                             on an existing dev server app
    reset_error_store(app)                 — swap in a fresh store (tests)
    create_app(store, ...)                 — standalone FastAPI app used by
                                             CaptureServer: error routes,
                                             /_dev/health and a JSON 404

The store is always passed in. ``app.state.error_store`` is the single
reference to it: route handlers resolve it through the get_error_store
dependency and the capture middleware reads it on every request.
"""
import logging
import time
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from error_capture.api.health import router as health_router
from error_capture.api.middleware import ErrorCaptureMiddleware, RequestLoggingMiddleware
from error_capture.services.error_store import ErrorStore

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = (
    "Endpoint not found. Available endpoints: POST/GET/DELETE /_dev/errors, "
    "GET /_dev/errors/stats, GET /_dev/health"
)


def attach_error_capture(
    app: FastAPI,
    error_store: ErrorStore,
    project_root: str = "",
    log_to_console: bool = True,
    error_logger: Optional[logging.Logger] = None,
) -> FastAPI:
    """Install the error capture middleware on ``app`` and expose its store."""
    app.state.error_store = error_store
    app.add_middleware(
        ErrorCaptureMiddleware,
        store_provider=lambda: app.state.error_store,
        project_root=project_root,
        log_to_console=log_to_console,
        logger=error_logger,
    )
    return app


def reset_error_store(app: FastAPI, max_size: Optional[int] = None) -> ErrorStore:
    """
    Install a fresh, empty store on an app built by create_app or
    attach_error_capture and return it.

    The capture middleware resolves its store through ``app.state``, so
    routes, health and the middleware switch over together. Intended for
    test isolation; the previous store is left untouched.
    """
    previous = app.state.error_store
    store = ErrorStore(max_size if max_size is not None else previous.max_size)
    app.state.error_store = store
    logger.debug("Error store reset (capacity %d)", store.max_size)
    return store


def create_app(
    error_store: ErrorStore,
    project_root: str = "",
    log_to_console: bool = True,
) -> FastAPI:
    """Build the standalone error capture application."""
    app = FastAPI(title="Runtime Error Capture", docs_url=None, redoc_url=None, openapi_url=None)
    app.state.started_at = time.monotonic()

    @app.exception_handler(StarletteHTTPException)
    async def not_found_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return JSONResponse(
                status_code=404,
                content={"error": "Not Found", "message": NOT_FOUND_MESSAGE},
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail), "message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    app.include_router(health_router, tags=["Health"])

    attach_error_capture(app, error_store, project_root=project_root, log_to_console=log_to_console)
    # Added last so it wraps everything, including the capture middleware
    app.add_middleware(RequestLoggingMiddleware)
    return app

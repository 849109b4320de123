"""
Capture Server
==============
Standalone HTTP listener for the error capture endpoints, independent of
the component dev server. Used when the page under development must report
errors out-of-band (e.g. a preview served from the org).

Endpoints:
    POST   /_dev/errors       — capture error reports
    GET    /_dev/errors       — query errors (?component=, ?severity=, ?limit=)
    DELETE /_dev/errors       — clear all errors
    GET    /_dev/errors/stats — statistics
    GET    /_dev/health       — health check
    *                         — JSON 404

Lifecycle:
    - start() binds the socket itself so that "address in use" is reported
      as PortInUseError instead of uvicorn exiting the process.
    - uvicorn serves on the caller's event loop as a background task.
    - stop() is a no-op when nothing is running; otherwise it waits for the
      serve task and re-raises whatever the listener failed with.
    - stop() may be called while start() is still waiting for startup;
      start() then returns without raising.
"""
import asyncio
import errno
import logging
import socket
from typing import Optional

import uvicorn

from error_capture.core.output_formatter import format_error_summary
from error_capture.server.app_factory import create_app
from error_capture.services.error_store import ErrorStore

logger = logging.getLogger(__name__)

# Seconds between startup polls of the uvicorn server
_STARTUP_POLL_INTERVAL = 0.05


class CaptureServerError(RuntimeError):
    """The capture server failed to start or stop."""


class PortInUseError(CaptureServerError):
    """The configured port is already bound by another process."""

    def __init__(self, port: int) -> None:
        super().__init__(f"Port {port} is already in use")
        self.port = port


class CaptureServer:
    """
    Run the error capture app on its own port.

    Usage:
        server = CaptureServer(port=8082, error_store=store, project_root="/repo")
        await server.start()
        ...
        await server.stop()
    """

    def __init__(
        self,
        port: int,
        error_store: ErrorStore,
        project_root: str = "",
        log_to_console: bool = True,
        localhost_only: bool = True,
    ) -> None:
        self.port = port
        self.project_root = project_root
        self.log_to_console = log_to_console
        self.host = "localhost" if localhost_only else "0.0.0.0"
        self.app = create_app(error_store, project_root=project_root, log_to_console=log_to_console)

        self._server: Optional[uvicorn.Server] = None
        self._task: Optional[asyncio.Task] = None
        self._socket: Optional[socket.socket] = None
        self._stop_requested = False

    @property
    def error_store(self) -> ErrorStore:
        """The store currently installed on the app (see reset_error_store)."""
        return self.app.state.error_store

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def _bind(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.host, self.port))
        except OSError as e:
            sock.close()
            if e.errno == errno.EADDRINUSE:
                logger.error(
                    "[ErrorCapture] Port %d is already in use. Please use a different port.", self.port
                )
                raise PortInUseError(self.port) from e
            logger.error("[ErrorCapture] Failed to bind %s:%d: %s", self.host, self.port, e)
            raise CaptureServerError(f"Failed to start error capture server: {e}") from e
        return sock

    async def start(self) -> None:
        """Bind, start serving and return once the listener accepts connections."""
        if self._task is not None and not self._task.done():
            raise CaptureServerError("Error capture server is already running")

        self._stop_requested = False
        sock = self._bind()
        self.port = sock.getsockname()[1]

        config = uvicorn.Config(self.app, log_config=None, access_log=False, lifespan="off")
        server = uvicorn.Server(config)
        self._server = server
        self._socket = sock
        self._task = asyncio.create_task(server.serve(sockets=[sock]))
        task = self._task

        while not server.started:
            if task.done():
                if self._stop_requested:
                    return
                self._release()
                exc = task.exception()
                raise CaptureServerError(
                    f"Error capture server exited during startup: {exc or 'no error reported'}"
                ) from exc
            if self._stop_requested:
                return
            await asyncio.sleep(_STARTUP_POLL_INTERVAL)

        # stop() may have finished while this coroutine was sleeping
        if self._stop_requested:
            return

        logger.info("[ErrorCapture] Error capture server started at http://%s:%d", self.host, self.port)
        logger.info("[ErrorCapture] Available endpoints:")
        logger.info("[ErrorCapture]   POST   /_dev/errors       - Capture error reports")
        logger.info("[ErrorCapture]   GET    /_dev/errors       - Query errors (supports ?component=, ?severity=, ?limit=)")
        logger.info("[ErrorCapture]   DELETE /_dev/errors       - Clear all errors")
        logger.info("[ErrorCapture]   GET    /_dev/errors/stats - Get statistics")
        logger.info("[ErrorCapture]   GET    /_dev/health       - Health check")

    async def stop(self) -> None:
        """
        Shut the listener down.

        Raises
        ------
        BaseException
            Whatever the serve task failed with; the failure is logged and
            surfaced rather than swallowed.
        """
        if self._task is None:
            return

        self._stop_requested = True
        task = self._task
        if self._server is not None:
            self._server.should_exit = True

        try:
            await task
        except Exception as e:
            logger.error("[ErrorCapture] Error stopping server: %s", e)
            raise
        finally:
            self._release()

        if self.error_store.get_error_count():
            logger.info(
                "[ErrorCapture] Errors captured this session:%s",
                format_error_summary(self.error_store.get_errors(), colorize=False),
            )
        logger.info("[ErrorCapture] Error capture server stopped")

    def _release(self) -> None:
        if self._server is not None:
            # Listeners opened by a startup that was interrupted before main_loop
            for listener in getattr(self._server, "servers", []):
                listener.close()
        if self._socket is not None:
            self._socket.close()
        self._socket = None
        self._server = None
        self._task = None

    def is_running(self) -> bool:
        """True only while the listener is up and its serve task is alive."""
        return (
            self._server is not None
            and self._server.started
            and self._task is not None
            and not self._task.done()
        )


async def start_capture_server(
    port: int,
    error_store: ErrorStore,
    project_root: str = "",
    log_to_console: bool = True,
    localhost_only: bool = True,
) -> CaptureServer:
    """Create a CaptureServer and wait until it is accepting connections."""
    server = CaptureServer(
        port,
        error_store,
        project_root=project_root,
        log_to_console=log_to_console,
        localhost_only=localhost_only,
    )
    await server.start()
    return server

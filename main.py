import asyncio
import logging
import signal

from error_capture.core.config import (
    ERROR_CAPTURE_LOCALHOST_ONLY,
    ERROR_CAPTURE_PORT,
    LOG_DIR,
    LOG_LEVEL,
    LOG_TO_CONSOLE,
    MAX_STORED_ERRORS,
    PROJECT_ROOT,
)
from error_capture.server.app_factory import create_app
from error_capture.server.capture_server import CaptureServer, PortInUseError
from error_capture.services.error_store import ErrorStore
from error_capture.utils.logging_config import setup_logging

logger = logging.getLogger("main")

# One store per process, created here and handed to everything that needs it
error_store = ErrorStore(MAX_STORED_ERRORS)

# ASGI entry point for `uvicorn main:app`
app = create_app(error_store, project_root=PROJECT_ROOT, log_to_console=LOG_TO_CONSOLE)


async def serve() -> None:
    """Run the standalone capture server until SIGINT/SIGTERM."""
    server = CaptureServer(
        port=ERROR_CAPTURE_PORT,
        error_store=error_store,
        project_root=PROJECT_ROOT,
        log_to_console=LOG_TO_CONSOLE,
        localhost_only=ERROR_CAPTURE_LOCALHOST_ONLY,
    )

    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, shutdown.set)
        except NotImplementedError:
            # Windows event loops do not support signal handlers
            pass

    try:
        await server.start()
    except PortInUseError as e:
        logger.error("%s. Set ERROR_CAPTURE_PORT to a free port.", e)
        raise SystemExit(1)

    try:
        # uvicorn may take over SIGINT itself, so also watch the listener
        while server.is_running() and not shutdown.is_set():
            try:
                await asyncio.wait_for(shutdown.wait(), timeout=0.5)
            except asyncio.TimeoutError:
                pass
    finally:
        await server.stop()


if __name__ == "__main__":
    setup_logging(level=LOG_LEVEL, log_dir=LOG_DIR)
    try:
        asyncio.run(serve())
    except KeyboardInterrupt:
        pass

"""
GET /_dev/health
Liveness probe for the standalone capture server: service name, uptime and
the number of errors currently held by the shared store.
"""
import time

from fastapi import APIRouter, Depends, Request

from error_capture.core.constants import HEALTH_PATH, SERVICE_NAME
from error_capture.services.error_store import ErrorStore

router = APIRouter()


def get_error_store(request: Request) -> ErrorStore:
    """Resolve the store the application was built with."""
    return request.app.state.error_store


@router.get(HEALTH_PATH)
async def health_check(request: Request, store: ErrorStore = Depends(get_error_store)):
    started_at = getattr(request.app.state, "started_at", None)
    uptime = time.monotonic() - started_at if started_at is not None else 0.0
    return {
        "status": "ok",
        "service": SERVICE_NAME,
        "uptime": round(uptime, 3),
        "errors": store.get_error_count(),
    }

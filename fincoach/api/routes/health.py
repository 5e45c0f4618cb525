"""
Health check endpoints.

Provides system health information for monitoring.
"""

from fastapi import APIRouter, Request
import structlog

from fincoach.core.config import settings
from fincoach.core.exceptions import StorageError

log = structlog.get_logger(__name__)

router = APIRouter()

HEALTH_PROBE_KEY = "health_probe"


@router.get("/health")
async def health_check(request: Request):
    """
    Health check endpoint.

    Returns:
        Overall status plus storage reachability and whether a notebook
        is currently held.
    """
    storage = request.app.state.storage
    try:
        await storage.exists(HEALTH_PROBE_KEY)
        storage_health = {"status": "healthy", "backend": type(storage).__name__}
    except StorageError as e:
        log.warning("storage_health_check_failed", error=str(e))
        storage_health = {"status": "unhealthy", "backend": type(storage).__name__, "error": str(e)}

    manager = request.app.state.notebook_manager
    return {
        "status": storage_health["status"],
        "version": "0.1.0",
        "debug": settings.debug,
        "components": {
            "storage": storage_health,
            "notebook": {"active": manager.current is not None},
        },
    }

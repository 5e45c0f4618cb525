"""
FastAPI application entry point.

Run with: uvicorn fincoach.main:app --reload
"""

from contextlib import asynccontextmanager
from typing import Optional
import uuid

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
import structlog

from fincoach.api.exception_handlers import setup_exception_handlers
from fincoach.api.routes import health, notebooks, sessions, webhook
from fincoach.core.config import coaching_config, settings
from fincoach.core.logging import bind_context, clear_context, configure_logging
from fincoach.llm.client import LLMClient, get_report_llm_client
from fincoach.persistence.session_store import SessionStore
from fincoach.persistence.storage import (
    SqliteStorageAdapter,
    StorageAdapter,
    create_storage_adapter,
)
from fincoach.services import (
    CorrelationService,
    ExportService,
    NotebookManager,
    ReportGenerator,
)

APP_NAME = "FinCoach Notebook"
APP_VERSION = "0.1.0"
REQUEST_ID_HEADER = "X-Request-ID"

configure_logging()
log = structlog.get_logger(__name__)


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Tag every log line of a request with one request id.

    A caller-supplied X-Request-ID is kept so a voice-provider callback can
    be followed across both systems; otherwise a UUID4 is minted. The id is
    echoed back on the response.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        bind_context(request_id=request_id, path=request.url.path)
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            clear_context()


async def init_app_state(
    app: FastAPI,
    storage: Optional[StorageAdapter] = None,
    llm_client: Optional[LLMClient] = None,
) -> None:
    """
    Build the long-lived components and keep them on ``app.state``.

    Args:
        app: Application to attach to
        storage: Storage adapter (defaults to the configured backend)
        llm_client: Text-generation client for qualitative reports; None
            means reports always use the local template
    """
    storage = storage or create_storage_adapter()
    if isinstance(storage, SqliteStorageAdapter):
        await storage.initialize()

    store = SessionStore(storage)
    store.start_cleanup_task()
    keep_alive = coaching_config.keep_alive
    manager = NotebookManager(
        storage, keep_alive=keep_alive if keep_alive.enabled else None
    )

    app.state.storage = storage
    app.state.session_store = store
    app.state.notebook_manager = manager
    app.state.report_generator = ReportGenerator(llm_client=llm_client)
    app.state.correlation_service = CorrelationService(store, manager)
    app.state.export_service = ExportService(manager)

    log.info(
        "app_state_initialized",
        storage=type(storage).__name__,
        llm_enabled=llm_client is not None,
    )


async def shutdown_app_state(app: FastAPI) -> None:
    """Flush the held notebook, stop registry cleanup, then release storage."""
    await app.state.notebook_manager.close()
    await app.state.session_store.shutdown()
    await app.state.storage.close()
    log.info("app_state_shutdown")


@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info(
        "application_starting",
        debug=settings.debug,
        storage_backend=settings.storage_backend,
        data_dir=str(settings.data_dir),
    )
    await init_app_state(app, llm_client=get_report_llm_client())

    yield

    await shutdown_app_state(app)


app = FastAPI(
    title=APP_NAME,
    description="Session notebook and reporting backend for voice-based financial coaching",
    version=APP_VERSION,
    lifespan=lifespan,
    debug=settings.debug,
)

# The browser client runs on another port during development
if settings.debug:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.add_middleware(CorrelationIDMiddleware)
setup_exception_handlers(app)

app.include_router(health.router, tags=["system"])
app.include_router(sessions.router)
app.include_router(webhook.router)
app.include_router(notebooks.router)


@app.get("/")
async def root():
    return {"name": APP_NAME, "version": APP_VERSION, "status": "running"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "fincoach.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )

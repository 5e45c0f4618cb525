"""
Session registry API routes.

Registration is triggered by the client when its voice session connects;
resolution is the fallback lookup used when a partner callback carries no
usable conversation id.
"""

from fastapi import APIRouter, status
import structlog

from fincoach.api.dependencies import NotebookManagerDep, SessionStoreDep
from fincoach.api.schemas import (
    RegisterSessionRequest,
    ResolveSessionRequest,
    ResolveSessionResponse,
)
from fincoach.domain.models.registry import SessionRegistryEntry
from fincoach.services.correlation_service import UNRESOLVED_SESSION_MESSAGE

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post(
    "/register",
    response_model=SessionRegistryEntry,
    status_code=status.HTTP_201_CREATED,
)
async def register_session(
    request: RegisterSessionRequest,
    store: SessionStoreDep,
    manager: NotebookManagerDep,
):
    """Register an external session id for the current coaching session.

    Without an explicit notebook id the entry is tied to the held notebook
    when it belongs to the same therapist.
    """
    notebook_id = request.notebook_id
    current = manager.current
    if notebook_id is None and current is not None and current.therapist_id == request.therapist_id:
        notebook_id = current.id

    entry = SessionRegistryEntry(
        session_id=request.session_id,
        therapist_id=request.therapist_id,
        client_name=request.client_name,
        notebook_id=notebook_id,
    )
    return await store.register_session(entry)


@router.post("/resolve", response_model=ResolveSessionResponse)
async def resolve_session(request: ResolveSessionRequest, store: SessionStoreDep):
    """Resolve the most recently registered session, retrying briefly."""
    entry = await store.resolve_session_with_retry(max_retries=request.max_retries)
    if entry is None:
        return ResolveSessionResponse(resolved=False, message=UNRESOLVED_SESSION_MESSAGE)
    return ResolveSessionResponse(resolved=True, session=entry)

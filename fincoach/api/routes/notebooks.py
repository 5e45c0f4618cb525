"""
Notebook API routes.

Endpoints for the notebook lifecycle: create or restore, record messages
and notes, move through topics, generate reports, close and export.
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import Response
import structlog

from fincoach.api.dependencies import (
    ExportServiceDep,
    NotebookManagerDep,
    ReportGeneratorDep,
)
from fincoach.api.schemas import (
    AddMessageRequest,
    AddNoteRequest,
    CreateNotebookRequest,
    GenerateReportsRequest,
    NotebookListResponse,
    NotebookStatusResponse,
    TopicResponse,
    UpdateTopicRequest,
)
from fincoach.domain.models.conversation import ConversationMessage, TherapistNote
from fincoach.domain.models.notebook import NotebookSummary, SessionNotebookData
from fincoach.domain.models.reports import ReportBundle
from fincoach.services.export_service import MEDIA_TYPES

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/notebooks", tags=["notebooks"])


@router.post(
    "",
    response_model=SessionNotebookData,
    status_code=status.HTTP_201_CREATED,
)
async def create_notebook(request: CreateNotebookRequest, manager: NotebookManagerDep):
    """Create a notebook, or restore the active one for the pairing unless ``fresh``."""
    if request.fresh:
        notebook = await manager.create_new(request.therapist_id, request.client_name)
    else:
        notebook = await manager.create_or_restore(request.therapist_id, request.client_name)
    return notebook.data


@router.get("", response_model=NotebookListResponse)
async def list_notebooks(
    manager: NotebookManagerDep,
    therapist_id: Optional[str] = Query(None, alias="therapistId"),
):
    notebooks = await manager.list_notebooks(therapist_id)
    return NotebookListResponse(notebooks=notebooks, total=len(notebooks))


@router.get("/current", response_model=SessionNotebookData)
async def get_current_notebook(manager: NotebookManagerDep):
    return manager.require_current().data


@router.get("/current/status", response_model=NotebookStatusResponse)
async def get_current_status(manager: NotebookManagerDep):
    notebook = manager.require_current()
    scheduler = manager.keep_alive
    return NotebookStatusResponse(
        id=notebook.id,
        status=notebook.status,
        message_count=len(notebook.messages),
        has_reports=notebook.has_reports(),
        session_duration=scheduler.session_duration() if scheduler else None,
        keep_alives_sent=manager.keep_alives_sent,
        minutes_remaining=manager.minutes_remaining,
    )


@router.post(
    "/current/messages",
    response_model=ConversationMessage,
    status_code=status.HTTP_201_CREATED,
)
async def add_message(request: AddMessageRequest, manager: NotebookManagerDep):
    notebook = manager.require_current()
    return notebook.add_message(request.speaker, request.text)


@router.post(
    "/current/notes",
    response_model=TherapistNote,
    status_code=status.HTTP_201_CREATED,
)
async def add_note(request: AddNoteRequest, manager: NotebookManagerDep):
    notebook = manager.require_current()
    return notebook.add_note(request.note, request.topic)


@router.post("/current/topic", response_model=TopicResponse)
async def update_topic(request: UpdateTopicRequest, manager: NotebookManagerDep):
    """Set the conversation topic, or advance to the next one."""
    notebook = manager.require_current()
    if request.topic is None:
        notebook.advance_topic()
    else:
        notebook.update_topic(request.topic)
    return TopicResponse(current_topic=notebook.current_topic)


@router.post("/current/reports", response_model=ReportBundle)
async def generate_reports(
    request: GenerateReportsRequest,
    manager: NotebookManagerDep,
    generator: ReportGeneratorDep,
):
    """
    Generate the qualitative and quantitative reports for the held notebook.

    Readiness is reported in the logs only; callers decide whether to wait
    for more conversation.
    """
    notebook = manager.require_current()
    if not generator.is_ready(notebook):
        log.info("reports_requested_before_ready", notebook_id=notebook.id)

    bundle = await generator.generate_reports(notebook, regenerate=request.regenerate)
    await manager.save()
    return bundle


@router.post("/current/complete", response_model=NotebookSummary)
async def complete_notebook(manager: NotebookManagerDep):
    notebook = await manager.complete_session()
    return notebook.summary()


@router.post("/current/abandon", response_model=NotebookSummary)
async def abandon_notebook(manager: NotebookManagerDep):
    notebook = await manager.abandon_session()
    return notebook.summary()


@router.get(
    "/{notebook_id}/export",
    response_class=Response,
    summary="Export notebook",
    description="Export a notebook as JSON, CSV or plain text",
)
async def export_notebook(
    notebook_id: str,
    service: ExportServiceDep,
    format: str = Query("json", description="Export format: json, csv, or txt"),
) -> Response:
    """
    Export a notebook in the requested format.

    Raises:
        HTTPException 400: If format is invalid
        NotebookNotFoundError: Mapped to 404 by the exception handlers
    """
    log_ctx = log.bind(notebook_id=notebook_id, format=format)
    log_ctx.info("export_notebook_requested")

    try:
        content = await service.export_notebook(notebook_id, format)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    fmt = format.lower()
    return Response(
        content=content,
        media_type=MEDIA_TYPES[fmt],
        headers={"Content-Disposition": f'attachment; filename="session_{notebook_id}.{fmt}"'},
    )

"""
API request/response schemas.

Pydantic models for API validation and serialization. Bodies accept either
camelCase or snake_case field names and respond in camelCase.
"""

from typing import List, Optional

from pydantic import Field

from fincoach.domain.models.base import CamelModel
from fincoach.domain.models.conversation import ConversationTopic, Speaker
from fincoach.domain.models.notebook import NotebookStatus, NotebookSummary
from fincoach.domain.models.registry import SessionRegistryEntry


# ============ SESSION REGISTRY SCHEMAS ============


class RegisterSessionRequest(CamelModel):
    """Register an external voice session against the local coaching session."""

    session_id: str = Field(..., min_length=1, description="External conversation id")
    therapist_id: str = Field(..., min_length=1)
    client_name: Optional[str] = None
    notebook_id: Optional[str] = Field(
        default=None,
        description="Notebook to correlate with; defaults to the held notebook",
    )


class ResolveSessionRequest(CamelModel):
    max_retries: Optional[int] = Field(default=None, ge=1, le=10)


class ResolveSessionResponse(CamelModel):
    resolved: bool
    session: Optional[SessionRegistryEntry] = None
    message: Optional[str] = None


# ============ WEBHOOK SCHEMAS ============


class WebhookTurnRequest(CamelModel):
    """A conversation turn forwarded by the voice provider."""

    text: str = Field(..., min_length=1, max_length=5000)
    speaker: Speaker = Speaker.USER
    conversation_id: Optional[str] = None


class WebhookTurnResponse(CamelModel):
    resolved: bool
    session_id: Optional[str] = None
    appended_to_notebook: bool = False
    message: Optional[str] = None


# ============ NOTEBOOK SCHEMAS ============


class CreateNotebookRequest(CamelModel):
    therapist_id: str = Field(..., min_length=1)
    client_name: Optional[str] = None
    fresh: bool = Field(
        default=False,
        description="Always start a new notebook, abandoning any active one for the pairing",
    )


class NotebookListResponse(CamelModel):
    notebooks: List[NotebookSummary]
    total: int


class AddMessageRequest(CamelModel):
    speaker: Speaker
    text: str = Field(..., min_length=1, max_length=5000)


class AddNoteRequest(CamelModel):
    note: str = Field(..., min_length=1, max_length=5000)
    topic: Optional[str] = None


class UpdateTopicRequest(CamelModel):
    """Set the topic explicitly, or advance to the next one when omitted."""

    topic: Optional[ConversationTopic] = None


class TopicResponse(CamelModel):
    current_topic: ConversationTopic


class GenerateReportsRequest(CamelModel):
    regenerate: bool = False


class NotebookStatusResponse(CamelModel):
    id: str
    status: NotebookStatus
    message_count: int
    has_reports: bool
    session_duration: Optional[str] = None
    keep_alives_sent: int = 0
    minutes_remaining: Optional[int] = None

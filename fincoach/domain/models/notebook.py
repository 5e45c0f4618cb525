"""Session notebook: the per-session aggregate.

This module defines the notebook record that is persisted and the
SessionNotebook aggregate that guards it.

Core Models:
    - SessionNotebookData: Serializable state (transcript, notes, profile,
      derived data, reports, status)
    - SessionNotebook: Aggregate root enforcing the lifecycle rules
    - NotebookSummary: Listing view

Lifecycle:
    1. Created active for a therapist/client pairing
    2. Messages and notes appended; profile filled in incrementally
    3. Extracted data and reports attached on demand
    4. Status: active -> completed or active -> abandoned (terminal)

Extracted financial data is derived from the transcript. The notebook
records how many messages it was computed from so callers can tell when
it is stale and recompute it.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union
from uuid import uuid4

from pydantic import Field

from fincoach.core.exceptions import NotebookTerminalError
from fincoach.domain.models.base import CamelModel
from fincoach.domain.models.conversation import (
    ConversationMessage,
    ConversationTopic,
    Speaker,
    TherapistNote,
    next_topic,
)
from fincoach.domain.models.financial import ExtractedFinancialData
from fincoach.domain.models.profile import UserProfile
from fincoach.domain.models.reports import QualitativeReport, QuantitativeReport


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotebookStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class SessionNotebookData(CamelModel):
    """Persisted notebook record."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    therapist_id: str
    client_name: Optional[str] = None
    session_date: datetime = Field(default_factory=_utcnow)
    duration: int = Field(default=0, description="Minutes from first to latest message")
    messages: List[ConversationMessage] = Field(default_factory=list)
    notes: List[TherapistNote] = Field(default_factory=list)
    current_topic: ConversationTopic = ConversationTopic.INTRO
    user_profile: UserProfile = Field(default_factory=UserProfile)
    extracted_financial_data: Optional[ExtractedFinancialData] = None
    extracted_message_count: Optional[int] = Field(
        default=None, description="Transcript length the extracted data was computed from"
    )
    qualitative_report: Optional[QualitativeReport] = None
    quantitative_report: Optional[QuantitativeReport] = None
    status: NotebookStatus = NotebookStatus.ACTIVE
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class NotebookSummary(CamelModel):
    id: str
    therapist_id: str
    client_name: Optional[str] = None
    session_date: datetime
    duration: int
    status: NotebookStatus
    has_reports: bool
    message_count: int
    note_count: int


class SessionNotebook:
    """Aggregate root for one coaching session.

    Every mutation marks the notebook dirty and notifies ``on_change`` (the
    manager hooks its debounced auto-save there). Mutating a completed or
    abandoned notebook raises NotebookTerminalError.
    """

    def __init__(
        self,
        data: SessionNotebookData,
        on_change: Optional[Callable[["SessionNotebook"], None]] = None,
    ):
        self._data = data
        self._dirty = False
        self.on_change = on_change

    @classmethod
    def create(
        cls, therapist_id: str, client_name: Optional[str] = None
    ) -> "SessionNotebook":
        notebook = cls(SessionNotebookData(therapist_id=therapist_id, client_name=client_name))
        notebook._dirty = True
        return notebook

    @classmethod
    def from_data(cls, data: Union[Dict[str, Any], SessionNotebookData]) -> "SessionNotebook":
        if not isinstance(data, SessionNotebookData):
            data = SessionNotebookData.model_validate(data)
        return cls(data)

    def to_data(self) -> Dict[str, Any]:
        """camelCase JSON-ready record."""
        return self._data.to_json_dict()

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def data(self) -> SessionNotebookData:
        return self._data

    @property
    def id(self) -> str:
        return self._data.id

    @property
    def therapist_id(self) -> str:
        return self._data.therapist_id

    @property
    def client_name(self) -> Optional[str]:
        return self._data.client_name

    @property
    def status(self) -> NotebookStatus:
        return self._data.status

    @property
    def is_active(self) -> bool:
        return self._data.status == NotebookStatus.ACTIVE

    @property
    def messages(self) -> List[ConversationMessage]:
        return list(self._data.messages)

    @property
    def notes(self) -> List[TherapistNote]:
        return list(self._data.notes)

    @property
    def current_topic(self) -> ConversationTopic:
        return self._data.current_topic

    @property
    def user_profile(self) -> UserProfile:
        return self._data.user_profile

    @property
    def extracted_financial_data(self) -> Optional[ExtractedFinancialData]:
        return self._data.extracted_financial_data

    @property
    def qualitative_report(self) -> Optional[QualitativeReport]:
        return self._data.qualitative_report

    @property
    def quantitative_report(self) -> Optional[QuantitativeReport]:
        return self._data.quantitative_report

    def user_messages(self) -> List[ConversationMessage]:
        return [m for m in self._data.messages if m.speaker == Speaker.USER]

    def has_changes(self) -> bool:
        return self._dirty

    def has_reports(self) -> bool:
        return (
            self._data.qualitative_report is not None
            and self._data.quantitative_report is not None
        )

    def is_extraction_stale(self) -> bool:
        """True when extracted data is missing or predates the latest message."""
        if self._data.extracted_financial_data is None:
            return True
        return self._data.extracted_message_count != len(self._data.messages)

    def session_clock(self, now: Optional[datetime] = None) -> str:
        """Time since the session started, as MM:SS."""
        now = now or _utcnow()
        elapsed = max(0, int((now - self._data.session_date).total_seconds()))
        minutes, seconds = divmod(elapsed, 60)
        return f"{minutes:02d}:{seconds:02d}"

    def summary(self) -> NotebookSummary:
        return NotebookSummary(
            id=self._data.id,
            therapist_id=self._data.therapist_id,
            client_name=self._data.client_name,
            session_date=self._data.session_date,
            duration=self._data.duration,
            status=self._data.status,
            has_reports=self.has_reports(),
            message_count=len(self._data.messages),
            note_count=len(self._data.notes),
        )

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add_message(self, speaker: Union[Speaker, str], text: str) -> ConversationMessage:
        self._ensure_active("add message")
        message = ConversationMessage(speaker=Speaker(speaker), text=text)
        self._data.messages.append(message)

        first = self._data.messages[0].timestamp
        self._data.duration = int((message.timestamp - first).total_seconds() // 60)
        self._touch()
        return message

    def add_note(self, note: str, topic: Optional[str] = None) -> TherapistNote:
        self._ensure_active("add note")
        entry = TherapistNote(
            time=self.session_clock(),
            note=note,
            topic=topic if topic is not None else self._data.current_topic.value,
        )
        self._data.notes.append(entry)
        self._touch()
        return entry

    def update_topic(self, topic: Union[ConversationTopic, str]) -> None:
        self._ensure_active("update topic")
        self._data.current_topic = ConversationTopic(topic)
        self._touch()

    def advance_topic(self) -> ConversationTopic:
        """Move to the next topic in the fixed graph."""
        self.update_topic(next_topic(self._data.current_topic))
        return self._data.current_topic

    def update_profile(self, updates: Union[UserProfile, Dict[str, Any]]) -> None:
        self._ensure_active("update profile")
        self._data.user_profile = self._data.user_profile.merge(updates)
        self._touch()

    def set_extracted_data(self, data: ExtractedFinancialData) -> None:
        self._ensure_active("set extracted data")
        self._data.extracted_financial_data = data
        self._data.extracted_message_count = len(self._data.messages)
        self._touch()

    def attach_qualitative_report(self, report: QualitativeReport) -> None:
        self._ensure_active("attach qualitative report")
        self._data.qualitative_report = report
        self._touch()

    def attach_quantitative_report(self, report: QuantitativeReport) -> None:
        self._ensure_active("attach quantitative report")
        self._data.quantitative_report = report
        self._touch()

    def mark_completed(self) -> None:
        self._transition(NotebookStatus.COMPLETED)

    def mark_abandoned(self) -> None:
        self._transition(NotebookStatus.ABANDONED)

    def mark_saved(self) -> None:
        self._dirty = False

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _transition(self, status: NotebookStatus) -> None:
        self._ensure_active(f"mark {status.value}")
        self._data.status = status
        self._touch()

    def _ensure_active(self, action: str) -> None:
        if not self.is_active:
            raise NotebookTerminalError(
                f"Cannot {action}: notebook {self.id} is {self._data.status.value}"
            )

    def _touch(self) -> None:
        self._data.updated_at = _utcnow()
        self._dirty = True
        if self.on_change is not None:
            self.on_change(self)

"""Session registry records: correlation metadata for external voice sessions."""

from datetime import datetime, timezone
from typing import Optional

from pydantic import Field

from fincoach.domain.models.base import CamelModel
from fincoach.domain.models.conversation import Speaker


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionRegistryEntry(CamelModel):
    """Maps an external conversation id to the local coaching session."""

    session_id: str
    therapist_id: str
    notebook_id: Optional[str] = None
    client_name: Optional[str] = None
    registered_at: datetime = Field(default_factory=_utcnow)
    last_activity: datetime = Field(default_factory=_utcnow)


class SessionMessage(CamelModel):
    """A turn recorded against a registered session by the webhook path."""

    session_id: str
    speaker: Speaker = Speaker.USER
    text: str
    timestamp: datetime = Field(default_factory=_utcnow)

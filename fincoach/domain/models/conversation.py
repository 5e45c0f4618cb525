"""Conversation domain models: transcript turns, coach notes and topics.

The transcript is append-only. Message order is significant because
extraction reads the whole transcript as one document.

Topic graph:
    intro -> name -> age -> interests -> housing_location ->
    housing_preference -> food_preference -> transport_preference ->
    fitness_preference -> entertainment_preference ->
    subscriptions_preference -> travel_preference -> summary
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import Field

from fincoach.domain.models.base import CamelModel


class Speaker(str, Enum):
    """Who authored a conversation turn."""

    USER = "user"
    AGENT = "agent"


class ConversationTopic(str, Enum):
    """Position in the fixed coaching topic graph."""

    INTRO = "intro"
    NAME = "name"
    AGE = "age"
    INTERESTS = "interests"
    HOUSING_LOCATION = "housing_location"
    HOUSING_PREFERENCE = "housing_preference"
    FOOD_PREFERENCE = "food_preference"
    TRANSPORT_PREFERENCE = "transport_preference"
    FITNESS_PREFERENCE = "fitness_preference"
    ENTERTAINMENT_PREFERENCE = "entertainment_preference"
    SUBSCRIPTIONS_PREFERENCE = "subscriptions_preference"
    TRAVEL_PREFERENCE = "travel_preference"
    SUMMARY = "summary"


TOPIC_SEQUENCE = list(ConversationTopic)


def next_topic(topic: ConversationTopic) -> ConversationTopic:
    """Topic that follows ``topic``; summary is the final topic."""
    index = TOPIC_SEQUENCE.index(topic)
    return TOPIC_SEQUENCE[min(index + 1, len(TOPIC_SEQUENCE) - 1)]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationMessage(CamelModel):
    """A single transcript turn."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    speaker: Speaker
    text: str
    timestamp: datetime = Field(default_factory=_utcnow)


class TherapistNote(CamelModel):
    """Free-form note the coach attached during the session."""

    time: str = Field(description="Session clock position, e.g. '04:30'")
    note: str
    topic: Optional[str] = None

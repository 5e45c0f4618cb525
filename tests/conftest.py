"""
Shared test fixtures.

Everything runs against in-memory storage unless a test needs the file or
SQLite adapters, in which case it builds them over ``tmp_path``.
"""

from typing import List, Tuple

import pytest

from fincoach.core.config import NotebookConfig, RegistryConfig
from fincoach.domain.models.conversation import ConversationMessage, Speaker
from fincoach.domain.models.notebook import SessionNotebook
from fincoach.persistence.session_store import SessionStore
from fincoach.persistence.storage import MemoryStorageAdapter
from fincoach.services.notebook_manager import NotebookManager


def make_messages(*turns: Tuple[str, str]) -> List[ConversationMessage]:
    """Build messages from (speaker, text) pairs."""
    return [ConversationMessage(speaker=Speaker(s), text=t) for s, t in turns]


@pytest.fixture
def storage():
    return MemoryStorageAdapter()


@pytest.fixture
def session_store(storage):
    """Session store with fast retry backoff."""
    return SessionStore(
        storage,
        config=RegistryConfig(resolve_max_retries=3, resolve_base_delay_seconds=0.001),
    )


@pytest.fixture
async def notebook_manager(storage):
    manager = NotebookManager(storage, config=NotebookConfig(autosave_delay_seconds=0.01))
    yield manager
    await manager.close()


@pytest.fixture
def notebook():
    return SessionNotebook.create("therapist-1", "Alex")


@pytest.fixture
def coaching_transcript() -> List[ConversationMessage]:
    """A short but complete coaching conversation."""
    return make_messages(
        ("agent", "Hi! What's your name?"),
        ("user", "My name is Jordan."),
        ("agent", "Nice to meet you. How old are you?"),
        ("user", "I'm 29 years old and I live in Denver."),
        ("agent", "What do you do for work?"),
        ("user", "I work as a graphic designer at an agency."),
        ("agent", "How much do you make?"),
        ("user", "I make about 72k a year."),
        ("user", "I pay 1800 a month in rent and I have two roommates."),
        ("user", "Groceries are around 400 a month but I love eating out, probably 300 on restaurants."),
        ("user", "I take the bus to work, the bus pass is 100 a month."),
        ("user", "I go to the gym, the membership is 60 a month."),
        ("user", "I have Netflix and Spotify, maybe 30 a month in subscriptions."),
        ("user", "I like concerts, entertainment is about 150 a month."),
        ("user", "I try to travel once a year."),
        ("user", "I have 5000 in credit card debt at 22% interest."),
        ("user", "I want to build an emergency fund and eventually buy a house."),
    )

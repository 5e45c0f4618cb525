"""
Correlation of webhook turns to the local coaching session.

Registration (client connect) and webhook turns arrive on independent
paths, so a turn may show up before its session is registered. The
service looks the session up by conversation id when one is supplied and
otherwise resolves the latest registered session with retry. When nothing
resolves it returns an explicit "could not determine session" outcome
instead of guessing.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

import structlog

from fincoach.core.exceptions import RetryCancelledError, StorageError
from fincoach.core.retry import RetryExecutor
from fincoach.domain.models.conversation import Speaker
from fincoach.domain.models.registry import SessionRegistryEntry
from fincoach.persistence.session_store import SessionStore
from fincoach.services.notebook_manager import NotebookManager

log = structlog.get_logger(__name__)

UNRESOLVED_SESSION_MESSAGE = (
    "I couldn't determine which session this conversation belongs to. "
    "Please reconnect and try again."
)


@dataclass
class CorrelationOutcome:
    """Result of correlating one turn."""

    resolved: bool
    session: Optional[SessionRegistryEntry] = None
    message: Optional[str] = None
    appended_to_notebook: bool = False


def _is_storage_error(error: BaseException) -> bool:
    return isinstance(error, StorageError)


class CorrelationService:
    def __init__(
        self,
        store: SessionStore,
        manager: NotebookManager,
        retry: Optional[RetryExecutor] = None,
    ):
        self.store = store
        self.manager = manager
        self.retry = retry or RetryExecutor()

    async def resolve(
        self,
        conversation_id: Optional[str] = None,
        stop_event: Optional[asyncio.Event] = None,
    ) -> Optional[SessionRegistryEntry]:
        """Session for ``conversation_id``, else the latest registered one."""
        if conversation_id:
            entry = await self.store.get_session(conversation_id)
            if entry is not None:
                return entry
            log.info("conversation_id_unregistered", conversation_id=conversation_id)
        return await self.store.resolve_session_with_retry(stop_event=stop_event)

    async def handle_turn(
        self,
        text: str,
        speaker: Speaker = Speaker.USER,
        conversation_id: Optional[str] = None,
        stop_event: Optional[asyncio.Event] = None,
    ) -> CorrelationOutcome:
        """
        Record a webhook turn against its session.

        Args:
            text: Turn text
            speaker: Who spoke
            conversation_id: External conversation id, when the partner sends one
            stop_event: Aborts retry waits; defaults to the held session's
                stop event so abandoning the session ends the wait

        Returns:
            CorrelationOutcome; ``resolved`` is False with a user-facing
            message when no session could be determined or the session
            stopped while the turn was waiting
        """
        stop_event = stop_event or self.manager.stop_event
        try:
            entry = await self.resolve(conversation_id, stop_event)
            if entry is None:
                log.warning("session_correlation_failed", conversation_id=conversation_id)
                return CorrelationOutcome(
                    resolved=False, message=UNRESOLVED_SESSION_MESSAGE
                )

            await self.retry.execute(
                lambda: self.store.add_message(entry.session_id, text, speaker),
                should_retry=_is_storage_error,
                stop_event=stop_event,
            )
        except RetryCancelledError:
            log.info("turn_correlation_cancelled", conversation_id=conversation_id)
            return CorrelationOutcome(resolved=False, message=UNRESOLVED_SESSION_MESSAGE)

        entry = await self.store.touch(entry.session_id) or entry

        appended = False
        notebook = self.manager.current
        if notebook is not None and notebook.is_active and entry.notebook_id == notebook.id:
            notebook.add_message(speaker, text)
            appended = True

        log.info(
            "turn_correlated",
            session_id=entry.session_id,
            notebook_id=entry.notebook_id,
            appended_to_notebook=appended,
        )
        return CorrelationOutcome(resolved=True, session=entry, appended_to_notebook=appended)

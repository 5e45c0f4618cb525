"""
Session registry over a storage adapter.

Tracks "external session id -> correlation metadata" plus a single shared
latest pointer. The in-memory map is a cache over storage, not a second
source of truth: a cache miss reloads from storage and repopulates it.

Storage keys:
    sessions/<session_id>    one registry entry per session
    messages/<session_id>    user turns recorded by the webhook path
    registry_latest          the most recently registered entry

Concurrency: there is no locking. Two sessions registering concurrently
race on the latest pointer and the last writer wins. Correlating through
the latest pointer is therefore best-effort when more than one session is
live at a time.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

import structlog

from fincoach.core.config import RegistryConfig, coaching_config
from fincoach.core.exceptions import StorageError
from fincoach.core.retry import cancellable_sleep
from fincoach.domain.models.conversation import Speaker
from fincoach.domain.models.registry import SessionMessage, SessionRegistryEntry
from fincoach.persistence.storage.base import StorageAdapter

log = structlog.get_logger(__name__)

SESSION_PREFIX = "sessions/"
MESSAGE_PREFIX = "messages/"
LATEST_KEY = "registry_latest"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStore:
    """Session registry with explicit lifecycle.

    Construct once per process and pass it to every collaborator that
    needs it; call start_cleanup_task() to begin the periodic sweep and
    shutdown() to stop it.
    """

    def __init__(
        self,
        storage: StorageAdapter,
        config: Optional[RegistryConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.storage = storage
        self.config = config or coaching_config.registry
        self._clock = clock
        self._cache: Dict[str, SessionRegistryEntry] = {}
        self._cleanup_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Registration and lookup
    # ------------------------------------------------------------------

    async def register_session(self, entry: SessionRegistryEntry) -> SessionRegistryEntry:
        """Write the entry under its own key and as the latest pointer."""
        document = entry.to_json_dict()
        await self.storage.save(f"{SESSION_PREFIX}{entry.session_id}", document)
        await self.storage.save(LATEST_KEY, document)
        self._cache[entry.session_id] = entry

        log.info(
            "session_registered",
            session_id=entry.session_id,
            therapist_id=entry.therapist_id,
            notebook_id=entry.notebook_id,
        )
        return entry

    async def get_session(self, session_id: str) -> Optional[SessionRegistryEntry]:
        cached = self._cache.get(session_id)
        if cached is not None:
            return cached

        document = await self.storage.load(f"{SESSION_PREFIX}{session_id}")
        if document is None:
            return None

        entry = SessionRegistryEntry.model_validate(document)
        self._cache[session_id] = entry
        log.debug("session_cache_repopulated", session_id=session_id)
        return entry

    async def get_latest_session(self) -> Optional[SessionRegistryEntry]:
        """Read the latest pointer directly from storage (single attempt)."""
        document = await self.storage.load(LATEST_KEY)
        if document is None:
            return None
        return SessionRegistryEntry.model_validate(document)

    async def resolve_session_with_retry(
        self,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
        stop_event: Optional[asyncio.Event] = None,
    ) -> Optional[SessionRegistryEntry]:
        """
        Resolve the latest session, retrying while registration catches up.

        Waits base_delay * 2^attempt between attempts. Returns None when no
        session appears within the budget; that is an expected outcome,
        not an error.

        Args:
            max_retries: Total attempts (defaults to coaching_config)
            base_delay: Backoff base in seconds
            stop_event: Aborts pending waits when set

        Raises:
            StorageError: If storage fails on the final attempt
            RetryCancelledError: If ``stop_event`` fires during a wait
        """
        attempts = max_retries if max_retries is not None else self.config.resolve_max_retries
        base = base_delay if base_delay is not None else self.config.resolve_base_delay_seconds

        for attempt in range(attempts):
            last_attempt = attempt == attempts - 1
            try:
                entry = await self.get_latest_session()
            except StorageError as e:
                if last_attempt:
                    raise
                log.warning("session_resolve_storage_error", attempt=attempt + 1, error=str(e))
                entry = None

            if entry is not None:
                log.info("session_resolved", session_id=entry.session_id, attempts=attempt + 1)
                return entry

            if not last_attempt:
                await cancellable_sleep(base * (2**attempt), stop_event)

        log.warning("session_resolution_failed", attempts=attempts)
        return None

    async def touch(self, session_id: str) -> Optional[SessionRegistryEntry]:
        """Record activity on a session and persist it."""
        entry = await self.get_session(session_id)
        if entry is None:
            return None

        updated = entry.model_copy(update={"last_activity": self._clock()})
        document = updated.to_json_dict()
        await self.storage.save(f"{SESSION_PREFIX}{session_id}", document)
        self._cache[session_id] = updated

        latest = await self.get_latest_session()
        if latest is not None and latest.session_id == session_id:
            await self.storage.save(LATEST_KEY, document)
        return updated

    # ------------------------------------------------------------------
    # Message log
    # ------------------------------------------------------------------

    async def add_message(
        self, session_id: str, text: str, speaker: Speaker = Speaker.USER
    ) -> SessionMessage:
        message = SessionMessage(
            session_id=session_id, speaker=speaker, text=text, timestamp=self._clock()
        )
        key = f"{MESSAGE_PREFIX}{session_id}"
        documents = await self.storage.load(key) or []
        documents.append(message.to_json_dict())
        await self.storage.save(key, documents)

        log.debug("session_message_recorded", session_id=session_id, count=len(documents))
        return message

    async def get_messages(self, session_id: str) -> List[SessionMessage]:
        documents = await self.storage.load(f"{MESSAGE_PREFIX}{session_id}") or []
        return [SessionMessage.model_validate(d) for d in documents]

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    async def cleanup(self, older_than_minutes: Optional[int] = None) -> int:
        """
        Drop sessions inactive for longer than the threshold.

        Removes the cache entry and the persisted session and message
        records. A latest pointer that names a removed session is cleared
        too, so correlation never falls back to an expired session.

        Returns:
            Number of sessions removed
        """
        minutes = (
            older_than_minutes
            if older_than_minutes is not None
            else self.config.cleanup_after_minutes
        )
        cutoff = self._clock() - timedelta(minutes=minutes)
        expired = [
            sid for sid, entry in self._cache.items() if entry.last_activity < cutoff
        ]

        if expired:
            latest = await self.get_latest_session()
            for session_id in expired:
                await self.storage.delete(f"{SESSION_PREFIX}{session_id}")
                await self.storage.delete(f"{MESSAGE_PREFIX}{session_id}")
                self._cache.pop(session_id, None)
            if latest is not None and latest.session_id in expired:
                await self.storage.delete(LATEST_KEY)

            log.info("sessions_cleaned_up", removed=len(expired), older_than_minutes=minutes)
        return len(expired)

    def start_cleanup_task(self) -> None:
        """Start the periodic cleanup sweep on the running loop."""
        if self._cleanup_task is not None and not self._cleanup_task.done():
            return
        self._cleanup_task = asyncio.get_running_loop().create_task(self._cleanup_loop())
        log.info(
            "registry_cleanup_started",
            interval_seconds=self.config.cleanup_interval_seconds,
        )

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.cleanup_interval_seconds)
            try:
                await self.cleanup()
            except Exception as e:
                log.error("registry_cleanup_failed", error=str(e), exc_info=e)

    async def shutdown(self) -> None:
        """Stop the cleanup sweep and drop the cache."""
        task = self._cleanup_task
        self._cleanup_task = None
        if task is not None and task.done() and not task.cancelled():
            error = task.exception()
            if error is not None:
                log.error("registry_cleanup_died", error=str(error), exc_info=error)
        elif task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._cache.clear()
        log.info("session_store_shutdown")

"""
Notebook lifecycle orchestration.

The manager owns the notebook of the current client session: it creates
or restores it, persists it through the storage adapter, and releases it
when the session completes or is abandoned.

Persistence:
    notebook_<id>                              full notebook record
    active_notebook/<therapist>/<client>       pointer to the active notebook
                                               for a therapist/client pairing

Auto-save is debounced: each mutation restarts a short timer and the
notebook is written once the conversation pauses. Explicit save() and the
terminal transitions write immediately.

Each held session gets a stop event, set when the session is released.
Retry waits that belong to the session (webhook correlation) watch it and
end as soon as the session completes or is abandoned. When keep-alive is
configured, a scheduler runs for the same span and reaching the maximum
session length completes the session.
"""

import asyncio
from datetime import datetime
from typing import Callable, List, Optional
from urllib.parse import quote

import structlog

from fincoach.core.config import KeepAliveConfig, NotebookConfig, coaching_config
from fincoach.core.exceptions import (
    NoActiveNotebookError,
    NotebookNotFoundError,
    StorageError,
)
from fincoach.core.keepalive import KeepAliveScheduler
from fincoach.domain.models.notebook import NotebookSummary, SessionNotebook
from fincoach.persistence.storage.base import StorageAdapter

log = structlog.get_logger(__name__)

NOTEBOOK_PREFIX = "notebook_"
ACTIVE_POINTER_PREFIX = "active_notebook/"


def notebook_key(notebook_id: str) -> str:
    return f"{NOTEBOOK_PREFIX}{notebook_id}"


def active_pointer_key(therapist_id: str, client_name: Optional[str]) -> str:
    client = quote(client_name, safe="") if client_name else "_"
    return f"{ACTIVE_POINTER_PREFIX}{quote(therapist_id, safe='')}/{client}"


class NotebookManager:
    """Creates, restores, persists and closes session notebooks."""

    def __init__(
        self,
        storage: StorageAdapter,
        config: Optional[NotebookConfig] = None,
        keep_alive: Optional[KeepAliveConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            storage: Storage adapter holding notebooks and active pointers
            config: Notebook behaviour (defaults to coaching_config.notebook)
            keep_alive: Start a keep-alive scheduler for every held session;
                None disables it
            clock: Time source for the keep-alive scheduler
        """
        self.storage = storage
        self.config = config or coaching_config.notebook
        self.keep_alive_config = keep_alive
        self._clock = clock
        self._current: Optional[SessionNotebook] = None
        self._autosave_task: Optional[asyncio.Task] = None
        self._keep_alive: Optional[KeepAliveScheduler] = None
        self._stop_event: Optional[asyncio.Event] = None
        self.keep_alives_sent = 0
        self.minutes_remaining: Optional[int] = None

    @property
    def current(self) -> Optional[SessionNotebook]:
        return self._current

    @property
    def stop_event(self) -> Optional[asyncio.Event]:
        """Set when the held session ends; None while no session is held."""
        return self._stop_event

    @property
    def keep_alive(self) -> Optional[KeepAliveScheduler]:
        return self._keep_alive

    def require_current(self) -> SessionNotebook:
        if self._current is None:
            raise NoActiveNotebookError("No active notebook; create or restore one first")
        return self._current

    # ------------------------------------------------------------------
    # Creation and restore
    # ------------------------------------------------------------------

    async def create_or_restore(
        self, therapist_id: str, client_name: Optional[str] = None
    ) -> SessionNotebook:
        """
        Return the active notebook for this pairing, creating one if needed.

        An existing notebook is restored only while it is still active.
        """
        current = self._current
        if (
            current is not None
            and current.is_active
            and current.therapist_id == therapist_id
            and current.client_name == client_name
        ):
            return current

        restored = await self._load_active(therapist_id, client_name)
        if restored is not None:
            await self._adopt(restored)
            log.info(
                "notebook_restored",
                notebook_id=restored.id,
                therapist_id=therapist_id,
                message_count=len(restored.messages),
            )
            return restored

        return await self._create(therapist_id, client_name)

    async def create_new(
        self, therapist_id: str, client_name: Optional[str] = None
    ) -> SessionNotebook:
        """Start a fresh notebook, abandoning any prior active one for the pairing."""
        prior = await self._load_active(therapist_id, client_name)
        if prior is not None:
            if self._current is not None and self._current.id == prior.id:
                prior = self._current
                await self._release(flush=False)
            prior.on_change = None
            prior.mark_abandoned()
            await self.save(prior)
            log.info("notebook_superseded", notebook_id=prior.id, therapist_id=therapist_id)

        return await self._create(therapist_id, client_name)

    async def load(self, notebook_id: str) -> SessionNotebook:
        """
        Load a notebook by id.

        The held notebook is returned as-is; any other notebook is returned
        detached (no auto-save).

        Raises:
            NotebookNotFoundError: If no notebook has this id
        """
        if self._current is not None and self._current.id == notebook_id:
            return self._current

        document = await self.storage.load(notebook_key(notebook_id))
        if document is None:
            raise NotebookNotFoundError(f"Notebook not found: {notebook_id}")
        return SessionNotebook.from_data(document)

    async def _load_active(
        self, therapist_id: str, client_name: Optional[str]
    ) -> Optional[SessionNotebook]:
        pointer = await self.storage.load(active_pointer_key(therapist_id, client_name))
        if not pointer:
            return None

        notebook_id = pointer.get("notebookId")
        if self._current is not None and self._current.id == notebook_id:
            return self._current if self._current.is_active else None

        document = await self.storage.load(notebook_key(notebook_id))
        if document is None:
            log.warning("active_pointer_dangling", notebook_id=notebook_id)
            return None

        notebook = SessionNotebook.from_data(document)
        return notebook if notebook.is_active else None

    async def _create(self, therapist_id: str, client_name: Optional[str]) -> SessionNotebook:
        notebook = SessionNotebook.create(therapist_id, client_name)
        await self._adopt(notebook)
        await self.save(notebook)
        await self.storage.save(
            active_pointer_key(therapist_id, client_name), {"notebookId": notebook.id}
        )
        log.info(
            "notebook_created",
            notebook_id=notebook.id,
            therapist_id=therapist_id,
            client_name=client_name,
        )
        return notebook

    async def _adopt(self, notebook: SessionNotebook) -> None:
        if notebook is self._current:
            return
        if self._current is not None:
            await self._release(flush=True)
        notebook.on_change = self._schedule_autosave
        self._current = notebook
        self._stop_event = asyncio.Event()
        self.keep_alives_sent = 0
        self.minutes_remaining = None
        if self.keep_alive_config is not None:
            self.attach_keep_alive(self._build_keep_alive())

    async def _release(self, flush: bool) -> None:
        """Let go of the held notebook, cancelling its timers."""
        notebook = self._current
        self._cancel_autosave()
        self._stop_keep_alive()
        if self._stop_event is not None:
            self._stop_event.set()
            self._stop_event = None
        self._current = None
        if notebook is None:
            return
        notebook.on_change = None
        if flush and notebook.has_changes():
            await self.save(notebook)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def save(self, notebook: Optional[SessionNotebook] = None) -> None:
        """
        Write a notebook (the held one by default) and clear its dirty flag.

        Raises:
            NoActiveNotebookError: If no notebook is given and none is held
            StorageError: If the write fails
        """
        notebook = notebook or self.require_current()
        if notebook is self._current:
            self._cancel_autosave()

        version = notebook.data.updated_at
        await self.storage.save(notebook_key(notebook.id), notebook.to_data())
        # A mutation during the write keeps the notebook dirty
        if notebook.data.updated_at == version:
            notebook.mark_saved()

        log.info(
            "notebook_saved",
            notebook_id=notebook.id,
            status=notebook.status.value,
            message_count=len(notebook.messages),
        )

    def _schedule_autosave(self, notebook: SessionNotebook) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log.debug("autosave_skipped_no_loop", notebook_id=notebook.id)
            return

        self._cancel_autosave()
        self._autosave_task = loop.create_task(self._autosave_after_delay(notebook))

    async def _autosave_after_delay(self, notebook: SessionNotebook) -> None:
        await asyncio.sleep(self.config.autosave_delay_seconds)
        if notebook is not self._current or not notebook.has_changes():
            return
        try:
            await self.save(notebook)
        except StorageError as e:
            log.error("autosave_failed", notebook_id=notebook.id, error=str(e))

    def _cancel_autosave(self) -> None:
        task = self._autosave_task
        self._autosave_task = None
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()

    # ------------------------------------------------------------------
    # Terminal transitions
    # ------------------------------------------------------------------

    async def complete_session(self) -> SessionNotebook:
        """Mark the held notebook completed, persist it and release it."""
        notebook = self.require_current()
        await self._finish(notebook, completed=True)
        return notebook

    async def abandon_session(self) -> SessionNotebook:
        """Mark the held notebook abandoned, persist it and release it.

        Reports still being generated for it are discarded when they land.
        """
        notebook = self.require_current()
        await self._finish(notebook, completed=False)
        return notebook

    async def _finish(self, notebook: SessionNotebook, completed: bool) -> None:
        await self._release(flush=False)
        if completed:
            notebook.mark_completed()
        else:
            notebook.mark_abandoned()

        await self.save(notebook)
        await self.storage.delete(active_pointer_key(notebook.therapist_id, notebook.client_name))
        log.info(
            "notebook_closed",
            notebook_id=notebook.id,
            status=notebook.status.value,
            duration=notebook.data.duration,
        )

    # ------------------------------------------------------------------
    # Listing, keep-alive, shutdown
    # ------------------------------------------------------------------

    async def list_notebooks(self, therapist_id: Optional[str] = None) -> List[NotebookSummary]:
        """Summaries of stored notebooks, newest first."""
        summaries = []
        for key in await self.storage.list(NOTEBOOK_PREFIX):
            notebook_id = key[len(NOTEBOOK_PREFIX) :]
            if self._current is not None and self._current.id == notebook_id:
                summary = self._current.summary()
            else:
                document = await self.storage.load(key)
                if document is None:
                    continue
                summary = SessionNotebook.from_data(document).summary()
            if therapist_id is None or summary.therapist_id == therapist_id:
                summaries.append(summary)
        return sorted(summaries, key=lambda s: s.session_date, reverse=True)

    def attach_keep_alive(self, scheduler: KeepAliveScheduler) -> None:
        """Tie a keep-alive scheduler to the held session and start it.

        The scheduler is stopped when the session completes, is abandoned
        or the manager closes.
        """
        self.require_current()
        self._stop_keep_alive()
        self._keep_alive = scheduler
        if not scheduler.is_running:
            scheduler.start()

    def _build_keep_alive(self) -> KeepAliveScheduler:
        options = {"clock": self._clock} if self._clock is not None else {}
        return KeepAliveScheduler(
            on_keep_alive=self._on_keep_alive,
            on_warning=self._on_session_warning,
            on_timeout=self._on_session_timeout,
            config=self.keep_alive_config,
            **options,
        )

    def _on_keep_alive(self) -> None:
        self.keep_alives_sent += 1

    def _on_session_warning(self, minutes_remaining: int) -> None:
        self.minutes_remaining = minutes_remaining

    async def _on_session_timeout(self) -> None:
        notebook = self._current
        if notebook is None or not notebook.is_active:
            return
        log.info("session_time_limit_reached", notebook_id=notebook.id)
        await self.complete_session()

    def _stop_keep_alive(self) -> None:
        if self._keep_alive is not None:
            self._keep_alive.stop()
            self._keep_alive = None

    async def close(self) -> None:
        """Flush pending changes and release the held notebook."""
        await self._release(flush=True)
        log.info("notebook_manager_closed")

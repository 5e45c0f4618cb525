"""Tests for NotebookManager: create/restore, persistence and lifecycle."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from fincoach.core.config import KeepAliveConfig, NotebookConfig, WarningMark
from fincoach.core.exceptions import (
    NoActiveNotebookError,
    NotebookNotFoundError,
    NotebookTerminalError,
    StorageError,
)
from fincoach.core.keepalive import KeepAliveScheduler
from fincoach.domain.models import NotebookStatus
from fincoach.services.notebook_manager import (
    NotebookManager,
    active_pointer_key,
    notebook_key,
)


class TestCreateAndRestore:
    @pytest.mark.asyncio
    async def test_create_persists_notebook_and_pointer(self, notebook_manager, storage):
        notebook = await notebook_manager.create_or_restore("therapist-1", "Alex")

        assert notebook_manager.current is notebook
        assert (await storage.load(notebook_key(notebook.id)))["therapistId"] == "therapist-1"
        pointer = await storage.load(active_pointer_key("therapist-1", "Alex"))
        assert pointer == {"notebookId": notebook.id}
        assert not notebook.has_changes()

    @pytest.mark.asyncio
    async def test_same_pairing_returns_held_notebook(self, notebook_manager):
        first = await notebook_manager.create_or_restore("therapist-1", "Alex")
        second = await notebook_manager.create_or_restore("therapist-1", "Alex")
        assert second is first

    @pytest.mark.asyncio
    async def test_restore_after_restart(self, storage):
        manager = NotebookManager(storage)
        notebook = await manager.create_or_restore("therapist-1", "Alex")
        notebook.add_message("user", "My name is Alex")
        await manager.close()

        restarted = NotebookManager(storage)
        restored = await restarted.create_or_restore("therapist-1", "Alex")
        assert restored.id == notebook.id
        assert [m.text for m in restored.messages] == ["My name is Alex"]
        await restarted.close()

    @pytest.mark.asyncio
    async def test_completed_notebook_not_restored(self, notebook_manager):
        first = await notebook_manager.create_or_restore("therapist-1", "Alex")
        await notebook_manager.complete_session()

        second = await notebook_manager.create_or_restore("therapist-1", "Alex")
        assert second.id != first.id

    @pytest.mark.asyncio
    async def test_create_new_abandons_prior_active(self, notebook_manager, storage):
        first = await notebook_manager.create_or_restore("therapist-1", "Alex")
        second = await notebook_manager.create_new("therapist-1", "Alex")

        assert second.id != first.id
        assert notebook_manager.current is second
        stored = await storage.load(notebook_key(first.id))
        assert stored["status"] == "abandoned"

    @pytest.mark.asyncio
    async def test_switching_pairing_flushes_previous(self, notebook_manager, storage):
        first = await notebook_manager.create_or_restore("therapist-1", "Alex")
        first.add_message("user", "pending change")
        await notebook_manager.create_or_restore("therapist-1", "Blake")

        stored = await storage.load(notebook_key(first.id))
        assert [m["text"] for m in stored["messages"]] == ["pending change"]


class TestLoad:
    @pytest.mark.asyncio
    async def test_load_held_notebook(self, notebook_manager):
        notebook = await notebook_manager.create_or_restore("therapist-1")
        assert await notebook_manager.load(notebook.id) is notebook

    @pytest.mark.asyncio
    async def test_load_other_notebook_is_detached(self, notebook_manager):
        first = await notebook_manager.create_or_restore("therapist-1", "Alex")
        await notebook_manager.create_or_restore("therapist-2", "Blake")

        loaded = await notebook_manager.load(first.id)
        assert loaded.id == first.id
        assert loaded is not first
        assert loaded.on_change is None

    @pytest.mark.asyncio
    async def test_load_missing(self, notebook_manager):
        with pytest.raises(NotebookNotFoundError):
            await notebook_manager.load("missing")


class TestPersistence:
    @pytest.mark.asyncio
    async def test_autosave_after_quiet_period(self, notebook_manager, storage):
        notebook = await notebook_manager.create_or_restore("therapist-1")
        notebook.add_message("user", "first")
        notebook.add_message("user", "second")
        assert notebook.has_changes()

        await asyncio.sleep(0.05)

        assert not notebook.has_changes()
        stored = await storage.load(notebook_key(notebook.id))
        assert len(stored["messages"]) == 2

    @pytest.mark.asyncio
    async def test_autosave_debounces_writes(self, storage):
        manager = NotebookManager(storage, config=NotebookConfig(autosave_delay_seconds=0.05))
        notebook = await manager.create_or_restore("therapist-1")
        storage.save = AsyncMock(wraps=storage.save)

        for i in range(5):
            notebook.add_message("user", f"turn {i}")
            await asyncio.sleep(0.001)
        await asyncio.sleep(0.1)

        assert storage.save.await_count == 1
        await manager.close()

    @pytest.mark.asyncio
    async def test_autosave_failure_is_logged_not_raised(self, notebook_manager, storage):
        notebook = await notebook_manager.create_or_restore("therapist-1")
        storage.save = AsyncMock(side_effect=StorageError("disk full"))

        notebook.add_message("user", "hello")
        await asyncio.sleep(0.05)

        assert notebook.has_changes()
        del storage.save

    @pytest.mark.asyncio
    async def test_save_without_notebook(self, notebook_manager):
        with pytest.raises(NoActiveNotebookError):
            await notebook_manager.save()


class TestTerminalTransitions:
    @pytest.mark.asyncio
    async def test_complete_session(self, notebook_manager, storage):
        notebook = await notebook_manager.create_or_restore("therapist-1", "Alex")
        notebook.add_message("user", "Thanks!")

        completed = await notebook_manager.complete_session()

        assert completed.status == NotebookStatus.COMPLETED
        assert notebook_manager.current is None
        assert (await storage.load(notebook_key(notebook.id)))["status"] == "completed"
        assert await storage.load(active_pointer_key("therapist-1", "Alex")) is None

    @pytest.mark.asyncio
    async def test_abandon_session(self, notebook_manager, storage):
        notebook = await notebook_manager.create_or_restore("therapist-1")
        await notebook_manager.abandon_session()

        assert (await storage.load(notebook_key(notebook.id)))["status"] == "abandoned"
        with pytest.raises(NotebookTerminalError):
            notebook.add_message("user", "late")

    @pytest.mark.asyncio
    async def test_complete_without_notebook(self, notebook_manager):
        with pytest.raises(NoActiveNotebookError):
            await notebook_manager.complete_session()

    @pytest.mark.asyncio
    async def test_keep_alive_stopped_on_abandon(self, notebook_manager):
        await notebook_manager.create_or_restore("therapist-1")
        scheduler = KeepAliveScheduler()
        notebook_manager.attach_keep_alive(scheduler)
        assert scheduler.is_running

        await notebook_manager.abandon_session()
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_attach_keep_alive_needs_notebook(self, notebook_manager):
        with pytest.raises(NoActiveNotebookError):
            notebook_manager.attach_keep_alive(KeepAliveScheduler())


class Clock:
    def __init__(self):
        self.now = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
async def timed_manager(storage, clock):
    manager = NotebookManager(
        storage,
        config=NotebookConfig(autosave_delay_seconds=0.01),
        keep_alive=KeepAliveConfig(
            poll_interval_seconds=60,
            keep_alive_marks_seconds=[270, 570],
            warning_marks=[WarningMark(at_seconds=285, minutes_remaining=2)],
            max_session_minutes=15,
        ),
        clock=clock,
    )
    yield manager
    await manager.close()


class TestSessionLifecycle:
    @pytest.mark.asyncio
    async def test_scheduler_started_for_held_session(self, timed_manager):
        assert timed_manager.keep_alive is None
        await timed_manager.create_or_restore("therapist-1", "Alex")

        assert timed_manager.keep_alive.is_running
        assert timed_manager.keep_alives_sent == 0

    @pytest.mark.asyncio
    async def test_marks_counted_on_manager(self, timed_manager, clock):
        await timed_manager.create_or_restore("therapist-1", "Alex")

        clock.advance(290)
        await timed_manager.keep_alive.check()

        assert timed_manager.keep_alives_sent == 1
        assert timed_manager.minutes_remaining == 2

    @pytest.mark.asyncio
    async def test_time_limit_completes_session(self, timed_manager, clock, storage):
        notebook = await timed_manager.create_or_restore("therapist-1", "Alex")
        scheduler = timed_manager.keep_alive

        clock.advance(15 * 60)
        await scheduler.check()

        assert notebook.status == NotebookStatus.COMPLETED
        assert timed_manager.current is None
        assert timed_manager.keep_alive is None
        assert not scheduler.is_running
        assert await storage.load(active_pointer_key("therapist-1", "Alex")) is None

    @pytest.mark.asyncio
    async def test_new_session_resets_scheduler(self, timed_manager, clock):
        await timed_manager.create_or_restore("therapist-1", "Alex")
        first = timed_manager.keep_alive
        clock.advance(290)
        await first.check()

        await timed_manager.create_new("therapist-1", "Alex")

        assert not first.is_running
        assert timed_manager.keep_alive is not first
        assert timed_manager.keep_alives_sent == 0
        assert timed_manager.minutes_remaining is None

    @pytest.mark.asyncio
    async def test_stop_event_set_on_abandon(self, notebook_manager):
        assert notebook_manager.stop_event is None
        await notebook_manager.create_or_restore("therapist-1", "Alex")
        stop = notebook_manager.stop_event
        assert not stop.is_set()

        await notebook_manager.abandon_session()

        assert stop.is_set()
        assert notebook_manager.stop_event is None


class TestListing:
    @pytest.mark.asyncio
    async def test_list_notebooks_newest_first(self, notebook_manager):
        first = await notebook_manager.create_or_restore("therapist-1", "Alex")
        await asyncio.sleep(0.001)
        second = await notebook_manager.create_or_restore("therapist-1", "Blake")
        await asyncio.sleep(0.001)
        other = await notebook_manager.create_or_restore("therapist-2", "Casey")

        everything = await notebook_manager.list_notebooks()
        assert [s.id for s in everything] == [other.id, second.id, first.id]

        mine = await notebook_manager.list_notebooks("therapist-1")
        assert [s.id for s in mine] == [second.id, first.id]

"""Tests for SessionStore: registration, resolution, message log and cleanup."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from fincoach.core.config import RegistryConfig
from fincoach.core.exceptions import RetryCancelledError, StorageError
from fincoach.domain.models import SessionRegistryEntry, Speaker
from fincoach.persistence.session_store import LATEST_KEY, SessionStore
from fincoach.persistence.storage import FileStorageAdapter

FAST = RegistryConfig(resolve_max_retries=3, resolve_base_delay_seconds=0.001)


def entry(session_id="conv-1", notebook_id="nb-1"):
    return SessionRegistryEntry(
        session_id=session_id, therapist_id="therapist-1", notebook_id=notebook_id
    )


class TestRegistration:
    @pytest.mark.asyncio
    async def test_register_writes_own_key_and_latest(self, session_store, storage):
        await session_store.register_session(entry())

        assert (await storage.load("sessions/conv-1"))["sessionId"] == "conv-1"
        assert (await storage.load(LATEST_KEY))["notebookId"] == "nb-1"

    @pytest.mark.asyncio
    async def test_latest_visible_to_another_instance(self, storage):
        first = SessionStore(storage, config=FAST)
        second = SessionStore(storage, config=FAST)

        await first.register_session(entry("conv-9"))
        latest = await second.get_latest_session()

        assert latest is not None
        assert latest.session_id == "conv-9"

    @pytest.mark.asyncio
    async def test_latest_is_last_writer(self, session_store):
        await session_store.register_session(entry("a"))
        await session_store.register_session(entry("b"))
        assert (await session_store.get_latest_session()).session_id == "b"

    @pytest.mark.asyncio
    async def test_cache_miss_reloads_from_storage(self, storage):
        await SessionStore(storage, config=FAST).register_session(entry())
        fresh = SessionStore(storage, config=FAST)
        found = await fresh.get_session("conv-1")
        assert found is not None
        assert found.notebook_id == "nb-1"

    @pytest.mark.asyncio
    async def test_unknown_session(self, session_store):
        assert await session_store.get_session("nope") is None


class TestResolveWithRetry:
    @pytest.mark.asyncio
    async def test_returns_value_on_third_attempt(self, session_store):
        value = entry()
        session_store.get_latest_session = AsyncMock(side_effect=[None, None, value])

        resolved = await session_store.resolve_session_with_retry(max_retries=5)

        assert resolved == value
        assert session_store.get_latest_session.await_count == 3

    @pytest.mark.asyncio
    async def test_returns_none_when_nothing_registered(self, session_store):
        assert await session_store.resolve_session_with_retry() is None

    @pytest.mark.asyncio
    async def test_transient_storage_error_retried(self, session_store):
        value = entry()
        session_store.get_latest_session = AsyncMock(side_effect=[StorageError("busy"), value])
        assert await session_store.resolve_session_with_retry() == value

    @pytest.mark.asyncio
    async def test_storage_error_on_last_attempt_raised(self, session_store):
        session_store.get_latest_session = AsyncMock(side_effect=StorageError("down"))
        with pytest.raises(StorageError):
            await session_store.resolve_session_with_retry(max_retries=2)

    @pytest.mark.asyncio
    async def test_stop_event_aborts_wait(self, storage):
        store = SessionStore(
            storage, config=RegistryConfig(resolve_max_retries=3, resolve_base_delay_seconds=10)
        )
        stop = asyncio.Event()
        stop.set()
        with pytest.raises(RetryCancelledError):
            await store.resolve_session_with_retry(stop_event=stop)


class TestActivityAndMessages:
    @pytest.mark.asyncio
    async def test_touch_updates_last_activity(self, storage):
        now = {"t": datetime(2026, 1, 1, tzinfo=timezone.utc)}
        store = SessionStore(storage, config=FAST, clock=lambda: now["t"])
        await store.register_session(entry())

        now["t"] += timedelta(minutes=5)
        touched = await store.touch("conv-1")

        assert touched.last_activity == now["t"]
        latest = await store.get_latest_session()
        assert latest.last_activity == now["t"]

    @pytest.mark.asyncio
    async def test_touch_unknown_session(self, session_store):
        assert await session_store.touch("missing") is None

    @pytest.mark.asyncio
    async def test_message_log(self, session_store):
        await session_store.add_message("conv-1", "I make 50k a year")
        await session_store.add_message("conv-1", "Rent is 900", Speaker.USER)

        messages = await session_store.get_messages("conv-1")
        assert [m.text for m in messages] == ["I make 50k a year", "Rent is 900"]
        assert await session_store.get_messages("other") == []


class TestCleanup:
    @pytest.mark.asyncio
    async def test_removes_inactive_sessions(self, storage):
        now = {"t": datetime(2026, 1, 1, tzinfo=timezone.utc)}
        store = SessionStore(storage, config=FAST, clock=lambda: now["t"])

        await store.register_session(entry("old").model_copy(update={"last_activity": now["t"]}))
        await store.add_message("old", "hello")
        now["t"] += timedelta(minutes=90)
        await store.register_session(entry("new").model_copy(update={"last_activity": now["t"]}))

        removed = await store.cleanup(older_than_minutes=60)

        assert removed == 1
        assert await store.get_session("old") is None
        assert await storage.load("messages/old") is None
        assert (await store.get_latest_session()).session_id == "new"

    @pytest.mark.asyncio
    async def test_clears_latest_pointing_at_expired_session(self, storage):
        now = {"t": datetime(2026, 1, 1, tzinfo=timezone.utc)}
        store = SessionStore(storage, config=FAST, clock=lambda: now["t"])
        await store.register_session(entry("only").model_copy(update={"last_activity": now["t"]}))

        now["t"] += timedelta(hours=2)
        await store.cleanup()

        assert await store.get_latest_session() is None

    @pytest.mark.asyncio
    async def test_cleanup_task_lifecycle(self, storage):
        store = SessionStore(storage, config=RegistryConfig(cleanup_interval_seconds=0.01))
        store.start_cleanup_task()
        await asyncio.sleep(0.03)
        await store.shutdown()
        assert store._cleanup_task is None

    @pytest.mark.asyncio
    async def test_cleanup_loop_survives_unexpected_error(self, storage):
        store = SessionStore(storage, config=RegistryConfig(cleanup_interval_seconds=0.001))
        store.cleanup = AsyncMock(side_effect=[RuntimeError("boom")] + [0] * 1000)
        store.start_cleanup_task()

        for _ in range(100):
            await asyncio.sleep(0.005)
            if store.cleanup.await_count >= 2:
                break

        assert store.cleanup.await_count >= 2
        assert not store._cleanup_task.done()
        await store.shutdown()

    @pytest.mark.asyncio
    async def test_shutdown_collects_dead_cleanup_task(self, storage):
        store = SessionStore(storage)

        async def died():
            raise RuntimeError("boom")

        store._cleanup_task = asyncio.get_running_loop().create_task(died())
        await asyncio.sleep(0)

        await store.shutdown()
        assert store._cleanup_task is None

    @pytest.mark.asyncio
    async def test_registry_survives_restart_on_disk(self, tmp_path):
        store = SessionStore(FileStorageAdapter(tmp_path), config=FAST)
        await store.register_session(entry())
        await store.shutdown()

        restarted = SessionStore(FileStorageAdapter(tmp_path), config=FAST)
        resolved = await restarted.resolve_session_with_retry()
        assert resolved.session_id == "conv-1"

"""
Keep-alive and session-limit scheduler for the external voice session.

Polls on a fixed interval while a session runs. Keep-alive callbacks fire
as the elapsed time crosses each keep-alive mark (set just before the
provider's idle cutoffs), warning callbacks fire at the warning marks, and
once the maximum session length is reached the timeout callback fires and
the scheduler stops itself.

The polling task belongs to the session that started it: stop() cancels it
deterministically, there is no flag check inside a detached timer.
"""

import asyncio
import inspect
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import structlog

from fincoach.core.config import KeepAliveConfig, coaching_config

log = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class KeepAliveScheduler:
    """Fires keep-alive, warning and timeout callbacks at elapsed-time marks.

    Callbacks may be plain functions or coroutine functions.
    """

    def __init__(
        self,
        on_keep_alive: Optional[Callable[[], Any]] = None,
        on_warning: Optional[Callable[[int], Any]] = None,
        on_timeout: Optional[Callable[[], Any]] = None,
        config: Optional[KeepAliveConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.on_keep_alive = on_keep_alive
        self.on_warning = on_warning
        self.on_timeout = on_timeout
        self.config = config or coaching_config.keep_alive
        self._clock = clock
        self._session_start: Optional[datetime] = None
        self._last_elapsed = 0.0
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._session_start is not None

    def start(self, session_start: Optional[datetime] = None) -> None:
        """Begin polling. Must be called from within a running event loop."""
        self.stop()
        self._session_start = session_start or self._clock()
        # Marks already behind us when we start are not replayed
        self._last_elapsed = self.elapsed_seconds()
        self._task = asyncio.get_running_loop().create_task(self._run())

        log.info(
            "keep_alive_started",
            session_start=self._session_start.isoformat(),
            poll_interval=self.config.poll_interval_seconds,
            max_session_minutes=self.config.max_session_minutes,
        )

    def stop(self) -> None:
        """Stop polling and forget the session start."""
        task = self._task
        self._task = None
        if self._session_start is not None:
            log.info("keep_alive_stopped", duration=self.session_duration())
        self._session_start = None

        if task is not None and not task.done():
            try:
                current = asyncio.current_task()
            except RuntimeError:
                current = None
            if task is not current:
                task.cancel()

    def elapsed_seconds(self) -> float:
        if self._session_start is None:
            return 0.0
        return max(0.0, (self._clock() - self._session_start).total_seconds())

    def session_duration(self) -> str:
        """Elapsed session time as MM:SS."""
        elapsed = int(self.elapsed_seconds())
        minutes, seconds = divmod(elapsed, 60)
        return f"{minutes:02d}:{seconds:02d}"

    async def check(self) -> None:
        """Run a single poll: fire any marks crossed since the last one."""
        if self._session_start is None:
            return

        elapsed = self.elapsed_seconds()
        previous = self._last_elapsed
        self._last_elapsed = elapsed
        minutes, seconds = divmod(int(elapsed), 60)

        for mark in self.config.keep_alive_marks_seconds:
            if previous < mark <= elapsed:
                log.info("keep_alive_sent", minutes=minutes, seconds=seconds)
                await self._fire(self.on_keep_alive)

        for warning in self.config.warning_marks:
            if previous < warning.at_seconds <= elapsed:
                log.info(
                    "session_limit_warning",
                    minutes=minutes,
                    seconds=seconds,
                    minutes_remaining=warning.minutes_remaining,
                )
                await self._fire(self.on_warning, warning.minutes_remaining)

        if elapsed >= self.config.max_session_minutes * 60:
            log.info(
                "session_timeout_reached",
                max_session_minutes=self.config.max_session_minutes,
            )
            await self._fire(self.on_timeout)
            self.stop()

    async def _run(self) -> None:
        while self._session_start is not None:
            await asyncio.sleep(self.config.poll_interval_seconds)
            await self.check()

    async def _fire(self, callback: Optional[Callable[..., Any]], *args: Any) -> None:
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            log.error(
                "keep_alive_callback_failed",
                callback=getattr(callback, "__name__", repr(callback)),
                error=str(e),
                exc_info=e,
            )

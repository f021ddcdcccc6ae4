"""Recording timer: keeps ``RecordingState.duration`` ticking while recording."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable

from kyr.domains.rights.models import RecordingState
from kyr.domains.rights.state.actions import SetRecordingState
from kyr.domains.rights.state.store import AppStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecordingTimer:
    """Tick-based duration counter over the store's recording state.

    The duration is derived from a monotonic clock, so missed ticks never
    lose time. Stopping freezes it; the reset to inactive happens when the
    encounter ends.
    """

    def __init__(
        self,
        store: AppStore,
        *,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._clock = clock
        self._wall_clock = wall_clock
        self._started_at: float | None = None
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._started_at is not None

    def start(self) -> RecordingState:
        """Begin recording from zero. A no-op while already recording."""
        if self._started_at is not None:
            return self._store.state.recording_state
        self._started_at = self._clock()
        state = RecordingState(is_recording=True, start_time=self._wall_clock(), duration=0)
        self._store.dispatch(SetRecordingState(state))
        logger.info("Recording started")
        return state

    def _elapsed(self) -> int:
        assert self._started_at is not None
        return max(0, int(self._clock() - self._started_at))

    def tick(self) -> int:
        """Publish the elapsed whole seconds; returns the current duration."""
        current = self._store.state.recording_state
        if self._started_at is None:
            return current.duration
        elapsed = self._elapsed()
        if elapsed != current.duration:
            self._store.dispatch(SetRecordingState(replace(current, duration=elapsed)))
        return elapsed

    async def run(self, interval: float = 1.0) -> None:
        """Tick every ``interval`` seconds until stopped."""
        while self._started_at is not None:
            await asyncio.sleep(interval)
            self.tick()

    def start_ticking(self, interval: float = 1.0) -> asyncio.Task:
        """Start recording and schedule :meth:`run` on the running loop."""
        self.start()
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.run(interval))
        return self._task

    def stop(self, audio_url: str | None = None) -> RecordingState:
        """Freeze the duration and mark recording stopped."""
        current = self._store.state.recording_state
        if self._started_at is None:
            return current
        duration = self._elapsed()
        self._started_at = None
        if self._task is not None:
            self._task.cancel()
            self._task = None
        state = RecordingState(
            is_recording=False,
            start_time=current.start_time,
            duration=duration,
            audio_url=audio_url,
        )
        self._store.dispatch(SetRecordingState(state))
        logger.info("Recording stopped after %ds", duration)
        return state

    def reset(self) -> None:
        """Forget timing without touching the store (the store is reset elsewhere)."""
        self._started_at = None
        if self._task is not None:
            self._task.cancel()
            self._task = None

"""
Time sources for the orchestration layer.

Everything that reads time or sleeps goes through a Clock so that replays
with deterministic stages produce identical contexts.
"""

import asyncio
import time
from datetime import datetime, timedelta, timezone


class Clock:
    """Wall clock plus monotonic timer backed by the real event loop."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


class ManualClock(Clock):
    """
    Clock that only moves when told to.

    `sleep` advances the clock instead of waiting, and yields once to the
    event loop so other tasks still get scheduled.
    """

    def __init__(self, start: datetime = datetime(2025, 1, 1, tzinfo=timezone.utc)):
        self._start = start
        self._offset = 0.0

    def now(self) -> datetime:
        return self._start + timedelta(seconds=self._offset)

    def monotonic(self) -> float:
        return self._offset

    def advance(self, seconds: float) -> None:
        self._offset += seconds

    async def sleep(self, seconds: float) -> None:
        self.advance(seconds)
        await asyncio.sleep(0)

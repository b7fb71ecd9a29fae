"""Timer scheduling used by the refresh, poll and toast loops."""

import asyncio
import inspect
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Protocol, TypeAlias

import structlog

from fixmate_client.utils import now

logger = structlog.get_logger(__name__)

TimerCallback: TypeAlias = Callable[[], Awaitable[None] | None]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(ABC):
    """Source of time and delayed callbacks."""

    @abstractmethod
    def now(self) -> datetime:
        """Current time (UTC)."""

    @abstractmethod
    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        """Run callback after delay seconds; async callbacks are awaited."""


class AsyncioScheduler(Scheduler):
    """Scheduler backed by the running event loop."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[None]] = set()

    def now(self) -> datetime:
        return now()

    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        loop = asyncio.get_running_loop()
        return loop.call_later(max(delay, 0), self._run, callback)

    def _run(self, callback: TimerCallback) -> None:
        result = callback()
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)


@dataclass
class _ManualTimer:
    due: datetime
    seq: int
    callback: TimerCallback
    cancelled: bool = field(default=False)

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(Scheduler):
    """Fake clock: time only moves when advance() is awaited.

    Due timers fire in (due time, arm order); async callbacks are awaited
    before the next timer fires, so a test observes a deterministic sequence.
    """

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2024, 1, 1, tzinfo=UTC)
        self._timers: list[_ManualTimer] = []
        self._seq = 0

    def now(self) -> datetime:
        return self._now

    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        self._seq += 1
        timer = _ManualTimer(due=self._now + timedelta(seconds=max(delay, 0)), seq=self._seq, callback=callback)
        self._timers.append(timer)
        return timer

    @property
    def pending(self) -> int:
        """Number of armed, uncancelled timers."""
        return sum(1 for timer in self._timers if not timer.cancelled)

    async def advance(self, seconds: float) -> None:
        target = self._now + timedelta(seconds=seconds)
        while True:
            self._timers = [timer for timer in self._timers if not timer.cancelled]
            due = [timer for timer in self._timers if timer.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.due, t.seq))
            self._timers.remove(timer)
            self._now = max(self._now, timer.due)
            result = timer.callback()
            if inspect.isawaitable(result):
                await result
        self._now = target


class RecurringTimer:
    """Runs an async tick every interval seconds without overlapping ticks.

    The next tick is armed only after the previous one settles, so a slow tick
    delays the cadence instead of running concurrently with its successor.
    """

    def __init__(self, scheduler: Scheduler, interval: float, tick: Callable[[], Awaitable[None]], name: str) -> None:
        self._scheduler = scheduler
        self._interval = interval
        self._tick = tick
        self._name = name
        self._handle: TimerHandle | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        self._running = True
        self._arm()

    def cancel(self) -> None:
        self._running = False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _arm(self) -> None:
        self._handle = self._scheduler.call_later(self._interval, self._fire)

    async def _fire(self) -> None:
        self._handle = None
        if not self._running:
            return
        try:
            await self._tick()
        except Exception:
            logger.exception("recurring_tick_failed", timer=self._name)
        if self._running:
            self._arm()

from __future__ import annotations

import asyncio
import itertools
import time
from typing import Callable, List, Optional, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...

    def cancelled(self) -> bool:
        ...


class Scheduler:
    """
    Clock and timer source shared by the orchestrator and the status projector.
    Callbacks are plain functions invoked on the event loop; cancelling a handle
    that already fired or was already cancelled is always safe.
    """

    def now(self) -> float:
        """Wall clock in epoch seconds."""
        raise NotImplementedError

    def now_ms(self) -> int:
        return int(self.now() * 1000)

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        raise NotImplementedError

    def call_every(self, interval: float, callback: Callable[[], None]) -> TimerHandle:
        raise NotImplementedError


class RepeatingTimer:
    """
    Fixed-interval timer on top of `loop.call_later`. The next firing is
    scheduled before the callback runs so a callback may cancel its own timer.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, interval: float, callback: Callable[[], None]):
        self.interval = interval
        self._loop = loop
        self._callback = callback
        self._cancelled = False
        self._handle = loop.call_later(interval, self._run)

    def _run(self) -> None:
        if self._cancelled:
            return
        self._handle = self._loop.call_later(self.interval, self._run)
        self._callback()

    def cancel(self) -> None:
        self._cancelled = True
        self._handle.cancel()

    def cancelled(self) -> bool:
        return self._cancelled


class AsyncioScheduler(Scheduler):
    """
    Production scheduler backed by the running asyncio loop.
    """

    def __init__(
        self,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._loop = loop
        self._clock = clock

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def now(self) -> float:
        return self._clock()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return self._get_loop().call_later(max(0.0, delay), callback)

    def call_every(self, interval: float, callback: Callable[[], None]) -> TimerHandle:
        if interval <= 0:
            raise ValueError("interval must be positive")
        return RepeatingTimer(self._get_loop(), interval, callback)


class ManualTimer:
    def __init__(
        self,
        when: float,
        seq: int,
        callback: Callable[[], None],
        delay: float,
        interval: Optional[float] = None,
    ):
        self.when = when
        self.seq = seq
        self.callback = callback
        self.delay = delay
        self.interval = interval
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler(Scheduler):
    """
    Deterministic scheduler for tests and dry runs. Time only moves when
    `advance()` is called; due timers fire in (due time, creation) order.
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._timers: List[ManualTimer] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualTimer:
        delay = max(0.0, delay)
        timer = ManualTimer(self._now + delay, next(self._seq), callback, delay=delay)
        self._timers.append(timer)
        return timer

    def call_every(self, interval: float, callback: Callable[[], None]) -> ManualTimer:
        if interval <= 0:
            raise ValueError("interval must be positive")
        timer = ManualTimer(self._now + interval, next(self._seq), callback, delay=interval, interval=interval)
        self._timers.append(timer)
        return timer

    def pending(self) -> List[ManualTimer]:
        return [t for t in self._timers if not t.cancelled()]

    def advance(self, seconds: float) -> None:
        target = self._now + seconds
        while True:
            due = [t for t in self._timers if not t.cancelled() and t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.when, t.seq))
            self._now = timer.when
            if timer.interval is None:
                self._timers.remove(timer)
            else:
                timer.when += timer.interval
            timer.callback()
        self._now = target
        self._timers = self.pending()

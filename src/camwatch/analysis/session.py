"""Session state for one camera's analysis pipeline.

All timer callbacks for a session are routed through the session's event queue so
the supervisor processes frames, process exits and timers strictly in arrival order.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from camwatch.analysis.clock import Clock, TimerHandle
from camwatch.analysis.frame_pipeline import Frame, FrameDecoder
from camwatch.analysis.motion import MotionDetector
from camwatch.analysis.process import ProcessExit, ProcessHandle
from camwatch.analysis.state_machine import MotionEventStateMachine
from camwatch.analysis.watchdog import WatchdogTimer


@dataclass(frozen=True, slots=True)
class FrameArrived:
    frame: Frame


@dataclass(frozen=True, slots=True)
class ProcessExited:
    result: ProcessExit


@dataclass(frozen=True, slots=True)
class TimerFired:
    callback: Callable[[], None]
    timer: QueuedTimer


SessionEvent = FrameArrived | ProcessExited | TimerFired


class QueuedTimer:
    """Timer whose callback is delivered as a `TimerFired` event."""

    __slots__ = ("cancelled", "_inner", "_owner")

    def __init__(self, owner: SessionClock | None = None) -> None:
        self.cancelled = False
        self._inner: TimerHandle | None = None
        self._owner = owner

    def cancel(self) -> None:
        self.cancelled = True
        if self._inner is not None:
            self._inner.cancel()
            self._inner = None
        if self._owner is not None:
            self._owner._forget(self)
            self._owner = None


class SessionClock:
    """Clock view that posts timer callbacks into a session queue."""

    def __init__(self, base: Clock, events: asyncio.Queue[SessionEvent]) -> None:
        self._base = base
        self._events = events
        self._closed = False
        self._timers: set[QueuedTimer] = set()

    @property
    def closed(self) -> bool:
        return self._closed

    def now(self) -> float:
        return self._base.now()

    def wall_now(self) -> datetime:
        return self._base.wall_now()

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> QueuedTimer:
        if self._closed:
            timer = QueuedTimer()
            timer.cancelled = True
            return timer
        timer = QueuedTimer(self)
        self._timers.add(timer)
        timer._inner = self._base.call_later(delay_s, lambda: self._post(timer, callback))
        return timer

    def close(self) -> None:
        """Cancel every pending timer and refuse new ones."""
        self._closed = True
        for timer in list(self._timers):
            timer.cancel()
        self._timers.clear()

    @property
    def armed_timers(self) -> int:
        """Number of armed timers that have neither fired nor been cancelled."""
        return len(self._timers)

    def _forget(self, timer: QueuedTimer) -> None:
        self._timers.discard(timer)

    def _post(self, timer: QueuedTimer, callback: Callable[[], None]) -> None:
        self._forget(timer)
        timer._owner = None
        if self._closed or timer.cancelled:
            return
        self._events.put_nowait(TimerFired(callback=callback, timer=timer))


@dataclass(eq=False, slots=True)
class Session:
    """Live pipeline handles for one camera; owned by its supervisor."""

    session_id: int
    handle: ProcessHandle
    decoder: FrameDecoder
    detector: MotionDetector
    motion: MotionEventStateMachine
    watchdog: WatchdogTimer
    clock: SessionClock
    events: asyncio.Queue[SessionEvent]
    shared_buffer: bool
    active: bool = False
    tasks: list[asyncio.Task[None]] = field(default_factory=list, repr=False)


@dataclass(frozen=True, slots=True)
class Idle:
    pass


@dataclass(frozen=True, slots=True, eq=False)
class Starting:
    pass


@dataclass(frozen=True, slots=True)
class Active:
    session: Session


@dataclass(frozen=True, slots=True)
class Stopping:
    session: Session


SessionState = Idle | Starting | Active | Stopping

"""Debounce raw diff triggers into motion start/end events."""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum

from camwatch.analysis.clock import Clock, TimerHandle
from camwatch.analysis.regions import MotionTimings
from camwatch.models.enums import MotionEndReason
from camwatch.models.motion import DiffTrigger, MotionEndCause, MotionEvent

logger = logging.getLogger(__name__)


class MotionState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"


class MotionEventStateMachine:
    """Two-state debouncer driven by triggers and two timers.

    - Idle -> Active on the first trigger: emits motion start, arms the dwell
      timer and, when the ceiling is positive, the force-close timer.
    - Active -> Active on further triggers: re-arms the dwell timer only.
    - Active -> Idle when the dwell or force-close timer fires, or on `stop()`.
    """

    def __init__(
        self,
        *,
        clock: Clock,
        timings: MotionTimings,
        emit: Callable[[MotionEvent], None],
        camera_name: str = "-",
    ) -> None:
        self._clock = clock
        self._timings = timings
        self._emit = emit
        self._camera_name = camera_name
        self._state = MotionState.IDLE
        self._dwell_timer: TimerHandle | None = None
        self._force_close_timer: TimerHandle | None = None
        self._dwell_generation = 0
        self._force_close_generation = 0

    @property
    def state(self) -> MotionState:
        return self._state

    @property
    def active(self) -> bool:
        return self._state is MotionState.ACTIVE

    @property
    def timings(self) -> MotionTimings:
        return self._timings

    def update_timings(self, timings: MotionTimings) -> None:
        """Apply new timings; running timers keep their original deadline."""
        self._timings = timings

    def on_triggers(self, triggers: list[DiffTrigger]) -> None:
        if not triggers:
            return

        enriched = [
            trigger.model_copy(
                update={
                    "dwell": self._timings.dwell_s,
                    "force_close": self._timings.force_close_s / 60.0,
                }
            )
            for trigger in triggers
        ]

        if self._state is MotionState.IDLE:
            self._state = MotionState.ACTIVE
            self._emit(MotionEvent(state=True, cause=enriched))
            if self._timings.force_close_s > 0:
                self._arm_force_close()
        else:
            logger.debug(
                "New motion detected, resetting motion in %ss",
                self._timings.dwell_s,
                extra={"camera_name": self._camera_name},
            )

        self._arm_dwell()

    def stop(self) -> None:
        """Close an active motion event with reason `killed`."""
        if self._state is MotionState.ACTIVE:
            self._close(MotionEndReason.KILLED)
        else:
            self._cancel_timers()

    def _arm_dwell(self) -> None:
        if self._dwell_timer is not None:
            self._dwell_timer.cancel()
        self._dwell_generation += 1
        generation = self._dwell_generation
        self._dwell_timer = self._clock.call_later(
            self._timings.dwell_s, lambda: self._on_dwell_elapsed(generation)
        )

    def _arm_force_close(self) -> None:
        if self._force_close_timer is not None:
            self._force_close_timer.cancel()
        self._force_close_generation += 1
        generation = self._force_close_generation
        self._force_close_timer = self._clock.call_later(
            self._timings.force_close_s, lambda: self._on_force_close(generation)
        )

    def _on_dwell_elapsed(self, generation: int) -> None:
        if generation != self._dwell_generation or self._state is not MotionState.ACTIVE:
            return
        self._close(MotionEndReason.DWELL_TIMEOUT)

    def _on_force_close(self, generation: int) -> None:
        if generation != self._force_close_generation or self._state is not MotionState.ACTIVE:
            return
        self._close(MotionEndReason.FORCE_CLOSE)

    def _cancel_timers(self) -> None:
        if self._dwell_timer is not None:
            self._dwell_timer.cancel()
            self._dwell_timer = None
        if self._force_close_timer is not None:
            self._force_close_timer.cancel()
            self._force_close_timer = None
        # Invalidate callbacks that were already queued.
        self._dwell_generation += 1
        self._force_close_generation += 1

    def _close(self, reason: MotionEndReason) -> None:
        self._cancel_timers()
        self._state = MotionState.IDLE
        self._emit(
            MotionEvent(
                state=False,
                cause=MotionEndCause(time=self._clock.wall_now(), reason=reason),
            )
        )

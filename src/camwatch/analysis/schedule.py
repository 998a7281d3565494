"""Daily maintenance restart of a camera's analysis session."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from camwatch.analysis.clock import Clock, TimerHandle

logger = logging.getLogger(__name__)


def _parse_time_of_day(value: str) -> tuple[int, int]:
    hour_text, minute_text = value.split(":", 1)
    return int(hour_text), int(minute_text)


def seconds_until(now: datetime, at: str) -> float:
    """Seconds from `now` to the next occurrence of wall-clock `at` (HH:MM)."""
    hour, minute = _parse_time_of_day(at)
    target = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


class ScheduledRestart:
    """One-shot timer firing at the next occurrence of a wall-clock time."""

    def __init__(
        self,
        *,
        clock: Clock,
        at: str,
        on_fire: Callable[[], None],
        camera_name: str = "-",
    ) -> None:
        self._clock = clock
        self._at = at
        self._on_fire = on_fire
        self._camera_name = camera_name
        self._timer: TimerHandle | None = None

    @property
    def scheduled(self) -> bool:
        return self._timer is not None

    def schedule(self, *, shared_buffer: bool) -> float | None:
        """Arm the timer; returns the delay or None when skipped."""
        self.cancel()
        if shared_buffer:
            return None

        delay_s = seconds_until(self._clock.wall_now(), self._at)
        logger.debug(
            "Videoanalysis scheduled for restart at %s: %d minutes",
            self._at,
            round(delay_s / 60),
            extra={"camera_name": self._camera_name},
        )
        self._timer = self._clock.call_later(delay_s, self._fire)
        return delay_s

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self) -> None:
        self._timer = None
        logger.info(
            "Scheduled restart of videoanalysis is executed...",
            extra={"camera_name": self._camera_name},
        )
        self._on_fire()

from __future__ import annotations

from camwatch.analysis.clock import Clock


class DetectionThrottle:
    """Allows at most one classification per cool-down window.

    Requests inside the window are dropped, not queued.
    """

    def __init__(self, *, clock: Clock, cooldown_s: float) -> None:
        self._clock = clock
        self._cooldown_s = float(cooldown_s)
        self._last_allowed: float | None = None

    def try_acquire(self) -> bool:
        now = self._clock.now()
        if self._last_allowed is not None and now - self._last_allowed <= self._cooldown_s:
            return False
        self._last_allowed = now
        return True

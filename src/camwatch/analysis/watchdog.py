from __future__ import annotations

from collections.abc import Callable

from camwatch.analysis.clock import Clock, TimerHandle


class WatchdogTimer:
    """Fires `on_timeout` when `reset()` is not called within `timeout_s`."""

    def __init__(self, *, clock: Clock, timeout_s: float, on_timeout: Callable[[], None]) -> None:
        self._clock = clock
        self._timeout_s = float(timeout_s)
        self._on_timeout = on_timeout
        self._timer: TimerHandle | None = None
        self._generation = 0

    @property
    def armed(self) -> bool:
        return self._timer is not None

    def reset(self) -> None:
        self.cancel()
        generation = self._generation
        self._timer = self._clock.call_later(self._timeout_s, lambda: self._fire(generation))

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._generation += 1

    def _fire(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._timer = None
        self._on_timeout()

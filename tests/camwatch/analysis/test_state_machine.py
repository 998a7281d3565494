"""Tests for motion debouncing."""

from __future__ import annotations

from camwatch.analysis.regions import MotionTimings
from camwatch.analysis.state_machine import MotionEventStateMachine, MotionState
from camwatch.models.enums import MotionEndReason
from camwatch.models.motion import DiffTrigger, MotionEndCause, MotionEvent
from tests.camwatch.mocks import FakeClock


def _trigger(zone: str = "region0", percent: float = 42.0) -> list[DiffTrigger]:
    return [DiffTrigger(zone=zone, percent=percent, sensitivity=59)]


def _machine(
    clock: FakeClock, *, dwell_s: float = 60.0, force_close_s: float = 180.0
) -> tuple[MotionEventStateMachine, list[MotionEvent]]:
    events: list[MotionEvent] = []
    machine = MotionEventStateMachine(
        clock=clock,
        timings=MotionTimings(dwell_s=dwell_s, force_close_s=force_close_s),
        emit=events.append,
    )
    return machine, events


def test_first_trigger_emits_motion_start_with_enriched_cause(clock: FakeClock) -> None:
    # Given an idle machine
    machine, events = _machine(clock, dwell_s=30.0, force_close_s=120.0)

    # When the first trigger arrives
    machine.on_triggers(_trigger())

    # Then one motion start is emitted carrying dwell and force-close minutes
    assert machine.state is MotionState.ACTIVE
    assert len(events) == 1
    assert events[0].state is True
    cause = events[0].cause
    assert isinstance(cause, list)
    assert cause[0].zone == "region0"
    assert cause[0].dwell == 30.0
    assert cause[0].force_close == 2.0


def test_dwell_elapses_once_after_last_trigger(clock: FakeClock) -> None:
    # Given dwell of 5s and triggers every second for 4 seconds
    machine, events = _machine(clock, dwell_s=5.0)
    started = clock.wall_now()
    for _ in range(5):
        machine.on_triggers(_trigger())
        clock.advance(1.0)
    last_trigger_at = 4.0

    # When time runs on with no further triggers
    clock.advance(3.0)
    assert len(events) == 1
    clock.advance(20.0)

    # Then exactly one motion end arrives, 5s after the last trigger
    assert [e.state for e in events] == [True, False]
    end = events[1].cause
    assert isinstance(end, MotionEndCause)
    assert end.reason is MotionEndReason.DWELL_TIMEOUT
    assert (end.time - started).total_seconds() == last_trigger_at + 5.0


def test_force_close_ends_continuous_motion(clock: FakeClock) -> None:
    # Given force-close of one minute and a trigger every second
    machine, events = _machine(clock, dwell_s=30.0, force_close_s=60.0)
    started = clock.wall_now()

    # When triggers keep arriving for two minutes
    for _ in range(120):
        machine.on_triggers(_trigger())
        clock.advance(1.0)

    # Then the first event is force-closed at 60s and a new one starts
    ends = [e for e in events if e.state is False]
    assert isinstance(ends[0].cause, MotionEndCause)
    assert ends[0].cause.reason is MotionEndReason.FORCE_CLOSE
    assert (ends[0].cause.time - started).total_seconds() == 60.0
    assert events[0].state is True
    assert events[1].state is False
    assert events[2].state is True


def test_force_close_disabled_when_zero(clock: FakeClock) -> None:
    machine, events = _machine(clock, dwell_s=30.0, force_close_s=0.0)

    for _ in range(300):
        machine.on_triggers(_trigger())
        clock.advance(1.0)

    assert [e.state for e in events] == [True]


def test_repeated_triggers_do_not_emit_again(clock: FakeClock) -> None:
    machine, events = _machine(clock)

    machine.on_triggers(_trigger())
    machine.on_triggers(_trigger())
    machine.on_triggers(_trigger(zone="other"))

    assert len(events) == 1


def test_empty_triggers_are_ignored(clock: FakeClock) -> None:
    machine, events = _machine(clock)

    machine.on_triggers([])

    assert events == []
    assert machine.state is MotionState.IDLE


def test_stop_while_active_emits_single_killed_end(clock: FakeClock) -> None:
    # Given an active motion event
    machine, events = _machine(clock, dwell_s=15.0)
    machine.on_triggers(_trigger())

    # When stopped and time advances past every timer
    machine.stop()
    machine.stop()
    clock.advance(1000.0)

    # Then only one killed end is emitted
    assert [e.state for e in events] == [True, False]
    end = events[1].cause
    assert isinstance(end, MotionEndCause)
    assert end.reason is MotionEndReason.KILLED


def test_stop_while_idle_emits_nothing(clock: FakeClock) -> None:
    machine, events = _machine(clock)

    machine.stop()

    assert events == []


def test_update_timings_applies_to_next_arm(clock: FakeClock) -> None:
    machine, events = _machine(clock, dwell_s=60.0)
    machine.update_timings(MotionTimings(dwell_s=20.0, force_close_s=0.0))

    machine.on_triggers(_trigger())
    clock.advance(20.0)

    assert [e.state for e in events] == [True, False]

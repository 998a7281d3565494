"""End-to-end tests for the per-camera analysis supervisor with fake processes."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from datetime import datetime
from typing import Any

import pytest
import pytest_asyncio

from camwatch.analysis.classifier import ClassifierAdapter
from camwatch.analysis.frame_pipeline import FrameDecoder
from camwatch.analysis.process import ProcessSupervisor
from camwatch.analysis.session import Active, Idle
from camwatch.analysis.supervisor import VideoAnalysisSupervisor
from camwatch.models.config import AnalysisConfig, CameraSessionConfig
from camwatch.models.detection import Prediction
from camwatch.models.enums import EventType, MotionEndReason, SessionStatus
from camwatch.models.events import DetectionsEvent, StatusChangedEvent
from camwatch.models.motion import MotionEndCause
from camwatch.models.settings import VideoAnalysisSettings, Zone
from tests.camwatch.mocks import (
    FakeClock,
    FakeSpawner,
    MockClassifier,
    MockMotionController,
    MockPrebufferSource,
    MockPublisher,
    MockSettingsStore,
    MockSnapshotProvider,
    MockSourceProbe,
)

FRAME_SIZE = FrameDecoder().frame_size

SupervisorFactory = Callable[..., VideoAnalysisSupervisor]


def _frame(value: int) -> bytes:
    return bytes([value]) * FRAME_SIZE


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.001)


async def settle(rounds: int = 50) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


def _statuses(publisher: MockPublisher) -> list[SessionStatus]:
    return [
        event.status
        for event in publisher.events
        if isinstance(event, StatusChangedEvent)
    ]


def _session(supervisor: VideoAnalysisSupervisor) -> Any:
    state = supervisor.state
    assert isinstance(state, Active)
    return state.session


@pytest_asyncio.fixture
async def make_supervisor(
    clock: FakeClock,
    spawner: FakeSpawner,
    publisher: MockPublisher,
    motion_controller: MockMotionController,
    settings_store: MockSettingsStore,
    camera: CameraSessionConfig,
) -> AsyncIterator[SupervisorFactory]:
    created: list[VideoAnalysisSupervisor] = []

    def factory(
        cam: CameraSessionConfig | None = None,
        *,
        analysis: AnalysisConfig | None = None,
        **overrides: Any,
    ) -> VideoAnalysisSupervisor:
        cam = cam or camera
        kwargs: dict[str, Any] = {
            "analysis": analysis or AnalysisConfig(),
            "settings_store": settings_store,
            "publisher": publisher,
            "motion_controller": motion_controller,
            "clock": clock,
            "processes": ProcessSupervisor(camera_name=cam.name, spawn=spawner),
        }
        kwargs.update(overrides)
        supervisor = VideoAnalysisSupervisor(cam, **kwargs)
        created.append(supervisor)
        return supervisor

    yield factory

    for supervisor in created:
        await supervisor.shutdown(timeout=1.0)


async def _start_motion(
    supervisor: VideoAnalysisSupervisor,
    spawner: FakeSpawner,
    motion_controller: MockMotionController,
) -> None:
    supervisor.finish_launching()
    await supervisor.start()
    spawner.last.feed_frame(_frame(0))
    spawner.last.feed_frame(_frame(255))
    await wait_until(lambda: len(motion_controller.calls) == 1)


class TestStartAndFrames:
    @pytest.mark.asyncio
    async def test_start_spawns_producer_for_analysis_source(
        self, make_supervisor: SupervisorFactory, spawner: FakeSpawner
    ) -> None:
        # Given a camera with a lower-resolution analysis source
        supervisor = make_supervisor()

        # When starting
        await supervisor.start()

        # Then the producer reads the sub source and emits raw frames
        assert len(spawner.calls) == 1
        cmd = spawner.calls[0]
        assert cmd[0] == "ffmpeg"
        assert "rtsp://user:pw@10.0.0.5:554/sub" in cmd
        assert cmd[-1] == "pipe:1"
        assert isinstance(supervisor.state, Active)
        assert supervisor.restart_scheduled is True

    @pytest.mark.asyncio
    async def test_first_frame_publishes_active_status(
        self,
        make_supervisor: SupervisorFactory,
        spawner: FakeSpawner,
        publisher: MockPublisher,
    ) -> None:
        supervisor = make_supervisor()
        await supervisor.start()

        spawner.last.feed_frame(_frame(10))
        spawner.last.feed_frame(_frame(10))
        await wait_until(lambda: _session(supervisor).decoder.frames_decoded == 2)
        await settle()

        assert _statuses(publisher) == [SessionStatus.ACTIVE]
        assert publisher.events[0].event_type == EventType.STATUS_CHANGED

    @pytest.mark.asyncio
    async def test_motion_gated_until_finish_launching(
        self,
        make_supervisor: SupervisorFactory,
        spawner: FakeSpawner,
        motion_controller: MockMotionController,
    ) -> None:
        # Given a supervisor that has not finished launching
        supervisor = make_supervisor()
        await supervisor.start()

        # When two different frames arrive
        spawner.last.feed_frame(_frame(0))
        spawner.last.feed_frame(_frame(255))
        await wait_until(lambda: _session(supervisor).decoder.frames_decoded == 2)
        await settle()

        # Then no motion is reported
        assert motion_controller.calls == []

    @pytest.mark.asyncio
    async def test_motion_start_notifies_controller(
        self,
        make_supervisor: SupervisorFactory,
        spawner: FakeSpawner,
        motion_controller: MockMotionController,
    ) -> None:
        supervisor = make_supervisor()

        await _start_motion(supervisor, spawner, motion_controller)

        call = motion_controller.calls[0]
        assert call.source == "videoanalysis"
        assert call.camera == "front"
        assert call.state is True
        assert call.cause[0].zone == "region0"
        assert call.cause[0].percent > 0

    @pytest.mark.asyncio
    async def test_spawn_failure_leaves_supervisor_idle(
        self, make_supervisor: SupervisorFactory, camera: CameraSessionConfig
    ) -> None:
        supervisor = make_supervisor(
            processes=ProcessSupervisor(camera_name=camera.name, spawn=FakeSpawner(fail=True))
        )

        await supervisor.start()

        assert isinstance(supervisor.state, Idle)
        assert supervisor.restart_pending is False


class TestClassification:
    @pytest.mark.asyncio
    async def test_motion_start_publishes_detections(
        self,
        make_supervisor: SupervisorFactory,
        spawner: FakeSpawner,
        publisher: MockPublisher,
        motion_controller: MockMotionController,
        settings_store: MockSettingsStore,
    ) -> None:
        # Given classification enabled for the camera
        settings_store.set("front", classifier={"active": True, "labels": ["person"]})
        classifier = MockClassifier(
            [Prediction.model_validate({"class": "person", "score": 0.9, "bbox": [0, 0, 32, 24]})]
        )
        supervisor = make_supervisor(
            classifier=ClassifierAdapter(classifier, plugin_name="mock"),
            snapshots=MockSnapshotProvider(),
        )

        # When motion starts
        await _start_motion(supervisor, spawner, motion_controller)
        await wait_until(lambda: bool(publisher.of_type(EventType.DETECTIONS)))

        # Then normalized detections are published for the camera
        event = publisher.of_type(EventType.DETECTIONS)[0]
        assert isinstance(event, DetectionsEvent)
        assert event.camera == "front"
        assert event.detections[0].label == "person"
        assert event.detections[0].confidence == 90.0
        assert classifier.call_count == 1

    @pytest.mark.asyncio
    async def test_classifier_disabled_in_settings_is_skipped(
        self,
        make_supervisor: SupervisorFactory,
        spawner: FakeSpawner,
        motion_controller: MockMotionController,
    ) -> None:
        classifier = MockClassifier()
        snapshots = MockSnapshotProvider()
        supervisor = make_supervisor(
            classifier=ClassifierAdapter(classifier), snapshots=snapshots
        )

        await _start_motion(supervisor, spawner, motion_controller)
        await settle()

        assert snapshots.calls == 0
        assert classifier.call_count == 0

    @pytest.mark.asyncio
    async def test_second_motion_start_within_cooldown_is_throttled(
        self,
        make_supervisor: SupervisorFactory,
        spawner: FakeSpawner,
        clock: FakeClock,
        motion_controller: MockMotionController,
        settings_store: MockSettingsStore,
    ) -> None:
        # Given a 60s cool-down and a 15s dwell
        settings_store.set("front", videoanalysis={"dwellTimer": 15}, classifier={"active": True})
        classifier = MockClassifier()
        supervisor = make_supervisor(
            analysis=AnalysisConfig(detection_cooldown_s=60.0),
            classifier=ClassifierAdapter(classifier),
            snapshots=MockSnapshotProvider(),
        )
        await _start_motion(supervisor, spawner, motion_controller)
        await wait_until(lambda: classifier.call_count == 1)

        # When the motion ends and a new one starts 20s later
        session = _session(supervisor)
        for _ in range(4):
            clock.advance(5.0)
            decoded = session.decoder.frames_decoded
            spawner.last.feed_frame(_frame(255))
            await wait_until(lambda: session.decoder.frames_decoded == decoded + 1)
            await settle()
        await wait_until(lambda: len(motion_controller.calls) == 2)
        spawner.last.feed_frame(_frame(0))
        await wait_until(lambda: len(motion_controller.calls) == 3)
        await settle()

        # Then the classifier ran only once
        states = [call.state for call in motion_controller.calls]
        assert states == [True, False, True]
        assert motion_controller.calls[1].cause.reason is MotionEndReason.DWELL_TIMEOUT
        assert classifier.call_count == 1


class TestStopAndDestroy:
    @pytest.mark.asyncio
    async def test_stop_emits_one_killed_end_before_releasing_process(
        self,
        make_supervisor: SupervisorFactory,
        spawner: FakeSpawner,
        motion_controller: MockMotionController,
    ) -> None:
        # Given an active motion event
        supervisor = make_supervisor()
        await _start_motion(supervisor, spawner, motion_controller)
        session = _session(supervisor)
        process = spawner.last
        motion_active_at_kill: list[bool] = []
        original_kill = process.kill

        def _kill() -> None:
            motion_active_at_kill.append(session.motion.active)
            original_kill()

        process.kill = _kill  # type: ignore[method-assign]

        # When stopped
        supervisor.stop(killed=True)
        await wait_until(lambda: len(motion_controller.calls) == 2)

        # Then motion was closed with reason killed before the process was killed
        assert motion_active_at_kill == [False]
        end = motion_controller.calls[1]
        assert end.state is False
        assert isinstance(end.cause, MotionEndCause)
        assert end.cause.reason is MotionEndReason.KILLED
        assert isinstance(supervisor.state, Idle)

    @pytest.mark.asyncio
    async def test_no_events_after_stop(
        self,
        make_supervisor: SupervisorFactory,
        spawner: FakeSpawner,
        clock: FakeClock,
        publisher: MockPublisher,
        motion_controller: MockMotionController,
    ) -> None:
        # Given a stopped supervisor whose inactive status was delivered
        supervisor = make_supervisor()
        await _start_motion(supervisor, spawner, motion_controller)
        supervisor.stop(killed=True)
        await wait_until(lambda: _statuses(publisher) == [SessionStatus.ACTIVE, SessionStatus.INACTIVE])
        await wait_until(lambda: len(motion_controller.calls) == 2)
        published = len(publisher.events)

        # When simulated time runs for two days
        clock.advance(48 * 3600.0)
        await settle()

        # Then nothing else is published and no process is respawned
        assert len(publisher.events) == published
        assert len(motion_controller.calls) == 2
        assert len(spawner.processes) == 1
        assert supervisor.restart_pending is False

    @pytest.mark.asyncio
    async def test_stop_without_kill_flag_restarts_after_delay(
        self,
        make_supervisor: SupervisorFactory,
        spawner: FakeSpawner,
        clock: FakeClock,
    ) -> None:
        # Given a running session
        supervisor = make_supervisor()
        await supervisor.start()

        # When stopped with killed=False
        supervisor.stop(killed=False)

        # Then the producer is released and a restart is armed
        assert spawner.processes[0].killed is True
        assert isinstance(supervisor.state, Idle)
        assert supervisor.restart_pending is True

        # When the restart delay passes
        clock.advance(14.0)

        # Then a new producer is spawned
        await wait_until(lambda: len(spawner.processes) == 2)
        await wait_until(lambda: isinstance(supervisor.state, Active))

    @pytest.mark.asyncio
    async def test_daily_restart_replaces_producer(
        self,
        make_supervisor: SupervisorFactory,
        spawner: FakeSpawner,
    ) -> None:
        # Given a session started ten seconds before the 04:00 maintenance restart
        clock = FakeClock(wall_start=datetime(2024, 5, 1, 3, 59, 50))
        supervisor = make_supervisor(clock=clock)
        await supervisor.start()
        assert supervisor.restart_scheduled is True

        # When the clock passes 04:00
        clock.advance(10.0)

        # Then the running producer is killed and a restart is pending
        assert spawner.processes[0].killed is True
        assert supervisor.restart_pending is True
        assert supervisor.restart_scheduled is False

        # When the restart delay passes
        clock.advance(14.0)

        # Then a second producer runs and the next daily restart is armed
        await wait_until(lambda: len(spawner.processes) == 2)
        await wait_until(lambda: supervisor.restart_scheduled)
        assert spawner.processes[1].killed is False

    @pytest.mark.asyncio
    async def test_destroy_is_idempotent_and_prevents_start(
        self, make_supervisor: SupervisorFactory, spawner: FakeSpawner
    ) -> None:
        supervisor = make_supervisor()
        await supervisor.start()

        supervisor.destroy()
        supervisor.destroy()
        await supervisor.start()

        assert supervisor.destroyed is True
        assert spawner.processes[0].killed is True
        assert len(spawner.processes) == 1

    @pytest.mark.asyncio
    async def test_start_replaces_existing_session(
        self, make_supervisor: SupervisorFactory, spawner: FakeSpawner
    ) -> None:
        supervisor = make_supervisor()
        await supervisor.start()

        await supervisor.start()

        assert len(spawner.processes) == 2
        assert spawner.processes[0].killed is True
        assert spawner.processes[1].returncode is None


class TestRecovery:
    @pytest.mark.asyncio
    async def test_unexpected_exit_restarts_after_delay(
        self,
        make_supervisor: SupervisorFactory,
        spawner: FakeSpawner,
        clock: FakeClock,
    ) -> None:
        # Given a running session
        supervisor = make_supervisor()
        await supervisor.start()

        # When the producer dies on its own
        spawner.last.write_stderr("Connection refused")
        spawner.last.exit(1)
        await wait_until(lambda: supervisor.restart_pending)

        # Then a new producer is spawned after 14s, not before
        clock.advance(13.9)
        await settle()
        assert len(spawner.processes) == 1
        clock.advance(0.2)
        await wait_until(lambda: len(spawner.processes) == 2)

    @pytest.mark.asyncio
    async def test_watchdog_kills_stalled_producer_and_restarts(
        self,
        make_supervisor: SupervisorFactory,
        spawner: FakeSpawner,
        clock: FakeClock,
    ) -> None:
        supervisor = make_supervisor()
        await supervisor.start()

        clock.advance(15.0)
        await wait_until(lambda: supervisor.restart_pending)

        assert spawner.processes[0].killed is True
        clock.advance(14.0)
        await wait_until(lambda: len(spawner.processes) == 2)

    @pytest.mark.asyncio
    async def test_log_records_carry_session_id(
        self,
        make_supervisor: SupervisorFactory,
        clock: FakeClock,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        # Given a running first session
        supervisor = make_supervisor()
        await supervisor.start()

        # When the watchdog fires
        with caplog.at_level("ERROR", logger="camwatch.analysis.supervisor"):
            clock.advance(15.0)
            await wait_until(lambda: supervisor.restart_pending)

        # Then the timeout is logged against the camera and its session
        record = next(r for r in caplog.records if "timed out" in r.getMessage())
        assert getattr(record, "camera_name") == "front"
        assert getattr(record, "session_id") == "1"

    @pytest.mark.asyncio
    async def test_explicit_stop_suppresses_restart(
        self,
        make_supervisor: SupervisorFactory,
        spawner: FakeSpawner,
        clock: FakeClock,
    ) -> None:
        supervisor = make_supervisor()
        await supervisor.start()

        supervisor.stop(killed=True)
        await settle()
        clock.advance(120.0)
        await settle()

        assert len(spawner.processes) == 1
        assert supervisor.restart_pending is False

    @pytest.mark.asyncio
    async def test_unreachable_source_retries_after_a_minute(
        self,
        make_supervisor: SupervisorFactory,
        spawner: FakeSpawner,
        clock: FakeClock,
    ) -> None:
        # Given a probe reporting the camera unreachable
        probe = MockSourceProbe(reachable=False)
        supervisor = make_supervisor(probe=probe)

        # When starting
        await supervisor.start()

        # Then nothing is spawned and a retry is pending for 60s
        assert spawner.processes == []
        assert supervisor.restart_pending is True
        clock.advance(59.0)
        await settle()
        assert probe.calls == 1

        probe.reachable = True
        clock.advance(1.0)
        await wait_until(lambda: len(spawner.processes) == 1)

    @pytest.mark.asyncio
    async def test_probe_error_counts_as_reachable(
        self, make_supervisor: SupervisorFactory, spawner: FakeSpawner
    ) -> None:
        supervisor = make_supervisor(probe=MockSourceProbe(simulate_failure=True))

        await supervisor.start()

        assert len(spawner.processes) == 1


class TestSharedBuffer:
    @pytest.fixture
    def buffered_camera(self) -> CameraSessionConfig:
        return CameraSessionConfig(
            name="front",
            source="-i rtsp://10.0.0.5:554/main",
            map_video="0:0",
            prebuffering=True,
        )

    @pytest.mark.asyncio
    async def test_reads_from_buffer_and_skips_daily_restart(
        self,
        make_supervisor: SupervisorFactory,
        spawner: FakeSpawner,
        buffered_camera: CameraSessionConfig,
    ) -> None:
        prebuffer = MockPrebufferSource(["-i", "rtsp://127.0.0.1:8554/front"])
        supervisor = make_supervisor(buffered_camera, prebuffer=prebuffer)

        await supervisor.start()

        cmd = spawner.calls[0]
        assert "rtsp://127.0.0.1:8554/front" in cmd
        assert "-map" not in cmd
        assert supervisor.restart_scheduled is False

    @pytest.mark.asyncio
    async def test_buffer_not_ready_retries_after_ten_seconds(
        self,
        make_supervisor: SupervisorFactory,
        spawner: FakeSpawner,
        clock: FakeClock,
        buffered_camera: CameraSessionConfig,
    ) -> None:
        prebuffer = MockPrebufferSource(ready=False)
        supervisor = make_supervisor(buffered_camera, prebuffer=prebuffer)

        await supervisor.start()
        assert spawner.processes == []
        assert supervisor.restart_pending is True

        prebuffer.ready = True
        clock.advance(10.0)
        await wait_until(lambda: len(spawner.processes) == 1)


class TestReconfigure:
    @pytest.mark.asyncio
    async def test_video_change_restarts_session(
        self,
        make_supervisor: SupervisorFactory,
        spawner: FakeSpawner,
        camera: CameraSessionConfig,
    ) -> None:
        supervisor = make_supervisor()
        await supervisor.start()

        supervisor.reconfigure(camera.model_copy(update={"map_video": "0:1"}))

        assert supervisor.restart_pending is True
        assert spawner.processes[0].killed is True

    @pytest.mark.asyncio
    async def test_unrelated_change_keeps_session(
        self,
        make_supervisor: SupervisorFactory,
        spawner: FakeSpawner,
        camera: CameraSessionConfig,
    ) -> None:
        supervisor = make_supervisor()
        await supervisor.start()

        supervisor.reconfigure(camera.model_copy(update={"prebuffer_input": "-i rtsp://x"}))

        assert supervisor.restart_pending is False
        assert isinstance(supervisor.state, Active)

    @pytest.mark.asyncio
    async def test_change_settings_updates_live_regions(
        self, make_supervisor: SupervisorFactory
    ) -> None:
        supervisor = make_supervisor()
        await supervisor.start()

        supervisor.change_settings(
            VideoAnalysisSettings(
                regions=[Zone(name="porch", coords=[[0, 0], [50, 0], [50, 50]])],
                dwell_timer=20,
            )
        )

        session = _session(supervisor)
        assert [region.name for region in session.detector.regions] == ["porch"]
        assert session.motion.timings.dwell_s == 20.0

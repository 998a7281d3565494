"""Per-camera motion analysis supervisor.

Ties together the frame producer process, frame decoding, motion detection,
motion debouncing and throttled object classification for one camera.

Each live session runs three tasks: a frame reader, a process-exit watcher and an
actor that consumes the session's ordered event queue. Timers (watchdog, dwell,
force-close) are posted into the same queue, so all state transitions for a
camera are serialized. Outbound publications go through a per-camera outbox that
outlives sessions, so events emitted synchronously during `stop()` are delivered.
"""

from __future__ import annotations

import asyncio
import itertools
import logging

from camwatch.analysis.classifier import ClassifierAdapter
from camwatch.analysis.clock import Clock, SystemClock, TimerHandle
from camwatch.analysis.frame_pipeline import Frame, FrameDecoder, build_producer_args
from camwatch.analysis.motion import MotionDetector
from camwatch.analysis.process import ProcessExit, ProcessSupervisor
from camwatch.analysis.regions import MotionTimings, regions_from_settings
from camwatch.analysis.schedule import ScheduledRestart
from camwatch.analysis.session import (
    Active,
    FrameArrived,
    Idle,
    ProcessExited,
    Session,
    SessionClock,
    SessionEvent,
    SessionState,
    Starting,
    Stopping,
    TimerFired,
)
from camwatch.analysis.state_machine import MotionEventStateMachine
from camwatch.analysis.throttle import DetectionThrottle
from camwatch.analysis.utils import split_input_args
from camwatch.analysis.watchdog import WatchdogTimer
from camwatch.errors import SourceNotReadyError, SourceUnreachableError
from camwatch.interfaces import (
    EventPublisher,
    MotionController,
    PrebufferSource,
    SettingsStore,
    SnapshotProvider,
    SourceProbe,
)
from camwatch.models.config import AnalysisConfig, CameraSessionConfig
from camwatch.models.enums import SessionStatus
from camwatch.models.events import (
    CameraEvent,
    DetectionsEvent,
    MotionNotification,
    StatusChangedEvent,
)
from camwatch.models.motion import MotionEvent
from camwatch.models.settings import CameraSettings, VideoAnalysisSettings

logger = logging.getLogger(__name__)

MOTION_SOURCE = "videoanalysis"


class VideoAnalysisSupervisor:
    """Owns at most one live analysis session for a camera."""

    def __init__(
        self,
        camera: CameraSessionConfig,
        *,
        analysis: AnalysisConfig,
        settings_store: SettingsStore,
        publisher: EventPublisher | None = None,
        motion_controller: MotionController | None = None,
        classifier: ClassifierAdapter | None = None,
        snapshots: SnapshotProvider | None = None,
        prebuffer: PrebufferSource | None = None,
        probe: SourceProbe | None = None,
        clock: Clock | None = None,
        processes: ProcessSupervisor | None = None,
    ) -> None:
        self._camera = camera
        self._analysis = analysis
        self._settings_store = settings_store
        self._publisher = publisher
        self._motion_controller = motion_controller
        self._classifier = classifier
        self._snapshots = snapshots
        self._prebuffer = prebuffer
        self._probe = probe
        self._clock: Clock = clock or SystemClock()
        self._processes = processes or ProcessSupervisor(
            executable=analysis.ffmpeg_path,
            camera_name=camera.name,
        )

        self._state: SessionState = Idle()
        self._destroyed = False
        self._finish_launching = False
        self._status = SessionStatus.INACTIVE
        self._session_ids = itertools.count(1)

        self._throttle = DetectionThrottle(
            clock=self._clock, cooldown_s=analysis.detection_cooldown_s
        )
        self._scheduled_restart = ScheduledRestart(
            clock=self._clock,
            at=analysis.restart_at,
            on_fire=self.restart,
            camera_name=camera.name,
        )
        self._retry_timer: TimerHandle | None = None
        self._start_task: asyncio.Task[None] | None = None
        self._detection_tasks: set[asyncio.Task[None]] = set()

        self._outbox: asyncio.Queue[CameraEvent] = asyncio.Queue()
        self._outbox_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def camera_name(self) -> str:
        return self._camera.name

    @property
    def camera(self) -> CameraSessionConfig:
        return self._camera

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    @property
    def restart_pending(self) -> bool:
        return self._retry_timer is not None

    @property
    def restart_scheduled(self) -> bool:
        """Whether the daily maintenance restart is armed."""
        return self._scheduled_restart.scheduled

    def finish_launching(self) -> None:
        """Allow motion triggers; called once the host finished starting up."""
        if not self._finish_launching:
            logger.debug("Videoanalysis finished launching", extra=self._log_extra())
        self._finish_launching = True

    async def start(self) -> None:
        """Start a session, replacing any existing one."""
        if self._destroyed:
            return

        self.stop(killed=True)
        starting = Starting()
        self._state = starting

        try:
            input_args, shared_buffer = await self._resolve_input()
        except SourceNotReadyError:
            if self._state is starting:
                logger.debug(
                    "Can not start videoanalysis, prebuffer process not yet started, "
                    "retrying in %ss..",
                    self._analysis.prebuffer_retry_s,
                    extra=self._log_extra(),
                )
                self._state = Idle()
                self._schedule_start(self._analysis.prebuffer_retry_s)
            return
        except SourceUnreachableError:
            if self._state is starting:
                logger.warning(
                    "Can not start video analysis, camera not reachable. Trying again in %ss..",
                    self._analysis.unreachable_retry_s,
                    extra=self._log_extra(),
                )
                self._state = Idle()
                self._schedule_start(self._analysis.unreachable_retry_s)
            return

        if self._state is not starting or self._destroyed:
            return

        try:
            session = await self._open_session(input_args, shared_buffer=shared_buffer)
        except Exception as exc:
            logger.error(
                "An error occured during starting videoanalysis: %s",
                exc,
                exc_info=exc,
                extra=self._log_extra(),
            )
            if self._state is starting:
                self._state = Idle()
            return

        if self._state is not starting or self._destroyed:
            # Stopped while the process was spawning.
            self._processes.kill(session.handle)
            session.clock.close()
            return

        self._state = Active(session)
        self._launch_session_tasks(session)
        session.watchdog.reset()
        self._scheduled_restart.schedule(shared_buffer=shared_buffer)

    def stop(self, killed: bool = True) -> None:
        """Tear down the current session and cancel all pending timers.

        Synchronous: a motion event still open is closed with reason `killed`
        before the process is released. With `killed=False` the producer exit
        counts as unexpected and a restart follows after `restart_delay_s`.
        """
        self._cancel_retry()
        self._scheduled_restart.cancel()

        state = self._state
        if isinstance(state, Starting):
            self._state = Idle()
            return
        if not isinstance(state, Active):
            return

        session = state.session
        self._state = Stopping(session)

        session.watchdog.cancel()
        session.motion.stop()
        self._cancel_detections()
        session.clock.close()

        if session.active:
            session.active = False
        self._set_status(SessionStatus.INACTIVE)

        self._processes.kill(session.handle, expected=killed)
        for task in session.tasks:
            if task is not asyncio.current_task():
                task.cancel()

        self._state = Idle()
        if not killed and not self._destroyed:
            logger.info(
                "Videoanalysis session stopped without kill flag, restarting in %ss..",
                self._analysis.restart_delay_s,
                extra=self._log_extra(),
            )
            self._schedule_start(self._analysis.restart_delay_s)

    def restart(self) -> None:
        """Stop now and start again after the configured delay."""
        if self._destroyed:
            return
        logger.info("Restart videoanalysis session..", extra=self._log_extra())
        self.stop(killed=True)
        self._schedule_start(self._analysis.restart_delay_s)

    def reconfigure(self, camera: CameraSessionConfig) -> None:
        """Apply a new camera config; restarts only if the video source changed."""
        previous = self._camera
        self._camera = camera
        if previous.video_signature() != camera.video_signature() and isinstance(
            self._state, Active
        ):
            logger.info(
                "Videoanalysis: Video configuration changed! Restarting...",
                extra=self._log_extra(),
            )
            self.restart()

    def change_settings(self, settings: VideoAnalysisSettings) -> None:
        """Apply new zones and thresholds to the live session without restarting."""
        state = self._state
        if not isinstance(state, Active):
            return
        state.session.detector.set_regions(regions_from_settings(settings))
        state.session.motion.update_timings(MotionTimings.from_settings(settings))

    def destroy(self) -> None:
        """Stop permanently. Idempotent; later callbacks become no-ops."""
        if self._destroyed:
            return
        self._destroyed = True
        self.stop(killed=True)
        if self._start_task is not None and not self._start_task.done():
            self._start_task.cancel()
        self._start_task = None

    async def shutdown(self, timeout: float | None = None) -> None:
        """Destroy and flush pending publications."""
        self.destroy()
        task = self._outbox_task
        if task is None or task.done():
            return
        try:
            await asyncio.wait_for(self._outbox.join(), timeout=timeout or 5.0)
        except asyncio.TimeoutError:
            logger.warning("Timed out flushing camera events", extra=self._log_extra())
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self._outbox_task = None

    # ------------------------------------------------------------------
    # Session construction
    # ------------------------------------------------------------------

    async def _resolve_input(self) -> tuple[list[str], bool]:
        camera = self._camera
        if camera.uses_shared_buffer and self._prebuffer is not None:
            return await self._prebuffer.get_video_input(camera), True

        if self._probe is not None and not await self._probe_source():
            raise SourceUnreachableError(camera.name)
        return split_input_args(camera.analysis_source), False

    async def _probe_source(self) -> bool:
        assert self._probe is not None
        try:
            return await self._probe.is_reachable(self._camera)
        except Exception as exc:
            logger.info(
                "An error occured during pinging camera, skipping..: %s",
                exc,
                exc_info=exc,
                extra=self._log_extra(),
            )
            return True

    async def _open_session(self, input_args: list[str], *, shared_buffer: bool) -> Session:
        logger.debug("Start videoanalysis...", extra=self._log_extra())
        settings = await self._load_settings()
        video_settings = settings.videoanalysis

        args = build_producer_args(
            input_args,
            map_video=None if shared_buffer else self._camera.map_video,
        )
        handle = await self._processes.start(args)

        events: asyncio.Queue[SessionEvent] = asyncio.Queue()
        session_clock = SessionClock(self._clock, events)
        return Session(
            session_id=next(self._session_ids),
            handle=handle,
            decoder=FrameDecoder(),
            detector=MotionDetector(regions=regions_from_settings(video_settings)),
            motion=MotionEventStateMachine(
                clock=session_clock,
                timings=MotionTimings.from_settings(video_settings),
                emit=self._on_motion_event,
                camera_name=self._camera.name,
            ),
            watchdog=WatchdogTimer(
                clock=session_clock,
                timeout_s=self._analysis.frame_timeout_s,
                on_timeout=self._on_watchdog_timeout,
            ),
            clock=session_clock,
            events=events,
            shared_buffer=shared_buffer,
        )

    async def _load_settings(self) -> CameraSettings:
        try:
            settings = await self._settings_store.get_camera_settings(self._camera.name)
        except Exception as exc:
            logger.warning(
                "Failed to load camera settings, using defaults: %s",
                exc,
                exc_info=exc,
                extra=self._log_extra(),
            )
            settings = None
        return settings or CameraSettings(name=self._camera.name)

    def _launch_session_tasks(self, session: Session) -> None:
        session.tasks.extend(
            [
                asyncio.create_task(self._read_frames(session)),
                asyncio.create_task(self._watch_exit(session)),
                asyncio.create_task(self._run_session(session)),
            ]
        )

    # ------------------------------------------------------------------
    # Session tasks
    # ------------------------------------------------------------------

    async def _read_frames(self, session: Session) -> None:
        try:
            async for frame in session.decoder.frames(session.handle.stdout):
                if session.clock.closed:
                    return
                session.events.put_nowait(FrameArrived(frame))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error(
                "Error reading frames from producer: %s",
                exc,
                exc_info=exc,
                extra=self._log_extra(),
            )

    async def _watch_exit(self, session: Session) -> None:
        result = await self._processes.wait(session.handle)
        if not session.clock.closed:
            session.events.put_nowait(ProcessExited(result))

    async def _run_session(self, session: Session) -> None:
        while True:
            event = await session.events.get()
            if self._destroyed or not self._is_current(session):
                return
            try:
                match event:
                    case FrameArrived(frame=frame):
                        self._handle_frame(session, frame)
                    case ProcessExited(result=result):
                        self._handle_exit(session, result)
                    case TimerFired(callback=callback, timer=timer):
                        if not timer.cancelled:
                            callback()
            except Exception as exc:
                logger.error(
                    "Videoanalysis event handling failed: %s",
                    exc,
                    exc_info=exc,
                    extra=self._log_extra(),
                )
            if not self._is_current(session):
                return

    def _is_current(self, session: Session) -> bool:
        state = self._state
        return isinstance(state, Active) and state.session is session

    # ------------------------------------------------------------------
    # Event handlers (run inside the session actor)
    # ------------------------------------------------------------------

    def _handle_frame(self, session: Session, frame: Frame) -> None:
        session.watchdog.reset()
        session.active = True
        self._set_status(SessionStatus.ACTIVE)

        triggers = session.detector.detect(frame)
        if not triggers or not self._finish_launching:
            return
        session.motion.on_triggers(triggers)

    def _handle_exit(self, session: Session, result: ProcessExit) -> None:
        session.active = False
        session.watchdog.cancel()
        logger.debug("Videoanalysis process closed", extra=self._log_extra())
        self._set_status(SessionStatus.INACTIVE)

        if result.expected or self._destroyed:
            return
        self.restart()

    def _on_watchdog_timeout(self) -> None:
        state = self._state
        if self._destroyed or not isinstance(state, Active):
            return
        session = state.session
        logger.error(
            "Videoanalysis timed out... killing ffmpeg session", extra=self._log_extra()
        )
        self._processes.kill(session.handle, expected=False)
        session.active = False
        self._set_status(SessionStatus.INACTIVE)

    def _on_motion_event(self, event: MotionEvent) -> None:
        logger.info(
            "New message: Data: %s - Motion: %s",
            event.model_dump_json(include={"cause"}),
            "detected" if event.state else "resetted",
            extra=self._log_extra(),
        )
        self._enqueue(
            MotionNotification(
                camera=self._camera.name,
                source=MOTION_SOURCE,
                state=event.state,
                cause=event.cause,
            )
        )
        if event.state and not self._destroyed:
            self._start_detection()

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def _start_detection(self) -> None:
        if self._classifier is None or self._snapshots is None:
            return
        task = asyncio.create_task(self._run_detection())
        self._detection_tasks.add(task)
        task.add_done_callback(self._detection_tasks.discard)

    async def _run_detection(self) -> None:
        assert self._classifier is not None and self._snapshots is not None
        settings = await self._load_settings()
        if not settings.classifier.active:
            return
        if not self._throttle.try_acquire():
            logger.debug("Object detection throttled", extra=self._log_extra())
            return

        detections = await self._classifier.detect(
            self._camera, settings.classifier, self._snapshots
        )
        if detections and not self._destroyed:
            self._enqueue(DetectionsEvent(camera=self._camera.name, detections=detections))

    def _cancel_detections(self) -> None:
        for task in list(self._detection_tasks):
            task.cancel()
        self._detection_tasks.clear()

    # ------------------------------------------------------------------
    # Retry timers
    # ------------------------------------------------------------------

    def _schedule_start(self, delay_s: float) -> None:
        self._cancel_retry()
        if self._destroyed:
            return
        self._retry_timer = self._clock.call_later(delay_s, self._on_retry_timer)

    def _on_retry_timer(self) -> None:
        self._retry_timer = None
        if self._destroyed:
            return
        self._start_task = asyncio.create_task(self.start())

    def _cancel_retry(self) -> None:
        if self._retry_timer is not None:
            self._retry_timer.cancel()
            self._retry_timer = None

    # ------------------------------------------------------------------
    # Outbound events
    # ------------------------------------------------------------------

    def _set_status(self, status: SessionStatus) -> None:
        if status == self._status:
            return
        self._status = status
        self._enqueue(StatusChangedEvent(camera=self._camera.name, status=status))

    def _enqueue(self, event: CameraEvent) -> None:
        self._outbox.put_nowait(event)
        if self._outbox_task is None or self._outbox_task.done():
            self._outbox_task = asyncio.create_task(self._drain_outbox())

    async def _drain_outbox(self) -> None:
        while True:
            event = await self._outbox.get()
            try:
                await self._deliver(event)
            except Exception as exc:
                logger.error(
                    "Failed to deliver %s event: %s",
                    event.event_type,
                    exc,
                    exc_info=exc,
                    extra=self._log_extra(),
                )
            finally:
                self._outbox.task_done()

    async def _deliver(self, event: CameraEvent) -> None:
        if isinstance(event, MotionNotification):
            if self._motion_controller is not None:
                await self._motion_controller.notify_motion(
                    source=event.source,
                    camera=event.camera,
                    state=event.state,
                    cause=event.cause,
                )
            return
        if self._publisher is not None:
            await self._publisher.publish(event)

    def _log_extra(self) -> dict[str, str]:
        extra = {"camera_name": self._camera.name}
        state = self._state
        if isinstance(state, (Active, Stopping)):
            extra["session_id"] = str(state.session.session_id)
        return extra

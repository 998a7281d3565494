"""Main application that wires all components together."""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path
from typing import TYPE_CHECKING

from camwatch.analysis.classifier import ClassifierAdapter
from camwatch.analysis.supervisor import VideoAnalysisSupervisor
from camwatch.config import load_config
from camwatch.plugins.registry import PluginType, load_plugin
from camwatch.runtime.manager import VideoAnalysisManager
from camwatch.runtime.motion_controller import PublishingMotionController
from camwatch.settings_store import YamlSettingsStore
from camwatch.sources import ConfiguredPrebufferSource, FfmpegSnapshotProvider, TcpSourceProbe

if TYPE_CHECKING:
    from camwatch.interfaces import EventPublisher, ObjectClassifier
    from camwatch.models.config import CameraSessionConfig, Config

logger = logging.getLogger(__name__)


class Application:
    """Builds the per-camera supervisors and runs them until a shutdown signal."""

    def __init__(self, config_path: Path) -> None:
        self._config_path = config_path
        self._config: Config | None = None

        self._publisher: EventPublisher | None = None
        self._classifier: ObjectClassifier | None = None
        self._manager: VideoAnalysisManager | None = None

        self._shutdown_event = asyncio.Event()
        self._shutdown_started = False

    @property
    def manager(self) -> VideoAnalysisManager | None:
        return self._manager

    async def run(self) -> None:
        """Load config, start every camera and wait for a shutdown signal."""
        logger.info("Starting camwatch...")

        self._config = load_config(self._config_path)
        logger.info("Config loaded from %s", self._config_path)

        self._create_components(self._config)
        self._setup_signal_handlers()

        manager = self._require_manager()
        try:
            await manager.start_all(self._config.cameras)
            manager.finish_launching()
            logger.info("Videoanalysis running for %d camera(s)", len(manager.camera_names))

            await self._shutdown_event.wait()
        finally:
            await self.shutdown()

    def request_shutdown(self) -> None:
        self._shutdown_started = True
        self._shutdown_event.set()

    def _create_components(self, config: Config) -> None:
        self._publisher = load_plugin(
            PluginType.PUBLISHER, config.publisher.backend, config.publisher.config
        )

        adapter: ClassifierAdapter | None = None
        if config.classifier.enabled:
            self._classifier = load_plugin(
                PluginType.CLASSIFIER, config.classifier.backend, config.classifier.config
            )
            adapter = ClassifierAdapter(self._classifier, plugin_name=config.classifier.backend)

        settings_store = YamlSettingsStore(Path(config.settings_path))
        motion_controller = PublishingMotionController(self._publisher)
        snapshots = FfmpegSnapshotProvider(
            ffmpeg_path=config.analysis.ffmpeg_path,
            timeout_s=config.analysis.snapshot_timeout_s,
        )
        prebuffer = ConfiguredPrebufferSource()
        probe = TcpSourceProbe(timeout_s=config.analysis.probe_timeout_s)

        def build_supervisor(camera: CameraSessionConfig) -> VideoAnalysisSupervisor:
            return VideoAnalysisSupervisor(
                camera,
                analysis=config.analysis,
                settings_store=settings_store,
                publisher=self._publisher,
                motion_controller=motion_controller,
                classifier=adapter,
                snapshots=snapshots,
                prebuffer=prebuffer,
                probe=probe,
            )

        self._manager = VideoAnalysisManager(
            supervisor_factory=build_supervisor,
            settings_store=settings_store,
        )

    def _require_manager(self) -> VideoAnalysisManager:
        if self._manager is None:
            raise RuntimeError("Components not created")
        return self._manager

    def _setup_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._handle_signal, sig)

    def _handle_signal(self, sig: signal.Signals) -> None:
        if self._shutdown_started:
            logger.warning("Shutdown already in progress, ignoring signal")
            return

        logger.info("Received signal %s, initiating shutdown...", sig.name)
        self.request_shutdown()

    async def shutdown(self) -> None:
        """Graceful shutdown of all components."""
        logger.info("Shutting down camwatch...")

        if self._manager is not None:
            await self._manager.shutdown()
            self._manager = None

        if self._classifier is not None:
            await self._classifier.shutdown()
            self._classifier = None

        if self._publisher is not None:
            await self._publisher.shutdown()
            self._publisher = None

        logger.info("Shutdown complete")

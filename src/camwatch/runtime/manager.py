"""Multi-camera orchestration of analysis supervisors."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable

from camwatch.analysis.session import Idle
from camwatch.analysis.supervisor import VideoAnalysisSupervisor
from camwatch.interfaces import SettingsStore
from camwatch.models.config import CameraSessionConfig
from camwatch.models.settings import CameraSettings

logger = logging.getLogger(__name__)

SupervisorFactory = Callable[[CameraSessionConfig], VideoAnalysisSupervisor]


class VideoAnalysisManager:
    """Owns one supervisor per configured camera.

    Cameras whose settings disable video analysis keep an idle supervisor so a
    later settings change can start them.
    """

    def __init__(
        self,
        *,
        supervisor_factory: SupervisorFactory,
        settings_store: SettingsStore,
    ) -> None:
        self._factory = supervisor_factory
        self._settings_store = settings_store
        self._supervisors: dict[str, VideoAnalysisSupervisor] = {}
        self._launched = False

    @property
    def camera_names(self) -> list[str]:
        return list(self._supervisors)

    def get(self, camera_name: str) -> VideoAnalysisSupervisor | None:
        return self._supervisors.get(camera_name)

    async def start_all(self, cameras: Iterable[CameraSessionConfig]) -> None:
        """Create supervisors and start the cameras with analysis enabled."""
        for camera in cameras:
            await self._add(camera)

    def finish_launching(self) -> None:
        """Open the motion gate on every supervisor."""
        self._launched = True
        for supervisor in self._supervisors.values():
            supervisor.finish_launching()

    async def apply_cameras(self, cameras: Iterable[CameraSessionConfig]) -> None:
        """Reconcile supervisors with a new camera list.

        New cameras are added, missing ones destroyed and existing ones
        reconfigured (restarting only when their video source changed).
        """
        desired = {camera.name: camera for camera in cameras}

        for name in [name for name in self._supervisors if name not in desired]:
            supervisor = self._supervisors.pop(name)
            logger.info("Removing videoanalysis for camera", extra={"camera_name": name})
            await supervisor.shutdown()

        for name, camera in desired.items():
            existing = self._supervisors.get(name)
            if existing is None:
                await self._add(camera)
            else:
                existing.reconfigure(camera)

    async def change_settings(self, settings: CameraSettings) -> None:
        """Apply a camera's updated settings record."""
        supervisor = self._supervisors.get(settings.name)
        if supervisor is None:
            logger.warning(
                "Settings changed for unknown camera", extra={"camera_name": settings.name}
            )
            return

        if not settings.videoanalysis.active:
            supervisor.stop(killed=True)
            return

        if isinstance(supervisor.state, Idle) and not supervisor.restart_pending:
            await supervisor.start()
            return

        supervisor.change_settings(settings.videoanalysis)

    async def shutdown(self, timeout: float | None = None) -> None:
        supervisors = list(self._supervisors.values())
        self._supervisors.clear()
        if not supervisors:
            return
        results = await asyncio.gather(
            *(supervisor.shutdown(timeout) for supervisor in supervisors),
            return_exceptions=True,
        )
        for supervisor, result in zip(supervisors, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Videoanalysis shutdown failed: %s",
                    result,
                    exc_info=result,
                    extra={"camera_name": supervisor.camera_name},
                )

    async def _add(self, camera: CameraSessionConfig) -> None:
        supervisor = self._factory(camera)
        self._supervisors[camera.name] = supervisor
        if self._launched:
            supervisor.finish_launching()

        if not await self._analysis_enabled(camera.name):
            logger.debug("Videoanalysis disabled", extra={"camera_name": camera.name})
            return
        await supervisor.start()

    async def _analysis_enabled(self, camera_name: str) -> bool:
        try:
            settings = await self._settings_store.get_camera_settings(camera_name)
        except Exception as exc:
            logger.warning(
                "Failed to load camera settings: %s",
                exc,
                exc_info=exc,
                extra={"camera_name": camera_name},
            )
            return True
        return settings is None or settings.videoanalysis.active

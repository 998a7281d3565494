"""Interface definitions for camwatch collaborators."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from camwatch.models.config import CameraSessionConfig
    from camwatch.models.detection import ClassifierInput, Prediction
    from camwatch.models.events import CameraEvent
    from camwatch.models.motion import DiffTrigger, MotionEndCause
    from camwatch.models.settings import CameraSettings


class Shutdownable(ABC):
    """Async shutdown interface for managed components."""

    @abstractmethod
    async def shutdown(self, timeout: float | None = None) -> None:
        """Release resources and stop background work."""
        raise NotImplementedError


class ObjectClassifier(Shutdownable, ABC):
    """Object detection backend (local model or remote API).

    Must be safe to call concurrently from several cameras.
    """

    @abstractmethod
    async def classify(self, image: ClassifierInput) -> list[Prediction]:
        """Return raw predictions with pixel-space bboxes. Raises on failure."""
        raise NotImplementedError


class EventPublisher(Shutdownable, ABC):
    """Publishes camera events (status changes, detections, motion)."""

    @abstractmethod
    async def publish(self, event: CameraEvent) -> None:
        """Publish one event. Raises on failure."""
        raise NotImplementedError

    @abstractmethod
    async def ping(self) -> bool:
        """Health check. Returns True if the transport is reachable."""
        raise NotImplementedError


class MotionController(ABC):
    """Receives debounced motion state changes."""

    @abstractmethod
    async def notify_motion(
        self,
        *,
        source: str,
        camera: str,
        state: bool,
        cause: list[DiffTrigger] | MotionEndCause,
    ) -> None:
        """Handle a motion start (state=True) or end (state=False)."""
        raise NotImplementedError


class SettingsStore(ABC):
    """Read-only access to per-camera analysis settings."""

    @abstractmethod
    async def get_camera_settings(self, camera_name: str) -> CameraSettings | None:
        """Return settings for a camera, or None if the camera has no record."""
        raise NotImplementedError


class SnapshotProvider(ABC):
    """Fetches a fresh still image from a camera."""

    @abstractmethod
    async def snapshot(self, camera: CameraSessionConfig) -> bytes:
        """Return encoded image bytes (PNG or JPEG). Raises SnapshotError."""
        raise NotImplementedError


class PrebufferSource(ABC):
    """Shared upstream buffer that can feed the frame producer."""

    @abstractmethod
    async def get_video_input(self, camera: CameraSessionConfig) -> list[str]:
        """Return ffmpeg input arguments. Raises SourceNotReadyError."""
        raise NotImplementedError


class SourceProbe(ABC):
    """Checks whether a camera input source is reachable."""

    @abstractmethod
    async def is_reachable(self, camera: CameraSessionConfig) -> bool:
        """Return True when the source answers."""
        raise NotImplementedError

"""Shared upstream buffer described in the camera config."""

from __future__ import annotations

from camwatch.analysis.utils import split_input_args
from camwatch.errors import SourceNotReadyError
from camwatch.interfaces import PrebufferSource
from camwatch.models.config import CameraSessionConfig


class ConfiguredPrebufferSource(PrebufferSource):
    """Returns the camera's `prebuffer_input` once it is configured."""

    async def get_video_input(self, camera: CameraSessionConfig) -> list[str]:
        if not camera.prebuffer_input:
            raise SourceNotReadyError(camera.name)
        return split_input_args(camera.prebuffer_input)

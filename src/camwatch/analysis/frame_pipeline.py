"""Frame producer arguments and raw frame decoding."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

import numpy as np
import numpy.typing as npt

logger = logging.getLogger(__name__)

FRAME_WIDTH = 640
FRAME_HEIGHT = 360
FRAME_FPS = 2
FRAME_CHANNELS = 3
PIXEL_FORMAT = "rgb24"

Frame = npt.NDArray[np.uint8]


def build_producer_args(input_args: list[str], *, map_video: str | None = None) -> list[str]:
    """Build ffmpeg arguments that emit fixed-size rgb24 frames on stdout."""
    video_args = ["-an"]
    if map_video:
        video_args = ["-map", map_video, *video_args]

    return [
        "-hide_banner",
        "-loglevel",
        "error",
        *input_args,
        *video_args,
        "-pix_fmt",
        PIXEL_FORMAT,
        "-f",
        "rawvideo",
        "-vf",
        f"fps={FRAME_FPS},scale={FRAME_WIDTH}:{FRAME_HEIGHT}",
        "pipe:1",
    ]


class FrameDecoder:
    """Reconstructs discrete frames from the producer's continuous byte stream.

    The producer is forced to a fixed pixel format and resolution, so each frame
    is exactly `width * height * channels` bytes with no header.
    """

    def __init__(
        self,
        *,
        width: int = FRAME_WIDTH,
        height: int = FRAME_HEIGHT,
        channels: int = FRAME_CHANNELS,
    ) -> None:
        self.width = int(width)
        self.height = int(height)
        self.channels = int(channels)
        self.frames_decoded = 0

    @property
    def frame_size(self) -> int:
        return self.width * self.height * self.channels

    async def frames(self, stream: asyncio.StreamReader) -> AsyncIterator[Frame]:
        """Yield frames until the stream ends or a short read occurs."""
        frame_size = self.frame_size
        while True:
            try:
                raw = await stream.readexactly(frame_size)
            except asyncio.IncompleteReadError as exc:
                if exc.partial:
                    logger.debug(
                        "Discarding partial frame: got=%d expected=%d",
                        len(exc.partial),
                        frame_size,
                    )
                return

            self.frames_decoded += 1
            yield np.frombuffer(raw, dtype=np.uint8).reshape(
                self.height, self.width, self.channels
            )

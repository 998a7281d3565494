"""Single-frame snapshots through ffmpeg."""

from __future__ import annotations

import asyncio
import logging

from camwatch.analysis.utils import _format_cmd, split_input_args
from camwatch.errors import SnapshotError
from camwatch.interfaces import SnapshotProvider
from camwatch.models.config import CameraSessionConfig

logger = logging.getLogger(__name__)


def build_snapshot_args(input_args: list[str]) -> list[str]:
    return [
        "-hide_banner",
        "-loglevel",
        "error",
        *input_args,
        "-frames:v",
        "1",
        "-f",
        "image2",
        "-c:v",
        "mjpeg",
        "pipe:1",
    ]


class FfmpegSnapshotProvider(SnapshotProvider):
    """Grabs one JPEG frame from the camera's main source."""

    def __init__(self, *, ffmpeg_path: str = "ffmpeg", timeout_s: float = 10.0) -> None:
        self._ffmpeg_path = ffmpeg_path
        self._timeout_s = float(timeout_s)

    async def snapshot(self, camera: CameraSessionConfig) -> bytes:
        cmd = [self._ffmpeg_path, *build_snapshot_args(split_input_args(camera.source))]
        logger.debug("Snapshot command: %s", _format_cmd(cmd), extra={"camera_name": camera.name})

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise SnapshotError(camera.name, exc) from exc

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._timeout_s)
        except asyncio.TimeoutError as exc:
            proc.kill()
            await proc.wait()
            raise SnapshotError(
                camera.name, TimeoutError(f"Snapshot timed out after {self._timeout_s}s")
            ) from exc

        if proc.returncode != 0 or not stdout:
            detail = stderr.decode(errors="replace").strip() or f"rc={proc.returncode}"
            raise SnapshotError(camera.name, RuntimeError(detail))
        return stdout

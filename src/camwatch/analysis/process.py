"""Spawning, supervising and terminating the frame producer process."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from camwatch.analysis.utils import _format_cmd
from camwatch.errors import SpawnError

logger = logging.getLogger(__name__)

SpawnFn = Callable[..., Awaitable[Any]]

MAX_DIAGNOSTIC_LINES = 5


@dataclass(slots=True)
class ProcessHandle:
    """A running producer process and its captured diagnostics."""

    process: Any
    args: list[str]
    killed: bool = False
    diagnostics: deque[str] = field(default_factory=lambda: deque(maxlen=MAX_DIAGNOSTIC_LINES))
    stderr_task: asyncio.Task[None] | None = field(default=None, repr=False)

    @property
    def pid(self) -> int | None:
        return getattr(self.process, "pid", None)

    @property
    def returncode(self) -> int | None:
        return self.process.returncode

    @property
    def is_running(self) -> bool:
        return self.process.returncode is None

    @property
    def stdout(self) -> asyncio.StreamReader:
        return self.process.stdout


@dataclass(frozen=True, slots=True)
class ProcessExit:
    """Classified producer exit."""

    returncode: int | None
    expected: bool
    diagnostics: tuple[str, ...]

    @property
    def failed(self) -> bool:
        return bool(self.returncode) or bool(self.diagnostics)


class ProcessSupervisor:
    """Owns the lifecycle of producer processes for one camera.

    An exit is *expected* only when the process was killed with the explicit
    kill flag; anything else is unexpected and the caller decides on restart.
    """

    def __init__(
        self,
        *,
        executable: str = "ffmpeg",
        camera_name: str = "-",
        spawn: SpawnFn | None = None,
        stream_limit: int = 2**16,
    ) -> None:
        self._executable = executable
        self._camera_name = camera_name
        self._spawn: SpawnFn = spawn or asyncio.create_subprocess_exec
        self._stream_limit = int(stream_limit)

    async def start(self, args: list[str]) -> ProcessHandle:
        logger.debug(
            "Videoanalysis command: %s",
            _format_cmd([self._executable, *args]),
            extra={"camera_name": self._camera_name},
        )
        try:
            process = await self._spawn(
                self._executable,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=self._stream_limit,
            )
        except Exception as exc:
            raise SpawnError(self._camera_name, self._executable, exc) from exc

        handle = ProcessHandle(process=process, args=list(args))
        if getattr(process, "stderr", None) is not None:
            handle.stderr_task = asyncio.create_task(self._collect_diagnostics(handle))
        logger.debug(
            "Videoanalysis process started: pid=%s",
            handle.pid,
            extra={"camera_name": self._camera_name},
        )
        return handle

    def kill(self, handle: ProcessHandle, *, expected: bool = True) -> None:
        """SIGKILL the process; `expected=False` keeps the exit classified unexpected."""
        if expected:
            handle.killed = True
        if not handle.is_running:
            return
        try:
            handle.process.kill()
        except ProcessLookupError:
            return

    async def wait(self, handle: ProcessHandle) -> ProcessExit:
        returncode = await handle.process.wait()
        await self._drain_diagnostics(handle)
        result = self.classify(handle, returncode)
        self._log_exit(result)
        return result

    @staticmethod
    def classify(handle: ProcessHandle, returncode: int | None) -> ProcessExit:
        return ProcessExit(
            returncode=returncode,
            expected=handle.killed,
            diagnostics=tuple(handle.diagnostics),
        )

    def _log_exit(self, result: ProcessExit) -> None:
        extra = {"camera_name": self._camera_name}
        if result.expected:
            logger.debug("FFmpeg videoanalysis process exited (expected)", extra=extra)
        elif result.failed:
            lines = [f"FFmpeg videoanalysis process exited with error! (rc={result.returncode})"]
            lines.extend(result.diagnostics)
            logger.error(" - ".join(lines), extra=extra)
        else:
            logger.info(
                "FFmpeg videoanalysis process exited (rc=%s)", result.returncode, extra=extra
            )

    async def _collect_diagnostics(self, handle: ProcessHandle) -> None:
        stderr = handle.process.stderr
        while True:
            try:
                line = await stderr.readline()
            except ValueError:
                # Line longer than the stream limit; keep what we can.
                handle.diagnostics.append("<diagnostic line too long>")
                continue
            except Exception as exc:
                logger.warning(
                    "Failed reading producer stderr: %s",
                    exc,
                    exc_info=True,
                    extra={"camera_name": self._camera_name},
                )
                return
            if not line:
                return
            text = line.decode(errors="replace").replace("\r", " ").replace("\n", " ").strip()
            if text:
                handle.diagnostics.append(text)

    async def _drain_diagnostics(self, handle: ProcessHandle) -> None:
        task = handle.stderr_task
        if task is None or task.done():
            return
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=1.0)
        except asyncio.TimeoutError:
            task.cancel()

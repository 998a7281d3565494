"""TCP reachability probe for network camera inputs."""

from __future__ import annotations

import asyncio
import logging

from camwatch.analysis.utils import host_and_port, input_url, split_input_args
from camwatch.interfaces import SourceProbe
from camwatch.models.config import CameraSessionConfig

logger = logging.getLogger(__name__)


class TcpSourceProbe(SourceProbe):
    """Opens a TCP connection to the analysis input's host and port.

    Inputs that are not network URLs (files, devices) are reported reachable.
    """

    def __init__(self, *, timeout_s: float = 2.0) -> None:
        self._timeout_s = float(timeout_s)

    async def is_reachable(self, camera: CameraSessionConfig) -> bool:
        url = input_url(split_input_args(camera.analysis_source))
        endpoint = host_and_port(url) if url else None
        if endpoint is None:
            return True

        host, port = endpoint
        try:
            _reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), timeout=self._timeout_s
            )
        except (OSError, asyncio.TimeoutError) as exc:
            logger.debug(
                "Probe of %s:%d failed: %s",
                host,
                port,
                exc,
                extra={"camera_name": camera.name},
            )
            return False

        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True

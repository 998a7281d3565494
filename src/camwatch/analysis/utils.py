from __future__ import annotations

import logging
import shlex
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)


def _redact_url(url: str) -> str:
    if "://" not in url:
        return url
    scheme, rest = url.split("://", 1)
    if "@" not in rest:
        return url
    _creds, host = rest.split("@", 1)
    return f"{scheme}://***:***@{host}"


def _redact_args(args: list[str]) -> list[str]:
    return [_redact_url(str(arg)) for arg in args]


def _format_cmd(cmd: list[str]) -> str:
    try:
        return shlex.join([str(x) for x in _redact_args(cmd)])
    except Exception as exc:
        logger.warning("Failed to format command with shlex.join: %s", exc, exc_info=True)
        return " ".join([str(x) for x in _redact_args(cmd)])


def split_input_args(source: str) -> list[str]:
    """Split an ffmpeg input descriptor into arguments."""
    return source.split()


def input_url(args: list[str]) -> str | None:
    """Return the value following the last `-i` flag."""
    url: str | None = None
    for index, arg in enumerate(args[:-1]):
        if arg == "-i":
            url = args[index + 1]
    return url


def host_and_port(url: str) -> tuple[str, int] | None:
    """Extract a TCP endpoint from a network input URL."""
    default_ports = {"rtsp": 554, "rtsps": 322, "http": 80, "https": 443, "rtmp": 1935}
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return None
    scheme = parts.scheme.lower()
    if scheme not in default_ports or not parts.hostname:
        return None
    return parts.hostname, port or default_ports[scheme]

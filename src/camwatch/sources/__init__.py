"""Camera input helpers: snapshots, reachability probes and shared buffers."""

from camwatch.sources.prebuffer import ConfiguredPrebufferSource
from camwatch.sources.probe import TcpSourceProbe
from camwatch.sources.snapshot import FfmpegSnapshotProvider

__all__ = ["ConfiguredPrebufferSource", "FfmpegSnapshotProvider", "TcpSourceProbe"]

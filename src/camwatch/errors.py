"""Error hierarchy for camwatch analysis stages."""

from __future__ import annotations


class AnalysisError(Exception):
    """Base exception for all per-camera analysis errors.

    Compatible with error-as-value pattern: instances can be returned as values
    instead of raised. Preserves stack traces via exception chaining.
    """

    def __init__(
        self, message: str, stage: str, camera_name: str, cause: Exception | None = None
    ) -> None:
        super().__init__(message)
        self.stage = stage
        self.camera_name = camera_name
        self.cause = cause
        self.__cause__ = cause


class SpawnError(AnalysisError):
    """Frame producer process could not be started."""

    def __init__(self, camera_name: str, executable: str, cause: Exception) -> None:
        super().__init__(
            f"Failed to spawn {executable} for {camera_name}",
            stage="spawn",
            camera_name=camera_name,
            cause=cause,
        )
        self.executable = executable


class SourceNotReadyError(AnalysisError):
    """Shared upstream buffer has not produced an input yet."""

    def __init__(self, camera_name: str, cause: Exception | None = None) -> None:
        super().__init__(
            f"Prebuffer not ready for {camera_name}",
            stage="source",
            camera_name=camera_name,
            cause=cause,
        )


class SourceUnreachableError(AnalysisError):
    """Camera input source did not answer the reachability probe."""

    def __init__(self, camera_name: str, cause: Exception | None = None) -> None:
        super().__init__(
            f"Source unreachable for {camera_name}",
            stage="source",
            camera_name=camera_name,
            cause=cause,
        )


class SnapshotError(AnalysisError):
    """Snapshot fetch failed."""

    def __init__(self, camera_name: str, cause: Exception) -> None:
        super().__init__(
            f"Snapshot failed for {camera_name}",
            stage="snapshot",
            camera_name=camera_name,
            cause=cause,
        )


class ClassifierError(AnalysisError):
    """Object classification failed."""

    def __init__(self, camera_name: str, plugin_name: str, cause: Exception) -> None:
        super().__init__(
            f"Classification failed for {camera_name} (plugin: {plugin_name})",
            stage="classify",
            camera_name=camera_name,
            cause=cause,
        )
        self.plugin_name = plugin_name

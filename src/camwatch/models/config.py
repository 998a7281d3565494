"""Application configuration models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator


class CameraSessionConfig(BaseModel):
    """Video source description for one camera."""

    model_config = {"extra": "forbid"}

    name: str = Field(min_length=1)
    source: str = Field(
        min_length=1,
        description="ffmpeg input arguments, e.g. '-rtsp_transport tcp -i rtsp://host/stream'.",
    )
    sub_source: str | None = Field(
        default=None,
        description="Lower resolution input used for analysis (defaults to source).",
    )
    map_video: str | None = Field(
        default=None,
        description="ffmpeg -map selector for the video stream.",
    )
    prebuffering: bool = Field(
        default=False,
        description="Read frames from a shared upstream buffer when available.",
    )
    prebuffer_input: str | None = Field(
        default=None,
        description="ffmpeg input arguments exposed by the shared upstream buffer.",
    )

    @property
    def analysis_source(self) -> str:
        return self.sub_source or self.source

    @property
    def uses_shared_buffer(self) -> bool:
        return self.prebuffering and self.analysis_source == self.source

    def video_signature(self) -> tuple[str, str, str | None]:
        """Fields whose change requires restarting the analysis session."""
        return (self.source, self.analysis_source, self.map_video)


class AnalysisConfig(BaseModel):
    """Timing and producer settings shared by all cameras."""

    model_config = {"extra": "forbid"}

    ffmpeg_path: str = "ffmpeg"
    frame_timeout_s: float = Field(
        default=15.0,
        gt=0.0,
        description="Seconds without frames before the producer is killed.",
    )
    restart_delay_s: float = Field(
        default=14.0,
        ge=0.0,
        description="Delay before restarting after stop or unexpected exit.",
    )
    prebuffer_retry_s: float = Field(default=10.0, ge=0.0)
    unreachable_retry_s: float = Field(default=60.0, ge=0.0)
    detection_cooldown_s: float = Field(
        default=10.0,
        ge=0.0,
        description="Minimum seconds between classifier invocations per camera.",
    )
    restart_at: str = Field(
        default="04:00",
        description="Daily maintenance restart time (HH:MM, local time).",
    )
    probe_timeout_s: float = Field(default=2.0, gt=0.0)
    snapshot_timeout_s: float = Field(default=10.0, gt=0.0)

    @field_validator("restart_at")
    @classmethod
    def _validate_restart_at(cls, value: str) -> str:
        parts = value.split(":")
        if len(parts) != 2 or not all(part.isdigit() for part in parts):
            raise ValueError("restart_at must be HH:MM")
        hour, minute = int(parts[0]), int(parts[1])
        if not (0 <= hour <= 23 and 0 <= minute <= 59):
            raise ValueError("restart_at must be a valid time of day")
        return f"{hour:02d}:{minute:02d}"


class ClassifierConfig(BaseModel):
    """Classifier plugin configuration (plugin-specific fields in `config`)."""

    model_config = {"extra": "forbid"}

    enabled: bool = True
    backend: str = "yolo"
    config: dict[str, Any] | BaseModel = Field(default_factory=dict)

    @field_validator("backend", mode="before")
    @classmethod
    def _normalize_backend(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.lower()
        return value


class PublisherConfig(BaseModel):
    """Event publisher plugin configuration."""

    model_config = {"extra": "forbid"}

    backend: str = "log"
    config: dict[str, Any] | BaseModel = Field(default_factory=dict)

    @field_validator("backend", mode="before")
    @classmethod
    def _normalize_backend(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.lower()
        return value


class YoloClassifierConfig(BaseModel):
    """YOLO classifier backend settings."""

    model_config = {"extra": "forbid"}

    model_path: str = "yolov8n.pt"
    max_workers: int = Field(default=1, ge=1)
    min_score: float = Field(
        default=0.25,
        ge=0.0,
        le=1.0,
        description="Raw model score floor; per-camera confidence filtering happens later.",
    )
    image_size: int = Field(default=640, ge=32)


class LogPublisherConfig(BaseModel):
    """Log publisher settings."""

    model_config = {"extra": "forbid"}

    level: str = "INFO"


class MQTTAuthConfig(BaseModel):
    """MQTT auth configuration using env var names."""

    username_env: str | None = None
    password_env: str | None = None


class MQTTConfig(BaseModel):
    """MQTT publisher configuration."""

    host: str
    port: int = 1883
    auth: MQTTAuthConfig | None = None
    topic_template: str = "camwatch/{camera_name}/{event_type}"
    qos: int = 1
    retain: bool = False
    connection_timeout: float = 10.0


class Config(BaseModel):
    """Root configuration."""

    model_config = {"extra": "forbid"}

    cameras: list[CameraSessionConfig] = Field(min_length=1)
    settings_path: str = Field(
        default="./settings.yaml",
        description="YAML file holding per-camera analysis and classifier settings.",
    )
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    publisher: PublisherConfig = Field(default_factory=PublisherConfig)

    @model_validator(mode="after")
    def _unique_camera_names(self) -> Config:
        names = [camera.name for camera in self.cameras]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate camera names: {duplicates}")
        return self

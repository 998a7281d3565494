"""Data models for camwatch."""

from camwatch.models.config import (
    AnalysisConfig,
    CameraSessionConfig,
    ClassifierConfig,
    Config,
    LogPublisherConfig,
    MQTTAuthConfig,
    MQTTConfig,
    PublisherConfig,
    YoloClassifierConfig,
)
from camwatch.models.detection import BoundingBox, ClassifierInput, Detection, Prediction
from camwatch.models.enums import EventType, MotionEndReason, SessionStatus
from camwatch.models.events import (
    CameraEvent,
    DetectionsEvent,
    MotionNotification,
    PublishedEvent,
    StatusChangedEvent,
)
from camwatch.models.motion import DiffTrigger, MotionEndCause, MotionEvent, Region
from camwatch.models.settings import (
    CameraSettings,
    ClassifierSettings,
    VideoAnalysisSettings,
    Zone,
)

__all__ = [
    "AnalysisConfig",
    "BoundingBox",
    "CameraEvent",
    "CameraSessionConfig",
    "CameraSettings",
    "ClassifierConfig",
    "ClassifierInput",
    "ClassifierSettings",
    "Config",
    "Detection",
    "DetectionsEvent",
    "DiffTrigger",
    "EventType",
    "LogPublisherConfig",
    "MQTTAuthConfig",
    "MQTTConfig",
    "MotionEndCause",
    "MotionEndReason",
    "MotionEvent",
    "MotionNotification",
    "Prediction",
    "PublishedEvent",
    "PublisherConfig",
    "Region",
    "SessionStatus",
    "StatusChangedEvent",
    "VideoAnalysisSettings",
    "YoloClassifierConfig",
    "Zone",
]

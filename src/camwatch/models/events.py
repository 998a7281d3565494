"""Event models published per camera."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, Field

from camwatch.models.detection import Detection
from camwatch.models.enums import EventType, SessionStatus
from camwatch.models.motion import DiffTrigger, MotionEndCause


class CameraEvent(BaseModel):
    """Base class for all published camera events."""

    camera: str
    timestamp: datetime = Field(default_factory=datetime.now)
    event_type: str


class StatusChangedEvent(CameraEvent):
    """Frames started or stopped arriving for a camera."""

    event_type: Literal[EventType.STATUS_CHANGED] = EventType.STATUS_CHANGED
    status: SessionStatus


class DetectionsEvent(CameraEvent):
    """Classifier results for a motion start."""

    event_type: Literal[EventType.DETECTIONS] = EventType.DETECTIONS
    detections: list[Detection]


class MotionNotification(CameraEvent):
    """Motion state change forwarded to the motion controller."""

    event_type: Literal[EventType.MOTION] = EventType.MOTION
    source: str = "videoanalysis"
    state: bool
    cause: list[DiffTrigger] | MotionEndCause


PublishedEvent = Annotated[
    StatusChangedEvent | DetectionsEvent | MotionNotification,
    Field(discriminator="event_type"),
]

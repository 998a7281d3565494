"""Centralized enums for type safety and IDE support."""

from enum import StrEnum


class SessionStatus(StrEnum):
    """Frame flow status published on `status-changed`."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class MotionEndReason(StrEnum):
    """Why a motion event was closed."""

    DWELL_TIMEOUT = "dwell_timeout"
    FORCE_CLOSE = "force_close"
    KILLED = "killed"


class EventType(StrEnum):
    """Published camera event types."""

    STATUS_CHANGED = "status-changed"
    DETECTIONS = "detections"
    MOTION = "motion"

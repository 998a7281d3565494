"""Motion data models: regions, triggers and debounced events."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from camwatch.models.enums import MotionEndReason


class Region(BaseModel):
    """Pixel-space diff region derived from a zone."""

    model_config = {"frozen": True}

    name: str
    difference: int = Field(ge=0, le=255)
    percent: float = Field(ge=0.0, le=100.0)
    polygon: list[tuple[int, int]] = Field(min_length=3)


class DiffTrigger(BaseModel):
    """One region exceeding its changed-pixel threshold in one frame."""

    zone: str
    percent: float
    sensitivity: int | None = None
    dwell: float | None = None
    force_close: float | None = None


class MotionEndCause(BaseModel):
    """Why and when a motion event was closed."""

    time: datetime
    reason: MotionEndReason


class MotionEvent(BaseModel):
    """Debounced motion start (state=True) or end (state=False)."""

    state: bool
    cause: list[DiffTrigger] | MotionEndCause

"""Per-camera analysis settings as read from the external settings store.

Parsing never raises on user-authored values. Numeric fields that cannot be read as
numbers become ``None`` and are replaced with defaults when regions and timings are
derived.
"""

from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_LABELS = ["person"]
DEFAULT_MIN_CONFIDENCE = 80.0


def _coerce_number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


class Zone(BaseModel):
    """User-drawn polygon with coordinates normalized to 0..100."""

    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    coords: list[list[Any]] = Field(default_factory=list)

    @field_validator("coords", mode="before")
    @classmethod
    def _coerce_coords(cls, value: Any) -> Any:
        if not isinstance(value, (list, tuple)):
            return []
        return [list(point) for point in value if isinstance(point, (list, tuple))]


class VideoAnalysisSettings(BaseModel):
    """Motion settings for one camera."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    active: bool = True
    regions: list[Zone] = Field(default_factory=list)
    difference: float | None = None
    sensitivity: float | None = None
    dwell_timer: float | None = Field(default=None, alias="dwellTimer")
    force_close_timer: float | None = Field(default=None, alias="forceCloseTimer")

    @field_validator("regions", mode="before")
    @classmethod
    def _coerce_regions(cls, value: Any) -> Any:
        if not isinstance(value, (list, tuple)):
            return []
        return [zone for zone in value if isinstance(zone, (dict, Zone))]

    @field_validator(
        "difference", "sensitivity", "dwell_timer", "force_close_timer", mode="before"
    )
    @classmethod
    def _coerce_numeric(cls, value: Any) -> float | None:
        return _coerce_number(value)


class ClassifierSettings(BaseModel):
    """Per-camera object classification toggle and filters."""

    model_config = ConfigDict(extra="ignore")

    active: bool = False
    labels: list[str] = Field(default_factory=lambda: list(DEFAULT_LABELS))
    confidence: float = DEFAULT_MIN_CONFIDENCE

    @field_validator("labels", mode="before")
    @classmethod
    def _normalize_labels(cls, value: Any) -> list[str]:
        if isinstance(value, str):
            raw = value.split(",")
        elif isinstance(value, (list, tuple)):
            raw = list(value)
        else:
            raw = list(DEFAULT_LABELS)
        return [label for label in (str(item).strip().lower() for item in raw) if label]

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        number = _coerce_number(value)
        if number is None:
            number = DEFAULT_MIN_CONFIDENCE
        return min(100.0, max(0.0, number))


class CameraSettings(BaseModel):
    """Settings record for one camera."""

    model_config = ConfigDict(extra="ignore")

    name: str
    videoanalysis: VideoAnalysisSettings = Field(default_factory=VideoAnalysisSettings)
    classifier: ClassifierSettings = Field(default_factory=ClassifierSettings)

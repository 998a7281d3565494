"""Region construction and clamping of user-authored motion settings."""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from camwatch.analysis.frame_pipeline import FRAME_HEIGHT, FRAME_WIDTH
from camwatch.models.motion import Region
from camwatch.models.settings import VideoAnalysisSettings, Zone, _coerce_number

logger = logging.getLogger(__name__)

DEFAULT_DIFFERENCE = 5
DEFAULT_SENSITIVITY = 75.0
DEFAULT_DWELL_S = 60.0
DEFAULT_FORCE_CLOSE_MIN = 3.0

DIFFERENCE_RANGE = (0, 255)
SENSITIVITY_RANGE = (0.0, 100.0)
DWELL_RANGE_S = (15.0, 180.0)
FORCE_CLOSE_RANGE_MIN = (0.0, 10.0)

DEFAULT_ZONE = Zone(
    name="region0",
    coords=[[0, 100], [0, 0], [100, 0], [100, 100]],
)


def _within(value: Any, bounds: tuple[float, float], default: float) -> float:
    number = _coerce_number(value)
    if number is None:
        return default
    low, high = bounds
    if number < low or number > high:
        return default
    return number


def clamp_difference(value: Any) -> int:
    return int(_within(value, DIFFERENCE_RANGE, DEFAULT_DIFFERENCE))


def clamp_sensitivity(value: Any) -> float:
    return _within(value, SENSITIVITY_RANGE, DEFAULT_SENSITIVITY)


def clamp_dwell(value: Any) -> float:
    return _within(value, DWELL_RANGE_S, DEFAULT_DWELL_S)


def clamp_force_close(value: Any) -> float:
    """Force-close ceiling in minutes (0 disables it)."""
    return _within(value, FORCE_CLOSE_RANGE_MIN, DEFAULT_FORCE_CLOSE_MIN)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _to_pixel(coord: Sequence[Any], width: int, height: int) -> tuple[int, int] | None:
    if len(coord) < 2:
        return None
    x = _coerce_number(coord[0])
    y = _coerce_number(coord[1])
    if x is None or y is None:
        return None
    x = min(100.0, max(0.0, x))
    y = min(100.0, max(0.0, y))
    return _round_half_up(width / 100 * x), _round_half_up(height / 100 * y)


def _zone_to_region(
    zone: Zone,
    index: int,
    *,
    difference: int,
    percent: float,
    width: int,
    height: int,
) -> Region | None:
    if len(zone.coords) <= 2:
        return None
    polygon = [
        point for point in (_to_pixel(coord, width, height) for coord in zone.coords) if point
    ]
    if len(polygon) <= 2:
        return None
    return Region(
        name=zone.name or f"region{index}",
        difference=difference,
        percent=percent,
        polygon=polygon,
    )


def create_regions(
    zones: Sequence[Zone] | None,
    *,
    sensitivity: Any,
    difference: Any,
    width: int = FRAME_WIDTH,
    height: int = FRAME_HEIGHT,
) -> list[Region]:
    """Convert normalized zones to pixel regions.

    Never returns an empty list: when no zone survives validation, a single
    full-frame region is used.
    """
    diff = clamp_difference(difference)
    sens = clamp_sensitivity(sensitivity)
    percent = 100.0 - sens

    candidates = list(zones) if zones else [DEFAULT_ZONE]
    regions = [
        region
        for index, zone in enumerate(candidates)
        if (
            region := _zone_to_region(
                zone, index, difference=diff, percent=percent, width=width, height=height
            )
        )
        is not None
    ]
    if not regions:
        fallback = _zone_to_region(
            DEFAULT_ZONE, 0, difference=diff, percent=percent, width=width, height=height
        )
        assert fallback is not None
        regions = [fallback]

    logger.debug(
        "Regions built: difference=%s sensitivity=%s zones=%s",
        diff,
        sens,
        [region.name for region in regions],
    )
    return regions


@dataclass(frozen=True, slots=True)
class MotionTimings:
    """Debounce timings in seconds."""

    dwell_s: float
    force_close_s: float

    @classmethod
    def from_settings(cls, settings: VideoAnalysisSettings) -> MotionTimings:
        return cls(
            dwell_s=clamp_dwell(settings.dwell_timer),
            force_close_s=clamp_force_close(settings.force_close_timer) * 60.0,
        )


def regions_from_settings(
    settings: VideoAnalysisSettings,
    *,
    width: int = FRAME_WIDTH,
    height: int = FRAME_HEIGHT,
) -> list[Region]:
    return create_regions(
        settings.regions,
        sensitivity=settings.sensitivity,
        difference=settings.difference,
        width=width,
        height=height,
    )

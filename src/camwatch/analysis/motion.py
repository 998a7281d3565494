from __future__ import annotations

import logging
from collections.abc import Sequence

import cv2
import numpy as np
import numpy.typing as npt

from camwatch.models.motion import DiffTrigger, Region

logger = logging.getLogger(__name__)

Mask = npt.NDArray[np.uint8]


def _region_mask(region: Region, shape: tuple[int, int]) -> Mask:
    mask = np.zeros(shape, dtype=np.uint8)
    points = np.array(region.polygon, dtype=np.int32).reshape((-1, 1, 2))
    cv2.fillPoly(mask, [points], 255)
    return mask


def _changed_pixels(
    frame: npt.NDArray[np.uint8], previous: npt.NDArray[np.uint8], difference: int
) -> Mask:
    diff = cv2.absdiff(frame, previous)
    if diff.ndim == 3:
        # Mean of per-channel differences, compared without float division.
        summed = diff.astype(np.uint16).sum(axis=2)
        over = summed > int(difference) * diff.shape[2]
    else:
        over = diff > int(difference)
    return over.astype(np.uint8) * 255


class MotionDetector:
    def __init__(self, *, regions: Sequence[Region], debug: bool = False) -> None:
        self._regions: list[Region] = list(regions)
        self._debug = bool(debug)
        self._masks: dict[tuple[str, tuple[int, int]], tuple[Mask, int]] = {}
        self._prev_frame: npt.NDArray[np.uint8] | None = None
        self._debug_frame_count = 0

    @property
    def regions(self) -> list[Region]:
        return list(self._regions)

    def set_regions(self, regions: Sequence[Region]) -> None:
        self._regions = list(regions)
        self._masks.clear()

    def detect(self, frame: npt.NDArray[np.uint8]) -> list[DiffTrigger]:
        """Compare `frame` to the previous one and remember it for the next call."""
        previous = self._prev_frame
        self._prev_frame = frame
        if previous is None or previous.shape != frame.shape:
            return []
        return self.evaluate(frame, previous, self._regions)

    def evaluate(
        self,
        frame: npt.NDArray[np.uint8],
        previous: npt.NDArray[np.uint8],
        regions: Sequence[Region],
    ) -> list[DiffTrigger]:
        shape = (int(frame.shape[0]), int(frame.shape[1]))
        changed_by_difference: dict[int, Mask] = {}
        triggers: list[DiffTrigger] = []

        for region in regions:
            mask, region_pixels = self._mask_for(region, shape)
            if region_pixels == 0:
                continue

            changed = changed_by_difference.get(region.difference)
            if changed is None:
                changed = _changed_pixels(frame, previous, region.difference)
                changed_by_difference[region.difference] = changed

            changed_in_region = int(cv2.countNonZero(cv2.bitwise_and(changed, mask)))
            percent = changed_in_region / region_pixels * 100.0

            if percent > region.percent:
                triggers.append(
                    DiffTrigger(
                        zone=region.name,
                        percent=round(percent, 2),
                        sensitivity=round(100 - percent) + 1,
                    )
                )

        if self._debug:
            self._debug_frame_count += 1
            if self._debug_frame_count % 100 == 0:
                logger.debug(
                    "Motion check: regions=%d triggers=%s",
                    len(regions),
                    [(t.zone, t.percent) for t in triggers],
                )

        return triggers

    def _mask_for(self, region: Region, shape: tuple[int, int]) -> tuple[Mask, int]:
        key = (region.model_dump_json(), shape)
        cached = self._masks.get(key)
        if cached is None:
            mask = _region_mask(region, shape)
            cached = (mask, int(cv2.countNonZero(mask)))
            self._masks[key] = cached
        return cached

"""Object classification data models."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import numpy.typing as npt
from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True, slots=True)
class ClassifierInput:
    """Decoded RGB image handed to a classifier backend."""

    width: int
    height: int
    pixels: npt.NDArray[np.uint8]


class Prediction(BaseModel):
    """Raw classifier output: pixel-space bbox [x, y, width, height]."""

    model_config = ConfigDict(populate_by_name=True)

    class_name: str = Field(default="", alias="class")
    score: float = 0.0
    bbox: list[float] = Field(default_factory=lambda: [0.0, 0.0, 0.0, 0.0])


class BoundingBox(BaseModel):
    """Box normalized to the image size; every field is in [0, 1]."""

    left: float = Field(ge=0.0, le=1.0)
    top: float = Field(ge=0.0, le=1.0)
    width: float = Field(ge=0.0, le=1.0)
    height: float = Field(ge=0.0, le=1.0)


class Detection(BaseModel):
    """Filtered detection ready for publication."""

    label: str
    confidence: float = Field(ge=0.0, le=100.0)
    boxes: list[BoundingBox] = Field(default_factory=list)

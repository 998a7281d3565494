"""Adapter between motion events and a pluggable object classifier."""

from __future__ import annotations

import logging
from collections.abc import Iterable

import cv2
import numpy as np

from camwatch.errors import ClassifierError, SnapshotError
from camwatch.interfaces import ObjectClassifier, SnapshotProvider
from camwatch.models.config import CameraSessionConfig
from camwatch.models.detection import BoundingBox, ClassifierInput, Detection, Prediction
from camwatch.models.settings import ClassifierSettings

logger = logging.getLogger(__name__)


def decode_image(data: bytes) -> ClassifierInput:
    """Decode PNG/JPEG bytes into an RGB classifier input."""
    buffer = np.frombuffer(data, dtype=np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    if image is None:
        raise ValueError("Snapshot is not a decodable PNG or JPEG image")
    rgb = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
    height, width = int(rgb.shape[0]), int(rgb.shape[1])
    return ClassifierInput(width=width, height=height, pixels=rgb)


def _unit(value: float) -> float:
    return max(0.0, min(1.0, value))


def _normalize_box(bbox: list[float], width: int, height: int) -> BoundingBox:
    x, y, w, h = (list(bbox) + [0.0, 0.0, 0.0, 0.0])[:4]
    return BoundingBox(
        left=_unit((x or 0.0) / width),
        top=_unit((y or 0.0) / height),
        width=_unit((w or 0.0) / width),
        height=_unit((h or 0.0) / height),
    )


def normalize_predictions(
    predictions: Iterable[Prediction],
    *,
    width: int,
    height: int,
    labels: list[str],
    min_confidence: float,
) -> list[Detection]:
    """Lower-case labels, scale scores to 0..100, normalize boxes and filter."""
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid image size: {width}x{height}")

    allowed = {label.lower() for label in labels}
    detections: list[Detection] = []
    for prediction in predictions:
        label = prediction.class_name.lower()
        confidence = round(float(prediction.score or 0.0) * 100, 2)
        if label not in allowed or confidence < min_confidence:
            continue
        detections.append(
            Detection(
                label=label,
                confidence=max(0.0, min(100.0, confidence)),
                boxes=[_normalize_box(prediction.bbox, width, height)],
            )
        )
    return detections


class ClassifierAdapter:
    """Runs the shared classifier for one camera and filters its output.

    Never raises: snapshot, decode and inference failures are logged and
    produce an empty result.
    """

    def __init__(self, classifier: ObjectClassifier, *, plugin_name: str = "classifier") -> None:
        self._classifier = classifier
        self._plugin_name = plugin_name

    async def detect(
        self,
        camera: CameraSessionConfig,
        settings: ClassifierSettings,
        snapshots: SnapshotProvider,
    ) -> list[Detection]:
        if not settings.active:
            return []

        try:
            image_bytes = await snapshots.snapshot(camera)
        except Exception as exc:
            error = exc if isinstance(exc, SnapshotError) else SnapshotError(camera.name, exc)
            logger.warning(
                "%s", error, exc_info=exc, extra={"camera_name": camera.name}
            )
            return []

        return await self.detect_from_buffer(image_bytes, settings, camera_name=camera.name)

    async def detect_from_buffer(
        self,
        image_bytes: bytes,
        settings: ClassifierSettings,
        *,
        camera_name: str,
    ) -> list[Detection]:
        if not settings.active or not image_bytes:
            return []

        try:
            image = decode_image(image_bytes)
            predictions = await self._classifier.classify(image)
            return normalize_predictions(
                predictions,
                width=image.width,
                height=image.height,
                labels=settings.labels,
                min_confidence=settings.confidence,
            )
        except Exception as exc:
            error = ClassifierError(camera_name, self._plugin_name, exc)
            logger.error("%s: %s", error, exc, exc_info=exc, extra={"camera_name": camera_name})
            return []

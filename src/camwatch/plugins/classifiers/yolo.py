"""YOLOv8 object classifier plugin."""

from __future__ import annotations

import asyncio
import logging
import shutil
from collections.abc import Callable
from concurrent.futures import ProcessPoolExecutor
from pathlib import Path
from typing import Any, cast

import cv2
import numpy as np
import numpy.typing as npt
import torch
from ultralytics import YOLO  # type: ignore[attr-defined]

from camwatch.interfaces import ObjectClassifier
from camwatch.models.config import YoloClassifierConfig
from camwatch.models.detection import ClassifierInput, Prediction
from camwatch.plugins.registry import PluginType, plugin

logger = logging.getLogger(__name__)

_MODEL_CACHE: dict[tuple[str, str], YOLO] = {}
_YOLO_CACHE_DIR = Path.cwd() / "yolo_cache"


def _resolve_requested_path(model_path: str) -> Path:
    requested = Path(model_path)
    if not requested.is_absolute() and requested.parent == Path("."):
        return _YOLO_CACHE_DIR / requested.name
    return requested


def _resolve_weights_path(model_path: str) -> Path:
    """Resolve bare weight names under ./yolo_cache, downloading them if missing."""
    requested_path = _resolve_requested_path(model_path)
    if requested_path.exists():
        return requested_path

    resolved: Path | None = None
    try:
        from ultralytics.utils.checks import check_file

        check_file_fn = cast(Callable[[str], str | None], check_file)

        for key in (str(requested_path), requested_path.name):
            try:
                candidate = check_file_fn(key)
            except Exception:
                continue
            if candidate and Path(candidate).exists():
                resolved = Path(candidate)
                break

        if resolved is None and requested_path.suffix.lower() == ".pt":
            _ = YOLO(requested_path.name)
            candidate = check_file_fn(requested_path.name)
            if candidate and Path(candidate).exists():
                resolved = Path(candidate)
    except Exception as exc:
        logger.warning("Could not fetch YOLO weights %s: %s", requested_path.name, exc)
        resolved = None

    if resolved is None:
        return requested_path

    if requested_path.suffix.lower() == ".pt" and resolved != requested_path:
        try:
            requested_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(resolved, requested_path)
            return requested_path
        except OSError:
            return resolved

    return resolved


def _select_device() -> str:
    if torch.backends.mps.is_available():
        return "mps"
    if torch.cuda.is_available():
        return "cuda"
    return "cpu"


def _get_model(model_path: str, device: str) -> YOLO:
    key = (model_path, device)
    model = _MODEL_CACHE.get(key)
    if model is None:
        model = YOLO(model_path).to(device)
        _MODEL_CACHE[key] = model
    return model


@plugin(plugin_type=PluginType.CLASSIFIER, name="yolo")
class YoloClassifier(ObjectClassifier):
    """YOLO-based object classifier.

    Inference runs in a ProcessPoolExecutor; each worker process loads the model
    once and keeps it cached, so concurrent calls from several cameras are safe.
    """

    config_cls = YoloClassifierConfig

    @classmethod
    def create(cls, config: YoloClassifierConfig) -> ObjectClassifier:
        return cls(config)

    def __init__(self, config: YoloClassifierConfig) -> None:
        self._settings = config
        self.model_path = _resolve_weights_path(config.model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(f"Model not found: {self.model_path}")

        self._executor = ProcessPoolExecutor(max_workers=config.max_workers)
        self._shutdown_called = False

        logger.info(
            "YoloClassifier initialized: model=%s, workers=%d, min_score=%.2f",
            self.model_path,
            config.max_workers,
            config.min_score,
        )

    async def classify(self, image: ClassifierInput) -> list[Prediction]:
        if self._shutdown_called:
            raise RuntimeError("Classifier has been shut down")

        loop = asyncio.get_running_loop()
        raw = await loop.run_in_executor(
            self._executor,
            _classify_worker,
            image.pixels,
            str(self.model_path),
            float(self._settings.min_score),
            int(self._settings.image_size),
        )
        return [Prediction.model_validate(item) for item in raw]

    async def shutdown(self, timeout: float | None = None) -> None:
        _ = timeout
        if self._shutdown_called:
            return

        self._shutdown_called = True
        logger.info("Shutting down YoloClassifier...")
        await asyncio.to_thread(self._executor.shutdown, wait=True, cancel_futures=True)
        logger.info("YoloClassifier shutdown complete")


def _classify_worker(
    pixels: npt.NDArray[np.uint8],
    model_path: str,
    min_score: float,
    image_size: int,
) -> list[dict[str, Any]]:
    """Worker function for inference (module level for pickling).

    Returns plain dicts with `class`, `score` and a pixel `bbox` of
    `[x, y, width, height]`.
    """
    model = _get_model(model_path, _select_device())

    # Ultralytics treats numpy input as BGR.
    frame = cv2.cvtColor(pixels, cv2.COLOR_RGB2BGR)
    results = model(frame, verbose=False, conf=min_score, imgsz=image_size)

    predictions: list[dict[str, Any]] = []
    for result in results:
        names = result.names
        for box in result.boxes:
            cls = int(box.cls[0])
            x1, y1, x2, y2 = (float(v) for v in box.xyxy[0].tolist())
            predictions.append(
                {
                    "class": str(names.get(cls, cls)),
                    "score": float(box.conf[0]),
                    "bbox": [x1, y1, x2 - x1, y2 - y1],
                }
            )
    return predictions

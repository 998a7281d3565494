"""camwatch: motion-triggered video analysis per camera."""

__version__ = "0.1.0"

from camwatch.errors import AnalysisError
from camwatch.models.detection import Detection
from camwatch.models.events import CameraEvent
from camwatch.models.motion import MotionEvent

__all__ = [
    "AnalysisError",
    "CameraEvent",
    "Detection",
    "MotionEvent",
    "__version__",
]

"""Motion controller that forwards motion changes to the event publisher."""

from __future__ import annotations

from camwatch.interfaces import EventPublisher, MotionController
from camwatch.models.events import MotionNotification
from camwatch.models.motion import DiffTrigger, MotionEndCause


class PublishingMotionController(MotionController):
    def __init__(self, publisher: EventPublisher) -> None:
        self._publisher = publisher

    async def notify_motion(
        self,
        *,
        source: str,
        camera: str,
        state: bool,
        cause: list[DiffTrigger] | MotionEndCause,
    ) -> None:
        await self._publisher.publish(
            MotionNotification(camera=camera, source=source, state=state, cause=cause)
        )

"""Mock implementations for testing."""

from tests.camwatch.mocks.classifier import MockClassifier
from tests.camwatch.mocks.clock import FakeClock
from tests.camwatch.mocks.collaborators import (
    MockMotionController,
    MockPrebufferSource,
    MockSettingsStore,
    MockSnapshotProvider,
    MockSourceProbe,
)
from tests.camwatch.mocks.process import FakeProcess, FakeSpawner
from tests.camwatch.mocks.publisher import MockPublisher

__all__ = [
    "FakeClock",
    "FakeProcess",
    "FakeSpawner",
    "MockClassifier",
    "MockMotionController",
    "MockPrebufferSource",
    "MockPublisher",
    "MockSettingsStore",
    "MockSnapshotProvider",
    "MockSourceProbe",
]

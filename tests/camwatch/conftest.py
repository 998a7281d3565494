"""Shared pytest fixtures for camwatch tests."""

from __future__ import annotations

import sys
from pathlib import Path

# Add src to sys.path for imports
src_path = Path(__file__).parent.parent.parent / "src"
if str(src_path.resolve()) not in sys.path:
    sys.path.insert(0, str(src_path.resolve()))

import pytest

from camwatch.models.config import CameraSessionConfig
from tests.camwatch.mocks import (
    FakeClock,
    FakeSpawner,
    MockClassifier,
    MockMotionController,
    MockPublisher,
    MockSettingsStore,
    MockSnapshotProvider,
)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def spawner() -> FakeSpawner:
    return FakeSpawner()


@pytest.fixture
def publisher() -> MockPublisher:
    return MockPublisher()


@pytest.fixture
def motion_controller() -> MockMotionController:
    return MockMotionController()


@pytest.fixture
def settings_store() -> MockSettingsStore:
    return MockSettingsStore()


@pytest.fixture
def classifier() -> MockClassifier:
    return MockClassifier()


@pytest.fixture
def snapshots() -> MockSnapshotProvider:
    return MockSnapshotProvider()


@pytest.fixture
def camera() -> CameraSessionConfig:
    return CameraSessionConfig(
        name="front",
        source="-rtsp_transport tcp -i rtsp://user:pw@10.0.0.5:554/main",
        sub_source="-rtsp_transport tcp -i rtsp://user:pw@10.0.0.5:554/sub",
    )

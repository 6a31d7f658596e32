"""Shared pytest fixtures."""

import pytest

from spriteflow import metrics
from spriteflow.pipeline.gateway import ProviderGateway
from spriteflow.pipeline.graph import GraphStore

from fakes import FakeFrameExtractor, FakeImageProvider, FakeVideoProvider, SleepRecorder


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def store():
    return GraphStore()


@pytest.fixture
def sleep():
    return SleepRecorder()


@pytest.fixture
def make_gateway(sleep):
    """Build a ProviderGateway around fakes; keyword overrides pass through."""

    def _make(image=None, video=None, frames=None, **kwargs):
        kwargs.setdefault("discover_models", False)
        kwargs.setdefault("poll_interval", 5.0)
        kwargs.setdefault("max_polls", 60)
        return ProviderGateway(
            image_provider=image or FakeImageProvider(),
            video_provider=video or FakeVideoProvider({}),
            frame_extractor=frames or FakeFrameExtractor(),
            sleep=sleep,
            **kwargs,
        )

    return _make

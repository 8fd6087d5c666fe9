"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from edgewatch.core.config import StreamConfig

from manifold_fakes import FakeClock, FakeConnector


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def fast_stream_config() -> StreamConfig:
    """Production timeouts, but the reader wakes every 5ms."""
    return StreamConfig(check_interval_s=0.005)

"""Shared fixtures for keyrotor tests."""

import pytest

from keyrotor.config import CacheConfig
from .helpers import FakeClock, RecordingStore


@pytest.fixture
def clock():
    """Fake clock starting at 0 ms."""
    return FakeClock()


@pytest.fixture
def config():
    """Cache configuration used throughout the tests."""
    return CacheConfig(max_entries=10, retry_first_delay_ms=500, retry_max_delay_ms=120_000)


@pytest.fixture
def store():
    """Recording in-memory key store."""
    return RecordingStore()

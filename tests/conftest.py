"""Shared fixtures for the pydrivesync test-suite."""

import pytest

from .helpers import FakeClock, RecordingStore


@pytest.fixture
def store():
    """Create a recording in-memory store."""
    return RecordingStore()


@pytest.fixture
def clock():
    """Create a hand-driven clock."""
    return FakeClock()


@pytest.fixture
def no_sleep():
    """Sleep replacement that records requested pauses."""
    pauses: list[float] = []

    def _sleep(seconds: float) -> None:
        pauses.append(seconds)

    _sleep.pauses = pauses  # type: ignore[attr-defined]
    return _sleep

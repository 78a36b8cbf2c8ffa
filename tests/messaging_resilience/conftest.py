from __future__ import annotations

import pytest

from tests.messaging_resilience.support.fakes import (
    FakeClock,
    FakeLogger,
    RecordingSleep,
)


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def fake_clock() -> FakeClock:
    """Provide a manually advanced clock per test."""
    return FakeClock()


@pytest.fixture
def recording_sleep(fake_clock: FakeClock) -> RecordingSleep:
    """Provide a sleep double that advances ``fake_clock``."""
    return RecordingSleep(fake_clock)

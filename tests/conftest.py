# Shared pytest configuration and fixtures for all test types
from datetime import datetime, timedelta, timezone

import pytest


class FrozenClock:
    """Manually advanced clock for expiry and lifecycle tests."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 0, days: float = 0) -> None:
        self.now = self.now + timedelta(seconds=seconds, days=days)


@pytest.fixture
def clock():
    return FrozenClock(datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc))

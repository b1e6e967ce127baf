from datetime import datetime, timedelta
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class CachedData(BaseModel, Generic[T]):
    """A cached value with its capture timestamp and time-to-live."""

    model_config = ConfigDict(frozen=True)

    value: T
    captured_at: datetime
    ttl_seconds: float = Field(ge=0)

    @property
    def expires_at(self) -> datetime:
        return self.captured_at + timedelta(seconds=self.ttl_seconds)

    def is_fresh(self, now: datetime) -> bool:
        """Fresh iff now - captured_at < ttl."""
        return now - self.captured_at < timedelta(seconds=self.ttl_seconds)

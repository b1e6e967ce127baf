"""
Domain models for prices.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from packages.payments.models.domain.common import normalize_currency
from packages.payments.models.domain.enums import BillingInterval, ProcessorType


class Price(BaseModel):
    """A catalog price. Amounts are in minor currency units (e.g. cents)."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    product_id: str
    amount: int = Field(ge=0)
    currency: str
    interval: BillingInterval
    interval_count: int = Field(default=1, ge=1)
    trial_days: Optional[int] = Field(default=None, ge=0)
    active: bool = True

    processor_price_id: str
    processor: ProcessorType

    metadata: Optional[Dict[str, Any]] = None

    @field_validator("currency", mode="before")
    @classmethod
    def validate_currency(cls, v):
        return normalize_currency(v)

    @property
    def is_recurring(self) -> bool:
        return self.interval != BillingInterval.ONE_TIME

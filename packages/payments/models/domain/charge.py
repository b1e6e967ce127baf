"""
Domain models for charges.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from packages.payments.models.domain.common import normalize_currency
from packages.payments.models.domain.enums import ChargeStatus, ProcessorType


class Charge(BaseModel):
    """
    A one-off charge. Amounts are in minor currency units.

    Refunds yield a new instance; refunded is true iff refunded_amount > 0.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    customer_id: str
    amount: int = Field(ge=0)
    currency: str
    status: ChargeStatus
    description: Optional[str] = None
    receipt_url: Optional[str] = None

    # Refunds
    refunded: bool = False
    refunded_amount: int = Field(default=0, ge=0)

    # Processor identity
    processor_charge_id: str
    processor: ProcessorType

    created_at: datetime
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("currency", mode="before")
    @classmethod
    def validate_currency(cls, v):
        return normalize_currency(v)

    @model_validator(mode="after")
    def validate_refund(self) -> "Charge":
        if self.refunded_amount > self.amount:
            raise ValueError("refunded_amount cannot exceed amount")
        if self.refunded != (self.refunded_amount > 0):
            raise ValueError("refunded must be true iff refunded_amount > 0")
        return self

    @property
    def is_fully_refunded(self) -> bool:
        return self.refunded and self.refunded_amount == self.amount

    @property
    def refundable_amount(self) -> int:
        return self.amount - self.refunded_amount

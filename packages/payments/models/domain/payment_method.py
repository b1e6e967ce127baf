"""
Domain models for payment methods.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from packages.payments.models.domain.enums import PaymentMethodType


class Address(BaseModel):
    model_config = ConfigDict(frozen=True)

    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None


class BillingDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[Address] = None


class PaymentMethod(BaseModel):
    """
    A stored payment method.

    customer_id is None only for a method that was created but not yet
    attached to a customer. At most one method per customer is the default.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    customer_id: Optional[str] = None
    type: PaymentMethodType

    # Card details (never the full number)
    last4: Optional[str] = None
    brand: Optional[str] = None
    expiry_month: Optional[int] = Field(default=None, ge=1, le=12)
    expiry_year: Optional[int] = None

    is_default: bool = False
    billing_details: Optional[BillingDetails] = None
    metadata: Optional[Dict[str, Any]] = None

    @property
    def is_attached(self) -> bool:
        return self.customer_id is not None

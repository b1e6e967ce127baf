"""
Domain models for subscriptions.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from packages.payments.models.domain.common import utcnow
from packages.payments.models.domain.enums import ProcessorType, SubscriptionStatus

PAST_DUE_GRACE_PERIOD_DAYS = 7


class Subscription(BaseModel):
    """
    Customer subscription domain model.

    Status transitions come only from processor responses or webhook events.
    Invariants:
    - current_period_end is after current_period_start
    - canceled_at is only set for canceled/incomplete_expired subscriptions
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    customer_id: str
    status: SubscriptionStatus

    # Plan
    price_id: str
    product_id: str
    quantity: int = Field(default=1, ge=1)

    # Billing cycle
    current_period_start: datetime
    current_period_end: datetime

    # Lifecycle dates
    trial_start: Optional[datetime] = None
    trial_end: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    cancel_at_period_end: bool = False

    # Processor identity
    processor: ProcessorType
    processor_subscription_id: str

    metadata: Optional[Dict[str, Any]] = None

    @model_validator(mode="after")
    def validate_lifecycle(self) -> "Subscription":
        if self.current_period_end <= self.current_period_start:
            raise ValueError("current_period_end must be after current_period_start")
        if self.canceled_at is not None and not self.status.is_canceled_family():
            raise ValueError(
                f"canceled_at is not allowed for status {self.status.value}"
            )
        return self

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE

    @property
    def is_canceled(self) -> bool:
        return self.status == SubscriptionStatus.CANCELED

    def is_on_trial(self, now: Optional[datetime] = None) -> bool:
        """Check if the subscription is trialing and the trial has not ended."""
        if self.status != SubscriptionStatus.TRIALING or self.trial_end is None:
            return False
        return (now or utcnow()) < self.trial_end

    def is_on_grace_period(self, now: Optional[datetime] = None) -> bool:
        """Check if cancellation is scheduled but the paid period is still running."""
        if not self.cancel_at_period_end:
            return False
        return (now or utcnow()) < self.current_period_end

    def days_until_due(self, now: Optional[datetime] = None) -> Optional[int]:
        """
        Days left in the past-due grace period.

        Returns None unless the subscription is past due. Negative once the
        grace period has run out.
        """
        if self.status != SubscriptionStatus.PAST_DUE:
            return None
        days_overdue = ((now or utcnow()) - self.current_period_end) // timedelta(days=1)
        return PAST_DUE_GRACE_PERIOD_DAYS - days_overdue

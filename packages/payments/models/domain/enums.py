"""
Payment enums - strongly typed enumerations shared by every processor.
"""

from enum import Enum


class ProcessorType(str, Enum):
    """Supported payment processors. Values are also used as cache namespaces."""

    STRIPE = "stripe"
    PADDLE = "paddle"
    BRAINTREE = "braintree"
    LEMON_SQUEEZY = "lemon_squeezy"
    TOTALPAY_GLOBAL = "totalpay_global"
    FAKE = "fake"


class PaymentMethodType(str, Enum):
    CARD = "card"
    BANK_ACCOUNT = "bank_account"
    PAYPAL = "paypal"
    APPLE_PAY = "apple_pay"
    GOOGLE_PAY = "google_pay"


class SubscriptionStatus(str, Enum):
    """
    Subscription status lifecycle as reported by the processor.

    Flow: incomplete/trialing -> active -> past_due -> canceled
    Terminal: canceled, incomplete_expired
    """

    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"  # Payment failed, 7 day grace period
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"  # First payment not confirmed yet
    INCOMPLETE_EXPIRED = "incomplete_expired"
    PAUSED = "paused"
    UNPAID = "unpaid"

    def is_canceled_family(self) -> bool:
        """Check if this status may carry a cancellation timestamp."""
        return self in (SubscriptionStatus.CANCELED, SubscriptionStatus.INCOMPLETE_EXPIRED)

    def is_terminal(self) -> bool:
        """Check if no further transitions are possible."""
        return self.is_canceled_family()

    def is_live(self) -> bool:
        """Check if the subscription still bills or is about to."""
        return self in (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING)


class ChargeStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"


class BillingInterval(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    ONE_TIME = "one_time"

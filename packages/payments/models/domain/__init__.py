"""Domain models for payments."""

from packages.payments.models.domain.enums import (
    ProcessorType,
    PaymentMethodType,
    SubscriptionStatus,
    ChargeStatus,
    BillingInterval,
)
from packages.payments.models.domain.customer import Customer
from packages.payments.models.domain.payment_method import (
    Address,
    BillingDetails,
    PaymentMethod,
)
from packages.payments.models.domain.price import Price
from packages.payments.models.domain.subscription import Subscription
from packages.payments.models.domain.charge import Charge
from packages.payments.models.domain.webhook_event import WebhookEvent

__all__ = [
    # Enums
    "ProcessorType",
    "PaymentMethodType",
    "SubscriptionStatus",
    "ChargeStatus",
    "BillingInterval",
    # Entities
    "Customer",
    "Address",
    "BillingDetails",
    "PaymentMethod",
    "Price",
    "Subscription",
    "Charge",
    "WebhookEvent",
]

"""Payment processors - one implementation per gateway plus a fake for tests."""

from packages.payments.providers.processors.interface import PaymentProcessorInterface
from packages.payments.providers.processors.error_normalizer import (
    GatewayFailure,
    ResourceType,
    normalize_gateway_failure,
)
from packages.payments.providers.processors.fake_processor import (
    FakePaymentProcessor,
    sign_webhook_payload,
)
from packages.payments.providers.processors.stripe_processor import StripePaymentProcessor
from packages.payments.providers.processors.factory import get_payment_processor

__all__ = [
    "PaymentProcessorInterface",
    "GatewayFailure",
    "ResourceType",
    "normalize_gateway_failure",
    "FakePaymentProcessor",
    "sign_webhook_payload",
    "StripePaymentProcessor",
    "get_payment_processor",
]

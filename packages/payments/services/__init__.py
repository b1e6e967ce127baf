"""Payment services."""

from packages.payments.services.payment_service import CacheTTLPolicy, PaymentService

__all__ = [
    "CacheTTLPolicy",
    "PaymentService",
]

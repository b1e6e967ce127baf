"""Payment providers - abstracted payment processor integrations."""

from packages.payments.providers.processors.factory import get_payment_processor

__all__ = [
    "get_payment_processor",
]

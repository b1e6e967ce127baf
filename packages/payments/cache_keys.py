"""Cache key generators for payments package.

Keys are namespaced by processor so switching processors never serves
another processor's entries.
"""

from packages.payments.models.domain.enums import ProcessorType


def customer_key(processor: ProcessorType, customer_id: str) -> str:
    """Generate cache key for a customer."""
    return f"{processor.value}:customer:{customer_id}"


def payment_method_key(processor: ProcessorType, payment_method_id: str) -> str:
    """Generate cache key for a payment method."""
    return f"{processor.value}:payment_method:{payment_method_id}"


def payment_methods_by_customer_key(processor: ProcessorType, customer_id: str) -> str:
    """Generate cache key for a customer's payment method list."""
    return f"{processor.value}:customer:{customer_id}:payment_methods"


def subscription_key(processor: ProcessorType, subscription_id: str) -> str:
    """Generate cache key for a subscription."""
    return f"{processor.value}:subscription:{subscription_id}"


def subscriptions_by_customer_key(processor: ProcessorType, customer_id: str) -> str:
    """Generate cache key for a customer's subscription list."""
    return f"{processor.value}:customer:{customer_id}:subscriptions"


def charge_key(processor: ProcessorType, charge_id: str) -> str:
    """Generate cache key for a charge."""
    return f"{processor.value}:charge:{charge_id}"

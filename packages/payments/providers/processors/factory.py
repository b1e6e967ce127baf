"""
Factory for getting payment processor instance.
"""

from typing import Optional, Union

from common.core.config import settings
from packages.payments.exceptions import InvalidConfigurationException
from packages.payments.models.domain import ProcessorType
from packages.payments.providers.processors.fake_processor import FakePaymentProcessor
from packages.payments.providers.processors.interface import PaymentProcessorInterface
from packages.payments.providers.processors.stripe_processor import StripePaymentProcessor


def get_payment_processor(
    processor_type: Optional[Union[ProcessorType, str]] = None,
) -> PaymentProcessorInterface:
    """
    Get payment processor instance based on configuration.

    Args:
        processor_type: Processor to build; defaults to settings.payment_processor

    Returns:
        PaymentProcessorInterface: Configured payment processor

    Raises:
        InvalidConfigurationException: If the processor is unknown or has no integration
    """
    value = processor_type or settings.payment_processor
    try:
        processor = ProcessorType(value)
    except ValueError as e:
        raise InvalidConfigurationException(
            f"Unknown payment processor: {value}",
            field_name="payment_processor",
            original_error=e,
        ) from e

    if processor == ProcessorType.STRIPE:
        return StripePaymentProcessor()
    if processor == ProcessorType.FAKE:
        return FakePaymentProcessor()

    raise InvalidConfigurationException(
        f"Payment processor {processor.value} has no integration available",
        field_name="payment_processor",
    )

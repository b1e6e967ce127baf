"""
Shared classification of gateway failures into the payment error taxonomy.

Each processor extracts a GatewayFailure from its own error envelope and
hands it to normalize_gateway_failure. Classification order matters:
transport failures first, then HTTP status.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from packages.payments.exceptions import (
    AuthenticationException,
    CustomerNotFoundException,
    NetworkException,
    PaymentException,
    PaymentMethodException,
    ProcessorException,
    SubscriptionNotFoundException,
    ValidationException,
)


class ResourceType(str, Enum):
    """Resource targeted by the failed request."""

    CUSTOMER = "customer"
    SUBSCRIPTION = "subscription"
    PAYMENT_METHOD = "payment_method"
    CHARGE = "charge"
    PRICE = "price"
    WEBHOOK = "webhook"
    OTHER = "other"


# Vendor codes that describe a problem with the payment method itself
DECLINE_CODES = frozenset(
    {
        "card_declined",
        "insufficient_funds",
        "expired_card",
        "incorrect_cvc",
        "incorrect_number",
        "invalid_cvc",
        "invalid_expiry_month",
        "invalid_expiry_year",
        "processing_error",
        "authentication_required",
        "do_not_honor",
        "lost_card",
        "stolen_card",
        "fraudulent",
    }
)

PAYMENT_METHOD_VENDOR_TYPES = frozenset({"card_error"})


@dataclass
class GatewayFailure:
    """What a processor knows about a failed call, independent of vendor shape."""

    message: str
    status_code: Optional[int] = None
    code: Optional[str] = None
    field: Optional[str] = None
    vendor_type: Optional[str] = None
    decline_code: Optional[str] = None
    payment_method_type: Optional[str] = None
    last4: Optional[str] = None
    is_transport_error: bool = False
    is_timeout: bool = False
    url: Optional[str] = None
    has_vendor_payload: bool = True
    original_error: Optional[BaseException] = None

    @property
    def is_payment_method_error(self) -> bool:
        if self.vendor_type in PAYMENT_METHOD_VENDOR_TYPES:
            return True
        return self.code in DECLINE_CODES or self.decline_code in DECLINE_CODES


def normalize_gateway_failure(
    failure: GatewayFailure,
    processor_name: str,
    resource_type: Optional[ResourceType] = None,
    resource_id: Optional[str] = None,
) -> PaymentException:
    """
    Map a gateway failure onto one taxonomy member.

    Args:
        failure: Failure details extracted by the processor
        processor_name: Name of the processor that failed
        resource_type: Resource the endpoint targets, if known
        resource_id: ID of that resource, if known

    Returns:
        The PaymentException to raise
    """
    status = failure.status_code
    message = failure.message or "Payment processor request failed"

    # Transport first: a status code on a timed out request is not trustworthy
    if failure.is_transport_error or failure.is_timeout or status is None:
        return NetworkException(
            message,
            code="timeout" if failure.is_timeout else failure.code,
            status_code=status,
            url=failure.url,
            original_error=failure.original_error,
        )

    if status in (401, 403):
        return AuthenticationException(
            message,
            code=failure.code,
            authentication_type="api_key",
            original_error=failure.original_error,
        )

    if status == 404:
        if resource_type == ResourceType.CUSTOMER:
            return CustomerNotFoundException(
                message,
                code=failure.code,
                customer_id=resource_id,
                original_error=failure.original_error,
            )
        if resource_type == ResourceType.SUBSCRIPTION:
            return SubscriptionNotFoundException(
                message,
                code=failure.code,
                subscription_id=resource_id,
                original_error=failure.original_error,
            )
        return _processor_error(failure, processor_name, message)

    if status in (400, 422):
        if failure.field:
            return ValidationException(
                message,
                code=failure.code,
                field_name=failure.field,
                original_error=failure.original_error,
            )
        return _processor_error(failure, processor_name, message)

    if status in (402, 409):
        if failure.is_payment_method_error:
            return _payment_method_error(failure, message)
        return _processor_error(failure, processor_name, message)

    if status == 429:
        return ProcessorException(
            message,
            code=failure.code or "rate_limit_exceeded",
            processor_name=processor_name,
            original_error=failure.original_error,
        )

    # A decodable vendor envelope is a processor answer, whatever the status
    if not failure.has_vendor_payload:
        return NetworkException(
            message,
            code=failure.code,
            status_code=status,
            url=failure.url,
            original_error=failure.original_error,
        )

    return _processor_error(failure, processor_name, message)


def _payment_method_error(failure: GatewayFailure, message: str) -> PaymentMethodException:
    return PaymentMethodException(
        message,
        code=failure.code or failure.decline_code,
        payment_method_type=failure.payment_method_type,
        last4=failure.last4,
        original_error=failure.original_error,
    )


def _processor_error(
    failure: GatewayFailure, processor_name: str, message: str
) -> ProcessorException:
    return ProcessorException(
        message,
        code=failure.code,
        processor_name=processor_name,
        original_error=failure.original_error,
    )

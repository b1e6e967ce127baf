"""
Payment error taxonomy.

Every failure that crosses the processor interface is one of the classes
below. Callers can match on ``error.kind`` instead of class identity; the
kind-specific fields are available both as attributes and in ``context``.
"""

import re
from enum import Enum
from typing import Any, Dict, Optional

from common.core.exceptions import AppException

_SECRET_PATTERNS = [
    re.compile(r"\b(sk|rk|pk)_(live|test)_[A-Za-z0-9]+"),
    re.compile(r"\bwhsec_[A-Za-z0-9]+"),
    re.compile(r"(Bearer\s+)[A-Za-z0-9._\-]+", re.IGNORECASE),
]


def redact_secrets(text: Optional[str]) -> str:
    """Mask API-key and webhook-secret shaped tokens in a message."""
    if not text:
        return ""
    redacted = _SECRET_PATTERNS[0].sub(lambda m: f"{m.group(1)}_{m.group(2)}_***", text)
    redacted = _SECRET_PATTERNS[1].sub("whsec_***", redacted)
    return _SECRET_PATTERNS[2].sub(lambda m: f"{m.group(1)}***", redacted)


class PaymentErrorKind(str, Enum):
    """Discriminant for the closed set of payment failures."""

    AUTHENTICATION = "authentication"
    NETWORK = "network"
    VALIDATION = "validation"
    PROCESSOR = "processor"
    CUSTOMER_NOT_FOUND = "customer_not_found"
    SUBSCRIPTION_NOT_FOUND = "subscription_not_found"
    PAYMENT_METHOD = "payment_method"
    WEBHOOK = "webhook"
    INVALID_CONFIGURATION = "invalid_configuration"


class PaymentException(AppException):
    """Base class for payment failures."""

    kind: PaymentErrorKind

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        **context: Any,
    ):
        self.message = redact_secrets(message)
        self.code = code
        self.original_error = original_error
        self.context: Dict[str, Any] = context
        super().__init__(self.message)

    def _details(self) -> str:
        parts = [f"{key}: {value}" for key, value in self.context.items() if value is not None]
        if self.code:
            parts.append(f"code: {self.code}")
        return f" ({', '.join(parts)})" if parts else ""

    def __str__(self) -> str:
        return f"{self.__class__.__name__}: {self.message}{self._details()}"


class AuthenticationException(PaymentException):
    """Invalid, missing or expired credentials."""

    kind = PaymentErrorKind.AUTHENTICATION

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        authentication_type: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ):
        self.authentication_type = authentication_type
        super().__init__(
            message, code, original_error, authentication_type=authentication_type
        )


class NetworkException(PaymentException):
    """Transport failure, timeout, or a 5xx/undecodable response."""

    kind = PaymentErrorKind.NETWORK

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ):
        self.status_code = status_code
        self.url = url
        super().__init__(message, code, original_error, status_code=status_code, url=url)

    def __str__(self) -> str:
        status = f" (status: {self.status_code})" if self.status_code is not None else ""
        code = f" (code: {self.code})" if self.code else ""
        url = f" at {self.url}" if self.url else ""
        return f"NetworkException: {self.message}{status}{code}{url}"


class ValidationException(PaymentException):
    """Request rejected for malformed or out-of-range input."""

    kind = PaymentErrorKind.VALIDATION

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        field_name: Optional[str] = None,
        invalid_value: Any = None,
        original_error: Optional[BaseException] = None,
    ):
        self.field_name = field_name
        self.invalid_value = invalid_value
        super().__init__(
            message, code, original_error, field_name=field_name, invalid_value=invalid_value
        )


class ProcessorException(PaymentException):
    """Vendor-reported failure not covered by a more specific kind."""

    kind = PaymentErrorKind.PROCESSOR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        processor_name: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ):
        self.processor_name = processor_name
        super().__init__(message, code, original_error, processor_name=processor_name)

    def __str__(self) -> str:
        processor = f"[{self.processor_name}] " if self.processor_name else ""
        code = f" (code: {self.code})" if self.code else ""
        return f"ProcessorException: {processor}{self.message}{code}"


class CustomerNotFoundException(PaymentException):
    kind = PaymentErrorKind.CUSTOMER_NOT_FOUND

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        customer_id: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ):
        self.customer_id = customer_id
        super().__init__(message, code, original_error, customer_id=customer_id)


class SubscriptionNotFoundException(PaymentException):
    kind = PaymentErrorKind.SUBSCRIPTION_NOT_FOUND

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        subscription_id: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ):
        self.subscription_id = subscription_id
        super().__init__(message, code, original_error, subscription_id=subscription_id)


class PaymentMethodException(PaymentException):
    """Payment-method specific decline (insufficient funds, expired card, 3DS required)."""

    kind = PaymentErrorKind.PAYMENT_METHOD

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        payment_method_type: Optional[str] = None,
        last4: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ):
        self.payment_method_type = payment_method_type
        self.last4 = last4
        super().__init__(
            message, code, original_error, payment_method_type=payment_method_type, last4=last4
        )


class WebhookException(PaymentException):
    """Signature verification failure or malformed webhook payload."""

    kind = PaymentErrorKind.WEBHOOK

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        webhook_id: Optional[str] = None,
        event_type: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ):
        self.webhook_id = webhook_id
        self.event_type = event_type
        super().__init__(
            message, code, original_error, webhook_id=webhook_id, event_type=event_type
        )


class InvalidConfigurationException(PaymentException):
    """Processor constructed with missing or invalid settings. Raised at construction."""

    kind = PaymentErrorKind.INVALID_CONFIGURATION

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        field_name: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ):
        self.field_name = field_name
        super().__init__(message, code, original_error, field_name=field_name)

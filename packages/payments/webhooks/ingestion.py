"""
Webhook ingestion boundary.

An HTTP receiver hands over the raw body, the signature header and the shared
secret. The signature is verified against the untouched body before anything
parses it; only then is the processor asked to build a WebhookEvent.
"""

from typing import Optional, Union

from common.core.otel_axiom_exporter import get_logger, log_span_event, trace_span
from packages.payments.exceptions import WebhookException
from packages.payments.models.domain import WebhookEvent
from packages.payments.providers.processors.interface import PaymentProcessorInterface

logger = get_logger(__name__)


@trace_span
def ingest_webhook(
    processor: PaymentProcessorInterface,
    raw_body: Union[bytes, str],
    signature_header: Optional[str],
    secret: Optional[str],
) -> WebhookEvent:
    """
    Verify and parse an incoming webhook.

    Args:
        processor: Processor that sent the webhook
        raw_body: Request body exactly as received
        signature_header: Value of the processor's signature header
        secret: Shared webhook signing secret

    Returns:
        The verified WebhookEvent

    Raises:
        WebhookException: If the signature is missing or invalid, or the payload is malformed
    """
    if not signature_header:
        logger.error(f"{processor.name} webhook rejected: missing signature header")
        raise WebhookException("Missing webhook signature header", code="missing_signature")
    if not secret:
        logger.error(f"{processor.name} webhook rejected: no signing secret configured")
        raise WebhookException("Webhook signing secret is not configured", code="missing_secret")

    if not processor.verify_webhook_signature(raw_body, signature_header, secret):
        logger.error(f"{processor.name} webhook signature verification failed")
        raise WebhookException("Invalid webhook signature", code="invalid_signature")

    event = processor.parse_webhook_event(raw_body)

    log_span_event(
        f"Received {processor.name} webhook: {event.type}",
        {"event_id": event.id, "event_type": event.type, "processor": event.processor.value},
    )
    return event

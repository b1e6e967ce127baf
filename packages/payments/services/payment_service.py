"""
Service for payment operations across processors.

Composes the active payment processor with a read-through cache:
- Reads go through the cache and retry transient network failures.
- Writes call the processor once, then overwrite the entity's cache entry
  with the returned value and invalidate affected list entries.

Cache keys are namespaced by processor, so switching processors never serves
entries cached for another one.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar, Union

from common.core.config import settings
from common.core.otel_axiom_exporter import get_logger, trace_span
from common.providers.caching import ReadThroughCache
from common.providers.storage import get_storage
from packages.payments.cache_keys import (
    charge_key,
    customer_key,
    payment_method_key,
    payment_methods_by_customer_key,
    subscription_key,
    subscriptions_by_customer_key,
)
from packages.payments.exceptions import (
    InvalidConfigurationException,
    NetworkException,
    PaymentException,
)
from packages.payments.models.domain import (
    BillingDetails,
    Charge,
    Customer,
    PaymentMethod,
    PaymentMethodType,
    ProcessorType,
    Subscription,
    WebhookEvent,
)
from packages.payments.models.domain.common import utcnow
from packages.payments.providers.processors.factory import get_payment_processor
from packages.payments.providers.processors.interface import PaymentProcessorInterface
from packages.payments.webhooks.ingestion import ingest_webhook

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CacheTTLPolicy:
    """Time-to-live in seconds per cached entity type."""

    customer: float
    payment_method: float
    subscription: float
    charge: float

    @classmethod
    def from_settings(cls) -> "CacheTTLPolicy":
        return cls(
            customer=settings.cache_ttl_customer,
            payment_method=settings.cache_ttl_payment_method,
            subscription=settings.cache_ttl_subscription,
            charge=settings.cache_ttl_charge,
        )


class PaymentService:
    """Facade for customer, payment method, subscription, charge and webhook operations."""

    def __init__(
        self,
        processor: Optional[PaymentProcessorInterface] = None,
        cache: Optional[ReadThroughCache] = None,
        ttl_policy: Optional[CacheTTLPolicy] = None,
        max_attempts: Optional[int] = None,
        retry_delay_seconds: Optional[float] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            processor: Active processor; resolved from settings on first use when omitted
            cache: Read-through cache; defaults to one over the configured storage
            ttl_policy: Per-entity TTLs; defaults to settings
            max_attempts: Attempts per read, including the first
            retry_delay_seconds: Delay before the first retry, doubled after each
            clock: Source of the current time for trial checks
        """
        self._processor = processor
        self.cache = cache or ReadThroughCache(get_storage())
        self.ttl_policy = ttl_policy or CacheTTLPolicy.from_settings()
        self.max_attempts = max(1, max_attempts or settings.network_max_retries)
        self.retry_delay_seconds = (
            settings.network_retry_delay_seconds
            if retry_delay_seconds is None
            else retry_delay_seconds
        )
        self._clock = clock or utcnow

    @property
    def processor(self) -> PaymentProcessorInterface:
        """
        The active processor.

        Raises:
            InvalidConfigurationException: If none was given and settings name no usable one
        """
        if self._processor is None:
            self._processor = get_payment_processor()
        return self._processor

    @property
    def is_configured(self) -> bool:
        """Whether a processor is set or can be built from settings."""
        if self._processor is not None:
            return True
        try:
            self._processor = get_payment_processor()
        except InvalidConfigurationException as e:
            logger.warning(f"Payment processor not configured: {e.message}")
            return False
        return True

    def switch_processor(self, processor: PaymentProcessorInterface) -> None:
        """Make another processor active. Cached entries of the old one stay isolated."""
        previous = self._processor.processor_type.value if self._processor else None
        self._processor = processor
        logger.info(
            f"Switched payment processor to {processor.name}",
            extra={"previous": previous, "current": processor.processor_type.value},
        )

    # Helpers

    async def _with_retry(self, operation: str, fn: Callable[[], Awaitable[T]]) -> T:
        """Retry NetworkException with exponential backoff."""
        delay = self.retry_delay_seconds
        attempt = 1
        while True:
            try:
                return await fn()
            except NetworkException as e:
                if attempt >= self.max_attempts:
                    raise
                logger.warning(
                    f"{operation} failed with network error, retrying in {delay}s",
                    extra={"operation": operation, "attempt": attempt, "error": e.message},
                )
                await asyncio.sleep(delay)
                delay *= 2
                attempt += 1

    def _log_failure(
        self, operation: str, processor: PaymentProcessorInterface, error: PaymentException
    ) -> None:
        logger.error(
            f"{operation} failed: {error.message}",
            extra={
                "operation": operation,
                "processor": processor.processor_type.value,
                "error_kind": error.kind.value,
                "code": error.code,
            },
        )

    async def _cached_read(
        self,
        operation: str,
        processor: PaymentProcessorInterface,
        key: str,
        ttl_seconds: float,
        fetch: Callable[[], Awaitable[T]],
        value_type: Any,
    ) -> T:
        try:
            return await self.cache.get_or_fetch(
                key,
                ttl_seconds,
                lambda: self._with_retry(operation, fetch),
                value_type,
            )
        except PaymentException as e:
            self._log_failure(operation, processor, e)
            raise

    async def _write(
        self,
        operation: str,
        processor: PaymentProcessorInterface,
        call: Callable[[], Awaitable[T]],
    ) -> T:
        # Writes are not retried so a lost response cannot double-charge
        try:
            return await call()
        except PaymentException as e:
            self._log_failure(operation, processor, e)
            raise

    async def _invalidate_payment_methods(self, processor: ProcessorType, customer_id: str) -> None:
        """Drop a customer's cached method list and every method cached through it."""
        list_key = payment_methods_by_customer_key(processor, customer_id)
        entry = await self.cache.get(list_key, List[PaymentMethod])
        if entry is not None:
            for payment_method in entry.value:
                await self.cache.invalidate(payment_method_key(processor, payment_method.id))
        await self.cache.invalidate(list_key)

    # Customers

    @trace_span
    async def create_customer(
        self,
        email: str,
        name: Optional[str] = None,
        phone: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Customer:
        processor = self.processor
        customer = await self._write(
            "create_customer",
            processor,
            lambda: processor.create_customer(email=email, name=name, phone=phone, metadata=metadata),
        )
        await self.cache.put(
            customer_key(processor.processor_type, customer.id),
            customer,
            self.ttl_policy.customer,
            Customer,
        )
        return customer

    @trace_span
    async def get_customer(self, customer_id: str) -> Customer:
        """Get a customer. Cached per the customer TTL."""
        processor = self.processor
        return await self._cached_read(
            "get_customer",
            processor,
            customer_key(processor.processor_type, customer_id),
            self.ttl_policy.customer,
            lambda: processor.get_customer(customer_id),
            Customer,
        )

    @trace_span
    async def update_customer(
        self,
        customer_id: str,
        email: Optional[str] = None,
        name: Optional[str] = None,
        phone: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Customer:
        processor = self.processor
        customer = await self._write(
            "update_customer",
            processor,
            lambda: processor.update_customer(
                customer_id, email=email, name=name, phone=phone, metadata=metadata
            ),
        )
        await self.cache.put(
            customer_key(processor.processor_type, customer_id),
            customer,
            self.ttl_policy.customer,
            Customer,
        )
        return customer

    @trace_span
    async def delete_customer(self, customer_id: str) -> None:
        processor = self.processor
        await self._write(
            "delete_customer", processor, lambda: processor.delete_customer(customer_id)
        )

        tag = processor.processor_type
        await self.cache.invalidate(customer_key(tag, customer_id))
        await self._invalidate_payment_methods(tag, customer_id)
        await self.cache.invalidate(subscriptions_by_customer_key(tag, customer_id))
        logger.info(f"Deleted customer {customer_id}", extra={"customer_id": customer_id})

    # Payment methods

    @trace_span
    async def create_payment_method(
        self,
        payment_method_token: str,
        type: PaymentMethodType = PaymentMethodType.CARD,
        billing_details: Optional[BillingDetails] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PaymentMethod:
        processor = self.processor
        payment_method = await self._write(
            "create_payment_method",
            processor,
            lambda: processor.create_payment_method(
                payment_method_token,
                type=type,
                billing_details=billing_details,
                metadata=metadata,
            ),
        )
        await self.cache.put(
            payment_method_key(processor.processor_type, payment_method.id),
            payment_method,
            self.ttl_policy.payment_method,
            PaymentMethod,
        )
        return payment_method

    @trace_span
    async def attach_payment_method(
        self,
        payment_method_id: str,
        customer_id: str,
        set_as_default: bool = False,
    ) -> PaymentMethod:
        processor = self.processor
        payment_method = await self._write(
            "attach_payment_method",
            processor,
            lambda: processor.attach_payment_method(
                payment_method_id, customer_id, set_as_default=set_as_default
            ),
        )

        tag = processor.processor_type
        if payment_method.is_default:
            # The previous default's cached entry is now stale too
            await self._invalidate_payment_methods(tag, customer_id)
        else:
            await self.cache.invalidate(payment_methods_by_customer_key(tag, customer_id))
        await self.cache.put(
            payment_method_key(tag, payment_method.id),
            payment_method,
            self.ttl_policy.payment_method,
            PaymentMethod,
        )
        return payment_method

    @trace_span
    async def get_payment_method(self, payment_method_id: str) -> PaymentMethod:
        processor = self.processor
        return await self._cached_read(
            "get_payment_method",
            processor,
            payment_method_key(processor.processor_type, payment_method_id),
            self.ttl_policy.payment_method,
            lambda: processor.get_payment_method(payment_method_id),
            PaymentMethod,
        )

    @trace_span
    async def list_payment_methods(self, customer_id: str) -> List[PaymentMethod]:
        processor = self.processor
        return await self._cached_read(
            "list_payment_methods",
            processor,
            payment_methods_by_customer_key(processor.processor_type, customer_id),
            self.ttl_policy.payment_method,
            lambda: processor.list_payment_methods(customer_id),
            List[PaymentMethod],
        )

    async def get_default_payment_method(self, customer_id: str) -> Optional[PaymentMethod]:
        """The customer's default method from the cached method list, or None."""
        methods = await self.list_payment_methods(customer_id)
        return next((pm for pm in methods if pm.is_default), None)

    @trace_span
    async def set_default_payment_method(
        self, customer_id: str, payment_method_id: str
    ) -> PaymentMethod:
        processor = self.processor
        payment_method = await self._write(
            "set_default_payment_method",
            processor,
            lambda: processor.set_default_payment_method(customer_id, payment_method_id),
        )

        tag = processor.processor_type
        await self._invalidate_payment_methods(tag, customer_id)
        await self.cache.put(
            payment_method_key(tag, payment_method.id),
            payment_method,
            self.ttl_policy.payment_method,
            PaymentMethod,
        )
        return payment_method

    @trace_span
    async def detach_payment_method(self, payment_method_id: str) -> None:
        processor = self.processor
        tag = processor.processor_type

        # The owning customer is needed to invalidate their method list
        payment_method = await self.get_payment_method(payment_method_id)

        await self._write(
            "detach_payment_method",
            processor,
            lambda: processor.detach_payment_method(payment_method_id),
        )

        await self.cache.invalidate(payment_method_key(tag, payment_method_id))
        if payment_method.customer_id:
            await self._invalidate_payment_methods(tag, payment_method.customer_id)

    # Subscriptions

    async def _store_subscription(
        self, processor: PaymentProcessorInterface, subscription: Subscription
    ) -> None:
        tag = processor.processor_type
        await self.cache.put(
            subscription_key(tag, subscription.id),
            subscription,
            self.ttl_policy.subscription,
            Subscription,
        )
        await self.cache.invalidate(subscriptions_by_customer_key(tag, subscription.customer_id))

    @trace_span
    async def create_subscription(
        self,
        customer_id: str,
        price_id: str,
        payment_method_id: Optional[str] = None,
        trial_days: Optional[int] = None,
        quantity: int = 1,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Subscription:
        processor = self.processor
        subscription = await self._write(
            "create_subscription",
            processor,
            lambda: processor.create_subscription(
                customer_id,
                price_id,
                payment_method_id=payment_method_id,
                trial_days=trial_days,
                quantity=quantity,
                metadata=metadata,
            ),
        )
        await self._store_subscription(processor, subscription)
        logger.info(
            f"Created subscription {subscription.id} for customer {customer_id}",
            extra={
                "subscription_id": subscription.id,
                "customer_id": customer_id,
                "status": subscription.status.value,
            },
        )
        return subscription

    @trace_span
    async def get_subscription(self, subscription_id: str) -> Subscription:
        """Get a subscription. Cached per the subscription TTL."""
        processor = self.processor
        return await self._cached_read(
            "get_subscription",
            processor,
            subscription_key(processor.processor_type, subscription_id),
            self.ttl_policy.subscription,
            lambda: processor.get_subscription(subscription_id),
            Subscription,
        )

    @trace_span
    async def list_subscriptions(self, customer_id: str) -> List[Subscription]:
        processor = self.processor
        return await self._cached_read(
            "list_subscriptions",
            processor,
            subscriptions_by_customer_key(processor.processor_type, customer_id),
            self.ttl_policy.subscription,
            lambda: processor.list_subscriptions(customer_id),
            List[Subscription],
        )

    async def get_active_subscription(
        self, customer_id: str, product_id: Optional[str] = None
    ) -> Optional[Subscription]:
        """
        First active or trialing subscription of a customer.

        Args:
            customer_id: Processor customer ID
            product_id: Only consider subscriptions to this product

        Returns:
            The subscription, or None if the customer has no live one
        """
        for subscription in await self.list_subscriptions(customer_id):
            if not subscription.status.is_live():
                continue
            if product_id is not None and subscription.product_id != product_id:
                continue
            return subscription
        return None

    async def has_active_subscription(
        self, customer_id: str, product_id: Optional[str] = None
    ) -> bool:
        return await self.get_active_subscription(customer_id, product_id) is not None

    async def is_on_trial(self, customer_id: str, product_id: Optional[str] = None) -> bool:
        subscription = await self.get_active_subscription(customer_id, product_id)
        return subscription is not None and subscription.is_on_trial(self._clock())

    @trace_span
    async def update_subscription(
        self,
        subscription_id: str,
        price_id: Optional[str] = None,
        quantity: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Subscription:
        processor = self.processor
        subscription = await self._write(
            "update_subscription",
            processor,
            lambda: processor.update_subscription(
                subscription_id, price_id=price_id, quantity=quantity, metadata=metadata
            ),
        )
        await self._store_subscription(processor, subscription)
        return subscription

    @trace_span
    async def cancel_subscription(
        self, subscription_id: str, immediate: bool = False
    ) -> Subscription:
        processor = self.processor
        subscription = await self._write(
            "cancel_subscription",
            processor,
            lambda: processor.cancel_subscription(subscription_id, immediate=immediate),
        )
        await self._store_subscription(processor, subscription)
        logger.info(
            f"Canceled subscription {subscription_id}",
            extra={"subscription_id": subscription_id, "immediate": immediate},
        )
        return subscription

    @trace_span
    async def resume_subscription(self, subscription_id: str) -> Subscription:
        processor = self.processor
        subscription = await self._write(
            "resume_subscription",
            processor,
            lambda: processor.resume_subscription(subscription_id),
        )
        await self._store_subscription(processor, subscription)
        return subscription

    # Charges

    @trace_span
    async def create_charge(
        self,
        amount: int,
        currency: str,
        customer_id: str,
        payment_method_id: Optional[str] = None,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Charge:
        processor = self.processor
        charge = await self._write(
            "create_charge",
            processor,
            lambda: processor.create_charge(
                amount,
                currency,
                customer_id,
                payment_method_id=payment_method_id,
                description=description,
                metadata=metadata,
            ),
        )
        await self.cache.put(
            charge_key(processor.processor_type, charge.id),
            charge,
            self.ttl_policy.charge,
            Charge,
        )
        logger.info(
            f"Created charge {charge.id}",
            extra={"charge_id": charge.id, "customer_id": customer_id, "amount": amount},
        )
        return charge

    @trace_span
    async def get_charge(self, charge_id: str) -> Charge:
        processor = self.processor
        return await self._cached_read(
            "get_charge",
            processor,
            charge_key(processor.processor_type, charge_id),
            self.ttl_policy.charge,
            lambda: processor.get_charge(charge_id),
            Charge,
        )

    @trace_span
    async def list_charges(self, customer_id: str, limit: int = 10) -> List[Charge]:
        """
        Payment history of a customer, newest first.

        Not cached: the view depends on limit and grows with every charge.
        Transient network failures are retried like other reads.
        """
        processor = self.processor
        try:
            return await self._with_retry(
                "list_charges", lambda: processor.list_charges(customer_id, limit=limit)
            )
        except PaymentException as e:
            self._log_failure("list_charges", processor, e)
            raise

    @trace_span
    async def refund_charge(
        self,
        charge_id: str,
        amount: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> Charge:
        processor = self.processor
        charge = await self._write(
            "refund_charge",
            processor,
            lambda: processor.refund_charge(charge_id, amount=amount, reason=reason),
        )
        await self.cache.put(
            charge_key(processor.processor_type, charge_id),
            charge,
            self.ttl_policy.charge,
            Charge,
        )
        return charge

    # Webhooks

    def _default_webhook_secret(self, processor: PaymentProcessorInterface) -> Optional[str]:
        if processor.processor_type == ProcessorType.STRIPE:
            return settings.stripe_webhook_secret
        if processor.processor_type == ProcessorType.FAKE:
            return settings.fake_webhook_secret
        return None

    @trace_span
    async def handle_webhook(
        self,
        raw_body: Union[bytes, str],
        signature_header: Optional[str],
        secret: Optional[str] = None,
    ) -> WebhookEvent:
        """
        Verify and parse a webhook, then drop cache entries for the objects it names.

        Args:
            raw_body: Request body exactly as received
            signature_header: Value of the processor's signature header
            secret: Signing secret; defaults to the configured secret of the active processor

        Returns:
            The verified WebhookEvent
        """
        processor = self.processor
        try:
            event = ingest_webhook(
                processor,
                raw_body,
                signature_header,
                secret or self._default_webhook_secret(processor),
            )
        except PaymentException as e:
            self._log_failure("handle_webhook", processor, e)
            raise

        await self._invalidate_for_event(processor.processor_type, event)
        return event

    async def _invalidate_for_event(self, tag: ProcessorType, event: WebhookEvent) -> None:
        obj = event.data_object
        object_id = event.object_id()
        object_kind = obj.get("object") or _object_kind_from_event_type(event.type)
        customer_id = obj.get("customer") if isinstance(obj.get("customer"), str) else None

        if object_kind == "customer" and object_id:
            await self.cache.invalidate(customer_key(tag, object_id))
            await self._invalidate_payment_methods(tag, object_id)
        elif object_kind == "subscription" and object_id:
            await self.cache.invalidate(subscription_key(tag, object_id))
            if customer_id:
                await self.cache.invalidate(subscriptions_by_customer_key(tag, customer_id))
        elif object_kind == "payment_method" and object_id:
            await self.cache.invalidate(payment_method_key(tag, object_id))
            if customer_id:
                await self._invalidate_payment_methods(tag, customer_id)
        elif object_kind in ("charge", "payment_intent") and object_id:
            await self.cache.invalidate(charge_key(tag, object_id))
            payment_intent = obj.get("payment_intent")
            if isinstance(payment_intent, str):
                await self.cache.invalidate(charge_key(tag, payment_intent))
        elif object_kind == "invoice":
            subscription_id = obj.get("subscription")
            if isinstance(subscription_id, str):
                await self.cache.invalidate(subscription_key(tag, subscription_id))
            if customer_id:
                await self.cache.invalidate(subscriptions_by_customer_key(tag, customer_id))

        logger.info(
            f"Processed webhook {event.id}: {event.type}",
            extra={"event_id": event.id, "event_type": event.type, "object_id": object_id},
        )

    # Maintenance

    @trace_span
    async def health_check(self) -> bool:
        healthy = await self.processor.health_check()
        if not healthy:
            logger.warning(f"{self.processor.name} health check failed")
        return healthy

    async def clear_cache(self) -> None:
        await self.cache.clear()


def _object_kind_from_event_type(event_type: str) -> Optional[str]:
    """Infer the affected object from event types like customer.subscription.updated."""
    if event_type.startswith("customer.subscription."):
        return "subscription"
    for prefix in ("customer", "payment_method", "payment_intent", "charge", "invoice"):
        if event_type.startswith(f"{prefix}."):
            return prefix
    return None

"""
Stripe implementation of payment processor.

Uses the official SDK's StripeClient with async service methods over the
httpx transport. Stripe failures are converted to a GatewayFailure and
classified by the shared error normalizer.
"""

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar, Union
from uuid import uuid4

import stripe

from common.core.config import settings
from common.core.otel_axiom_exporter import get_logger, trace_span
from packages.payments.exceptions import (
    CustomerNotFoundException,
    InvalidConfigurationException,
    PaymentException,
    PaymentMethodException,
    ProcessorException,
    WebhookException,
)
from packages.payments.models.domain import (
    BillingDetails,
    Charge,
    ChargeStatus,
    Customer,
    PaymentMethod,
    PaymentMethodType,
    ProcessorType,
    Subscription,
    SubscriptionStatus,
    WebhookEvent,
)
from packages.payments.providers.processors.error_normalizer import (
    GatewayFailure,
    ResourceType,
    normalize_gateway_failure,
)
from packages.payments.providers.processors.interface import PaymentProcessorInterface

logger = get_logger(__name__)

T = TypeVar("T")

STRIPE_API_BASE = "https://api.stripe.com"

DEFAULT_RETRY_AFTER_SECONDS = 5.0
MAX_RETRY_AFTER_SECONDS = 60.0

_PAYMENT_METHOD_TYPES = {
    "card": PaymentMethodType.CARD,
    "us_bank_account": PaymentMethodType.BANK_ACCOUNT,
    "sepa_debit": PaymentMethodType.BANK_ACCOUNT,
    "bacs_debit": PaymentMethodType.BANK_ACCOUNT,
    "paypal": PaymentMethodType.PAYPAL,
}

_WALLET_TYPES = {
    "apple_pay": PaymentMethodType.APPLE_PAY,
    "google_pay": PaymentMethodType.GOOGLE_PAY,
}

# PaymentIntent statuses that have not reached a final outcome yet
_PENDING_INTENT_STATUSES = {
    "processing",
    "requires_action",
    "requires_capture",
    "requires_confirmation",
    "requires_payment_method",
}


def _as_dict(obj: Any) -> Dict[str, Any]:
    if obj is None:
        return {}
    return obj if isinstance(obj, dict) else obj.to_dict()


def _id_of(value: Any) -> Optional[str]:
    """Stripe references are either an id string or an expanded object."""
    if value is None or isinstance(value, str):
        return value
    return _as_dict(value).get("id")


def _timestamp(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _idempotency_options() -> Dict[str, str]:
    return {"idempotency_key": str(uuid4())}


def _retry_after_seconds(error: stripe.StripeError) -> Optional[float]:
    """Seconds to wait from a 429's Retry-After header, None when absent."""
    headers = error.headers or {}
    value = next(
        (v for k, v in headers.items() if k.lower() == "retry-after"),
        None,
    )
    if value is None:
        return None
    try:
        delay = float(value)
    except (TypeError, ValueError):
        delay = DEFAULT_RETRY_AFTER_SECONDS
    return min(max(delay, 0.0), MAX_RETRY_AFTER_SECONDS)


class StripePaymentProcessor(PaymentProcessorInterface):
    """Stripe-based payment processor."""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        publishable_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        client: Optional[stripe.StripeClient] = None,
    ):
        """
        Validate credentials and build the Stripe client.

        Raises:
            InvalidConfigurationException: If a key is missing or malformed
        """
        secret_key = secret_key or settings.stripe_secret_key
        publishable_key = publishable_key or settings.stripe_publishable_key
        webhook_secret = webhook_secret or settings.stripe_webhook_secret

        if not secret_key:
            raise InvalidConfigurationException(
                "Stripe secret key is required", field_name="stripe_secret_key"
            )
        if not secret_key.startswith(("sk_", "rk_")):
            raise InvalidConfigurationException(
                "Stripe secret key must start with sk_ or rk_",
                field_name="stripe_secret_key",
            )
        if publishable_key and not publishable_key.startswith("pk_"):
            raise InvalidConfigurationException(
                "Stripe publishable key must start with pk_",
                field_name="stripe_publishable_key",
            )
        if webhook_secret and not webhook_secret.startswith("whsec_"):
            raise InvalidConfigurationException(
                "Stripe webhook secret must start with whsec_",
                field_name="stripe_webhook_secret",
            )

        self.publishable_key = publishable_key
        self.webhook_secret = webhook_secret
        self.client = client or stripe.StripeClient(
            secret_key,
            stripe_version=settings.stripe_api_version,
            max_network_retries=settings.stripe_max_network_retries,
            http_client=stripe.HTTPXClient(timeout=settings.http_timeout_seconds),
        )
        logger.info("Stripe processor initialized")

    @property
    def processor_type(self) -> ProcessorType:
        return ProcessorType.STRIPE

    @property
    def name(self) -> str:
        return "Stripe"

    # Error handling

    def _to_gateway_failure(self, error: stripe.StripeError, path: str) -> GatewayFailure:
        url = f"{STRIPE_API_BASE}{path}"
        if isinstance(error, stripe.APIConnectionError):
            return GatewayFailure(
                message=error.user_message or "Could not connect to Stripe",
                is_transport_error=True,
                url=url,
                original_error=error,
            )

        body = error.json_body if isinstance(error.json_body, dict) else None
        envelope = body.get("error") if body else None
        details = envelope if isinstance(envelope, dict) else {}
        payment_method = _as_dict(details.get("payment_method"))
        card = _as_dict(payment_method.get("card"))

        return GatewayFailure(
            message=details.get("message") or error.user_message or "Stripe request failed",
            status_code=error.http_status,
            code=error.code or details.get("code"),
            field=getattr(error, "param", None) or details.get("param"),
            vendor_type=details.get("type"),
            decline_code=details.get("decline_code"),
            payment_method_type=payment_method.get("type"),
            last4=card.get("last4"),
            url=url,
            has_vendor_payload=bool(details),
            original_error=error,
        )

    async def _request(
        self,
        operation: str,
        call: Callable[[], Awaitable[T]],
        path: str,
        resource_type: Optional[ResourceType] = None,
        resource_id: Optional[str] = None,
    ) -> T:
        """
        Run a Stripe call, normalizing any Stripe failure.

        A rate-limited call that carries Retry-After is retried once after the
        advertised wait. Stripe rejects 429s before doing any work.
        """
        try:
            try:
                return await call()
            except stripe.RateLimitError as e:
                delay = _retry_after_seconds(e)
                if delay is None:
                    raise
                logger.warning(
                    f"Stripe {operation} rate limited, retrying in {delay}s",
                    extra={"operation": operation, "retry_after": delay},
                )
                await asyncio.sleep(delay)
                return await call()
        except stripe.StripeError as e:
            error = normalize_gateway_failure(
                self._to_gateway_failure(e, path),
                self.name,
                resource_type=resource_type,
                resource_id=resource_id,
            )
            logger.error(
                f"Stripe {operation} failed: {error.message}",
                extra={
                    "operation": operation,
                    "error_kind": error.kind.value,
                    "code": error.code,
                    "resource_id": resource_id,
                },
            )
            raise error from e

    def _convert(self, operation: str, mapper: Callable[..., T], obj: Any, **kwargs: Any) -> T:
        """Map a Stripe object to a domain model; malformed responses become ProcessorException."""
        try:
            return mapper(_as_dict(obj), **kwargs)
        except PaymentException:
            raise
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.error(
                f"Unexpected Stripe response for {operation}: {e}",
                extra={"operation": operation},
            )
            raise ProcessorException(
                f"Unexpected Stripe response for {operation}",
                code="unexpected_response",
                processor_name=self.name,
                original_error=e,
            ) from e

    # Mappers

    def _map_customer(self, data: Dict[str, Any]) -> Customer:
        if data.get("deleted"):
            raise CustomerNotFoundException(
                f"Customer {data.get('id')} has been deleted",
                code="resource_missing",
                customer_id=data.get("id"),
            )
        created = _timestamp(data.get("created")) or datetime.now(timezone.utc)
        return Customer(
            id=data["id"],
            email=data.get("email") or "",
            name=data.get("name"),
            phone=data.get("phone"),
            processor=ProcessorType.STRIPE,
            processor_customer_id=data["id"],
            metadata=dict(data["metadata"]) if data.get("metadata") else None,
            created_at=created,
            updated_at=created,
        )

    def _map_payment_method(
        self, data: Dict[str, Any], default_payment_method_id: Optional[str] = None
    ) -> PaymentMethod:
        stripe_type = data["type"]
        card = _as_dict(data.get("card"))
        wallet = _as_dict(card.get("wallet"))

        method_type = _WALLET_TYPES.get(wallet.get("type")) or _PAYMENT_METHOD_TYPES.get(stripe_type)
        if method_type is None:
            raise ValueError(f"Unsupported Stripe payment method type: {stripe_type}")

        billing = _as_dict(data.get("billing_details"))
        if stripe_type == "us_bank_account":
            last4 = _as_dict(data.get("us_bank_account")).get("last4")
        else:
            last4 = card.get("last4")

        return PaymentMethod(
            id=data["id"],
            customer_id=_id_of(data.get("customer")),
            type=method_type,
            last4=last4,
            brand=card.get("brand"),
            expiry_month=card.get("exp_month"),
            expiry_year=card.get("exp_year"),
            is_default=default_payment_method_id is not None
            and data["id"] == default_payment_method_id,
            billing_details=BillingDetails.model_validate(billing) if billing else None,
            metadata=dict(data["metadata"]) if data.get("metadata") else None,
        )

    def _map_subscription(self, data: Dict[str, Any]) -> Subscription:
        items = _as_dict(data.get("items")).get("data") or []
        item = _as_dict(items[0]) if items else {}
        price = _as_dict(item.get("price") or data.get("plan"))
        status = SubscriptionStatus(data["status"])

        # Newer API versions report billing periods per subscription item
        period_start = data.get("current_period_start") or item.get("current_period_start")
        period_end = data.get("current_period_end") or item.get("current_period_end")

        return Subscription(
            id=data["id"],
            customer_id=_id_of(data["customer"]),
            status=status,
            price_id=price.get("id", ""),
            product_id=_id_of(price.get("product")) or "",
            quantity=item.get("quantity") or data.get("quantity") or 1,
            current_period_start=_timestamp(period_start),
            current_period_end=_timestamp(period_end),
            trial_start=_timestamp(data.get("trial_start")),
            trial_end=_timestamp(data.get("trial_end")),
            # Stripe also stamps canceled_at on scheduled cancellations
            canceled_at=_timestamp(data.get("canceled_at")) if status.is_canceled_family() else None,
            cancel_at_period_end=bool(data.get("cancel_at_period_end")),
            processor=ProcessorType.STRIPE,
            processor_subscription_id=data["id"],
            metadata=dict(data["metadata"]) if data.get("metadata") else None,
        )

    def _map_charge(self, data: Dict[str, Any], customer_id: Optional[str] = None) -> Charge:
        """Map a PaymentIntent (pi_...) or a legacy Charge (ch_...)."""
        is_intent = data.get("object") == "payment_intent" or data["id"].startswith("pi_")
        latest_charge = data.get("latest_charge")
        if not is_intent:
            charge_data = data
        elif isinstance(latest_charge, str):
            # Not expanded, refund details unavailable
            charge_data = {}
        else:
            charge_data = _as_dict(latest_charge)

        amount = data["amount"]
        refunded_amount = charge_data.get("amount_refunded") or 0
        raw_status = data["status"]

        if refunded_amount and refunded_amount >= amount:
            status = ChargeStatus.REFUNDED
        elif raw_status == "succeeded":
            status = ChargeStatus.SUCCEEDED
        elif raw_status in _PENDING_INTENT_STATUSES or raw_status == "pending":
            status = ChargeStatus.PENDING
        else:
            status = ChargeStatus.FAILED

        return Charge(
            id=data["id"],
            customer_id=_id_of(data.get("customer")) or customer_id or "",
            amount=amount,
            currency=data["currency"],
            status=status,
            description=data.get("description"),
            receipt_url=charge_data.get("receipt_url"),
            refunded=refunded_amount > 0,
            refunded_amount=refunded_amount,
            processor_charge_id=data["id"],
            processor=ProcessorType.STRIPE,
            created_at=_timestamp(data.get("created")) or datetime.now(timezone.utc),
            metadata=dict(data["metadata"]) if data.get("metadata") else None,
        )

    # Customers

    @trace_span
    async def create_customer(
        self,
        email: str,
        name: Optional[str] = None,
        phone: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Customer:
        params: Dict[str, Any] = {"email": email}
        if name is not None:
            params["name"] = name
        if phone is not None:
            params["phone"] = phone
        if metadata:
            params["metadata"] = metadata

        customer = await self._request(
            "create_customer",
            lambda: self.client.v1.customers.create_async(
                params=params, options=_idempotency_options()
            ),
            "/v1/customers",
            ResourceType.CUSTOMER,
        )
        result = self._convert("create_customer", self._map_customer, customer)
        logger.info("Created Stripe customer", extra={"customer_id": result.id})
        return result

    async def _retrieve_customer(self, customer_id: str) -> Dict[str, Any]:
        customer = await self._request(
            "get_customer",
            lambda: self.client.v1.customers.retrieve_async(customer_id),
            f"/v1/customers/{customer_id}",
            ResourceType.CUSTOMER,
            customer_id,
        )
        return _as_dict(customer)

    @trace_span
    async def get_customer(self, customer_id: str) -> Customer:
        customer = await self._retrieve_customer(customer_id)
        return self._convert("get_customer", self._map_customer, customer)

    @trace_span
    async def update_customer(
        self,
        customer_id: str,
        email: Optional[str] = None,
        name: Optional[str] = None,
        phone: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Customer:
        params = {
            key: value
            for key, value in (("email", email), ("name", name), ("phone", phone), ("metadata", metadata))
            if value is not None
        }
        customer = await self._request(
            "update_customer",
            lambda: self.client.v1.customers.update_async(customer_id, params=params),
            f"/v1/customers/{customer_id}",
            ResourceType.CUSTOMER,
            customer_id,
        )
        return self._convert("update_customer", self._map_customer, customer)

    @trace_span
    async def delete_customer(self, customer_id: str) -> None:
        await self._request(
            "delete_customer",
            lambda: self.client.v1.customers.delete_async(customer_id),
            f"/v1/customers/{customer_id}",
            ResourceType.CUSTOMER,
            customer_id,
        )
        logger.info("Deleted Stripe customer", extra={"customer_id": customer_id})

    # Payment methods

    async def _default_payment_method_id(self, customer_id: Optional[str]) -> Optional[str]:
        if not customer_id:
            return None
        customer = await self._retrieve_customer(customer_id)
        invoice_settings = _as_dict(customer.get("invoice_settings"))
        return _id_of(invoice_settings.get("default_payment_method"))

    @trace_span
    async def create_payment_method(
        self,
        payment_method_token: str,
        type: PaymentMethodType = PaymentMethodType.CARD,
        billing_details: Optional[BillingDetails] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PaymentMethod:
        if not payment_method_token:
            raise PaymentMethodException(
                "Payment method token cannot be empty",
                code="invalid_token",
                payment_method_type=type.value,
            )

        params: Dict[str, Any] = {"type": "card", "card": {"token": payment_method_token}}
        if billing_details is not None:
            params["billing_details"] = billing_details.model_dump(exclude_none=True)
        if metadata:
            params["metadata"] = metadata

        payment_method = await self._request(
            "create_payment_method",
            lambda: self.client.v1.payment_methods.create_async(
                params=params, options=_idempotency_options()
            ),
            "/v1/payment_methods",
            ResourceType.PAYMENT_METHOD,
        )
        return self._convert("create_payment_method", self._map_payment_method, payment_method)

    @trace_span
    async def attach_payment_method(
        self,
        payment_method_id: str,
        customer_id: str,
        set_as_default: bool = False,
    ) -> PaymentMethod:
        payment_method = await self._request(
            "attach_payment_method",
            lambda: self.client.v1.payment_methods.attach_async(
                payment_method_id, params={"customer": customer_id}
            ),
            f"/v1/payment_methods/{payment_method_id}/attach",
            ResourceType.PAYMENT_METHOD,
            payment_method_id,
        )

        if set_as_default:
            return await self.set_default_payment_method(customer_id, payment_method_id)

        default_id = await self._default_payment_method_id(customer_id)
        if default_id is None:
            # First method becomes the default, matching the fake processor
            return await self.set_default_payment_method(customer_id, payment_method_id)

        return self._convert(
            "attach_payment_method",
            self._map_payment_method,
            payment_method,
            default_payment_method_id=default_id,
        )

    @trace_span
    async def get_payment_method(self, payment_method_id: str) -> PaymentMethod:
        payment_method = _as_dict(
            await self._request(
                "get_payment_method",
                lambda: self.client.v1.payment_methods.retrieve_async(payment_method_id),
                f"/v1/payment_methods/{payment_method_id}",
                ResourceType.PAYMENT_METHOD,
                payment_method_id,
            )
        )
        default_id = await self._default_payment_method_id(_id_of(payment_method.get("customer")))
        return self._convert(
            "get_payment_method",
            self._map_payment_method,
            payment_method,
            default_payment_method_id=default_id,
        )

    @trace_span
    async def list_payment_methods(self, customer_id: str) -> List[PaymentMethod]:
        default_id = await self._default_payment_method_id(customer_id)
        page = await self._request(
            "list_payment_methods",
            lambda: self.client.v1.payment_methods.list_async(
                params={"customer": customer_id, "limit": 100}
            ),
            "/v1/payment_methods",
            ResourceType.CUSTOMER,
            customer_id,
        )
        return [
            self._convert(
                "list_payment_methods",
                self._map_payment_method,
                item,
                default_payment_method_id=default_id,
            )
            for item in _as_dict(page).get("data", [])
        ]

    @trace_span
    async def set_default_payment_method(
        self, customer_id: str, payment_method_id: str
    ) -> PaymentMethod:
        await self._request(
            "set_default_payment_method",
            lambda: self.client.v1.customers.update_async(
                customer_id,
                params={"invoice_settings": {"default_payment_method": payment_method_id}},
            ),
            f"/v1/customers/{customer_id}",
            ResourceType.CUSTOMER,
            customer_id,
        )
        payment_method = await self._request(
            "set_default_payment_method",
            lambda: self.client.v1.payment_methods.retrieve_async(payment_method_id),
            f"/v1/payment_methods/{payment_method_id}",
            ResourceType.PAYMENT_METHOD,
            payment_method_id,
        )
        logger.info(
            "Set default Stripe payment method",
            extra={"customer_id": customer_id, "payment_method_id": payment_method_id},
        )
        return self._convert(
            "set_default_payment_method",
            self._map_payment_method,
            payment_method,
            default_payment_method_id=payment_method_id,
        )

    @trace_span
    async def detach_payment_method(self, payment_method_id: str) -> None:
        await self._request(
            "detach_payment_method",
            lambda: self.client.v1.payment_methods.detach_async(payment_method_id),
            f"/v1/payment_methods/{payment_method_id}/detach",
            ResourceType.PAYMENT_METHOD,
            payment_method_id,
        )
        logger.info(
            "Detached Stripe payment method", extra={"payment_method_id": payment_method_id}
        )

    # Subscriptions

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
        params: Dict[str, Any] = {
            "customer": customer_id,
            "items": [{"price": price_id, "quantity": quantity}],
        }
        if payment_method_id:
            params["default_payment_method"] = payment_method_id
        if trial_days:
            params["trial_period_days"] = trial_days
        if metadata:
            params["metadata"] = metadata

        subscription = await self._request(
            "create_subscription",
            lambda: self.client.v1.subscriptions.create_async(
                params=params, options=_idempotency_options()
            ),
            "/v1/subscriptions",
            ResourceType.CUSTOMER,
            customer_id,
        )
        result = self._convert("create_subscription", self._map_subscription, subscription)
        logger.info(
            "Created Stripe subscription",
            extra={
                "subscription_id": result.id,
                "customer_id": customer_id,
                "status": result.status.value,
            },
        )
        return result

    async def _retrieve_subscription(self, subscription_id: str) -> Dict[str, Any]:
        subscription = await self._request(
            "get_subscription",
            lambda: self.client.v1.subscriptions.retrieve_async(subscription_id),
            f"/v1/subscriptions/{subscription_id}",
            ResourceType.SUBSCRIPTION,
            subscription_id,
        )
        return _as_dict(subscription)

    @trace_span
    async def get_subscription(self, subscription_id: str) -> Subscription:
        subscription = await self._retrieve_subscription(subscription_id)
        return self._convert("get_subscription", self._map_subscription, subscription)

    @trace_span
    async def list_subscriptions(self, customer_id: str) -> List[Subscription]:
        page = await self._request(
            "list_subscriptions",
            lambda: self.client.v1.subscriptions.list_async(
                params={"customer": customer_id, "status": "all", "limit": 100}
            ),
            "/v1/subscriptions",
            ResourceType.CUSTOMER,
            customer_id,
        )
        return [
            self._convert("list_subscriptions", self._map_subscription, item)
            for item in _as_dict(page).get("data", [])
        ]

    @trace_span
    async def update_subscription(
        self,
        subscription_id: str,
        price_id: Optional[str] = None,
        quantity: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Subscription:
        params: Dict[str, Any] = {}
        if price_id is not None or quantity is not None:
            # Item changes must reference the existing subscription item
            current = await self._retrieve_subscription(subscription_id)
            items = _as_dict(current.get("items")).get("data") or []
            item: Dict[str, Any] = {"id": _as_dict(items[0])["id"]} if items else {}
            if price_id is not None:
                item["price"] = price_id
            if quantity is not None:
                item["quantity"] = quantity
            params["items"] = [item]
        if metadata is not None:
            params["metadata"] = metadata

        subscription = await self._request(
            "update_subscription",
            lambda: self.client.v1.subscriptions.update_async(subscription_id, params=params),
            f"/v1/subscriptions/{subscription_id}",
            ResourceType.SUBSCRIPTION,
            subscription_id,
        )
        return self._convert("update_subscription", self._map_subscription, subscription)

    @trace_span
    async def cancel_subscription(
        self, subscription_id: str, immediate: bool = False
    ) -> Subscription:
        if immediate:
            subscription = await self._request(
                "cancel_subscription",
                lambda: self.client.v1.subscriptions.cancel_async(subscription_id),
                f"/v1/subscriptions/{subscription_id}",
                ResourceType.SUBSCRIPTION,
                subscription_id,
            )
        else:
            subscription = await self._request(
                "cancel_subscription",
                lambda: self.client.v1.subscriptions.update_async(
                    subscription_id, params={"cancel_at_period_end": True}
                ),
                f"/v1/subscriptions/{subscription_id}",
                ResourceType.SUBSCRIPTION,
                subscription_id,
            )

        logger.info(
            "Canceled Stripe subscription",
            extra={"subscription_id": subscription_id, "immediate": immediate},
        )
        return self._convert("cancel_subscription", self._map_subscription, subscription)

    @trace_span
    async def resume_subscription(self, subscription_id: str) -> Subscription:
        subscription = await self._request(
            "resume_subscription",
            lambda: self.client.v1.subscriptions.update_async(
                subscription_id, params={"cancel_at_period_end": False}
            ),
            f"/v1/subscriptions/{subscription_id}",
            ResourceType.SUBSCRIPTION,
            subscription_id,
        )
        return self._convert("resume_subscription", self._map_subscription, subscription)

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
        params: Dict[str, Any] = {
            "amount": amount,
            "currency": currency.lower(),
            "customer": customer_id,
            "confirm": True,
            "off_session": True,
            "automatic_payment_methods": {"enabled": True, "allow_redirects": "never"},
            "expand": ["latest_charge"],
        }
        if payment_method_id:
            params["payment_method"] = payment_method_id
        else:
            default_id = await self._default_payment_method_id(customer_id)
            if default_id is None:
                raise PaymentMethodException(
                    "No default payment method found for customer",
                    code="no_default_payment_method",
                )
            params["payment_method"] = default_id
        if description:
            params["description"] = description
        if metadata:
            params["metadata"] = metadata

        intent = await self._request(
            "create_charge",
            lambda: self.client.v1.payment_intents.create_async(
                params=params, options=_idempotency_options()
            ),
            "/v1/payment_intents",
            ResourceType.CHARGE,
        )
        charge = self._convert("create_charge", self._map_charge, intent, customer_id=customer_id)
        logger.info(
            "Created Stripe charge",
            extra={"charge_id": charge.id, "customer_id": customer_id, "status": charge.status.value},
        )
        return charge

    async def _retrieve_charge(self, charge_id: str) -> Any:
        if charge_id.startswith("ch_"):
            return await self._request(
                "get_charge",
                lambda: self.client.v1.charges.retrieve_async(charge_id),
                f"/v1/charges/{charge_id}",
                ResourceType.CHARGE,
                charge_id,
            )
        return await self._request(
            "get_charge",
            lambda: self.client.v1.payment_intents.retrieve_async(
                charge_id, params={"expand": ["latest_charge"]}
            ),
            f"/v1/payment_intents/{charge_id}",
            ResourceType.CHARGE,
            charge_id,
        )

    @trace_span
    async def get_charge(self, charge_id: str) -> Charge:
        charge = await self._retrieve_charge(charge_id)
        return self._convert("get_charge", self._map_charge, charge)

    @trace_span
    async def list_charges(self, customer_id: str, limit: int = 10) -> List[Charge]:
        # Stripe lists newest first
        page = await self._request(
            "list_charges",
            lambda: self.client.v1.payment_intents.list_async(
                params={
                    "customer": customer_id,
                    "limit": limit,
                    "expand": ["data.latest_charge"],
                }
            ),
            "/v1/payment_intents",
            ResourceType.CUSTOMER,
            customer_id,
        )
        return [
            self._convert("list_charges", self._map_charge, item, customer_id=customer_id)
            for item in _as_dict(page).get("data", [])
        ]

    @trace_span
    async def refund_charge(
        self,
        charge_id: str,
        amount: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> Charge:
        params: Dict[str, Any] = (
            {"charge": charge_id} if charge_id.startswith("ch_") else {"payment_intent": charge_id}
        )
        if amount is not None:
            params["amount"] = amount
        if reason:
            params["reason"] = reason

        await self._request(
            "refund_charge",
            lambda: self.client.v1.refunds.create_async(
                params=params, options=_idempotency_options()
            ),
            "/v1/refunds",
            ResourceType.CHARGE,
            charge_id,
        )
        logger.info("Refunded Stripe charge", extra={"charge_id": charge_id, "amount": amount})

        charge = await self._retrieve_charge(charge_id)
        return self._convert("refund_charge", self._map_charge, charge)

    # Webhooks

    def verify_webhook_signature(
        self, raw_body: Union[bytes, str], signature_header: str, secret: str
    ) -> bool:
        if not signature_header or not secret:
            return False
        try:
            payload = raw_body.decode("utf-8") if isinstance(raw_body, bytes) else raw_body
            stripe.WebhookSignature.verify_header(
                payload,
                signature_header,
                secret,
                tolerance=settings.stripe_webhook_tolerance_seconds,
            )
        except UnicodeDecodeError:
            return False
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Stripe webhook signature verification failed: {e.user_message}")
            return False
        return True

    def parse_webhook_event(self, raw_body: Union[bytes, str]) -> WebhookEvent:
        try:
            payload = json.loads(raw_body)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise WebhookException(
                "Webhook payload is not valid JSON", code="malformed_payload", original_error=e
            ) from e

        if not isinstance(payload, dict):
            raise WebhookException("Webhook payload must be an object", code="malformed_payload")
        if not payload.get("id"):
            raise WebhookException(
                "Missing webhook event id",
                code="missing_event_id",
                event_type=payload.get("type"),
            )
        if not payload.get("type"):
            raise WebhookException(
                "Missing webhook event type", code="missing_event_type", webhook_id=payload["id"]
            )

        try:
            return WebhookEvent(
                id=payload["id"],
                type=payload["type"],
                processor=ProcessorType.STRIPE,
                data=payload.get("data") or {},
                created_at=_timestamp(payload.get("created")) or datetime.now(timezone.utc),
            )
        except (TypeError, ValueError, OverflowError, OSError) as e:
            # OverflowError and OSError come from out-of-range created timestamps
            raise WebhookException(
                "Webhook payload has an invalid shape",
                code="malformed_payload",
                webhook_id=str(payload["id"]),
                event_type=str(payload["type"]),
                original_error=e,
            ) from e

    @trace_span
    async def health_check(self) -> bool:
        try:
            await self._request(
                "health_check",
                lambda: self.client.v1.balance.retrieve_async(),
                "/v1/balance",
            )
        except PaymentException as e:
            logger.error(f"Payment health check failed: {e}")
            return False
        return True

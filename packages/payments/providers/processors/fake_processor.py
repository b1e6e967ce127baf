"""
Fake implementation of payment processor.

Deterministic and in-memory; never performs network I/O. Outcomes are canned
by input pattern so tests and demos can exercise every failure kind:

- Payment method tokens follow Stripe's test-token names (tok_visa,
  tok_chargeDeclinedInsufficientFunds, ...). Declining tokens create a
  method whose charges fail.
- Any string argument containing "simulate_network_error" or
  "simulate_auth_error" fails with the matching exception.
- A seeded failure_rate makes random operations fail reproducibly.
"""

import asyncio
import hashlib
import hmac
import json
import random
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from pydantic import ValidationError

from common.core.config import settings
from common.core.otel_axiom_exporter import get_logger, trace_span
from packages.payments.exceptions import (
    AuthenticationException,
    CustomerNotFoundException,
    InvalidConfigurationException,
    NetworkException,
    PaymentMethodException,
    ProcessorException,
    SubscriptionNotFoundException,
    ValidationException,
    WebhookException,
)
from packages.payments.models.domain import (
    BillingDetails,
    BillingInterval,
    Charge,
    ChargeStatus,
    Customer,
    PaymentMethod,
    PaymentMethodType,
    Price,
    ProcessorType,
    Subscription,
    SubscriptionStatus,
    WebhookEvent,
)
from packages.payments.models.domain.common import normalize_currency
from packages.payments.providers.processors.interface import PaymentProcessorInterface

logger = get_logger(__name__)

NETWORK_ERROR_MARKER = "simulate_network_error"
AUTH_ERROR_MARKER = "simulate_auth_error"
SIGNATURE_PREFIX = "sha256="
RECEIPT_URL_TEMPLATE = "https://fake-processor.example.com/receipt/{charge_id}"
DEFAULT_PERIOD = timedelta(days=30)

_INTERVAL_DAYS = {
    BillingInterval.DAY: 1,
    BillingInterval.WEEK: 7,
    BillingInterval.MONTH: 30,
    BillingInterval.YEAR: 365,
}


@dataclass(frozen=True)
class _CardOutcome:
    brand: str
    last4: str
    decline_code: Optional[str] = None


TEST_TOKENS: Dict[str, _CardOutcome] = {
    "tok_visa": _CardOutcome("visa", "4242"),
    "tok_mastercard": _CardOutcome("mastercard", "4444"),
    "tok_amex": _CardOutcome("amex", "8431"),
    "tok_chargeDeclined": _CardOutcome("visa", "0002", "card_declined"),
    "tok_chargeDeclinedInsufficientFunds": _CardOutcome("visa", "9995", "insufficient_funds"),
    "tok_chargeDeclinedExpiredCard": _CardOutcome("visa", "0069", "expired_card"),
    "tok_threeDSecureRequired": _CardOutcome("visa", "3220", "authentication_required"),
}

_DECLINE_MESSAGES = {
    "card_declined": "Your card was declined.",
    "insufficient_funds": "Your card has insufficient funds.",
    "expired_card": "Your card has expired.",
    "authentication_required": "Your card requires authentication.",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_bytes(raw_body: Union[bytes, str]) -> bytes:
    return raw_body.encode("utf-8") if isinstance(raw_body, str) else raw_body


def sign_webhook_payload(raw_body: Union[bytes, str], secret: str) -> str:
    """Build the signature header the fake processor expects for a body."""
    digest = hmac.new(secret.encode("utf-8"), _to_bytes(raw_body), hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


class FakePaymentProcessor(PaymentProcessorInterface):
    """In-memory payment processor for tests, demos and local development."""

    def __init__(
        self,
        delay_seconds: Optional[float] = None,
        failure_rate: float = 0.0,
        seed: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
        prices: Optional[Iterable[Price]] = None,
    ):
        if delay_seconds is None:
            delay_seconds = settings.fake_processor_delay_seconds
        if delay_seconds < 0:
            raise InvalidConfigurationException(
                "delay_seconds cannot be negative", field_name="delay_seconds"
            )
        if not 0.0 <= failure_rate <= 1.0:
            raise InvalidConfigurationException(
                "failure_rate must be between 0.0 and 1.0", field_name="failure_rate"
            )

        self.delay_seconds = delay_seconds
        self.failure_rate = failure_rate
        self._random = random.Random(seed)
        self._clock = clock or _utcnow
        self._prices: Dict[str, Price] = {price.id: price for price in prices or []}

        self._counters: Dict[str, int] = defaultdict(int)
        self._customers: Dict[str, Customer] = {}
        self._payment_methods: Dict[str, PaymentMethod] = {}
        self._subscriptions: Dict[str, Subscription] = {}
        self._charges: Dict[str, Charge] = {}
        # Payment method id -> decline code for methods created from declining tokens
        self._declines: Dict[str, str] = {}

    @property
    def processor_type(self) -> ProcessorType:
        return ProcessorType.FAKE

    @property
    def name(self) -> str:
        return "Fake Processor"

    def reset(self) -> None:
        """Drop all in-memory state and restart id sequences."""
        self._counters.clear()
        self._customers.clear()
        self._payment_methods.clear()
        self._subscriptions.clear()
        self._charges.clear()
        self._declines.clear()
        logger.debug("Fake processor state reset")

    # Helpers

    def _generate_id(self, prefix: str) -> str:
        self._counters[prefix] += 1
        return f"fake_{prefix}_{self._counters[prefix]:06d}"

    async def _simulate(self, operation: str, *values: Any) -> None:
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)

        for value in values:
            if not isinstance(value, str):
                continue
            if NETWORK_ERROR_MARKER in value:
                raise NetworkException(
                    f"Simulated network error during {operation}",
                    code="simulated_network_error",
                    url=f"fake://{operation}",
                )
            if AUTH_ERROR_MARKER in value:
                raise AuthenticationException(
                    f"Simulated authentication error during {operation}",
                    code="simulated_auth_error",
                    authentication_type="api_key",
                )

        if self.failure_rate > 0 and self._random.random() < self.failure_rate:
            raise ProcessorException(
                f"Simulated failure: {operation} failed",
                code="simulated_failure",
                processor_name=self.name,
            )

    def _require_customer(self, customer_id: str) -> Customer:
        customer = self._customers.get(customer_id)
        if customer is None:
            raise CustomerNotFoundException(
                f"No such customer: {customer_id}",
                code="resource_missing",
                customer_id=customer_id,
            )
        return customer

    def _require_payment_method(self, payment_method_id: str) -> PaymentMethod:
        payment_method = self._payment_methods.get(payment_method_id)
        if payment_method is None:
            raise ProcessorException(
                f"No such payment method: {payment_method_id}",
                code="resource_missing",
                processor_name=self.name,
            )
        return payment_method

    def _require_subscription(self, subscription_id: str) -> Subscription:
        subscription = self._subscriptions.get(subscription_id)
        if subscription is None:
            raise SubscriptionNotFoundException(
                f"No such subscription: {subscription_id}",
                code="resource_missing",
                subscription_id=subscription_id,
            )
        return subscription

    def _require_charge(self, charge_id: str) -> Charge:
        charge = self._charges.get(charge_id)
        if charge is None:
            raise ProcessorException(
                f"No such charge: {charge_id}",
                code="resource_missing",
                processor_name=self.name,
            )
        return charge

    def _require_price(self, price_id: str) -> Optional[Price]:
        """Look up a catalog price. Without a catalog every price id is accepted."""
        if not self._prices:
            return None
        price = self._prices.get(price_id)
        if price is None or not price.active:
            raise ValidationException(
                f"No such price: {price_id}",
                code="resource_missing",
                field_name="price_id",
                invalid_value=price_id,
            )
        if price.interval == BillingInterval.ONE_TIME:
            raise ValidationException(
                "One-time prices cannot be used for subscriptions",
                code="invalid_price",
                field_name="price_id",
                invalid_value=price_id,
            )
        return price

    def _customer_methods(self, customer_id: str) -> List[PaymentMethod]:
        return [pm for pm in self._payment_methods.values() if pm.customer_id == customer_id]

    def _default_method(self, customer_id: str) -> Optional[PaymentMethod]:
        for payment_method in self._customer_methods(customer_id):
            if payment_method.is_default:
                return payment_method
        return None

    def _mark_default(self, customer_id: str, payment_method_id: str) -> PaymentMethod:
        for payment_method in self._customer_methods(customer_id):
            is_default = payment_method.id == payment_method_id
            if payment_method.is_default != is_default:
                self._payment_methods[payment_method.id] = payment_method.model_copy(
                    update={"is_default": is_default}
                )
        return self._payment_methods[payment_method_id]

    def _has_live_subscriptions(self, customer_id: str) -> bool:
        return any(
            sub.customer_id == customer_id and sub.status.is_live()
            for sub in self._subscriptions.values()
        )

    def _resolve_billable_method(
        self, customer_id: str, payment_method_id: Optional[str]
    ) -> PaymentMethod:
        if payment_method_id is None:
            payment_method = self._default_method(customer_id)
            if payment_method is None:
                raise PaymentMethodException(
                    "No default payment method found for customer",
                    code="no_default_payment_method",
                )
        else:
            payment_method = self._require_payment_method(payment_method_id)
            if payment_method.customer_id != customer_id:
                raise ProcessorException(
                    "Payment method does not belong to customer",
                    code="payment_method_mismatch",
                    processor_name=self.name,
                )

        decline_code = self._declines.get(payment_method.id)
        if decline_code:
            raise PaymentMethodException(
                _DECLINE_MESSAGES.get(decline_code, "Your card was declined."),
                code=decline_code,
                payment_method_type=payment_method.type.value,
                last4=payment_method.last4,
            )
        return payment_method

    def _period_for(self, price: Optional[Price]) -> timedelta:
        if price is None:
            return DEFAULT_PERIOD
        return timedelta(days=_INTERVAL_DAYS[price.interval] * price.interval_count)

    @staticmethod
    def _validate_email(email: str) -> None:
        if "@" not in email:
            raise ValidationException(
                "Invalid email address",
                code="email_invalid",
                field_name="email",
                invalid_value=email,
            )

    @staticmethod
    def _validate_quantity(quantity: int) -> None:
        if quantity < 1:
            raise ValidationException(
                "Quantity must be at least 1",
                code="parameter_invalid_integer",
                field_name="quantity",
                invalid_value=quantity,
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
        await self._simulate("create_customer", email, name, phone)
        self._validate_email(email)

        now = self._clock()
        customer_id = self._generate_id("cus")
        customer = Customer(
            id=customer_id,
            email=email,
            name=name,
            phone=phone,
            processor=ProcessorType.FAKE,
            processor_customer_id=customer_id,
            metadata=metadata,
            created_at=now,
            updated_at=now,
        )
        self._customers[customer_id] = customer

        logger.info("Created fake customer", extra={"customer_id": customer_id})
        return customer

    @trace_span
    async def get_customer(self, customer_id: str) -> Customer:
        await self._simulate("get_customer", customer_id)
        return self._require_customer(customer_id)

    @trace_span
    async def update_customer(
        self,
        customer_id: str,
        email: Optional[str] = None,
        name: Optional[str] = None,
        phone: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Customer:
        await self._simulate("update_customer", customer_id, email, name, phone)
        customer = self._require_customer(customer_id)
        if email is not None:
            self._validate_email(email)

        changes: Dict[str, Any] = {"updated_at": self._clock()}
        for field_name, value in (
            ("email", email),
            ("name", name),
            ("phone", phone),
            ("metadata", metadata),
        ):
            if value is not None:
                changes[field_name] = value

        updated = customer.model_copy(update=changes)
        self._customers[customer_id] = updated
        logger.info("Updated fake customer", extra={"customer_id": customer_id})
        return updated

    @trace_span
    async def delete_customer(self, customer_id: str) -> None:
        await self._simulate("delete_customer", customer_id)
        self._require_customer(customer_id)

        if self._has_live_subscriptions(customer_id):
            raise ProcessorException(
                "Cannot delete customer with active subscriptions",
                code="has_active_subscriptions",
                processor_name=self.name,
            )

        for payment_method in self._customer_methods(customer_id):
            del self._payment_methods[payment_method.id]
            self._declines.pop(payment_method.id, None)
        del self._customers[customer_id]
        logger.info("Deleted fake customer", extra={"customer_id": customer_id})

    # Payment methods

    @trace_span
    async def create_payment_method(
        self,
        payment_method_token: str,
        type: PaymentMethodType = PaymentMethodType.CARD,
        billing_details: Optional[BillingDetails] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PaymentMethod:
        await self._simulate("create_payment_method", payment_method_token)
        if not payment_method_token:
            raise PaymentMethodException(
                "Payment method token cannot be empty",
                code="invalid_token",
                payment_method_type=type.value,
            )

        payment_method_id = self._generate_id("pm")
        card_fields: Dict[str, Any] = {}
        if type == PaymentMethodType.CARD:
            outcome = TEST_TOKENS.get(payment_method_token, TEST_TOKENS["tok_visa"])
            expiry = self._clock() + timedelta(days=3 * 365)
            card_fields = {
                "brand": outcome.brand,
                "last4": outcome.last4,
                "expiry_month": expiry.month,
                "expiry_year": expiry.year,
            }
            if outcome.decline_code:
                self._declines[payment_method_id] = outcome.decline_code

        payment_method = PaymentMethod(
            id=payment_method_id,
            type=type,
            billing_details=billing_details,
            metadata=metadata,
            **card_fields,
        )
        self._payment_methods[payment_method_id] = payment_method
        logger.info(
            "Created fake payment method", extra={"payment_method_id": payment_method_id}
        )
        return payment_method

    @trace_span
    async def attach_payment_method(
        self,
        payment_method_id: str,
        customer_id: str,
        set_as_default: bool = False,
    ) -> PaymentMethod:
        await self._simulate("attach_payment_method", payment_method_id, customer_id)
        self._require_customer(customer_id)
        payment_method = self._require_payment_method(payment_method_id)

        if payment_method.customer_id not in (None, customer_id):
            raise ProcessorException(
                "Payment method is attached to another customer",
                code="payment_method_mismatch",
                processor_name=self.name,
            )

        first_method = self._default_method(customer_id) is None
        self._payment_methods[payment_method_id] = payment_method.model_copy(
            update={"customer_id": customer_id}
        )
        if set_as_default or first_method:
            self._mark_default(customer_id, payment_method_id)

        logger.info(
            "Attached fake payment method",
            extra={"payment_method_id": payment_method_id, "customer_id": customer_id},
        )
        return self._payment_methods[payment_method_id]

    @trace_span
    async def get_payment_method(self, payment_method_id: str) -> PaymentMethod:
        await self._simulate("get_payment_method", payment_method_id)
        return self._require_payment_method(payment_method_id)

    @trace_span
    async def list_payment_methods(self, customer_id: str) -> List[PaymentMethod]:
        await self._simulate("list_payment_methods", customer_id)
        self._require_customer(customer_id)
        return self._customer_methods(customer_id)

    @trace_span
    async def set_default_payment_method(
        self, customer_id: str, payment_method_id: str
    ) -> PaymentMethod:
        await self._simulate("set_default_payment_method", customer_id, payment_method_id)
        self._require_customer(customer_id)
        payment_method = self._require_payment_method(payment_method_id)
        if payment_method.customer_id != customer_id:
            raise ProcessorException(
                "Payment method does not belong to customer",
                code="payment_method_mismatch",
                processor_name=self.name,
            )
        return self._mark_default(customer_id, payment_method_id)

    @trace_span
    async def detach_payment_method(self, payment_method_id: str) -> None:
        await self._simulate("detach_payment_method", payment_method_id)
        payment_method = self._require_payment_method(payment_method_id)
        customer_id = payment_method.customer_id

        if customer_id is not None:
            others = [pm for pm in self._customer_methods(customer_id) if pm.id != payment_method_id]
            if payment_method.is_default and not others and self._has_live_subscriptions(customer_id):
                raise ProcessorException(
                    "Cannot remove the only payment method with active subscriptions",
                    code="last_payment_method",
                    processor_name=self.name,
                )
            del self._payment_methods[payment_method_id]
            if payment_method.is_default and others:
                self._mark_default(customer_id, others[0].id)
        else:
            del self._payment_methods[payment_method_id]

        self._declines.pop(payment_method_id, None)
        logger.info(
            "Detached fake payment method", extra={"payment_method_id": payment_method_id}
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
        await self._simulate("create_subscription", customer_id, price_id, payment_method_id)
        self._require_customer(customer_id)
        price = self._require_price(price_id)
        self._validate_quantity(quantity)

        if trial_days is None and price is not None:
            trial_days = price.trial_days
        if trial_days is not None and trial_days < 0:
            raise ValidationException(
                "Trial days cannot be negative",
                field_name="trial_days",
                invalid_value=trial_days,
            )

        now = self._clock()
        trial_start = trial_end = None
        if trial_days:
            status = SubscriptionStatus.TRIALING
            trial_start = now
            trial_end = now + timedelta(days=trial_days)
            period_end = trial_end
        else:
            # Without a trial the first period is billed immediately
            self._resolve_billable_method(customer_id, payment_method_id)
            status = SubscriptionStatus.ACTIVE
            period_end = now + self._period_for(price)

        subscription_id = self._generate_id("sub")
        subscription = Subscription(
            id=subscription_id,
            customer_id=customer_id,
            status=status,
            price_id=price_id,
            product_id=price.product_id if price else f"fake_prod_{price_id}",
            quantity=quantity,
            current_period_start=now,
            current_period_end=period_end,
            trial_start=trial_start,
            trial_end=trial_end,
            processor=ProcessorType.FAKE,
            processor_subscription_id=subscription_id,
            metadata=metadata,
        )
        self._subscriptions[subscription_id] = subscription

        logger.info(
            "Created fake subscription",
            extra={
                "subscription_id": subscription_id,
                "customer_id": customer_id,
                "status": status.value,
            },
        )
        return subscription

    @trace_span
    async def get_subscription(self, subscription_id: str) -> Subscription:
        await self._simulate("get_subscription", subscription_id)
        return self._require_subscription(subscription_id)

    @trace_span
    async def list_subscriptions(self, customer_id: str) -> List[Subscription]:
        await self._simulate("list_subscriptions", customer_id)
        self._require_customer(customer_id)
        return [sub for sub in self._subscriptions.values() if sub.customer_id == customer_id]

    @trace_span
    async def update_subscription(
        self,
        subscription_id: str,
        price_id: Optional[str] = None,
        quantity: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Subscription:
        await self._simulate("update_subscription", subscription_id, price_id)
        subscription = self._require_subscription(subscription_id)
        self._ensure_not_terminal(subscription)

        changes: Dict[str, Any] = {}
        if price_id is not None:
            price = self._require_price(price_id)
            changes["price_id"] = price_id
            changes["product_id"] = price.product_id if price else f"fake_prod_{price_id}"
        if quantity is not None:
            self._validate_quantity(quantity)
            changes["quantity"] = quantity
        if metadata is not None:
            changes["metadata"] = metadata

        updated = subscription.model_copy(update=changes)
        self._subscriptions[subscription_id] = updated
        logger.info("Updated fake subscription", extra={"subscription_id": subscription_id})
        return updated

    @trace_span
    async def cancel_subscription(
        self, subscription_id: str, immediate: bool = False
    ) -> Subscription:
        await self._simulate("cancel_subscription", subscription_id)
        subscription = self._require_subscription(subscription_id)
        self._ensure_not_terminal(subscription)

        if immediate:
            updated = subscription.model_copy(
                update={
                    "status": SubscriptionStatus.CANCELED,
                    "canceled_at": self._clock(),
                    "cancel_at_period_end": False,
                }
            )
        else:
            updated = subscription.model_copy(update={"cancel_at_period_end": True})

        self._subscriptions[subscription_id] = updated
        logger.info(
            "Canceled fake subscription",
            extra={"subscription_id": subscription_id, "immediate": immediate},
        )
        return updated

    @trace_span
    async def resume_subscription(self, subscription_id: str) -> Subscription:
        await self._simulate("resume_subscription", subscription_id)
        subscription = self._require_subscription(subscription_id)

        if not subscription.cancel_at_period_end or subscription.status.is_terminal():
            raise ProcessorException(
                "Cannot resume subscription that was not scheduled for cancellation",
                code="invalid_subscription_state",
                processor_name=self.name,
            )

        updated = subscription.model_copy(update={"cancel_at_period_end": False})
        self._subscriptions[subscription_id] = updated
        logger.info("Resumed fake subscription", extra={"subscription_id": subscription_id})
        return updated

    def _ensure_not_terminal(self, subscription: Subscription) -> None:
        if subscription.status.is_terminal():
            raise ProcessorException(
                f"Subscription {subscription.id} is {subscription.status.value}",
                code="invalid_subscription_state",
                processor_name=self.name,
            )

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
        await self._simulate("create_charge", customer_id, payment_method_id, description)
        if amount < 0:
            raise ValidationException(
                "Amount must be non-negative",
                code="amount_too_small",
                field_name="amount",
                invalid_value=amount,
            )
        try:
            currency = normalize_currency(currency)
        except ValueError as e:
            raise ValidationException(
                str(e), code="invalid_currency", field_name="currency", invalid_value=currency
            ) from e

        self._require_customer(customer_id)
        self._resolve_billable_method(customer_id, payment_method_id)

        charge_id = self._generate_id("ch")
        charge = Charge(
            id=charge_id,
            customer_id=customer_id,
            amount=amount,
            currency=currency,
            status=ChargeStatus.SUCCEEDED,
            description=description,
            receipt_url=RECEIPT_URL_TEMPLATE.format(charge_id=charge_id),
            processor_charge_id=charge_id,
            processor=ProcessorType.FAKE,
            created_at=self._clock(),
            metadata=metadata,
        )
        self._charges[charge_id] = charge

        logger.info(
            "Created fake charge",
            extra={"charge_id": charge_id, "customer_id": customer_id, "amount": amount},
        )
        return charge

    @trace_span
    async def get_charge(self, charge_id: str) -> Charge:
        await self._simulate("get_charge", charge_id)
        return self._require_charge(charge_id)

    @trace_span
    async def list_charges(self, customer_id: str, limit: int = 10) -> List[Charge]:
        await self._simulate("list_charges", customer_id)
        if limit < 1:
            raise ValidationException(
                "Limit must be positive",
                code="invalid_limit",
                field_name="limit",
                invalid_value=limit,
            )
        self._require_customer(customer_id)
        charges = [c for c in self._charges.values() if c.customer_id == customer_id]
        # Ids are sequential, so they order charges created at the same instant
        charges.sort(key=lambda c: (c.created_at, c.id), reverse=True)
        return charges[:limit]

    @trace_span
    async def refund_charge(
        self,
        charge_id: str,
        amount: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> Charge:
        await self._simulate("refund_charge", charge_id, reason)
        charge = self._require_charge(charge_id)

        refund_amount = charge.refundable_amount if amount is None else amount
        if refund_amount <= 0:
            raise ValidationException(
                "Charge has nothing left to refund" if amount is None else "Refund amount must be positive",
                code="charge_already_refunded" if amount is None else "invalid_refund_amount",
                field_name="amount",
                invalid_value=amount,
            )
        if refund_amount > charge.refundable_amount:
            raise ValidationException(
                "Refund amount exceeds charge amount",
                code="invalid_refund_amount",
                field_name="amount",
                invalid_value=amount,
            )

        total_refunded = charge.refunded_amount + refund_amount
        fully_refunded = total_refunded == charge.amount
        updated = charge.model_copy(
            update={
                "refunded": True,
                "refunded_amount": total_refunded,
                "status": ChargeStatus.REFUNDED if fully_refunded else charge.status,
            }
        )
        self._charges[charge_id] = updated

        logger.info(
            "Refunded fake charge",
            extra={"charge_id": charge_id, "amount": refund_amount, "reason": reason},
        )
        return updated

    # Webhooks

    def verify_webhook_signature(
        self, raw_body: Union[bytes, str], signature_header: str, secret: str
    ) -> bool:
        if not signature_header or not secret:
            return False
        expected = sign_webhook_payload(raw_body, secret)
        return hmac.compare_digest(expected.encode("utf-8"), signature_header.strip().encode("utf-8"))

    def parse_webhook_event(self, raw_body: Union[bytes, str]) -> WebhookEvent:
        try:
            payload = json.loads(_to_bytes(raw_body))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise WebhookException(
                "Webhook payload is not valid JSON", code="malformed_payload", original_error=e
            ) from e

        if not isinstance(payload, dict):
            raise WebhookException("Webhook payload must be an object", code="malformed_payload")

        event_id = payload.get("id")
        event_type = payload.get("type")
        if not event_id:
            raise WebhookException(
                "Missing webhook event id", code="missing_event_id", event_type=event_type
            )
        if not event_type:
            raise WebhookException(
                "Missing webhook event type", code="missing_event_type", webhook_id=event_id
            )

        try:
            return WebhookEvent(
                id=event_id,
                type=event_type,
                processor=ProcessorType.FAKE,
                data=payload.get("data") or {},
                created_at=payload.get("created") or self._clock(),
            )
        except ValidationError as e:
            raise WebhookException(
                "Webhook payload has an invalid shape",
                code="malformed_payload",
                webhook_id=str(event_id),
                event_type=str(event_type),
                original_error=e,
            ) from e

    def build_webhook_payload(
        self, event_type: str, data: Dict[str, Any], event_id: Optional[str] = None
    ) -> bytes:
        """Serialize a webhook body in the shape parse_webhook_event accepts."""
        payload = {
            "id": event_id or self._generate_id("evt"),
            "type": event_type,
            "created": self._clock().isoformat(),
            "data": data,
        }
        return json.dumps(payload).encode("utf-8")

    @trace_span
    async def health_check(self) -> bool:
        await self._simulate("health_check")
        return True

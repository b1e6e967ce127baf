import pytest
from datetime import datetime, timedelta, timezone
from pydantic import ValidationError

from packages.payments.models.domain import (
    Address,
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

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


def make_subscription(**overrides) -> Subscription:
    fields = dict(
        id="sub_1",
        customer_id="cus_1",
        status=SubscriptionStatus.ACTIVE,
        price_id="price_1",
        product_id="prod_1",
        current_period_start=NOW,
        current_period_end=NOW + timedelta(days=30),
        processor=ProcessorType.STRIPE,
        processor_subscription_id="sub_1",
    )
    fields.update(overrides)
    return Subscription(**fields)


def make_charge(**overrides) -> Charge:
    fields = dict(
        id="ch_1",
        customer_id="cus_1",
        amount=2000,
        currency="usd",
        status=ChargeStatus.SUCCEEDED,
        processor_charge_id="ch_1",
        processor=ProcessorType.STRIPE,
        created_at=NOW,
    )
    fields.update(overrides)
    return Charge(**fields)


class TestCustomer:
    """Unit tests for Customer."""

    def test_customer_round_trip(self):
        """Test that a fully populated customer survives JSON serialization."""
        customer = Customer(
            id="cus_1",
            email="jane@example.com",
            name="Jane",
            phone="+15555550100",
            processor=ProcessorType.STRIPE,
            processor_customer_id="cus_1",
            metadata={"plan": "pro", "seats": 3},
            created_at=NOW,
            updated_at=NOW,
        )

        assert Customer.model_validate_json(customer.model_dump_json()) == customer

    def test_customer_minimal_round_trip(self):
        customer = Customer(
            id="cus_1",
            email="jane@example.com",
            processor=ProcessorType.FAKE,
            processor_customer_id="cus_1",
            created_at=NOW,
            updated_at=NOW,
        )

        decoded = Customer.model_validate_json(customer.model_dump_json())

        assert decoded == customer
        assert decoded.name is None
        assert decoded.metadata is None

    def test_customer_is_frozen(self):
        customer = Customer(
            id="cus_1",
            email="jane@example.com",
            processor=ProcessorType.FAKE,
            processor_customer_id="cus_1",
            created_at=NOW,
            updated_at=NOW,
        )

        with pytest.raises(ValidationError):
            customer.email = "other@example.com"

        updated = customer.model_copy(update={"email": "other@example.com"})
        assert updated.email == "other@example.com"
        assert customer.email == "jane@example.com"

    def test_customer_requires_id(self):
        with pytest.raises(ValidationError):
            Customer(
                id="",
                email="jane@example.com",
                processor=ProcessorType.FAKE,
                processor_customer_id="cus_1",
                created_at=NOW,
                updated_at=NOW,
            )


class TestPaymentMethod:
    """Unit tests for PaymentMethod."""

    def test_payment_method_with_billing_details(self):
        method = PaymentMethod(
            id="pm_1",
            customer_id="cus_1",
            type=PaymentMethodType.CARD,
            last4="4242",
            brand="visa",
            expiry_month=12,
            expiry_year=2030,
            is_default=True,
            billing_details=BillingDetails(
                name="Jane",
                address=Address(line1="1 Main St", city="Springfield", country="US"),
            ),
        )

        decoded = PaymentMethod.model_validate_json(method.model_dump_json())

        assert decoded == method
        assert decoded.billing_details.address.city == "Springfield"
        assert decoded.is_attached is True

    def test_unattached_payment_method(self):
        method = PaymentMethod(id="pm_1", type=PaymentMethodType.PAYPAL)

        assert method.is_attached is False
        assert method.last4 is None

    @pytest.mark.parametrize("month", [0, 13])
    def test_expiry_month_out_of_range(self, month):
        with pytest.raises(ValidationError):
            PaymentMethod(id="pm_1", type=PaymentMethodType.CARD, expiry_month=month)


class TestPrice:
    """Unit tests for Price."""

    def test_currency_is_normalized(self):
        price = Price(
            id="price_1",
            product_id="prod_1",
            amount=4900,
            currency=" USD ",
            interval=BillingInterval.MONTH,
            processor_price_id="price_1",
            processor=ProcessorType.STRIPE,
        )

        assert price.currency == "usd"
        assert price.is_recurring is True
        assert price.interval_count == 1

    @pytest.mark.parametrize("currency", ["us", "dollars", "12a", ""])
    def test_invalid_currency_rejected(self, currency):
        with pytest.raises(ValidationError):
            Price(
                id="price_1",
                product_id="prod_1",
                amount=100,
                currency=currency,
                interval=BillingInterval.MONTH,
                processor_price_id="price_1",
                processor=ProcessorType.STRIPE,
            )

    def test_negative_amount_rejected(self):
        with pytest.raises(ValidationError):
            Price(
                id="price_1",
                product_id="prod_1",
                amount=-1,
                currency="usd",
                interval=BillingInterval.ONE_TIME,
                processor_price_id="price_1",
                processor=ProcessorType.STRIPE,
            )

    def test_one_time_price_is_not_recurring(self):
        price = Price(
            id="price_setup",
            product_id="prod_1",
            amount=0,
            currency="eur",
            interval=BillingInterval.ONE_TIME,
            processor_price_id="price_setup",
            processor=ProcessorType.FAKE,
        )

        assert price.is_recurring is False


class TestSubscription:
    """Unit tests for Subscription."""

    def test_subscription_round_trip(self):
        subscription = make_subscription(
            status=SubscriptionStatus.TRIALING,
            trial_start=NOW,
            trial_end=NOW + timedelta(days=14),
            quantity=3,
            metadata={"source": "signup"},
        )

        assert Subscription.model_validate_json(subscription.model_dump_json()) == subscription

    def test_period_end_must_follow_start(self):
        with pytest.raises(ValidationError):
            make_subscription(current_period_end=NOW)

    def test_canceled_at_requires_canceled_status(self):
        with pytest.raises(ValidationError):
            make_subscription(status=SubscriptionStatus.ACTIVE, canceled_at=NOW)

        canceled = make_subscription(status=SubscriptionStatus.CANCELED, canceled_at=NOW)
        assert canceled.is_canceled is True
        assert canceled.is_active is False

    def test_quantity_must_be_positive(self):
        with pytest.raises(ValidationError):
            make_subscription(quantity=0)

    def test_is_on_trial(self):
        subscription = make_subscription(
            status=SubscriptionStatus.TRIALING,
            trial_start=NOW,
            trial_end=NOW + timedelta(days=14),
        )

        assert subscription.is_on_trial(NOW + timedelta(days=13)) is True
        assert subscription.is_on_trial(NOW + timedelta(days=14)) is False
        assert make_subscription().is_on_trial(NOW) is False

    def test_is_on_grace_period(self):
        subscription = make_subscription(cancel_at_period_end=True)

        assert subscription.is_on_grace_period(NOW + timedelta(days=10)) is True
        assert subscription.is_on_grace_period(NOW + timedelta(days=31)) is False
        assert make_subscription().is_on_grace_period(NOW) is False

    def test_days_until_due(self):
        """Test the seven day grace window for past due subscriptions."""
        subscription = make_subscription(status=SubscriptionStatus.PAST_DUE)
        period_end = subscription.current_period_end

        assert subscription.days_until_due(period_end + timedelta(days=2, hours=3)) == 5
        assert subscription.days_until_due(period_end + timedelta(days=10)) == -3
        assert make_subscription().days_until_due(period_end) is None

    def test_status_helpers(self):
        assert SubscriptionStatus.CANCELED.is_terminal() is True
        assert SubscriptionStatus.INCOMPLETE_EXPIRED.is_terminal() is True
        assert SubscriptionStatus.PAST_DUE.is_terminal() is False
        assert SubscriptionStatus.TRIALING.is_live() is True
        assert SubscriptionStatus.UNPAID.is_live() is False


class TestCharge:
    """Unit tests for Charge."""

    def test_charge_round_trip(self):
        charge = make_charge(
            description="Setup fee",
            receipt_url="https://example.com/receipt/ch_1",
            refunded=True,
            refunded_amount=500,
            metadata={"order": "A-1"},
        )

        assert Charge.model_validate_json(charge.model_dump_json()) == charge
        assert charge.refundable_amount == 1500
        assert charge.is_fully_refunded is False

    def test_refunded_amount_cannot_exceed_amount(self):
        with pytest.raises(ValidationError):
            make_charge(refunded=True, refunded_amount=2001)

    def test_refunded_flag_must_match_amount(self):
        with pytest.raises(ValidationError):
            make_charge(refunded=True, refunded_amount=0)
        with pytest.raises(ValidationError):
            make_charge(refunded=False, refunded_amount=100)

    def test_fully_refunded(self):
        charge = make_charge(
            status=ChargeStatus.REFUNDED, refunded=True, refunded_amount=2000
        )

        assert charge.is_fully_refunded is True
        assert charge.refundable_amount == 0

    def test_currency_uppercase_is_normalized(self):
        assert make_charge(currency="GBP").currency == "gbp"


class TestWebhookEvent:
    """Unit tests for WebhookEvent."""

    def test_nested_data_object(self):
        event = WebhookEvent(
            id="evt_1",
            type="customer.updated",
            processor=ProcessorType.STRIPE,
            data={"object": {"id": "cus_1", "object": "customer"}},
            created_at=NOW,
        )

        assert event.data_object == {"id": "cus_1", "object": "customer"}
        assert event.object_id() == "cus_1"

    def test_flat_data_object(self):
        event = WebhookEvent(
            id="evt_1",
            type="charge.refunded",
            processor=ProcessorType.FAKE,
            data={"id": "ch_1"},
            created_at=NOW,
        )

        assert event.data_object == {"id": "ch_1"}
        assert event.object_id() == "ch_1"

    def test_event_id_is_required(self):
        with pytest.raises(ValidationError):
            WebhookEvent(
                id="",
                type="customer.updated",
                processor=ProcessorType.STRIPE,
                created_at=NOW,
            )


FULL_AND_MINIMAL_ENTITIES = [
    Customer(
        id="cus_1",
        email="jane@example.com",
        name="Jane",
        phone="+15555550100",
        processor=ProcessorType.STRIPE,
        processor_customer_id="cus_1",
        metadata={"plan": "pro", "seats": 3},
        created_at=NOW,
        updated_at=NOW + timedelta(hours=1),
    ),
    Customer(
        id="cus_2",
        email="john@example.com",
        processor=ProcessorType.FAKE,
        processor_customer_id="cus_2",
        created_at=NOW,
        updated_at=NOW,
    ),
    PaymentMethod(
        id="pm_1",
        customer_id="cus_1",
        type=PaymentMethodType.CARD,
        last4="4242",
        brand="visa",
        expiry_month=12,
        expiry_year=2030,
        is_default=True,
        billing_details=BillingDetails(
            name="Jane",
            email="jane@example.com",
            phone="+15555550100",
            address=Address(
                line1="1 Main St",
                line2="Apt 2",
                city="Springfield",
                state="IL",
                postal_code="62701",
                country="US",
            ),
        ),
        metadata={"source": "checkout"},
    ),
    PaymentMethod(id="pm_2", type=PaymentMethodType.PAYPAL),
    Price(
        id="price_1",
        product_id="prod_1",
        amount=4900,
        currency="usd",
        interval=BillingInterval.YEAR,
        interval_count=2,
        trial_days=14,
        active=False,
        processor_price_id="price_1",
        processor=ProcessorType.STRIPE,
        metadata={"tier": "pro"},
    ),
    Price(
        id="price_2",
        product_id="prod_2",
        amount=0,
        currency="eur",
        interval=BillingInterval.ONE_TIME,
        processor_price_id="price_2",
        processor=ProcessorType.FAKE,
    ),
    make_subscription(
        status=SubscriptionStatus.CANCELED,
        quantity=3,
        trial_start=NOW,
        trial_end=NOW + timedelta(days=7),
        canceled_at=NOW + timedelta(days=10),
        cancel_at_period_end=True,
        metadata={"coupon": "WELCOME"},
    ),
    make_subscription(),
    make_charge(
        description="Setup fee",
        receipt_url="https://example.com/receipt/ch_1",
        refunded=True,
        refunded_amount=500,
        metadata={"order": "42"},
    ),
    make_charge(),
    WebhookEvent(
        id="evt_1",
        type="customer.subscription.updated",
        processor=ProcessorType.STRIPE,
        data={"object": {"id": "sub_1", "items": [{"quantity": 2}]}},
        created_at=NOW,
    ),
    WebhookEvent(id="evt_2", type="ping", processor=ProcessorType.FAKE, created_at=NOW),
]


class TestEncodeDecode:
    """Every entity survives JSON encoding, populated or with optional fields absent."""

    @pytest.mark.parametrize(
        "entity",
        FULL_AND_MINIMAL_ENTITIES,
        ids=lambda entity: f"{type(entity).__name__}-{entity.id}",
    )
    def test_json_round_trip(self, entity):
        decoded = type(entity).model_validate_json(entity.model_dump_json())

        assert decoded == entity

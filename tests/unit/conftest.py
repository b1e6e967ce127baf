import pytest

from common.providers.caching import ReadThroughCache
from common.providers.storage import MemoryStorage
from packages.payments.models.domain import BillingInterval, Price, ProcessorType
from packages.payments.providers.processors import FakePaymentProcessor
from packages.payments.services import CacheTTLPolicy, PaymentService


@pytest.fixture
def memory_storage():
    """Fresh volatile storage per test."""
    return MemoryStorage()


@pytest.fixture
def read_through_cache(memory_storage, clock):
    return ReadThroughCache(memory_storage, clock=clock)


@pytest.fixture
def price_catalog():
    return [
        Price(
            id="price_monthly",
            product_id="prod_pro",
            amount=4900,
            currency="usd",
            interval=BillingInterval.MONTH,
            processor_price_id="price_monthly",
            processor=ProcessorType.FAKE,
        ),
        Price(
            id="price_trial",
            product_id="prod_pro",
            amount=4900,
            currency="usd",
            interval=BillingInterval.MONTH,
            trial_days=14,
            processor_price_id="price_trial",
            processor=ProcessorType.FAKE,
        ),
        Price(
            id="price_setup",
            product_id="prod_setup",
            amount=9900,
            currency="usd",
            interval=BillingInterval.ONE_TIME,
            processor_price_id="price_setup",
            processor=ProcessorType.FAKE,
        ),
    ]


@pytest.fixture
def fake_processor(clock):
    """Fake processor with no delay, no random failures and a frozen clock."""
    return FakePaymentProcessor(delay_seconds=0, clock=clock)


@pytest.fixture
def ttl_policy():
    return CacheTTLPolicy(customer=300, payment_method=300, subscription=60, charge=300)


@pytest.fixture
def payment_service(fake_processor, read_through_cache, ttl_policy, clock):
    return PaymentService(
        processor=fake_processor,
        cache=read_through_cache,
        ttl_policy=ttl_policy,
        max_attempts=3,
        retry_delay_seconds=0,
        clock=clock,
    )

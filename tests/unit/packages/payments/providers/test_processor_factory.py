import pytest
from unittest.mock import patch

from packages.payments.exceptions import InvalidConfigurationException
from packages.payments.models.domain import ProcessorType
from packages.payments.providers import get_payment_processor
from packages.payments.providers.processors import FakePaymentProcessor, StripePaymentProcessor


class TestGetPaymentProcessor:
    """Unit tests for get_payment_processor."""

    def test_default_from_settings(self):
        with patch("packages.payments.providers.processors.factory.settings") as mock_settings:
            mock_settings.payment_processor = "fake"

            processor = get_payment_processor()

        assert isinstance(processor, FakePaymentProcessor)

    def test_explicit_fake(self):
        assert isinstance(get_payment_processor(ProcessorType.FAKE), FakePaymentProcessor)

    def test_stripe(self):
        with patch(
            "packages.payments.providers.processors.stripe_processor.settings"
        ) as mock_settings:
            mock_settings.stripe_secret_key = "sk_test_123"
            mock_settings.stripe_publishable_key = "pk_test_123"
            mock_settings.stripe_webhook_secret = "whsec_123"
            mock_settings.stripe_api_version = None
            mock_settings.stripe_max_network_retries = 0
            mock_settings.http_timeout_seconds = 30.0

            processor = get_payment_processor("stripe")

        assert isinstance(processor, StripePaymentProcessor)

    def test_stripe_without_key(self):
        with patch(
            "packages.payments.providers.processors.stripe_processor.settings"
        ) as mock_settings:
            mock_settings.stripe_secret_key = ""
            mock_settings.stripe_publishable_key = ""
            mock_settings.stripe_webhook_secret = ""

            with pytest.raises(InvalidConfigurationException) as exc_info:
                get_payment_processor(ProcessorType.STRIPE)

        assert exc_info.value.field_name == "stripe_secret_key"

    def test_unknown_processor(self):
        with pytest.raises(InvalidConfigurationException) as exc_info:
            get_payment_processor("square")

        assert isinstance(exc_info.value.original_error, ValueError)

    @pytest.mark.parametrize(
        "processor_type",
        [
            ProcessorType.PADDLE,
            ProcessorType.BRAINTREE,
            ProcessorType.LEMON_SQUEEZY,
            ProcessorType.TOTALPAY_GLOBAL,
        ],
    )
    def test_processors_without_integration(self, processor_type):
        with pytest.raises(InvalidConfigurationException):
            get_payment_processor(processor_type)

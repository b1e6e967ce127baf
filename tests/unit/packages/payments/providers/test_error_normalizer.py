import pytest

from packages.payments.exceptions import (
    AuthenticationException,
    CustomerNotFoundException,
    NetworkException,
    PaymentMethodException,
    ProcessorException,
    SubscriptionNotFoundException,
    ValidationException,
)
from packages.payments.providers.processors import (
    GatewayFailure,
    ResourceType,
    normalize_gateway_failure,
)


class TestNormalizeGatewayFailure:
    """Unit tests for gateway failure classification."""

    def test_transport_error_is_network(self):
        cause = ConnectionError("refused")
        failure = GatewayFailure(
            message="Connection refused",
            is_transport_error=True,
            url="https://api.stripe.com/v1/customers",
            original_error=cause,
        )

        error = normalize_gateway_failure(failure, "Stripe")

        assert isinstance(error, NetworkException)
        assert error.url == "https://api.stripe.com/v1/customers"
        assert error.original_error is cause

    def test_transport_wins_over_status(self):
        """Test that a timed out request is never reported as a validation failure."""
        failure = GatewayFailure(
            message="Request timed out", status_code=400, field="email", is_timeout=True
        )

        error = normalize_gateway_failure(failure, "Stripe")

        assert isinstance(error, NetworkException)
        assert error.code == "timeout"

    def test_missing_status_is_network(self):
        error = normalize_gateway_failure(GatewayFailure(message="no response"), "Stripe")

        assert isinstance(error, NetworkException)

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_statuses(self, status):
        failure = GatewayFailure(message="Invalid API Key", status_code=status)

        error = normalize_gateway_failure(failure, "Stripe")

        assert isinstance(error, AuthenticationException)
        assert error.authentication_type == "api_key"

    def test_404_customer(self):
        failure = GatewayFailure(
            message="No such customer: 'cus_missing'",
            status_code=404,
            code="resource_missing",
        )

        error = normalize_gateway_failure(
            failure, "Stripe", ResourceType.CUSTOMER, "cus_missing"
        )

        assert isinstance(error, CustomerNotFoundException)
        assert error.customer_id == "cus_missing"
        assert error.code == "resource_missing"

    def test_404_subscription(self):
        failure = GatewayFailure(message="No such subscription", status_code=404)

        error = normalize_gateway_failure(
            failure, "Stripe", ResourceType.SUBSCRIPTION, "sub_missing"
        )

        assert isinstance(error, SubscriptionNotFoundException)
        assert error.subscription_id == "sub_missing"

    def test_404_without_known_resource_is_processor(self):
        failure = GatewayFailure(message="No such charge", status_code=404, code="resource_missing")

        error = normalize_gateway_failure(failure, "Stripe", ResourceType.CHARGE, "ch_1")

        assert isinstance(error, ProcessorException)
        assert error.processor_name == "Stripe"

    @pytest.mark.parametrize("status", [400, 422])
    def test_field_error_is_validation(self, status):
        failure = GatewayFailure(
            message="Invalid email address", status_code=status, code="email_invalid", field="email"
        )

        error = normalize_gateway_failure(failure, "Stripe")

        assert isinstance(error, ValidationException)
        assert error.field_name == "email"
        assert error.code == "email_invalid"

    def test_400_without_field_is_processor(self):
        failure = GatewayFailure(message="Bad request", status_code=400, code="parameter_unknown")

        error = normalize_gateway_failure(failure, "Stripe")

        assert isinstance(error, ProcessorException)
        assert error.code == "parameter_unknown"

    def test_402_decline_code_is_payment_method(self):
        failure = GatewayFailure(
            message="Your card has insufficient funds.",
            status_code=402,
            code="insufficient_funds",
            payment_method_type="card",
            last4="9995",
        )

        error = normalize_gateway_failure(failure, "Stripe", ResourceType.CHARGE)

        assert isinstance(error, PaymentMethodException)
        assert error.code == "insufficient_funds"
        assert error.last4 == "9995"

    def test_card_error_type_is_payment_method(self):
        failure = GatewayFailure(
            message="Your card was declined.",
            status_code=402,
            vendor_type="card_error",
            decline_code="do_not_honor",
        )

        error = normalize_gateway_failure(failure, "Stripe")

        assert isinstance(error, PaymentMethodException)
        assert error.code == "do_not_honor"

    def test_402_without_method_detail_is_processor(self):
        failure = GatewayFailure(
            message="Request failed", status_code=402, code="account_invalid"
        )

        error = normalize_gateway_failure(failure, "Stripe")

        assert isinstance(error, ProcessorException)
        assert error.code == "account_invalid"

    def test_rate_limit(self):
        error = normalize_gateway_failure(
            GatewayFailure(message="Too many requests", status_code=429), "Stripe"
        )

        assert isinstance(error, ProcessorException)
        assert error.code == "rate_limit_exceeded"

    def test_server_error_with_envelope_is_processor(self):
        failure = GatewayFailure(
            message="Internal error",
            status_code=500,
            code="api_error",
            vendor_type="api_error",
        )

        error = normalize_gateway_failure(failure, "Stripe")

        assert isinstance(error, ProcessorException)
        assert error.code == "api_error"
        assert error.processor_name == "Stripe"

    def test_undecodable_server_error_is_network(self):
        failure = GatewayFailure(
            message="Bad gateway", status_code=502, has_vendor_payload=False
        )

        error = normalize_gateway_failure(failure, "Stripe")

        assert isinstance(error, NetworkException)
        assert error.status_code == 502

    def test_undecodable_4xx_is_network(self):
        failure = GatewayFailure(message="<html>", status_code=418, has_vendor_payload=False)

        assert isinstance(normalize_gateway_failure(failure, "Stripe"), NetworkException)

    def test_other_4xx_is_processor(self):
        failure = GatewayFailure(message="Gone", status_code=410, code="resource_gone")

        error = normalize_gateway_failure(failure, "Stripe")

        assert isinstance(error, ProcessorException)
        assert error.code == "resource_gone"

    def test_empty_message_gets_default(self):
        error = normalize_gateway_failure(GatewayFailure(message="", status_code=410), "Stripe")

        assert error.message == "Payment processor request failed"

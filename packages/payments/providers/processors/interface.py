"""
Interface for payment processors.

Every gateway integration implements this capability set. Consumers code only
against it; the active implementation is selected through the factory.

Every failure raised by an implementation is a member of the payment error
taxonomy (packages.payments.exceptions).
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

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


class PaymentProcessorInterface(ABC):
    """Abstract interface for payment processors."""

    @property
    @abstractmethod
    def processor_type(self) -> ProcessorType:
        """Tag of this processor, also used to namespace cache keys."""
        pass

    @property
    def name(self) -> str:
        """Human readable processor name used in errors and logs."""
        return self.processor_type.value

    @property
    def supports_trial_periods(self) -> bool:
        return True

    @property
    def supports_plan_swapping(self) -> bool:
        return True

    # Customers

    @abstractmethod
    async def create_customer(
        self,
        email: str,
        name: Optional[str] = None,
        phone: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Customer:
        """
        Create a customer in the processor.

        Args:
            email: Customer email
            name: Optional display name
            phone: Optional phone number
            metadata: Arbitrary key-value data stored with the customer

        Returns:
            The created Customer
        """
        pass

    @abstractmethod
    async def get_customer(self, customer_id: str) -> Customer:
        """
        Get a customer by ID.

        Raises:
            CustomerNotFoundException: If the customer does not exist
        """
        pass

    @abstractmethod
    async def update_customer(
        self,
        customer_id: str,
        email: Optional[str] = None,
        name: Optional[str] = None,
        phone: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Customer:
        """Update a customer. Only the given fields change; returns a new instance."""
        pass

    @abstractmethod
    async def delete_customer(self, customer_id: str) -> None:
        pass

    # Payment methods

    @abstractmethod
    async def create_payment_method(
        self,
        payment_method_token: str,
        type: PaymentMethodType = PaymentMethodType.CARD,
        billing_details: Optional[BillingDetails] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PaymentMethod:
        """
        Create a payment method from a client-side token.

        Returns:
            An unattached PaymentMethod (customer_id is None)
        """
        pass

    @abstractmethod
    async def attach_payment_method(
        self,
        payment_method_id: str,
        customer_id: str,
        set_as_default: bool = False,
    ) -> PaymentMethod:
        """Attach a payment method to a customer, optionally making it the default."""
        pass

    @abstractmethod
    async def get_payment_method(self, payment_method_id: str) -> PaymentMethod:
        pass

    @abstractmethod
    async def list_payment_methods(self, customer_id: str) -> List[PaymentMethod]:
        pass

    @abstractmethod
    async def set_default_payment_method(
        self, customer_id: str, payment_method_id: str
    ) -> PaymentMethod:
        """Make a method the customer's default. Any previous default is cleared."""
        pass

    @abstractmethod
    async def detach_payment_method(self, payment_method_id: str) -> None:
        pass

    # Subscriptions

    @abstractmethod
    async def create_subscription(
        self,
        customer_id: str,
        price_id: str,
        payment_method_id: Optional[str] = None,
        trial_days: Optional[int] = None,
        quantity: int = 1,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Subscription:
        """
        Subscribe a customer to a price.

        Args:
            customer_id: Processor customer ID
            price_id: Processor price ID
            payment_method_id: Method to bill; falls back to the customer default
            trial_days: Optional trial length in days
            quantity: Number of seats/units
            metadata: Arbitrary key-value data

        Returns:
            The created Subscription
        """
        pass

    @abstractmethod
    async def get_subscription(self, subscription_id: str) -> Subscription:
        """
        Get a subscription by ID.

        Raises:
            SubscriptionNotFoundException: If the subscription does not exist
        """
        pass

    @abstractmethod
    async def list_subscriptions(self, customer_id: str) -> List[Subscription]:
        pass

    @abstractmethod
    async def update_subscription(
        self,
        subscription_id: str,
        price_id: Optional[str] = None,
        quantity: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Subscription:
        pass

    @abstractmethod
    async def cancel_subscription(
        self, subscription_id: str, immediate: bool = False
    ) -> Subscription:
        """
        Cancel a subscription.

        Args:
            subscription_id: Processor subscription ID
            immediate: Cancel now instead of at the end of the current period
        """
        pass

    @abstractmethod
    async def resume_subscription(self, subscription_id: str) -> Subscription:
        """Undo a scheduled end-of-period cancellation."""
        pass

    # Charges

    @abstractmethod
    async def create_charge(
        self,
        amount: int,
        currency: str,
        customer_id: str,
        payment_method_id: Optional[str] = None,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Charge:
        """
        Charge a customer once.

        Args:
            amount: Non-negative amount in minor currency units
            currency: ISO 4217 currency code
            customer_id: Processor customer ID
            payment_method_id: Method to charge; falls back to the customer default
            description: Optional statement description
            metadata: Arbitrary key-value data

        Returns:
            The resulting Charge
        """
        pass

    @abstractmethod
    async def get_charge(self, charge_id: str) -> Charge:
        pass

    @abstractmethod
    async def list_charges(self, customer_id: str, limit: int = 10) -> List[Charge]:
        """List a customer's charges, newest first, at most limit of them."""
        pass

    @abstractmethod
    async def refund_charge(
        self,
        charge_id: str,
        amount: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> Charge:
        """Refund a charge fully, or partially when amount is given."""
        pass

    # Webhooks

    @abstractmethod
    def verify_webhook_signature(
        self, raw_body: bytes, signature_header: str, secret: str
    ) -> bool:
        """
        Verify a webhook signature against the raw request body.

        Must compare in constant time and must not parse the body.
        """
        pass

    @abstractmethod
    def parse_webhook_event(self, raw_body: bytes) -> WebhookEvent:
        """
        Parse a verified webhook body into a WebhookEvent.

        Only call after verify_webhook_signature succeeded.

        Raises:
            WebhookException: If the payload is malformed
        """
        pass

    async def health_check(self) -> bool:
        """Check that the processor is reachable with the configured credentials."""
        return True

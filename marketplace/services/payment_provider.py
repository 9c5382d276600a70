"""
Payment Gateway Protocol - Provider-agnostic interface.

The fulfillment core only needs to know whether a billing has been paid;
everything provider-specific lives behind this protocol.

NO DICTIONARIES - All data uses strongly typed models.
"""

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class PixBillingRequest:
    """Request to open a one-time PIX billing for an order."""

    order_id: int
    amount_minor: int
    description: str
    customer_email: str
    customer_name: str | None = None

    def __post_init__(self) -> None:
        """Validate billing request."""
        if self.amount_minor <= 0:
            raise ValueError(f"Billing amount must be positive: {self.amount_minor}")

    @property
    def external_id(self) -> str:
        return f"order-{self.order_id}"


@dataclass(frozen=True)
class PixBilling:
    """A billing created at the provider."""

    billing_id: str
    status: str
    pix_code: str | None
    pix_qr_code_url: str | None
    checkout_url: str | None


@dataclass(frozen=True)
class PaymentStatus:
    """Provider-reported status of a billing."""

    billing_id: str
    status: str
    is_paid: bool


@dataclass(frozen=True)
class WebhookNotification:
    """
    A verified webhook, reduced to what reconciliation needs.

    order_id is None when the payload carries no order reference; billing_id
    may still identify the order.
    """

    event_type: str
    is_paid: bool
    order_id: int | None
    billing_id: str | None
    amount_minor: int | None


class PaymentGateway(Protocol):
    """
    Payment gateway protocol.

    Implementations must be safe to call concurrently and must apply explicit
    timeouts to outbound calls.
    """

    name: str

    async def create_pix_billing(self, request: PixBillingRequest) -> PixBilling:
        """
        Open a PIX billing for an order.

        Raises:
            PaymentProviderError: If the provider rejects or cannot be reached
        """
        ...

    async def check_payment_status(self, billing_id: str) -> PaymentStatus:
        """
        Ask the provider whether a billing has been paid.

        Raises:
            PaymentProviderError: If the provider cannot be reached
        """
        ...

    def parse_webhook(self, payload: bytes) -> WebhookNotification:
        """
        Parse a webhook body without checking its signature.

        Raises:
            WebhookVerificationError: Malformed body
        """
        ...

    def verify_webhook(self, payload: bytes, signature: str | None) -> WebhookNotification:
        """
        Verify the signature over the raw body and parse the payload.

        Raises:
            WebhookVerificationError: Missing/invalid signature or malformed body
        """
        ...

    async def close(self) -> None: ...

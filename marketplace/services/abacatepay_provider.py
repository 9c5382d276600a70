"""
AbacatePay Payment Gateway Implementation (PIX).

NO DICTIONARIES - All data uses strongly typed models.
"""

import base64
import hashlib
import hmac
import json
from typing import Any

import httpx

from marketplace.config import settings
from marketplace.exceptions import PaymentProviderError, WebhookVerificationError
from marketplace.observability import get_logger
from marketplace.services.payment_provider import (
    PaymentStatus,
    PixBilling,
    PixBillingRequest,
    WebhookNotification,
)

logger = get_logger(__name__)

PAID_STATUSES = frozenset({"PAID", "COMPLETED"})
PAID_EVENTS = frozenset({"billing.paid", "payment.confirmed", "BILLING.PAID"})
SIGNATURE_HEADERS = ("x-webhook-signature", "x-abacatepay-signature")


def compute_signature(payload: bytes, secret: str) -> str:
    """Base64 HMAC-SHA256 of the raw webhook body."""
    digest = hmac.new(secret.encode(), payload, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def _parse_order_reference(value: Any) -> int | None:
    if value is None:
        return None
    text = str(value).strip()
    if text.startswith("order-"):
        text = text[len("order-") :]
    return int(text) if text.isascii() and text.isdigit() else None


def _parse_amount(value: Any) -> int | None:
    """Amounts arrive in centavos; anything that is not a whole number is dropped."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isascii() and value.strip().isdigit():
        return int(value)
    return None


def _object(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


class AbacatePayGateway:
    """
    AbacatePay gateway implementation.

    Implements the PaymentGateway protocol over the AbacatePay REST API.
    """

    name = "abacatepay"

    def __init__(
        self,
        api_key: str,
        webhook_secret: str,
        base_url: str = "https://api.abacatepay.com/v1",
        timeout: float = 15.0,
        return_base_url: str = "",
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize AbacatePay gateway.

        Args:
            api_key: AbacatePay API key (Bearer token)
            webhook_secret: Shared secret for webhook HMAC signatures
            base_url: API base URL
            timeout: Timeout in seconds for every API call
            return_base_url: Public storefront URL used for return links
        """
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.return_base_url = return_base_url.rstrip("/")
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def create_pix_billing(self, request: PixBillingRequest) -> PixBilling:
        """Create a one-time PIX billing carrying the order reference."""
        return_url = f"{self.return_base_url}/order-success?orderId={request.order_id}"
        body = {
            "frequency": "ONE_TIME",
            "methods": ["PIX"],
            "products": [
                {
                    "externalId": request.external_id,
                    "name": request.description,
                    "quantity": 1,
                    "price": request.amount_minor,
                }
            ],
            "metadata": {"orderId": str(request.order_id)},
            "customer": {
                "email": request.customer_email,
                "name": request.customer_name or request.customer_email.split("@")[0] or "Cliente",
            },
            "returnUrl": return_url,
            "completionUrl": return_url,
        }

        logger.info(
            "creating_pix_billing",
            order_id=request.order_id,
            amount_minor=request.amount_minor,
        )
        try:
            response = await self.http_client.post(
                f"{self.base_url}/billing/create", json=body, headers=self._headers
            )
            response.raise_for_status()
            data = response.json().get("data") or {}
        except httpx.HTTPStatusError as exc:
            logger.error(
                "pix_billing_rejected",
                order_id=request.order_id,
                status=exc.response.status_code,
                text=exc.response.text[:500],
            )
            raise PaymentProviderError(
                f"AbacatePay rejected billing: {exc.response.status_code}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.error(
                "pix_billing_failed",
                order_id=request.order_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise PaymentProviderError(f"Failed to create PIX billing: {exc}") from exc

        billing_id = data.get("id")
        if not billing_id:
            raise PaymentProviderError("AbacatePay response did not include a billing id")

        logger.info("pix_billing_created", order_id=request.order_id, billing_id=billing_id)
        return PixBilling(
            billing_id=billing_id,
            status=data.get("status", "PENDING"),
            pix_code=data.get("brCode") or data.get("pixCopiaECola"),
            pix_qr_code_url=data.get("pixQrCode"),
            checkout_url=data.get("url"),
        )

    async def check_payment_status(self, billing_id: str) -> PaymentStatus:
        """Look the billing up in the account's billing list."""
        try:
            response = await self.http_client.get(
                f"{self.base_url}/billing/list", headers=self._headers
            )
            response.raise_for_status()
            billings = response.json().get("data") or []
        except (httpx.HTTPError, ValueError) as exc:
            logger.error(
                "payment_status_check_failed",
                billing_id=billing_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise PaymentProviderError(f"Failed to check payment status: {exc}") from exc

        billing = next((b for b in billings if b.get("id") == billing_id), None)
        if billing is None:
            return PaymentStatus(billing_id=billing_id, status="NOT_FOUND", is_paid=False)

        status = str(billing.get("status", "UNKNOWN"))
        return PaymentStatus(billing_id=billing_id, status=status, is_paid=status in PAID_STATUSES)

    def verify_signature(self, payload: bytes, signature: str | None) -> None:
        """
        Constant-time check of the base64 HMAC-SHA256 signature.

        Raises:
            WebhookVerificationError: No secret configured, or missing/bad signature
        """
        if not self.webhook_secret:
            logger.warning("webhook_secret_not_configured")
            raise WebhookVerificationError("webhook secret not configured")
        if not signature:
            raise WebhookVerificationError("missing signature")

        expected = compute_signature(payload, self.webhook_secret)
        if not hmac.compare_digest(expected.encode(), signature.strip().encode()):
            raise WebhookVerificationError("invalid signature")

    def parse_webhook(self, payload: bytes) -> WebhookNotification:
        """
        Reduce an AbacatePay webhook body to a WebhookNotification.

        Raises:
            WebhookVerificationError: Body is not a JSON object
        """
        try:
            event = json.loads(payload)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise WebhookVerificationError(f"malformed payload: {exc}") from exc
        if not isinstance(event, dict):
            raise WebhookVerificationError("payload must be a JSON object")

        # Signed bodies with an unexpected shape degrade to "no reference"
        data = _object(event.get("data"))
        billing = _object(data.get("billing"))
        pix_qr_code = _object(data.get("pixQrCode"))
        payment = _object(data.get("payment"))
        products = billing.get("products")

        order_id = _parse_order_reference(_object(billing.get("metadata")).get("orderId"))
        if order_id is None and isinstance(products, list) and products:
            order_id = _parse_order_reference(_object(products[0]).get("externalId"))

        amount = payment.get("amount")
        if amount is None:
            amount = pix_qr_code.get("amount")
        billing_id = billing.get("id") or pix_qr_code.get("id")
        event_type = str(event.get("event", ""))

        return WebhookNotification(
            event_type=event_type,
            is_paid=event_type in PAID_EVENTS,
            order_id=order_id,
            billing_id=str(billing_id) if billing_id else None,
            amount_minor=_parse_amount(amount),
        )

    def verify_webhook(self, payload: bytes, signature: str | None) -> WebhookNotification:
        """Verify and parse a webhook."""
        self.verify_signature(payload, signature)
        notification = self.parse_webhook(payload)
        logger.info(
            "abacatepay_webhook_verified",
            event_type=notification.event_type,
            order_id=notification.order_id,
            billing_id=notification.billing_id,
            is_paid=notification.is_paid,
        )
        return notification

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()


_gateway: AbacatePayGateway | None = None


def get_payment_gateway() -> AbacatePayGateway | None:
    """Process-wide gateway, or None when no API key is configured."""
    global _gateway
    if not settings.abacatepay_api_key:
        return None
    if _gateway is None:
        _gateway = AbacatePayGateway(
            api_key=settings.abacatepay_api_key,
            webhook_secret=settings.webhook_secret,
            base_url=settings.abacatepay_base_url,
            timeout=settings.abacatepay_timeout_seconds,
            return_base_url=settings.public_base_url,
        )
    return _gateway


async def close_payment_gateway() -> None:
    """Close the process-wide gateway (for graceful shutdown)."""
    global _gateway
    if _gateway is not None:
        await _gateway.close()
        _gateway = None

"""
Notification Dispatcher - Delivery email, WhatsApp deep link, purchase webhooks.

Notifications are best-effort: they run after the fulfillment transaction has
committed and their failures are logged, never raised back into the pipeline.
"""

import asyncio
import hashlib
import hmac
import html
import json
import re
from datetime import UTC, datetime
from urllib.parse import quote

import httpx

from marketplace.config import settings
from marketplace.models.domain import DeliveryNotice, NotificationResult, WebhookTarget
from marketplace.observability import get_logger, metrics
from marketplace.services.stock_allocator import parse_stock_lines

logger = get_logger(__name__)

EMAIL_NOT_CONFIGURED = "Email provider not configured"
PURCHASE_EVENT = "purchase.completed"


def normalize_phone(phone: str, country_code: str = "55") -> str:
    """
    Digits-only phone number with the country code.

    Only local numbers (at most 11 digits, DDD + number) that do not already
    start with the country code get it prepended. Anything longer is taken
    to be international already and is left alone.
    """
    digits = re.sub(r"\D", "", phone)
    if not digits:
        return ""
    if digits.startswith(country_code) or len(digits) > 11:
        return digits
    return f"{country_code}{digits}"


def build_whatsapp_message(
    order_id: int, delivered_content: str, store_name: str, preview_lines: int = 5
) -> str:
    """Delivery message with the first few stock lines of the order."""
    lines = parse_stock_lines(delivered_content)[:preview_lines]
    body = "\n".join(lines)
    return (
        f"Olá! Seu pagamento foi confirmado. Aqui está sua entrega do pedido "
        f"#{order_id} na {store_name}:\n\n{body}\n\nObrigado pela compra!"
    )


def build_whatsapp_link(
    phone: str,
    order_id: int,
    delivered_content: str,
    store_name: str,
    country_code: str = "55",
    preview_lines: int = 5,
) -> str | None:
    """
    Build a wa.me deep link that opens a chat with the delivery message.

    Returns None when the phone number has no digits.
    """
    number = normalize_phone(phone, country_code)
    if not number:
        return None
    message = build_whatsapp_message(order_id, delivered_content, store_name, preview_lines)
    return f"https://wa.me/{number}?text={quote(message, safe='')}"


def render_delivery_email(
    order_id: int, product_names: tuple[str, ...], delivered_content: str, store_name: str
) -> tuple[str, str, str]:
    """Return (subject, html, text) for a delivery email."""
    product_label = ", ".join(product_names) or "Produto digital"
    subject = f"Seu pedido #{order_id} - {product_label}"
    escaped_content = html.escape(delivered_content)
    html_body = (
        f"<h2>{html.escape(store_name)}</h2>"
        f"<p>Obrigado pela sua compra! Seu pagamento do pedido #{order_id} foi confirmado.</p>"
        f"<p><strong>Produto:</strong> {html.escape(product_label)}</p>"
        f"<p><strong>Seu conteúdo:</strong></p>"
        f'<pre style="background:#f4f4f5;padding:12px;border-radius:6px">{escaped_content}</pre>'
        f"<p>Guarde este e-mail, ele é o comprovante da sua entrega.</p>"
    )
    text_body = (
        f"{store_name}\n\nPedido #{order_id} - {product_label}\n\n"
        f"{delivered_content}\n\nObrigado pela compra!"
    )
    return subject, html_body, text_body


def sign_webhook_body(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 signature sent with outbound purchase webhooks."""
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


class ResendEmailClient:
    """Sends transactional email through the Resend HTTP API."""

    def __init__(
        self,
        api_key: str,
        sender: str,
        base_url: str = "https://api.resend.com",
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.sender = sender
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http_client = http_client

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def send(self, to: str, subject: str, html_body: str, text_body: str) -> NotificationResult:
        """Send one email. Never raises."""
        if not self.configured:
            return NotificationResult(success=False, error=EMAIL_NOT_CONFIGURED)

        try:
            response = await self.http_client.post(
                f"{self.base_url}/emails",
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "from": self.sender,
                    "to": [to],
                    "subject": subject,
                    "html": html_body,
                    "text": text_body,
                },
            )
            response.raise_for_status()
            message_id = response.json().get("id")
            return NotificationResult(success=True, message_id=message_id)

        except httpx.HTTPStatusError as e:
            logger.error(
                "email_send_rejected", status=e.response.status_code, text=e.response.text[:500]
            )
            return NotificationResult(
                success=False, error=f"Email provider returned {e.response.status_code}"
            )
        except httpx.HTTPError as e:
            logger.error("email_send_failed", error=str(e), error_type=type(e).__name__)
            return NotificationResult(success=False, error=f"Email provider unreachable: {e}")

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()


class PurchaseWebhookSender:
    """Posts signed purchase.completed events to reseller endpoints."""

    def __init__(self, timeout: float = 10.0, http_client: httpx.AsyncClient | None = None) -> None:
        self.timeout = timeout
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    @staticmethod
    def build_payload(notice: DeliveryNotice) -> bytes:
        """Serialized event body. Delivered credentials are not included."""
        event = {
            "event": PURCHASE_EVENT,
            "order_id": notice.order_id,
            "reseller_id": notice.reseller_id,
            "total_amount_minor": notice.total_amount_minor,
            "product_names": list(notice.product_names),
            "customer_email": notice.email,
            "sent_at": datetime.now(UTC).isoformat(),
        }
        return json.dumps(event, separators=(",", ":"), sort_keys=True).encode()

    async def send(self, target: WebhookTarget, body: bytes) -> NotificationResult:
        """Deliver one event. Never raises."""
        try:
            response = await self.http_client.post(
                target.url,
                content=body,
                headers={
                    "Content-Type": "application/json",
                    "X-Webhook-Event": PURCHASE_EVENT,
                    "X-Webhook-Signature": sign_webhook_body(body, target.secret),
                },
            )
            response.raise_for_status()
            return NotificationResult(success=True)
        except httpx.HTTPError as e:
            logger.warning(
                "purchase_webhook_failed",
                webhook_id=target.webhook_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return NotificationResult(success=False, error=str(e))

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()


class NotificationDispatcher:
    """
    Sends delivery notifications.

    send() is the synchronous email path (used by resend-email); dispatch()
    schedules the full post-fulfillment notification as a background task
    bounded by a timeout.
    """

    def __init__(
        self,
        email_client: ResendEmailClient,
        webhook_sender: PurchaseWebhookSender | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.email_client = email_client
        self.webhook_sender = webhook_sender or PurchaseWebhookSender()
        self.timeout = timeout
        self._tasks: set[asyncio.Task[None]] = set()

    async def send(
        self,
        to: str,
        order_id: int,
        product_names: tuple[str, ...],
        delivered_content: str,
        store_name: str,
    ) -> NotificationResult:
        """Email the delivered content to the customer."""
        subject, html_body, text_body = render_delivery_email(
            order_id, product_names, delivered_content, store_name
        )
        result = await self.email_client.send(to, subject, html_body, text_body)
        metrics.record_notification("email", result.success)
        return result

    async def deliver(self, notice: DeliveryNotice) -> None:
        """Run every notification for a paid order and log the outcome."""
        result = await self.send(
            notice.email,
            notice.order_id,
            notice.product_names,
            notice.delivered_content,
            notice.store_name,
        )
        if result.success:
            logger.info("delivery_email_sent", order_id=notice.order_id, message_id=result.message_id)
        else:
            logger.warning("delivery_email_failed", order_id=notice.order_id, error=result.error)

        if notice.webhook_targets:
            body = self.webhook_sender.build_payload(notice)
            for target in notice.webhook_targets:
                outcome = await self.webhook_sender.send(target, body)
                metrics.record_notification("purchase_webhook", outcome.success)

    def dispatch(self, notice: DeliveryNotice) -> asyncio.Task[None]:
        """Schedule deliver() in the background; the caller does not wait."""
        task = asyncio.create_task(self._deliver_with_timeout(notice))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _deliver_with_timeout(self, notice: DeliveryNotice) -> None:
        try:
            await asyncio.wait_for(self.deliver(notice), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error("notification_timed_out", order_id=notice.order_id, timeout=self.timeout)
            metrics.record_error("TimeoutError", "notification")
        except Exception as e:
            logger.exception("notification_failed", order_id=notice.order_id, error=str(e))
            metrics.record_error(type(e).__name__, "notification")

    async def drain(self, timeout: float = 5.0) -> None:
        """Wait briefly for in-flight notifications (used at shutdown)."""
        if not self._tasks:
            return
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()

    async def close(self) -> None:
        """Close HTTP clients."""
        await self.email_client.close()
        await self.webhook_sender.close()


_dispatcher: NotificationDispatcher | None = None


def get_notification_dispatcher() -> NotificationDispatcher:
    """Process-wide dispatcher built from settings."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = NotificationDispatcher(
            email_client=ResendEmailClient(
                api_key=settings.resend_api_key,
                sender=settings.email_from,
                base_url=settings.resend_base_url,
                timeout=settings.email_timeout_seconds,
            ),
            webhook_sender=PurchaseWebhookSender(timeout=settings.email_timeout_seconds),
            timeout=settings.notification_timeout_seconds,
        )
    return _dispatcher

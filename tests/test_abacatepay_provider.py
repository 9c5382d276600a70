"""
Tests for the AbacatePay payment gateway.

HTTP calls go through httpx.MockTransport; no network access.
"""

import json

import httpx
import pytest

from marketplace.exceptions import PaymentProviderError, WebhookVerificationError
from marketplace.services.abacatepay_provider import AbacatePayGateway, compute_signature
from marketplace.services.payment_provider import PixBillingRequest

SECRET = "whsec_abacate"


def make_gateway(handler=None, webhook_secret: str = SECRET) -> AbacatePayGateway:
    client = None
    if handler is not None:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AbacatePayGateway(
        api_key="abc_test_key",
        webhook_secret=webhook_secret,
        base_url="https://api.abacatepay.test/v1",
        return_base_url="https://loja.example.com/",
        http_client=client,
    )


def paid_event(order_id: str = "42", amount: int = 2990) -> bytes:
    return json.dumps(
        {
            "event": "billing.paid",
            "data": {
                "billing": {
                    "id": "bill_42",
                    "metadata": {"orderId": order_id},
                    "products": [{"externalId": f"order-{order_id}"}],
                },
                "payment": {"amount": amount},
            },
        }
    ).encode()


class TestSignature:
    """Tests for webhook signature verification."""

    def test_valid_signature(self) -> None:
        gateway = make_gateway()
        body = paid_event()

        notification = gateway.verify_webhook(body, compute_signature(body, SECRET))

        assert notification.is_paid is True
        assert notification.order_id == 42

    def test_signature_with_whitespace(self) -> None:
        gateway = make_gateway()
        body = paid_event()

        gateway.verify_signature(body, f"  {compute_signature(body, SECRET)}\n")

    def test_missing_signature(self) -> None:
        with pytest.raises(WebhookVerificationError, match="missing signature"):
            make_gateway().verify_webhook(paid_event(), None)

    def test_wrong_signature(self) -> None:
        body = paid_event()
        with pytest.raises(WebhookVerificationError, match="invalid signature"):
            make_gateway().verify_webhook(body, compute_signature(body, "other-secret"))

    def test_tampered_body(self) -> None:
        signature = compute_signature(paid_event(amount=2990), SECRET)
        with pytest.raises(WebhookVerificationError):
            make_gateway().verify_webhook(paid_event(amount=1), signature)

    def test_secret_not_configured(self) -> None:
        body = paid_event()
        with pytest.raises(WebhookVerificationError, match="not configured"):
            make_gateway(webhook_secret="").verify_webhook(body, compute_signature(body, ""))


class TestParseWebhook:
    """Tests for webhook payload parsing."""

    def test_paid_event(self) -> None:
        notification = make_gateway().parse_webhook(paid_event())

        assert notification.event_type == "billing.paid"
        assert notification.is_paid is True
        assert notification.order_id == 42
        assert notification.billing_id == "bill_42"
        assert notification.amount_minor == 2990

    def test_order_from_external_id(self) -> None:
        body = json.dumps(
            {
                "event": "billing.paid",
                "data": {"billing": {"id": "bill_7", "products": [{"externalId": "order-7"}]}},
            }
        ).encode()

        assert make_gateway().parse_webhook(body).order_id == 7

    def test_pix_qr_code_event(self) -> None:
        body = json.dumps(
            {"event": "billing.paid", "data": {"pixQrCode": {"id": "pix_1", "amount": 1500}}}
        ).encode()

        notification = make_gateway().parse_webhook(body)

        assert notification.order_id is None
        assert notification.billing_id == "pix_1"
        assert notification.amount_minor == 1500

    def test_other_event_not_paid(self) -> None:
        body = json.dumps({"event": "billing.created", "data": {}}).encode()

        notification = make_gateway().parse_webhook(body)

        assert notification.is_paid is False
        assert notification.order_id is None
        assert notification.amount_minor is None

    @pytest.mark.parametrize("body", [b"not json", b"[1, 2]", b"\xff\xfe"])
    def test_malformed(self, body: bytes) -> None:
        with pytest.raises(WebhookVerificationError):
            make_gateway().parse_webhook(body)

    def test_decimal_amount_dropped(self) -> None:
        body = json.dumps(
            {
                "event": "billing.paid",
                "data": {
                    "billing": {"id": "bill_42", "metadata": {"orderId": "42"}},
                    "payment": {"amount": "29.90"},
                },
            }
        ).encode()

        notification = make_gateway().verify_webhook(body, compute_signature(body, SECRET))

        assert notification.order_id == 42
        assert notification.is_paid is True
        assert notification.amount_minor is None

    @pytest.mark.parametrize(
        ("amount", "expected"),
        [(2990, 2990), ("2990", 2990), (True, None), (29.9, None), ("²", None), ([1], None)],
    )
    def test_amount_shapes(self, amount, expected) -> None:
        body = json.dumps({"event": "billing.paid", "data": {"payment": {"amount": amount}}})

        assert make_gateway().parse_webhook(body.encode()).amount_minor == expected

    def test_string_metadata_falls_back_to_external_id(self) -> None:
        body = json.dumps(
            {
                "event": "billing.paid",
                "data": {"billing": {"metadata": "order-1", "products": [{"externalId": "order-1"}]}},
            }
        ).encode()

        notification = make_gateway().verify_webhook(body, compute_signature(body, SECRET))

        assert notification.order_id == 1

    @pytest.mark.parametrize(
        "data",
        [
            "order-1",
            [1, 2],
            {"billing": "bill_1"},
            {"billing": {"metadata": "order-1"}},
            {"billing": {"metadata": ["42"], "products": {"externalId": "order-1"}}},
            {"billing": {"products": ["order-1"]}},
            {"billing": {"metadata": {"orderId": "order-²"}}},
            {"payment": "paid", "pixQrCode": 7},
        ],
    )
    def test_unexpected_shapes_have_no_reference(self, data) -> None:
        body = json.dumps({"event": "billing.paid", "data": data}).encode()

        notification = make_gateway().verify_webhook(body, compute_signature(body, SECRET))

        assert notification.is_paid is True
        assert notification.order_id is None
        assert notification.amount_minor is None


class TestCreatePixBilling:
    """Tests for billing creation."""

    async def test_creates_billing(self) -> None:
        captured: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["auth"] = request.headers["Authorization"]
            captured["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "data": {
                        "id": "bill_new",
                        "status": "PENDING",
                        "brCode": "00020126...",
                        "url": "https://pay.abacatepay.test/bill_new",
                    }
                },
            )

        gateway = make_gateway(handler)
        billing = await gateway.create_pix_billing(
            PixBillingRequest(
                order_id=42,
                amount_minor=2990,
                description="Pedido #42 - Netflix",
                customer_email="cliente@example.com",
            )
        )

        assert billing.billing_id == "bill_new"
        assert billing.pix_code == "00020126..."
        assert billing.checkout_url == "https://pay.abacatepay.test/bill_new"
        assert captured["url"] == "https://api.abacatepay.test/v1/billing/create"
        assert captured["auth"] == "Bearer abc_test_key"
        assert captured["body"]["metadata"] == {"orderId": "42"}
        assert captured["body"]["products"][0]["externalId"] == "order-42"
        assert captured["body"]["products"][0]["price"] == 2990
        assert captured["body"]["customer"]["name"] == "cliente"
        assert captured["body"]["returnUrl"] == "https://loja.example.com/order-success?orderId=42"

    async def test_rejected(self) -> None:
        gateway = make_gateway(lambda request: httpx.Response(422, text="invalid"))

        with pytest.raises(PaymentProviderError, match="422"):
            await gateway.create_pix_billing(
                PixBillingRequest(order_id=1, amount_minor=100, description="x", customer_email="a@b.c")
            )

    async def test_unreachable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused")

        with pytest.raises(PaymentProviderError, match="Failed to create"):
            await make_gateway(handler).create_pix_billing(
                PixBillingRequest(order_id=1, amount_minor=100, description="x", customer_email="a@b.c")
            )

    async def test_missing_billing_id(self) -> None:
        gateway = make_gateway(lambda request: httpx.Response(200, json={"data": {}}))

        with pytest.raises(PaymentProviderError, match="billing id"):
            await gateway.create_pix_billing(
                PixBillingRequest(order_id=1, amount_minor=100, description="x", customer_email="a@b.c")
            )

    def test_request_rejects_non_positive_amount(self) -> None:
        with pytest.raises(ValueError):
            PixBillingRequest(order_id=1, amount_minor=0, description="x", customer_email="a@b.c")


class TestCheckPaymentStatus:
    """Tests for payment status polling."""

    @staticmethod
    def listing(*billings: dict) -> AbacatePayGateway:
        return make_gateway(lambda request: httpx.Response(200, json={"data": list(billings)}))

    async def test_paid(self) -> None:
        status = await self.listing({"id": "bill_1", "status": "PAID"}).check_payment_status("bill_1")

        assert status.is_paid is True
        assert status.status == "PAID"

    async def test_pending(self) -> None:
        status = await self.listing(
            {"id": "bill_1", "status": "PENDING"}, {"id": "bill_2", "status": "PAID"}
        ).check_payment_status("bill_1")

        assert status.is_paid is False

    async def test_not_found(self) -> None:
        status = await self.listing().check_payment_status("bill_9")

        assert status.status == "NOT_FOUND"
        assert status.is_paid is False

    async def test_provider_error(self) -> None:
        gateway = make_gateway(lambda request: httpx.Response(500))

        with pytest.raises(PaymentProviderError):
            await gateway.check_payment_status("bill_1")

"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
"""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, field_validator


class OrderStatus(str, Enum):
    """Order lifecycle status. Unpaid orders are deleted, never cancelled."""

    PENDING = "pending"
    PAID = "paid"


class WithdrawalStatus(str, Enum):
    """Withdrawal request status enumeration."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class LedgerEntryType(str, Enum):
    """Wallet ledger entry type enumeration."""

    ORDER_CREDIT = "order_credit"
    WITHDRAWAL_DEBIT = "withdrawal_debit"
    WITHDRAWAL_REVERSAL = "withdrawal_reversal"


class FulfillmentSource(str, Enum):
    """What confirmed the payment that triggered a fulfillment."""

    WEBHOOK = "webhook"
    POLL = "poll"
    ADMIN = "admin"
    VENDOR = "vendor"


def _normalize_email(value: str) -> str:
    value = value.strip().lower()
    local, _, domain = value.partition("@")
    if not local or "." not in domain:
        raise ValueError("Invalid email address")
    return value


# ============================================================================
# Storefront Models
# ============================================================================


class CheckoutItem(BaseModel):
    """A product in a checkout request. Each item is one unit."""

    product_id: int = Field(..., gt=0)


class CheckoutRequest(BaseModel):
    """POST /api/orders request body."""

    email: str = Field(..., min_length=3, max_length=255)
    whatsapp: str = Field(..., min_length=8, max_length=32)
    customer_name: str | None = Field(None, max_length=255)
    items: list[CheckoutItem] = Field(..., min_length=1, max_length=50)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Normalize and sanity-check the customer email."""
        return _normalize_email(v)

    @field_validator("whatsapp")
    @classmethod
    def validate_whatsapp(cls, v: str) -> str:
        """Require at least a local phone number's worth of digits."""
        if sum(ch.isdigit() for ch in v) < 10:
            raise ValueError("WhatsApp number must have at least 10 digits")
        return v.strip()


class CheckoutResponse(BaseModel):
    """POST /api/orders response."""

    id: int
    status: OrderStatus
    total_amount_minor: int
    billing_id: str | None = None
    pix_code: str | None = None
    pix_qr_code_url: str | None = None
    checkout_url: str | None = None


class OrderStatusResponse(BaseModel):
    """GET /api/orders/{id}/status response."""

    id: int
    status: OrderStatus
    delivered_content: str | None = None


class ResendEmailRequest(BaseModel):
    """POST /api/orders/{id}/resend-email request body."""

    email: str = Field(..., min_length=3, max_length=255)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Normalize the email used to prove order ownership."""
        return _normalize_email(v)


class ResendEmailResponse(BaseModel):
    """POST /api/orders/{id}/resend-email response."""

    success: bool
    message: str


class FulfillmentResponse(BaseModel):
    """Manual approval response."""

    order_id: int
    status: OrderStatus
    delivered_content: str
    already_paid: bool = False


class WebhookAckResponse(BaseModel):
    """Payment webhook acknowledgement."""

    received: bool = True
    outcome: str
    order_id: int | None = None


class HealthResponse(BaseModel):
    """GET /health response."""

    status: Literal["healthy", "unhealthy"]
    database: Literal["connected", "disconnected"]
    timestamp: str


# ============================================================================
# Authentication Models
# ============================================================================


class VendorLoginRequest(BaseModel):
    """POST /api/vendor/login request body."""

    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=255)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Normalize the login email."""
        return _normalize_email(v)


class VendorLoginResponse(BaseModel):
    """POST /api/vendor/login response."""

    token: str
    expires_at: str
    reseller_id: int
    store_name: str


class AdminLoginRequest(BaseModel):
    """POST /api/admin/login request body."""

    username: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=255)


class AdminLoginResponse(BaseModel):
    """POST /api/admin/login response."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int


# ============================================================================
# Reseller and Catalog Models
# ============================================================================


class ResellerCreateRequest(BaseModel):
    """POST /api/admin/resellers request body."""

    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=8, max_length=255)
    store_name: str = Field(..., min_length=1, max_length=255)
    phone: str | None = Field(None, max_length=32)
    pix_key: str | None = Field(None, max_length=255)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Normalize the reseller login email."""
        return _normalize_email(v)


class ResellerResponse(BaseModel):
    """Reseller representation."""

    id: int
    name: str
    email: str
    store_name: str
    wallet_balance_minor: int
    total_sales_minor: int
    active: bool
    created_at: str


class ProductCreateRequest(BaseModel):
    """POST /api/vendor/products request body."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=5000)
    price_minor: int = Field(..., gt=0, description="Price in centavos")
    stock: str = Field("", description="One deliverable credential per line, oldest first")


class ProductUpdateRequest(BaseModel):
    """PATCH /api/vendor/products/{id} request body. Stock is replaced wholesale."""

    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, max_length=5000)
    price_minor: int | None = Field(None, gt=0)
    stock: str | None = None
    active: bool | None = None


class ProductResponse(BaseModel):
    """Product representation for its owner. Stock lines are never echoed back."""

    id: int
    name: str
    description: str | None
    price_minor: int
    stock_count: int
    active: bool


class VendorOrderResponse(BaseModel):
    """Order as seen by the reseller who sold it."""

    id: int
    status: OrderStatus
    email: str
    total_amount_minor: int
    product_names: list[str]
    created_at: str
    paid_at: str | None


class VendorOrderListResponse(BaseModel):
    """GET /api/vendor/orders response."""

    orders: list[VendorOrderResponse]


# ============================================================================
# Wallet Models
# ============================================================================


class LedgerEntryResponse(BaseModel):
    """Wallet ledger entry."""

    id: str
    entry_type: LedgerEntryType
    amount_minor: int
    balance_after_minor: int
    description: str
    order_id: int | None
    withdrawal_id: int | None
    created_at: str


class WalletResponse(BaseModel):
    """GET /api/vendor/wallet response."""

    balance_minor: int
    total_sales_minor: int
    entries: list[LedgerEntryResponse]


class WithdrawalCreateRequest(BaseModel):
    """POST /api/vendor/withdrawals request body."""

    amount_minor: int = Field(..., gt=0, description="Gross amount in centavos")
    pix_key: str = Field(..., min_length=1, max_length=255)
    pix_key_type: Literal["cpf", "cnpj", "email", "phone", "random"]
    pix_holder_name: str = Field(..., min_length=1, max_length=255)


class WithdrawalResponse(BaseModel):
    """Withdrawal request representation."""

    id: int
    reseller_id: int
    amount_minor: int
    fee_minor: int
    net_amount_minor: int
    status: WithdrawalStatus
    pix_key: str
    pix_key_type: str
    pix_holder_name: str
    admin_notes: str | None
    created_at: str
    processed_at: str | None


class WithdrawalListResponse(BaseModel):
    """Withdrawal request listing."""

    withdrawals: list[WithdrawalResponse]


class WithdrawalDecisionRequest(BaseModel):
    """PATCH /api/admin/withdrawals/{id} request body."""

    status: Literal["approved", "rejected"]
    admin_notes: str | None = Field(None, max_length=1000)


# ============================================================================
# Purchase Webhook Endpoint Models
# ============================================================================


class WebhookEndpointCreateRequest(BaseModel):
    """POST /api/vendor/webhooks request body."""

    name: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., min_length=8, max_length=2048)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Only http(s) endpoints can receive purchase events."""
        if not v.startswith(("https://", "http://")):
            raise ValueError("Webhook URL must start with http:// or https://")
        return v


class WebhookEndpointResponse(BaseModel):
    """Registered purchase webhook endpoint."""

    id: int
    name: str
    url: str
    active: bool
    created_at: str


class WebhookEndpointCreatedResponse(WebhookEndpointResponse):
    """Creation response; the signing secret is only shown once."""

    secret: str


class WebhookEndpointListResponse(BaseModel):
    """GET /api/vendor/webhooks response."""

    webhooks: list[WebhookEndpointResponse]

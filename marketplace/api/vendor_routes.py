"""
Vendor API Routes - Reseller login, catalog, orders, wallet and webhooks.

All routes except login require `Authorization: Bearer {session_token}`.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.api.approval import approve_order
from marketplace.api.dependencies import (
    get_current_vendor,
    get_dispatcher,
    get_gateway,
    get_store,
    get_vendor_auth_service,
    get_vendor_token,
)
from marketplace.db.models import (
    Product,
    Reseller,
    ResellerWebhook,
    WalletLedgerEntry,
    WithdrawalRequest,
)
from marketplace.db.session import get_write_db
from marketplace.db.store import SqlMarketplaceStore
from marketplace.exceptions import (
    AuthenticationError,
    InsufficientBalanceError,
    InvalidWithdrawalError,
    OrderNotFoundError,
    ProductNotFoundError,
)
from marketplace.models.api import (
    FulfillmentResponse,
    FulfillmentSource,
    LedgerEntryResponse,
    ProductCreateRequest,
    ProductResponse,
    ProductUpdateRequest,
    VendorLoginRequest,
    VendorLoginResponse,
    VendorOrderListResponse,
    VendorOrderResponse,
    WalletResponse,
    WebhookEndpointCreatedResponse,
    WebhookEndpointCreateRequest,
    WebhookEndpointListResponse,
    WebhookEndpointResponse,
    WithdrawalCreateRequest,
    WithdrawalListResponse,
    WithdrawalResponse,
)
from marketplace.observability import get_logger
from marketplace.services.catalog import CatalogService
from marketplace.services.notifications import NotificationDispatcher
from marketplace.services.payment_provider import PaymentGateway
from marketplace.services.stock_allocator import count_stock
from marketplace.services.vendor_auth import VendorAuthService
from marketplace.services.wallet import WalletService

logger = get_logger(__name__)

router = APIRouter(prefix="/api/vendor", tags=["vendor"])


def product_response(product: Product) -> ProductResponse:
    return ProductResponse(
        id=product.id,
        name=product.name,
        description=product.description,
        price_minor=product.price_minor,
        stock_count=count_stock(product.stock),
        active=product.active,
    )


def ledger_entry_response(entry: WalletLedgerEntry) -> LedgerEntryResponse:
    return LedgerEntryResponse(
        id=str(entry.id),
        entry_type=entry.entry_type,
        amount_minor=entry.amount_minor,
        balance_after_minor=entry.balance_after_minor,
        description=entry.description,
        order_id=entry.order_id,
        withdrawal_id=entry.withdrawal_id,
        created_at=entry.created_at.isoformat(),
    )


def withdrawal_response(withdrawal: WithdrawalRequest) -> WithdrawalResponse:
    return WithdrawalResponse(
        id=withdrawal.id,
        reseller_id=withdrawal.reseller_id,
        amount_minor=withdrawal.amount_minor,
        fee_minor=withdrawal.fee_minor,
        net_amount_minor=withdrawal.net_amount_minor,
        status=withdrawal.status,
        pix_key=withdrawal.pix_key,
        pix_key_type=withdrawal.pix_key_type,
        pix_holder_name=withdrawal.pix_holder_name,
        admin_notes=withdrawal.admin_notes,
        created_at=withdrawal.created_at.isoformat(),
        processed_at=withdrawal.processed_at.isoformat() if withdrawal.processed_at else None,
    )


def webhook_response(webhook: ResellerWebhook) -> WebhookEndpointResponse:
    return WebhookEndpointResponse(
        id=webhook.id,
        name=webhook.name,
        url=webhook.url,
        active=webhook.active,
        created_at=webhook.created_at.isoformat(),
    )


# ============================================================================
# Session
# ============================================================================


@router.post("/login", response_model=VendorLoginResponse)
async def vendor_login(
    request: VendorLoginRequest,
    auth_service: VendorAuthService = Depends(get_vendor_auth_service),
) -> VendorLoginResponse:
    """Exchange email and password for a session token."""
    try:
        session = await auth_service.login(request.email, request.password)
    except AuthenticationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Email ou senha inválidos",
        ) from exc

    return VendorLoginResponse(
        token=session.token,
        expires_at=session.expires_at.isoformat(),
        reseller_id=session.reseller.id,
        store_name=session.reseller.store_name,
    )


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def vendor_logout(
    token: str = Depends(get_vendor_token),
    auth_service: VendorAuthService = Depends(get_vendor_auth_service),
) -> None:
    """Revoke the current session token."""
    await auth_service.logout(token)


# ============================================================================
# Orders
# ============================================================================


@router.get("/orders", response_model=VendorOrderListResponse)
async def list_vendor_orders(
    limit: int = 100,
    reseller: Reseller = Depends(get_current_vendor),
    db: AsyncSession = Depends(get_write_db),
) -> VendorOrderListResponse:
    """Most recent orders of the calling reseller."""
    service = CatalogService(db)
    rows = await service.list_orders(reseller.id, limit=min(max(limit, 1), 500))
    return VendorOrderListResponse(
        orders=[
            VendorOrderResponse(
                id=order.id,
                status=order.status,
                email=order.email,
                total_amount_minor=order.total_amount_minor,
                product_names=names,
                created_at=order.created_at.isoformat(),
                paid_at=order.paid_at.isoformat() if order.paid_at else None,
            )
            for order, names in rows
        ]
    )


@router.post("/orders/{order_id}/approve", response_model=FulfillmentResponse)
async def vendor_approve_order(
    order_id: int,
    reseller: Reseller = Depends(get_current_vendor),
    db: AsyncSession = Depends(get_write_db),
    store: SqlMarketplaceStore = Depends(get_store),
    gateway: PaymentGateway | None = Depends(get_gateway),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> FulfillmentResponse:
    """Manually mark one of the reseller's orders as paid and deliver it."""
    service = CatalogService(db)
    try:
        await service.ensure_order_owner(reseller.id, order_id)
    except OrderNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc

    return await approve_order(order_id, FulfillmentSource.VENDOR, store, gateway, dispatcher)


# ============================================================================
# Products
# ============================================================================


@router.get("/products", response_model=list[ProductResponse])
async def list_products(
    reseller: Reseller = Depends(get_current_vendor),
    db: AsyncSession = Depends(get_write_db),
) -> list[ProductResponse]:
    service = CatalogService(db)
    return [product_response(p) for p in await service.list_products(reseller.id)]


@router.post("/products", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    request: ProductCreateRequest,
    reseller: Reseller = Depends(get_current_vendor),
    db: AsyncSession = Depends(get_write_db),
) -> ProductResponse:
    """Create a product with one deliverable credential per stock line."""
    service = CatalogService(db)
    product = await service.create_product(reseller.id, request)
    return product_response(product)


@router.patch("/products/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: int,
    request: ProductUpdateRequest,
    reseller: Reseller = Depends(get_current_vendor),
    db: AsyncSession = Depends(get_write_db),
) -> ProductResponse:
    """Update a product. A stock value replaces the whole stock."""
    service = CatalogService(db)
    try:
        product = await service.update_product(reseller.id, product_id, request)
    except ProductNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    return product_response(product)


# ============================================================================
# Wallet
# ============================================================================


@router.get("/wallet", response_model=WalletResponse)
async def get_wallet(
    reseller: Reseller = Depends(get_current_vendor),
    store: SqlMarketplaceStore = Depends(get_store),
) -> WalletResponse:
    """Balance, lifetime sales and recent ledger entries."""
    wallet = WalletService(store)
    current, entries = await wallet.get_wallet(reseller.id)
    return WalletResponse(
        balance_minor=current.wallet_balance_minor,
        total_sales_minor=current.total_sales_minor,
        entries=[ledger_entry_response(entry) for entry in entries],
    )


@router.get("/withdrawals", response_model=WithdrawalListResponse)
async def list_withdrawals(
    reseller: Reseller = Depends(get_current_vendor),
    store: SqlMarketplaceStore = Depends(get_store),
) -> WithdrawalListResponse:
    withdrawals = await store.list_withdrawals(reseller_id=reseller.id)
    return WithdrawalListResponse(withdrawals=[withdrawal_response(w) for w in withdrawals])


@router.post(
    "/withdrawals",
    response_model=WithdrawalResponse,
    status_code=status.HTTP_201_CREATED,
)
async def request_withdrawal(
    request: WithdrawalCreateRequest,
    reseller: Reseller = Depends(get_current_vendor),
    store: SqlMarketplaceStore = Depends(get_store),
) -> WithdrawalResponse:
    """
    Request a PIX payout.

    The amount is reserved from the balance immediately; the fixed fee is
    deducted from the payout.
    """
    wallet = WalletService(store)
    try:
        withdrawal = await wallet.request_withdrawal(
            reseller_id=reseller.id,
            amount_minor=request.amount_minor,
            pix_key=request.pix_key,
            pix_key_type=request.pix_key_type,
            pix_holder_name=request.pix_holder_name,
        )
    except InvalidWithdrawalError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=exc.message,
        ) from exc
    except InsufficientBalanceError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Saldo insuficiente",
        ) from exc

    return withdrawal_response(withdrawal)


# ============================================================================
# Purchase webhooks
# ============================================================================


@router.get("/webhooks", response_model=WebhookEndpointListResponse)
async def list_webhooks(
    reseller: Reseller = Depends(get_current_vendor),
    db: AsyncSession = Depends(get_write_db),
) -> WebhookEndpointListResponse:
    service = CatalogService(db)
    webhooks = await service.list_webhooks(reseller.id)
    return WebhookEndpointListResponse(webhooks=[webhook_response(w) for w in webhooks])


@router.post(
    "/webhooks",
    response_model=WebhookEndpointCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_webhook(
    request: WebhookEndpointCreateRequest,
    reseller: Reseller = Depends(get_current_vendor),
    db: AsyncSession = Depends(get_write_db),
) -> WebhookEndpointCreatedResponse:
    """Register an endpoint for purchase.completed events. The secret is shown once."""
    service = CatalogService(db)
    webhook = await service.create_webhook(reseller.id, request.name, request.url)
    return WebhookEndpointCreatedResponse(
        **webhook_response(webhook).model_dump(),
        secret=webhook.secret,
    )


@router.delete("/webhooks/{webhook_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_webhook(
    webhook_id: int,
    reseller: Reseller = Depends(get_current_vendor),
    db: AsyncSession = Depends(get_write_db),
) -> None:
    service = CatalogService(db)
    if not await service.delete_webhook(reseller.id, webhook_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Webhook not found: {webhook_id}",
        )

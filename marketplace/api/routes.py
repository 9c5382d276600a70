"""
API Routes - Storefront checkout, order status and payment webhooks.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.api.dependencies import get_dispatcher, get_gateway, get_store
from marketplace.db.session import get_read_db, get_write_db
from marketplace.db.store import SqlMarketplaceStore
from marketplace.exceptions import (
    AuthorizationError,
    CheckoutError,
    OrderNotFoundError,
    OrderNotPaidError,
    OutOfStockError,
    PaymentProviderError,
    WebhookVerificationError,
)
from marketplace.models.api import (
    CheckoutRequest,
    CheckoutResponse,
    HealthResponse,
    OrderStatus,
    OrderStatusResponse,
    ResendEmailRequest,
    ResendEmailResponse,
    WebhookAckResponse,
)
from marketplace.observability import get_logger
from marketplace.services.abacatepay_provider import SIGNATURE_HEADERS
from marketplace.services.checkout import CheckoutService
from marketplace.services.notifications import NotificationDispatcher
from marketplace.services.payment_provider import PaymentGateway
from marketplace.services.reconciler import PaymentReconciler

logger = get_logger(__name__)

router = APIRouter()


@router.post(
    "/api/orders",
    response_model=CheckoutResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_order(
    request: CheckoutRequest,
    db: AsyncSession = Depends(get_write_db),
    gateway: PaymentGateway | None = Depends(get_gateway),
) -> CheckoutResponse:
    """
    Create a pending order and its PIX billing.

    One unit per item; the total is computed from current product prices.
    """
    service = CheckoutService(db, gateway)
    try:
        order = await service.create_order(request)
    except OutOfStockError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except CheckoutError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=exc.message,
        ) from exc
    except PaymentProviderError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Não foi possível gerar o PIX. Tente novamente.",
        ) from exc

    return CheckoutResponse(
        id=order.id,
        status=order.status,
        total_amount_minor=order.total_amount_minor,
        billing_id=order.billing_id,
        pix_code=order.pix_code,
        pix_qr_code_url=order.pix_qr_code_url,
        checkout_url=order.checkout_url,
    )


@router.get("/api/orders/{order_id}/status", response_model=OrderStatusResponse)
async def get_order_status(
    order_id: int,
    db: AsyncSession = Depends(get_read_db),
) -> OrderStatusResponse:
    """Order status; delivered content is only present once paid."""
    service = CheckoutService(db)
    try:
        order = await service.get_order(order_id)
    except OrderNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc

    return OrderStatusResponse(
        id=order.id,
        status=order.status,
        delivered_content=order.delivered_content if order.status == OrderStatus.PAID else None,
    )


@router.post("/api/orders/{order_id}/resend-email", response_model=ResendEmailResponse)
async def resend_order_email(
    order_id: int,
    request: ResendEmailRequest,
    db: AsyncSession = Depends(get_read_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> ResendEmailResponse:
    """Send the delivery email again. The email must match the order."""
    service = CheckoutService(db)
    try:
        result = await service.resend_email(order_id, request.email, dispatcher)
    except OrderNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except AuthorizationError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Email não confere com o pedido",
        ) from exc
    except OrderNotPaidError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Pedido ainda não foi pago",
        ) from exc

    if not result.success:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=result.error or "Falha ao enviar email",
        )
    return ResendEmailResponse(success=True, message="Email reenviado com sucesso")


@router.post("/api/webhooks/{provider}", response_model=WebhookAckResponse)
async def payment_webhook(
    provider: str,
    request: Request,
    store: SqlMarketplaceStore = Depends(get_store),
    gateway: PaymentGateway | None = Depends(get_gateway),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> WebhookAckResponse:
    """
    Handle a payment provider webhook.

    The signature is verified over the raw body before anything is parsed.
    Paid events fulfill the order; replays and non-payment events are
    acknowledged with 200.
    """
    if gateway is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payment gateway not configured",
        )
    if provider != gateway.name:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown payment provider: {provider}",
        )

    payload = await request.body()
    signature = next(
        (request.headers[name] for name in SIGNATURE_HEADERS if name in request.headers),
        None,
    )

    reconciler = PaymentReconciler(store, gateway, dispatcher)
    try:
        outcome = await reconciler.handle_webhook(payload, signature)
    except WebhookVerificationError as exc:
        logger.warning("payment_webhook_rejected", provider=provider, error=exc.message)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook signature",
        ) from exc

    return WebhookAckResponse(outcome=outcome.outcome, order_id=outcome.order_id)


@router.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_read_db)) -> HealthResponse:
    """
    Health check for load balancer.

    Verifies database connectivity.
    """
    try:
        await db.execute(text("SELECT 1"))
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "status": "unhealthy",
                "database": "disconnected",
                "error": str(exc),
                "timestamp": datetime.now(UTC).isoformat(),
            },
        ) from exc

    return HealthResponse(
        status="healthy",
        database="connected",
        timestamp=datetime.now(UTC).isoformat(),
    )

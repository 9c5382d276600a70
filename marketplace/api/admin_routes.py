"""
Admin API routes for operating the marketplace.

Protected by JWT authentication issued by POST /api/admin/login.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.api.approval import approve_order
from marketplace.api.dependencies import (
    AdminIdentity,
    get_current_admin,
    get_dispatcher,
    get_gateway,
    get_store,
    get_vendor_auth_service,
)
from marketplace.api.vendor_routes import withdrawal_response
from marketplace.db.models import Reseller
from marketplace.db.session import get_read_db
from marketplace.db.store import SqlMarketplaceStore
from marketplace.exceptions import (
    AuthenticationError,
    DataIntegrityError,
    ResellerNotFoundError,
    WithdrawalAlreadyProcessedError,
    WithdrawalNotFoundError,
)
from marketplace.models.api import (
    AdminLoginRequest,
    AdminLoginResponse,
    FulfillmentResponse,
    FulfillmentSource,
    ResellerCreateRequest,
    ResellerResponse,
    WithdrawalDecisionRequest,
    WithdrawalListResponse,
    WithdrawalResponse,
    WithdrawalStatus,
)
from marketplace.observability import get_logger
from marketplace.services.admin_auth import AdminAuthService, get_admin_auth_service
from marketplace.services.catalog import CatalogService
from marketplace.services.notifications import NotificationDispatcher
from marketplace.services.payment_provider import PaymentGateway
from marketplace.services.vendor_auth import VendorAuthService
from marketplace.services.wallet import WalletService

logger = get_logger(__name__)
router = APIRouter(prefix="/api/admin", tags=["admin"])


def reseller_response(reseller: Reseller) -> ResellerResponse:
    return ResellerResponse(
        id=reseller.id,
        name=reseller.name,
        email=reseller.email,
        store_name=reseller.store_name,
        wallet_balance_minor=reseller.wallet_balance_minor,
        total_sales_minor=reseller.total_sales_minor,
        active=reseller.active,
        created_at=reseller.created_at.isoformat(),
    )


@router.post("/login", response_model=AdminLoginResponse)
async def admin_login(
    request: AdminLoginRequest,
    auth_service: AdminAuthService = Depends(get_admin_auth_service),
) -> AdminLoginResponse:
    """Exchange the admin username and password for a JWT."""
    try:
        token = auth_service.authenticate(request.username, request.password)
    except AuthenticationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        ) from exc

    return AdminLoginResponse(
        access_token=token,
        expires_in=auth_service.jwt_expire_hours * 3600,
    )


# ============================================================================
# Resellers
# ============================================================================


@router.get("/resellers", response_model=list[ResellerResponse])
async def list_resellers(
    admin: AdminIdentity = Depends(get_current_admin),
    db: AsyncSession = Depends(get_read_db),
) -> list[ResellerResponse]:
    service = CatalogService(db)
    return [reseller_response(r) for r in await service.list_resellers()]


@router.post(
    "/resellers",
    response_model=ResellerResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_reseller(
    request: ResellerCreateRequest,
    admin: AdminIdentity = Depends(get_current_admin),
    auth_service: VendorAuthService = Depends(get_vendor_auth_service),
) -> ResellerResponse:
    """Create a reseller account with an empty wallet."""
    try:
        reseller = await auth_service.create_reseller(
            name=request.name,
            email=request.email,
            password=request.password,
            store_name=request.store_name,
            phone=request.phone,
            pix_key=request.pix_key,
        )
    except DataIntegrityError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered",
        ) from exc

    logger.info("admin_reseller_created", admin=admin.username, reseller_id=reseller.id)
    return reseller_response(reseller)


# ============================================================================
# Orders
# ============================================================================


@router.post("/orders/{order_id}/approve", response_model=FulfillmentResponse)
async def admin_approve_order(
    order_id: int,
    admin: AdminIdentity = Depends(get_current_admin),
    store: SqlMarketplaceStore = Depends(get_store),
    gateway: PaymentGateway | None = Depends(get_gateway),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> FulfillmentResponse:
    """Manually mark any order as paid and deliver it."""
    logger.info("admin_order_approval", admin=admin.username, order_id=order_id)
    return await approve_order(order_id, FulfillmentSource.ADMIN, store, gateway, dispatcher)


# ============================================================================
# Withdrawals
# ============================================================================


@router.get("/withdrawals", response_model=WithdrawalListResponse)
async def list_withdrawals(
    withdrawal_status: WithdrawalStatus | None = Query(None, alias="status"),
    admin: AdminIdentity = Depends(get_current_admin),
    store: SqlMarketplaceStore = Depends(get_store),
) -> WithdrawalListResponse:
    """All withdrawal requests, optionally filtered by status."""
    withdrawals = await store.list_withdrawals(status=withdrawal_status)
    return WithdrawalListResponse(withdrawals=[withdrawal_response(w) for w in withdrawals])


@router.patch("/withdrawals/{withdrawal_id}", response_model=WithdrawalResponse)
async def decide_withdrawal(
    withdrawal_id: int,
    request: WithdrawalDecisionRequest,
    admin: AdminIdentity = Depends(get_current_admin),
    store: SqlMarketplaceStore = Depends(get_store),
) -> WithdrawalResponse:
    """Approve or reject a pending withdrawal. Rejection refunds the wallet."""
    wallet = WalletService(store)
    try:
        withdrawal = await wallet.decide_withdrawal(
            withdrawal_id,
            approve=request.status == WithdrawalStatus.APPROVED.value,
            admin_notes=request.admin_notes,
        )
    except (WithdrawalNotFoundError, ResellerNotFoundError) as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except WithdrawalAlreadyProcessedError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc

    logger.info(
        "admin_withdrawal_decided",
        admin=admin.username,
        withdrawal_id=withdrawal.id,
        status=withdrawal.status.value,
    )
    return withdrawal_response(withdrawal)

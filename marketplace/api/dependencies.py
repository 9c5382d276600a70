"""
FastAPI Dependencies - Services, stores and authentication.

NO DICTIONARIES - All dependencies return typed objects.
"""

from dataclasses import dataclass
from datetime import timedelta

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.config import settings
from marketplace.db.models import Reseller
from marketplace.db.session import get_write_db
from marketplace.db.store import SqlMarketplaceStore
from marketplace.exceptions import AuthenticationError
from marketplace.observability import get_logger
from marketplace.services.abacatepay_provider import get_payment_gateway
from marketplace.services.admin_auth import AdminAuthService, get_admin_auth_service
from marketplace.services.notifications import (
    NotificationDispatcher,
    get_notification_dispatcher,
)
from marketplace.services.payment_provider import PaymentGateway
from marketplace.services.vendor_auth import VendorAuthService

logger = get_logger(__name__)

# Bearer token scheme shared by vendor and admin routes
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class AdminIdentity:
    """Authenticated platform administrator from a JWT."""

    username: str


# ============================================================================
# Services
# ============================================================================


async def get_store(db: AsyncSession = Depends(get_write_db)) -> SqlMarketplaceStore:
    """Marketplace store bound to the request's write session."""
    return SqlMarketplaceStore(db)


def get_gateway() -> PaymentGateway | None:
    """Configured payment gateway, or None when payments are disabled."""
    return get_payment_gateway()


def get_dispatcher() -> NotificationDispatcher:
    return get_notification_dispatcher()


async def get_vendor_auth_service(db: AsyncSession = Depends(get_write_db)) -> VendorAuthService:
    return VendorAuthService(db, session_ttl=timedelta(hours=settings.vendor_session_ttl_hours))


# ============================================================================
# Authentication
# ============================================================================


def _require_token(credentials: HTTPAuthorizationCredentials | None) -> str:
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return credentials.credentials


async def get_vendor_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str:
    """Raw vendor bearer token (for logout)."""
    return _require_token(credentials)


async def get_current_vendor(
    token: str = Depends(get_vendor_token),
    auth_service: VendorAuthService = Depends(get_vendor_auth_service),
) -> Reseller:
    """
    Resolve the calling reseller from its session token.

    Raises:
        HTTPException 401 if no token or the session is invalid/expired
    """
    try:
        reseller = await auth_service.authenticate(token)
    except AuthenticationError as exc:
        logger.warning("vendor_auth_failed", reason=exc.message)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    return reseller


async def get_current_admin(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    auth_service: AdminAuthService = Depends(get_admin_auth_service),
) -> AdminIdentity:
    """
    Validate the admin JWT.

    Raises:
        HTTPException 401 if no token or token is invalid/expired
    """
    token = _require_token(credentials)
    payload = auth_service.verify_jwt_token(token)
    if not payload:
        logger.warning("admin_auth_invalid_token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return AdminIdentity(username=str(payload["sub"]))

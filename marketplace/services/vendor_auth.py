"""
Vendor Authentication Service - Reseller accounts and persisted sessions.

Passwords are argon2 hashes. Session tokens are random, shown once, and
stored only as SHA-256 hashes with an expiry so sessions survive restarts
and can be revoked.
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.db.models import Reseller, VendorSession
from marketplace.exceptions import AuthenticationError, DataIntegrityError
from marketplace.observability import get_logger

logger = get_logger(__name__)

TOKEN_PREFIX = "vs_"


def hash_token(token: str) -> str:
    """SHA-256 hash of a session token (raw tokens are never stored)."""
    return hashlib.sha256(token.encode()).hexdigest()


@dataclass(frozen=True)
class IssuedSession:
    """A new vendor session. The plaintext token is only available here."""

    token: str
    reseller: Reseller
    expires_at: datetime


class VendorAuthService:
    """Reseller sign-up, login and session lookup."""

    def __init__(self, db: AsyncSession, session_ttl: timedelta = timedelta(days=7)) -> None:
        self.db = db
        self.session_ttl = session_ttl
        self.password_hasher = PasswordHasher()

    async def create_reseller(
        self,
        name: str,
        email: str,
        password: str,
        store_name: str,
        phone: str | None = None,
        pix_key: str | None = None,
    ) -> Reseller:
        """
        Create a reseller account.

        Raises:
            DataIntegrityError: Email already registered
        """
        reseller = Reseller(
            name=name,
            email=email,
            password_hash=self.password_hasher.hash(password),
            store_name=store_name,
            phone=phone,
            pix_key=pix_key,
            wallet_balance_minor=0,
            total_sales_minor=0,
            active=True,
        )
        self.db.add(reseller)
        try:
            await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            raise DataIntegrityError(f"Reseller email already registered: {email}") from e
        await self.db.commit()

        logger.info("reseller_created", reseller_id=reseller.id, store_name=store_name)
        return reseller

    async def login(self, email: str, password: str) -> IssuedSession:
        """
        Verify credentials and open a session.

        Raises:
            AuthenticationError: Unknown email, wrong password or inactive account
        """
        reseller = await self._find_reseller_by_email(email)
        if reseller is None:
            logger.warning("vendor_login_failed", reason="unknown_email")
            raise AuthenticationError("invalid credentials")

        try:
            self.password_hasher.verify(reseller.password_hash, password)
        except (VerifyMismatchError, VerificationError, InvalidHashError):
            logger.warning("vendor_login_failed", reason="bad_password", reseller_id=reseller.id)
            raise AuthenticationError("invalid credentials")

        if not reseller.active:
            logger.warning("vendor_login_failed", reason="inactive", reseller_id=reseller.id)
            raise AuthenticationError("account is inactive")

        if self.password_hasher.check_needs_rehash(reseller.password_hash):
            reseller.password_hash = self.password_hasher.hash(password)

        token = f"{TOKEN_PREFIX}{secrets.token_urlsafe(32)}"
        expires_at = datetime.now(UTC) + self.session_ttl
        self.db.add(
            VendorSession(
                reseller_id=reseller.id,
                token_hash=hash_token(token),
                expires_at=expires_at,
            )
        )
        await self.db.commit()

        logger.info("vendor_login_success", reseller_id=reseller.id)
        return IssuedSession(token=token, reseller=reseller, expires_at=expires_at)

    async def authenticate(self, token: str) -> Reseller:
        """
        Resolve a bearer token to its reseller.

        Raises:
            AuthenticationError: Unknown, expired or inactive session
        """
        stmt = select(VendorSession).where(VendorSession.token_hash == hash_token(token))
        result = await self.db.execute(stmt)
        session = result.scalar_one_or_none()

        if session is None:
            raise AuthenticationError("invalid session")
        if session.expires_at <= datetime.now(UTC):
            logger.info("vendor_session_expired", reseller_id=session.reseller_id)
            raise AuthenticationError("session expired")

        reseller = await self.db.get(Reseller, session.reseller_id)
        if reseller is None or not reseller.active:
            raise AuthenticationError("account is inactive")
        return reseller

    async def logout(self, token: str) -> bool:
        """Delete the session behind a token. Returns whether one existed."""
        stmt = delete(VendorSession).where(VendorSession.token_hash == hash_token(token))
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount > 0

    async def purge_expired_sessions(self) -> int:
        """Delete expired sessions. Returns the count removed."""
        stmt = delete(VendorSession).where(VendorSession.expires_at <= datetime.now(UTC))
        result = await self.db.execute(stmt)
        await self.db.commit()
        if result.rowcount:
            logger.info("vendor_sessions_purged", count=result.rowcount)
        return result.rowcount

    async def _find_reseller_by_email(self, email: str) -> Reseller | None:
        stmt = select(Reseller).where(Reseller.email == email)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

"""
Admin authentication service.

A single platform administrator configured through settings; the password is
checked against an argon2 hash and sessions are stateless HS256 JWTs.
"""

from datetime import UTC, datetime, timedelta

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from marketplace.config import settings
from marketplace.exceptions import AuthenticationError
from marketplace.observability import get_logger

logger = get_logger(__name__)

ADMIN_ROLE = "admin"


class AdminAuthService:
    """Admin authentication service."""

    def __init__(
        self,
        username: str,
        password_hash: str,
        jwt_secret: str,
        jwt_expire_hours: int = 24,
    ) -> None:
        self.username = username
        self.password_hash = password_hash
        self.jwt_secret = jwt_secret
        self.jwt_expire_hours = jwt_expire_hours
        self.password_hasher = PasswordHasher()

    @property
    def configured(self) -> bool:
        return bool(self.password_hash and self.jwt_secret)

    def authenticate(self, username: str, password: str) -> str:
        """
        Check admin credentials and issue a JWT.

        Raises:
            AuthenticationError: Not configured or wrong credentials
        """
        if not self.configured:
            logger.warning("admin_login_not_configured")
            raise AuthenticationError("admin login is not configured")

        if username != self.username:
            logger.warning("admin_login_failed", reason="unknown_user")
            raise AuthenticationError("invalid credentials")

        try:
            self.password_hasher.verify(self.password_hash, password)
        except (VerifyMismatchError, VerificationError, InvalidHashError):
            logger.warning("admin_login_failed", reason="bad_password")
            raise AuthenticationError("invalid credentials")

        logger.info("admin_login_success", username=username)
        return self.create_jwt_token(username)

    def create_jwt_token(self, username: str) -> str:
        """Create JWT token for the admin."""
        now = datetime.now(UTC)
        payload = {
            "sub": username,
            "role": ADMIN_ROLE,
            "iat": now,
            "exp": now + timedelta(hours=self.jwt_expire_hours),
        }
        return jwt.encode(payload, self.jwt_secret, algorithm="HS256")

    def verify_jwt_token(self, token: str) -> dict[str, str | int] | None:
        """Verify JWT token and return payload."""
        if not self.jwt_secret:
            return None
        try:
            payload: dict[str, str | int] = jwt.decode(token, self.jwt_secret, algorithms=["HS256"])
        except jwt.ExpiredSignatureError:
            logger.warning("jwt_token_expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.warning("jwt_token_invalid", error=str(e))
            return None

        if payload.get("role") != ADMIN_ROLE:
            logger.warning("jwt_token_wrong_role", role=payload.get("role"))
            return None
        return payload


def get_admin_auth_service() -> AdminAuthService:
    """Admin auth service configured from settings."""
    return AdminAuthService(
        username=settings.ADMIN_USERNAME,
        password_hash=settings.ADMIN_PASSWORD_HASH,
        jwt_secret=settings.ADMIN_JWT_SECRET,
        jwt_expire_hours=settings.admin_token_expire_hours,
    )

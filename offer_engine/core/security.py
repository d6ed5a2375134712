"""Security utilities - JWT tokens and system-caller guard"""

from datetime import datetime, timedelta, timezone
import hmac
from typing import Any

from jose import JWTError, jwt

from offer_engine.config import settings
from offer_engine.core.exceptions import AuthenticationError


def create_access_token(
    data: dict[str, Any],
    expires_delta: timedelta | None = None,
) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.JWT_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and validate a JWT access token."""
    try:
        return jwt.decode(
            token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM]
        )
    except JWTError as e:
        raise AuthenticationError(f"Invalid token: {str(e)}")


def verify_cron_secret(authorization: str | None) -> None:
    """Check a ``Bearer <CRON_SECRET>`` header sent by the scheduler."""
    secret = settings.get("CRON_SECRET")
    if not secret or not authorization:
        raise AuthenticationError("Cron secret required")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not hmac.compare_digest(token, str(secret)):
        raise AuthenticationError("Invalid cron secret")

"""Security utilities - JWT issuance/verification and password hashing."""

from datetime import UTC, datetime, timedelta
from typing import Any, Literal

from jose import JWTError, jwt
from passlib.context import CryptContext

from brocomp.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

TokenType = Literal["access", "refresh"]


def _encode(
    subject: str,
    token_type: TokenType,
    expire: datetime,
    session_id: str | None,
) -> str:
    to_encode: dict[str, Any] = {
        "sub": subject,
        "exp": expire,
        "iat": datetime.now(UTC),
        "type": token_type,
    }
    if session_id:
        # Device session the token was issued for; revoking it kills the token.
        to_encode["sid"] = session_id

    return jwt.encode(
        to_encode,
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )


def create_access_token(
    subject: str,
    expires_delta: timedelta | None = None,
    session_id: str | None = None,
) -> str:
    """Create JWT access token."""
    if expires_delta:
        expire = datetime.now(UTC) + expires_delta
    else:
        expire = datetime.now(UTC) + timedelta(
            minutes=settings.jwt_access_token_expire_minutes
        )
    return _encode(subject, "access", expire, session_id)


def create_refresh_token(
    subject: str,
    expires_delta: timedelta | None = None,
    session_id: str | None = None,
) -> str:
    """Create JWT refresh token."""
    if expires_delta:
        expire = datetime.now(UTC) + expires_delta
    else:
        expire = datetime.now(UTC) + timedelta(
            days=settings.jwt_refresh_token_expire_days
        )
    return _encode(subject, "refresh", expire, session_id)


def verify_token(token: str, expected_type: TokenType | None = None) -> dict[str, Any] | None:
    """Verify JWT token and return payload.

    Returns None for malformed, tampered or expired tokens, and for tokens
    whose ``type`` claim does not match ``expected_type`` when one is given.
    """
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return None

    if expected_type is not None and payload.get("type") != expected_type:
        return None
    return payload


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against a hashed password."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password."""
    return pwd_context.hash(password)

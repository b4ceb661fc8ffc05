# =============================================================================
# Session Tokens
# =============================================================================
#
# Sessions handed out by the directory carry a signed JWT:
#   - Token creation (with the global_admin claim evaluated once)
#   - Token validation and Principal reconstruction
#   - Password hashing for locally registered accounts
#
# =============================================================================

from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone

import jwt
from pydantic import BaseModel

from cloudcast.auth.claims import grants_global_admin
from cloudcast.config import Settings, get_settings
from cloudcast.core.models import Principal, Session
from cloudcast.core.utils import generate_id, utc_now

logger = logging.getLogger(__name__)


# =============================================================================
# Models
# =============================================================================

class TokenPayload(BaseModel):
    """JWT token payload."""
    sub: str  # user_id
    email: str
    global_admin: bool = False
    exp: datetime
    iat: datetime
    type: str
    jti: str  # unique token ID


# =============================================================================
# Password Hashing
# =============================================================================

def hash_password(password: str) -> str:
    """
    Hash a password using PBKDF2-SHA256.

    Returns: salt:hash format string
    """
    salt = secrets.token_hex(32)
    hash_bytes = hashlib.pbkdf2_hmac(
        'sha256',
        password.encode('utf-8'),
        salt.encode('utf-8'),
        iterations=100_000
    )
    return f"{salt}:{hash_bytes.hex()}"


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash."""
    try:
        salt, stored_hash = password_hash.split(':')
        hash_bytes = hashlib.pbkdf2_hmac(
            'sha256',
            password.encode('utf-8'),
            salt.encode('utf-8'),
            iterations=100_000
        )
        return secrets.compare_digest(hash_bytes.hex(), stored_hash)
    except (ValueError, AttributeError):
        return False


# =============================================================================
# Token Creation
# =============================================================================

def create_access_token(
    user_id: str,
    email: str,
    settings: Settings | None = None,
) -> tuple[str, datetime]:
    """
    Create a JWT access token.

    The global_admin claim is decided here, from the configured admin
    addresses, and travels with the token for the session's lifetime.

    Returns: (token, expires_at)
    """
    settings = settings or get_settings()
    now = utc_now()
    expire = now + timedelta(minutes=settings.jwt_access_token_expire_minutes)

    payload = {
        "sub": user_id,
        "email": email,
        "global_admin": grants_global_admin(email, settings.global_admin_emails_list),
        "exp": expire,
        "iat": now,
        "type": "access",
        "jti": generate_id("tok"),
    }

    token = jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
    return token, expire


def issue_session(user_id: str, email: str, settings: Settings | None = None) -> Session:
    """Create a Session for an authenticated account."""
    token, expires_at = create_access_token(user_id, email, settings)
    return Session(
        access_token=token,
        principal=principal_from_token(token, settings),
        expires_at=expires_at,
    )


# =============================================================================
# Token Validation
# =============================================================================

class TokenError(Exception):
    """Base exception for token errors."""
    pass


class TokenExpiredError(TokenError):
    """Token has expired."""
    pass


class TokenInvalidError(TokenError):
    """Token is invalid or malformed."""
    pass


def decode_token(token: str, settings: Settings | None = None) -> TokenPayload:
    """
    Decode and validate an access token.

    Raises:
        TokenExpiredError: Token has expired
        TokenInvalidError: Token is invalid
    """
    settings = settings or get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpiredError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenInvalidError(f"Invalid token: {e}")

    if payload.get("type") != "access":
        raise TokenInvalidError(f"Expected access token, got {payload.get('type')}")

    try:
        return TokenPayload(
            sub=payload["sub"],
            email=payload["email"],
            global_admin=bool(payload.get("global_admin", False)),
            exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            iat=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            type=payload["type"],
            jti=payload.get("jti", ""),
        )
    except KeyError as e:
        raise TokenInvalidError(f"Missing claim: {e}")


def principal_from_token(token: str, settings: Settings | None = None) -> Principal:
    """Rebuild the Principal a token was issued for."""
    payload = decode_token(token, settings)
    return Principal(
        id=payload.sub,
        email=payload.email,
        is_global_admin=payload.global_admin,
    )

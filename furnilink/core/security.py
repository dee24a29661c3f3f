"""Bearer token handling for marketplace actors.

Identity and sessions live outside this service. Tokens are issued by the
identity provider and carry the actor's role and linked manufacturer, which
is everything the authorization and dispatch code needs to know about the
caller.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional, Any
import uuid

from jose import JWTError, jwt

from furnilink.config import settings


def create_access_token(
    subject: str | uuid.UUID,
    role: str,
    manufacturer_id: Optional[str | uuid.UUID] = None,
    expires_delta: Optional[timedelta] = None,
    additional_claims: Optional[dict[str, Any]] = None
) -> str:
    """
    Create a JWT access token for an actor.

    Args:
        subject: Actor ID (designer, channel partner or manufacturer staff)
        role: Actor role, e.g. "manufacturer" or "designer"
        manufacturer_id: The actor's linked manufacturer, if any
        expires_delta: Optional custom expiration time
        additional_claims: Optional additional claims to include

    Returns:
        Encoded JWT token string
    """
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode = {
        "sub": str(subject),
        "role": role,
        "manufacturer_id": str(manufacturer_id) if manufacturer_id else None,
        "exp": expire,
        "iat": datetime.now(timezone.utc),
        "jti": str(uuid.uuid4()),
        "type": "access"
    }

    if additional_claims:
        to_encode.update(additional_claims)

    return jwt.encode(
        to_encode,
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM
    )


def decode_token(token: str) -> Optional[dict[str, Any]]:
    """
    Decode and validate a JWT token.

    Returns:
        Decoded token payload or None if invalid
    """
    try:
        return jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM]
        )
    except JWTError:
        return None


def verify_access_token(token: str) -> Optional[dict[str, Any]]:
    """
    Verify an access token and return its claims.

    Returns:
        Claims dict or None if the token is invalid, expired or not an
        access token
    """
    payload = decode_token(token)
    if payload is None:
        return None

    if payload.get("type") != "access":
        return None

    if not payload.get("sub"):
        return None

    return payload

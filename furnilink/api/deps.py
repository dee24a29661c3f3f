from typing import Annotated
import uuid
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from furnilink.database import get_db
from furnilink.core.security import verify_access_token
from furnilink.core.permissions import Actor, ActorRole, PermissionChecker


logger = logging.getLogger(__name__)

# HTTP Bearer security scheme
security = HTTPBearer()

VALID_ROLES = {r.value for r in ActorRole}


def _parse_uuid(value, field: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        logger.warning(f"Invalid {field} in token: {value}")
        raise


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> Actor:
    """
    Dependency to get the calling actor from the bearer token.

    There is no user table here; the token's claims are the identity.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    claims = verify_access_token(credentials.credentials)
    if claims is None:
        logger.warning("Token verification failed - invalid or expired token")
        raise credentials_exception

    role = str(claims.get("role") or "").lower()
    if role not in VALID_ROLES:
        logger.warning(f"Unknown role in token: {role!r}")
        raise credentials_exception

    try:
        actor_id = _parse_uuid(claims["sub"], "sub")
        manufacturer_id = (
            _parse_uuid(claims["manufacturer_id"], "manufacturer_id")
            if claims.get("manufacturer_id") else None
        )
    except ValueError:
        raise credentials_exception

    return Actor(id=actor_id, role=role, manufacturer_id=manufacturer_id)


async def get_permission_checker(
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> PermissionChecker:
    return PermissionChecker(actor)


async def require_admin(
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> Actor:
    if not actor.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required",
        )
    return actor


# Type aliases for cleaner endpoint signatures
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
AdminActor = Annotated[Actor, Depends(require_admin)]
DB = Annotated[AsyncSession, Depends(get_db)]
Permissions = Annotated[PermissionChecker, Depends(get_permission_checker)]

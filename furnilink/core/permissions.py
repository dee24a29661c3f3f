from dataclasses import dataclass
from enum import Enum
from typing import Optional
import uuid

from furnilink.core.errors import PermissionDeniedError


class ActorRole(str, Enum):
    """Roles carried in the access token."""
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    MANUFACTURER = "manufacturer"
    DESIGNER = "designer"
    CHANNEL_PARTNER = "channel_partner"


ADMIN_ROLES = {ActorRole.SUPER_ADMIN.value, ActorRole.ADMIN.value}


@dataclass(frozen=True)
class Actor:
    """Authenticated caller, built from JWT claims."""
    id: uuid.UUID
    role: str
    manufacturer_id: Optional[uuid.UUID] = None

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def is_super_admin(self) -> bool:
        return self.role == ActorRole.SUPER_ADMIN.value

    @property
    def resolution_id(self) -> uuid.UUID:
        """
        Identity used as a node of the authorization graph.

        Manufacturer staff and channel partners act as their linked
        manufacturer; designers act as themselves.
        """
        if self.role != ActorRole.DESIGNER.value and self.manufacturer_id:
            return self.manufacturer_id
        return self.id


class PermissionChecker:
    """
    Manufacturer-scoped access checks.

    Admin roles may act on any manufacturer; everybody else only on the
    manufacturer linked to their account. List queries are stricter:
    only a super admin sees every manufacturer.
    """

    def __init__(self, actor: Actor):
        self.actor = actor

    def is_admin(self) -> bool:
        return self.actor.is_admin

    def can_manage_manufacturer(self, manufacturer_id: Optional[uuid.UUID]) -> bool:
        if self.actor.is_admin:
            return True
        if manufacturer_id is None or self.actor.manufacturer_id is None:
            return False
        return self.actor.manufacturer_id == manufacturer_id

    def require_manufacturer(self, manufacturer_id: Optional[uuid.UUID]) -> None:
        if not self.can_manage_manufacturer(manufacturer_id):
            raise PermissionDeniedError(
                "Not allowed to act on this manufacturer's data",
                {"manufacturer_id": str(manufacturer_id) if manufacturer_id else None},
            )

    def require_admin(self) -> None:
        if not self.actor.is_admin:
            raise PermissionDeniedError("Admin role required", {"role": self.actor.role})

    def scoped_manufacturer_id(
        self, requested: Optional[uuid.UUID] = None
    ) -> Optional[uuid.UUID]:
        """
        Manufacturer filter for list queries.

        Everyone except a super admin is pinned to their own linked
        manufacturer, whatever they ask for.
        """
        if self.actor.is_super_admin:
            return requested
        if self.actor.manufacturer_id is None:
            raise PermissionDeniedError("Account is not linked to a manufacturer")
        return self.actor.manufacturer_id

"""
Domain errors raised by the marketplace services.

Services raise these; the API layer turns them into JSON responses with
the matching HTTP status (see furnilink.main).
"""
from typing import Any, Dict, List, Optional


class MarketplaceError(Exception):
    """Base class for authorization, pricing and dispatch errors."""

    status_code = 400
    code = "MARKETPLACE_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(MarketplaceError):
    """Edge, manufacturer, rule set or order does not exist."""
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(
            f"{entity} {entity_id} not found",
            {"entity": entity, "id": str(entity_id)},
        )


class InvalidScopeError(MarketplaceError):
    """Malformed scope definition or category/product reference."""
    status_code = 400
    code = "INVALID_SCOPE"


class NoApplicableAuthorizationError(MarketplaceError):
    """The chain from manufacturer to actor has a gap or excludes the product."""
    status_code = 403
    code = "NO_APPLICABLE_AUTHORIZATION"


class AlreadyDispatchedError(MarketplaceError):
    """Order was dispatched already (or concurrently)."""
    status_code = 409
    code = "ALREADY_DISPATCHED"


class InvalidTransitionError(MarketplaceError):
    """Lifecycle transition not allowed from the current state."""
    status_code = 409
    code = "INVALID_TRANSITION"

    def __init__(
        self,
        current_status: str,
        target_status: str,
        allowed: List[str],
        entity: str = "Manufacturer order",
    ):
        if allowed:
            message = (
                f"Cannot change {entity.lower()} from '{current_status}' to "
                f"'{target_status}'. Allowed transitions: {', '.join(allowed)}"
            )
        else:
            message = (
                f"{entity} in '{current_status}' status cannot be modified. "
                f"This is a terminal state."
            )
        super().__init__(
            message,
            {
                "current_status": current_status,
                "target_status": target_status,
                "allowed": allowed,
            },
        )
        self.current_status = current_status


class AmbiguousAttributionError(MarketplaceError):
    """Items or references that cannot be tied to exactly one manufacturer."""
    status_code = 422
    code = "AMBIGUOUS_ATTRIBUTION"


class ConflictError(MarketplaceError):
    """Write would violate a uniqueness rule."""
    status_code = 409
    code = "CONFLICT"


class AuthorizationConflictError(ConflictError):
    """Duplicate active grant, self-grant or a grant that would close a cycle."""
    status_code = 409
    code = "AUTHORIZATION_CONFLICT"


class PermissionDeniedError(MarketplaceError):
    """Caller may not act on this manufacturer's data."""
    status_code = 403
    code = "PERMISSION_DENIED"


class InvalidOrderStateError(MarketplaceError):
    """Order cannot be dispatched or cancelled in its current state."""
    status_code = 409
    code = "INVALID_ORDER_STATE"

from fastapi import APIRouter

from furnilink.api.v1.endpoints import (
    # Marketplace registry
    manufacturers,
    # Authorization graph
    authorizations,
    tier_policies,
    pricing,
    # Orders and fulfilment
    orders,
    manufacturer_orders,
)


# Create main API router
api_router = APIRouter(prefix="/api/v1")

# ==================== Manufacturers ====================
api_router.include_router(
    manufacturers.router,
    prefix="/manufacturers",
    tags=["Manufacturers"]
)

# ==================== Authorizations ====================
api_router.include_router(
    authorizations.router,
    prefix="/authorizations",
    tags=["Authorizations"]
)

# ==================== Tier Commission Policies ====================
api_router.include_router(
    tier_policies.router,
    prefix="/tier-policies",
    tags=["Tier Policies"]
)

# ==================== Rate Resolution ====================
api_router.include_router(
    pricing.router,
    prefix="/pricing",
    tags=["Pricing"]
)

# ==================== Orders & Dispatch ====================
api_router.include_router(
    orders.router,
    prefix="/orders",
    tags=["Orders"]
)

# ==================== Manufacturer Orders ====================
api_router.include_router(
    manufacturer_orders.router,
    prefix="/manufacturer-orders",
    tags=["Manufacturer Orders"]
)

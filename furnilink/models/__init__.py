# Models module - importing registers every table on Base.metadata
from furnilink.models.manufacturer import Manufacturer, ManufacturerStatus, Product
from furnilink.models.authorization import (
    AuthorizationEdge,
    AuthorizationScope,
    AuthorizationStatus,
    AuthorizationType,
)
from furnilink.models.tier_policy import TierPolicy, TierCommissionRuleSet
from furnilink.models.order import Order, OrderItem, OrderStatus, DispatchStatus
from furnilink.models.manufacturer_order import (
    ManufacturerOrder,
    ManufacturerOrderLog,
    ManufacturerOrderStatus,
    UNKNOWN_MANUFACTURER_KEY,
)

__all__ = [
    "Manufacturer",
    "ManufacturerStatus",
    "Product",
    "AuthorizationEdge",
    "AuthorizationScope",
    "AuthorizationStatus",
    "AuthorizationType",
    "TierPolicy",
    "TierCommissionRuleSet",
    "Order",
    "OrderItem",
    "OrderStatus",
    "DispatchStatus",
    "ManufacturerOrder",
    "ManufacturerOrderLog",
    "ManufacturerOrderStatus",
    "UNKNOWN_MANUFACTURER_KEY",
]

"""
Manufacturer Order State Machine

All manufacturer sub-order status changes go through this module.

    PENDING -> CONFIRMED -> PROCESSING -> SHIPPED -> COMPLETED
       |           |
       +-----------+--> CANCELLED

Every transition appends one log entry; logs are never rewritten.
"""

from typing import Optional, List, Dict
from datetime import datetime, timezone
import uuid

from furnilink.core.errors import InvalidTransitionError
from furnilink.models.manufacturer_order import (
    ManufacturerOrder,
    ManufacturerOrderLog,
    ManufacturerOrderStatus,
)


# =============================================================================
# STATUS DEFINITIONS
# =============================================================================

class SubOrderStatus:
    """Status constants - use these instead of strings."""
    PENDING = ManufacturerOrderStatus.PENDING.value
    CONFIRMED = ManufacturerOrderStatus.CONFIRMED.value
    PROCESSING = ManufacturerOrderStatus.PROCESSING.value
    SHIPPED = ManufacturerOrderStatus.SHIPPED.value
    COMPLETED = ManufacturerOrderStatus.COMPLETED.value
    CANCELLED = ManufacturerOrderStatus.CANCELLED.value


# Local terms used in log entries shown to manufacturer staff
STATUS_LABELS: Dict[str, str] = {
    SubOrderStatus.PENDING: "Pending confirmation",
    SubOrderStatus.CONFIRMED: "Confirmed",
    SubOrderStatus.PROCESSING: "In production",
    SubOrderStatus.SHIPPED: "Shipped",
    SubOrderStatus.COMPLETED: "Completed",
    SubOrderStatus.CANCELLED: "Cancelled",
}


# =============================================================================
# TRANSITION RULES
# =============================================================================

SUB_ORDER_TRANSITIONS: Dict[str, List[str]] = {
    SubOrderStatus.PENDING: [
        SubOrderStatus.CONFIRMED,   # Manufacturer accepts
        SubOrderStatus.CANCELLED,   # Manufacturer declines
    ],
    SubOrderStatus.CONFIRMED: [
        SubOrderStatus.PROCESSING,  # Production started
        SubOrderStatus.CANCELLED,
    ],
    SubOrderStatus.PROCESSING: [
        SubOrderStatus.SHIPPED,
    ],
    SubOrderStatus.SHIPPED: [
        SubOrderStatus.COMPLETED,
    ],
    SubOrderStatus.COMPLETED: [],   # Terminal state
    SubOrderStatus.CANCELLED: [],   # Terminal state
}

# Timestamp column stamped when entering a state
STATUS_TIMESTAMPS: Dict[str, str] = {
    SubOrderStatus.CONFIRMED: "confirmed_at",
    SubOrderStatus.SHIPPED: "shipped_at",
    SubOrderStatus.COMPLETED: "completed_at",
    SubOrderStatus.CANCELLED: "cancelled_at",
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def can_transition(current_status: str, new_status: str) -> bool:
    """Check if a transition is allowed."""
    return new_status in SUB_ORDER_TRANSITIONS.get(current_status, [])


def get_allowed_transitions(current_status: str) -> List[str]:
    return SUB_ORDER_TRANSITIONS.get(current_status, [])


def status_label(status: str) -> str:
    return STATUS_LABELS.get(status, status)


def validate_transition(current_status: str, new_status: str) -> None:
    """
    Raises InvalidTransitionError if the move is not allowed.

    Self-transitions are rejected too, so a repeated confirm fails.
    """
    if not can_transition(current_status, new_status):
        raise InvalidTransitionError(
            current_status, new_status, get_allowed_transitions(current_status)
        )


def is_terminal(status: str) -> bool:
    return status in [SubOrderStatus.COMPLETED, SubOrderStatus.CANCELLED]


def can_confirm(status: str) -> bool:
    return status == SubOrderStatus.PENDING


def next_log_seq(manufacturer_order: ManufacturerOrder) -> int:
    return max((log.seq for log in manufacturer_order.logs), default=0) + 1


def append_log(
    manufacturer_order: ManufacturerOrder,
    action: str,
    content: str,
    from_status: Optional[str] = None,
    to_status: Optional[str] = None,
    operator: str = "system",
    operator_id: Optional[uuid.UUID] = None,
) -> ManufacturerOrderLog:
    """Append-only; requires `logs` to be loaded."""
    log = ManufacturerOrderLog(
        seq=next_log_seq(manufacturer_order),
        action=action,
        content=content,
        from_status=from_status,
        to_status=to_status,
        operator=operator,
        operator_id=operator_id,
    )
    manufacturer_order.logs.append(log)
    return log


def apply_transition(
    manufacturer_order: ManufacturerOrder,
    new_status: str,
    action: str = "status_change",
    operator: str = "system",
    operator_id: Optional[uuid.UUID] = None,
    remark: Optional[str] = None,
    tracking_no: Optional[str] = None,
    tracking_company: Optional[str] = None,
) -> ManufacturerOrderLog:
    """Validate, move, stamp the timestamp and log in local terms."""
    old_status = manufacturer_order.status
    validate_transition(old_status, new_status)

    manufacturer_order.status = new_status
    timestamp_field = STATUS_TIMESTAMPS.get(new_status)
    if timestamp_field:
        setattr(manufacturer_order, timestamp_field, datetime.now(timezone.utc))

    content = f"Status changed from {status_label(old_status)} to {status_label(new_status)}"
    if new_status == SubOrderStatus.SHIPPED:
        if tracking_no:
            manufacturer_order.tracking_no = tracking_no
        if tracking_company:
            manufacturer_order.tracking_company = tracking_company
        if tracking_no or tracking_company:
            content += f"; carrier {tracking_company or '-'}, tracking no. {tracking_no or '-'}"
    if remark:
        manufacturer_order.manufacturer_remark = remark
        content += f"; remark: {remark}"

    return append_log(
        manufacturer_order,
        action=action,
        content=content,
        from_status=old_status,
        to_status=new_status,
        operator=operator,
        operator_id=operator_id,
    )

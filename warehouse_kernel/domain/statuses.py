"""
Status and type enums shared by models, services, and selectors.

All enums are ``(str, Enum)`` and are persisted as their string value, so a
loaded column compares equal to the enum member without conversion.
"""

from enum import Enum


class OrderStatus(str, Enum):
    """Order lifecycle as seen by the warehouse (owned by the order system)."""

    PROCESSING = "Processing"
    SHIPPING = "Shipping"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class AllocationStatus(str, Enum):
    """Reservation lifecycle.

    Reserved -> Deducted (finalize) -> Cancelled (reversal).
    A Reserved row is deleted, never cancelled, when released.
    """

    RESERVED = "Reserved"
    DEDUCTED = "Deducted"
    CANCELLED = "Cancelled"


class AllocationRollup(str, Enum):
    """Order-level summary of how much of the order is allocated."""

    UNALLOCATED = "Unallocated"
    PARTIALLY_ALLOCATED = "PartiallyAllocated"
    ALLOCATED = "Allocated"


class MovementType(str, Enum):
    """Kinds of stock-affecting events in the movement log."""

    ADJUST_IN = "ADJUST_IN"
    ADJUST_OUT = "ADJUST_OUT"
    MOVE = "MOVE"
    RESERVE = "RESERVE"
    RELEASE = "RELEASE"
    DEDUCT = "DEDUCT"


# Sign of each movement type's effect on on-hand quantity at its slot.
# MOVE is -1 at from_slot and +1 at to_slot; RESERVE/RELEASE do not move stock.
ON_HAND_SIGN: dict[MovementType, int] = {
    MovementType.ADJUST_IN: 1,
    MovementType.ADJUST_OUT: -1,
    MovementType.DEDUCT: -1,
    MovementType.RESERVE: 0,
    MovementType.RELEASE: 0,
}

# Allocation statuses that count against the ordered quantity.
ACTIVE_ALLOCATION_STATUSES: frozenset[str] = frozenset(
    {AllocationStatus.RESERVED.value, AllocationStatus.DEDUCTED.value}
)


def status_value(status) -> str:
    """Plain string form of a status, whether loaded or freshly assigned."""
    if isinstance(status, Enum):
        return status.value
    return str(status)

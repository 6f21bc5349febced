"""
Allocation arithmetic -- availability and the order rollup.

Pure functions over plain quantities.  AllocationService loads the numbers
under row locks and asks this module what they mean; nothing here touches
the database, so every rule can be property-tested in isolation.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from warehouse_kernel.domain.statuses import AllocationRollup


@dataclass(frozen=True)
class Availability:
    """
    How much of one slot item one order may hold.

    Attributes:
        on_hand_qty: SlotItem.qty.
        reserved_by_others: Reserved qty held by every other order.
        existing_qty: What this order already holds in this slot.
    """

    on_hand_qty: int
    reserved_by_others: int
    existing_qty: int = 0

    @property
    def available_qty(self) -> int:
        """Upper bound on this order's holding in the slot."""
        return max(0, self.on_hand_qty - self.reserved_by_others)

    @property
    def headroom(self) -> int:
        """How much more this order could add on top of what it holds."""
        return max(0, self.available_qty - self.existing_qty)

    def admits(self, requested_qty: int) -> bool:
        """True if this order may hold ``requested_qty`` in the slot.

        The new holding must fit within the on-hand quantity not reserved by
        other orders, whether it grows or shrinks.  A holding left above
        that after stock shrank can only come down to it, or be deleted.
        """
        return requested_qty <= self.available_qty


def exceeds_ordered(ordered_qty: int, allocated_elsewhere: int, requested_qty: int) -> bool:
    """True if the order's total for a product would pass the ordered qty."""
    return allocated_elsewhere + requested_qty > ordered_qty


def compute_rollup(
    ordered: Mapping[UUID, int],
    allocated: Mapping[UUID, int],
) -> AllocationRollup:
    """
    Summarize allocation coverage for an order.

    Args:
        ordered: product_id -> ordered qty for every order line.
        allocated: product_id -> Reserved + Deducted qty (Cancelled excluded).

    Returns:
        ALLOCATED when every line is fully covered, PARTIALLY_ALLOCATED when
        anything is allocated, UNALLOCATED otherwise (including an order
        without lines).
    """
    total_allocated = sum(qty for qty in allocated.values() if qty > 0)
    if not ordered or total_allocated == 0:
        return AllocationRollup.UNALLOCATED
    if all(allocated.get(product_id, 0) >= qty for product_id, qty in ordered.items()):
        return AllocationRollup.ALLOCATED
    return AllocationRollup.PARTIALLY_ALLOCATED


def next_allocated_at(
    rollup: AllocationRollup,
    current_allocated_at: datetime | None,
    now: datetime,
) -> datetime | None:
    """Stamp on entry into ALLOCATED, keep while there, clear on exit."""
    if rollup == AllocationRollup.ALLOCATED:
        return current_allocated_at or now
    return None

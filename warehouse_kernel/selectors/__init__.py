"""Selectors for the warehouse kernel (read side)."""

from warehouse_kernel.selectors.allocation_selector import AllocationSelector
from warehouse_kernel.selectors.movement_selector import MovementSelector
from warehouse_kernel.selectors.slot_item_selector import SlotItemSelector
from warehouse_kernel.selectors.slot_selector import SlotSelector
from warehouse_kernel.selectors.snapshot_selector import SnapshotSelector

__all__ = [
    "AllocationSelector",
    "MovementSelector",
    "SlotItemSelector",
    "SlotSelector",
    "SnapshotSelector",
]

"""
Kernel Invariants Contract.

These invariants are structural law for slot inventory. No configuration
value may switch them off.

This module exists solely to declare these invariants explicitly. The
enforcement is distributed across AllocationService, FulfillmentService,
ReversalService, OccupancyService, the model constraints, and the
immutability listeners and triggers.
"""

from enum import Enum, unique


@unique
class StockInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    CONSERVATION = "conservation"
    """For every (product, slot), the signed sum of movements equals the
    current SlotItem qty (zero when the row is absent). Enforced by routing
    every stock mutation through MovementLog in the same transaction."""

    NO_OVERBOOKING = "no_overbooking"
    """Reserved allocations held by all orders for a (product, slot) never
    exceed that slot item's qty. Enforced by AllocationService under a row
    lock on the SlotItem and by the reservation guard on direct edits."""

    NO_OVER_ORDERING = "no_over_ordering"
    """An order's Reserved + Deducted allocations for a product never exceed
    the ordered qty. Enforced by AllocationService."""

    FINALIZE_ONCE = "finalize_once"
    """Finalize deducts stock at most once per order. A second call only
    refreshes allocation expiry. Enforced by FulfillmentService under a row
    lock on the order."""

    ALL_OR_NOTHING = "all_or_nothing"
    """Finalize and reversal either apply every change or none. Enforced by
    the service unit of work."""

    OCCUPANCY_ACCURACY = "occupancy_accuracy"
    """After every committed write, a slot's occupied_cbm equals the sum of
    its SlotItem cbm. Enforced by OccupancyService deltas; recoverable with
    rebuild_slot_occupancy()."""

    APPEND_ONLY_LEDGER = "append_only_ledger"
    """Inventory movements are never updated or deleted. Enforced by ORM
    listeners and PostgreSQL triggers."""


ALL_STOCK_INVARIANTS: frozenset[StockInvariant] = frozenset(StockInvariant)

# The kernel package may not import from these packages.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "warehouse_config",
    "scripts",
)

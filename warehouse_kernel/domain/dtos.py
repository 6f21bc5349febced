"""
Data transfer objects returned by services and selectors.

All DTOs are frozen dataclasses.  Services and selectors never hand ORM
instances across the kernel boundary.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from math import ceil
from typing import Any, Generic, TypeVar
from uuid import UUID

from warehouse_kernel.domain.statuses import AllocationRollup

T = TypeVar("T")


# =============================================================================
# Row views
# =============================================================================


@dataclass(frozen=True)
class SlotInfo:
    id: UUID
    store: str
    unit: str
    position: int
    label: str
    capacity_cbm: Decimal
    occupied_cbm: Decimal
    fill_percent: Decimal
    is_active: bool
    notes: str | None = None


@dataclass(frozen=True)
class SlotItemInfo:
    """A stock row, optionally joined with slot and availability data."""

    id: UUID
    product_id: UUID
    slot_id: UUID
    qty: int
    cbm: Decimal
    slot_label: str | None = None
    store: str | None = None
    reserved_qty: int | None = None
    available_qty: int | None = None


@dataclass(frozen=True)
class AllocationInfo:
    id: UUID
    order_id: UUID
    product_id: UUID
    slot_id: UUID
    qty: int
    status: str
    created_by_id: UUID | None = None
    deducted_at: datetime | None = None
    deducted_by_id: UUID | None = None
    note: str | None = None
    expires_at: datetime | None = None
    slot_label: str | None = None


@dataclass(frozen=True)
class MovementInfo:
    id: UUID
    movement_type: str
    product_id: UUID
    qty: int
    unit_cbm: Decimal
    cbm: Decimal
    event_at: datetime
    slot_id: UUID | None = None
    from_slot_id: UUID | None = None
    to_slot_id: UUID | None = None
    order_id: UUID | None = None
    allocation_id: UUID | None = None
    actor_id: UUID | None = None
    note: str | None = None
    meta: dict[str, Any] | None = None


@dataclass(frozen=True)
class StoreSnapshotInfo:
    store: str
    capacity_cbm: Decimal
    occupied_cbm: Decimal
    free_cbm: Decimal
    n_units: int
    n_slots: int
    n_slot_items: int
    units: dict[str, Any]
    generated_at: datetime


@dataclass(frozen=True)
class PicklistLine:
    """Where the stock for one order line can be picked from."""

    product_id: UUID
    ordered_qty: int
    candidates: tuple[SlotItemInfo, ...]

    @property
    def on_hand_qty(self) -> int:
        return sum(c.qty for c in self.candidates)


@dataclass(frozen=True)
class SlotSummary:
    total: int
    inactive: int
    stores: tuple[str, ...]


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of a filtered, sorted listing."""

    items: tuple[T, ...]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return max(1, ceil(self.total / self.limit)) if self.limit else 1

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages


# =============================================================================
# Service results
# =============================================================================


@dataclass(frozen=True)
class AllocationChange:
    """One requested change in AllocationService.apply_allocation_changes().

    qty == 0 releases the allocation.
    """

    product_id: UUID
    slot_id: UUID
    qty: int
    note: str | None = None


@dataclass(frozen=True)
class AllocationResult:
    """Outcome of an allocation upsert or delete."""

    order_id: UUID
    allocation: AllocationInfo | None
    delta_qty: int
    movement_id: UUID | None
    rollup: AllocationRollup
    invoice_warning: bool = False


@dataclass(frozen=True)
class FinalizeResult:
    order_id: UUID
    already_finalized: bool
    deducted_count: int = 0
    deducted_qty: int = 0
    movement_ids: tuple[UUID, ...] = ()


@dataclass(frozen=True)
class ReversalResult:
    order_id: UUID
    restocked_count: int
    restocked_qty: int
    movement_ids: tuple[UUID, ...] = ()


@dataclass(frozen=True)
class AdjustResult:
    slot_item: SlotItemInfo
    created: bool
    delta_cbm: Decimal
    movement_id: UUID


@dataclass(frozen=True)
class MoveLine:
    """One item of a move request; qty None moves the whole row."""

    slot_item_id: UUID
    qty: int | None = None


@dataclass(frozen=True)
class MoveResult:
    moved: int
    movement_ids: tuple[UUID, ...] = ()


@dataclass(frozen=True)
class ClearResult:
    deleted: int
    movement_ids: tuple[UUID, ...] = ()


@dataclass(frozen=True)
class OccupancyRebuildResult:
    updated: int
    store: str | None = None
    drifted_slot_ids: tuple[UUID, ...] = ()


@dataclass(frozen=True)
class SlotUpdateResult:
    slot: SlotInfo
    changes: dict[str, tuple[Any, Any]] = field(default_factory=dict)

"""
Module: warehouse_kernel.models.snapshot
Responsibility: Persisted per-store summary of slot capacity and occupancy,
    rebuilt on demand by SnapshotService.  Read-optimized, never on the
    write path of stock operations.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - One row per store.
    - A snapshot is derived data; rebuilding it from the stock ledger is
      always safe.

``units`` layout::

    {
      "A": {
        "capacity_cbm": "10.0", "occupied_cbm": "2.5", "free_cbm": "7.5",
        "n_slots": 2,
        "slots_by_label": {"A1": {...}, "A2": {...}},
        "slots_ordered": [{...}, {...}]
      }
    }

Per-slot entries hold id, label, position, capacity_cbm, occupied_cbm,
free_cbm, fill_percent, n_items and is_active.  Decimal values are stored
as strings.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from warehouse_kernel.db.base import TrackedBase


class StoreSnapshot(TrackedBase):
    """Summary of one store's slots."""

    __tablename__ = "store_snapshots"

    __table_args__ = (
        UniqueConstraint("store", name="uq_store_snapshot_store"),
    )

    store: Mapped[str] = mapped_column(String(50), nullable=False)

    capacity_cbm: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    occupied_cbm: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    free_cbm: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    n_units: Mapped[int] = mapped_column(nullable=False, default=0)
    n_slots: Mapped[int] = mapped_column(nullable=False, default=0)
    n_slot_items: Mapped[int] = mapped_column(nullable=False, default=0)

    units: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    generated_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<StoreSnapshot {self.store}: {self.occupied_cbm}/{self.capacity_cbm} cbm>"

"""
Module: warehouse_kernel.models.slot
Responsibility: ORM persistence for storage slots -- physical locations
    identified by (store, unit, position) with a fixed volumetric capacity
    and a cached occupancy.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - (store, unit, position) is unique.
    - capacity_cbm >= 0, occupied_cbm >= 0, position >= 1.
    - occupied_cbm / fill_percent are a cache of SUM(slot_items.cbm) for the
      slot.  Only OccupancyService writes them.

Failure modes:
    - IntegrityError on duplicate location (SlotService checks first and
      raises DuplicateSlotError).
"""

from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from warehouse_kernel.db.base import TrackedBase


def make_label(unit: str, position: int) -> str:
    """Human label for a slot: unit letter(s) followed by the position."""
    return f"{unit}{position}"


class Slot(TrackedBase):
    """
    A storage location.

    Guarantees:
        - label == unit + position, kept in sync by SlotService.
        - fill_percent is a ratio (1.0 == full, 0 when capacity is 0).
          It may exceed 1.0 after a reversal restocks into an over-capacity
          allowance.
    """

    __tablename__ = "slots"

    __table_args__ = (
        UniqueConstraint("store", "unit", "position", name="uq_slot_location"),
        CheckConstraint("capacity_cbm >= 0", name="ck_slot_capacity_non_negative"),
        CheckConstraint("occupied_cbm >= 0", name="ck_slot_occupied_non_negative"),
        CheckConstraint("position >= 1", name="ck_slot_position_positive"),
        # Query: slots of a store, grouped by unit
        Index("idx_slot_store_unit", "store", "unit"),
        # Query: fullest slots first
        Index("idx_slot_fill", "fill_percent"),
    )

    store: Mapped[str] = mapped_column(String(50), nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False)
    position: Mapped[int] = mapped_column(nullable=False)
    label: Mapped[str] = mapped_column(String(80), nullable=False)

    capacity_cbm: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    # Occupancy cache (OccupancyService only)
    occupied_cbm: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    fill_percent: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Slot {self.store}/{self.label}: "
            f"{self.occupied_cbm}/{self.capacity_cbm} cbm>"
        )

"""
Module: warehouse_kernel.models.movement
Responsibility: ORM persistence for the inventory movement log -- one
    append-only row per stock-affecting event.
Architecture position: Kernel > Models.  May import from db/ and
    domain/statuses.py only.

Invariants enforced:
    - Append-only.  No UPDATE, no DELETE (db/immutability.py listeners and
      the PostgreSQL triggers in db/sql/01_inventory_movement.sql).
    - Row shape depends on movement_type (CHECK constraint): a MOVE names
      two different slots in from_slot_id / to_slot_id and leaves slot_id
      empty; every other type names slot_id and leaves the pair empty.
    - qty > 0.

Failure modes:
    - IntegrityError if a writer bypasses MovementLog and produces a row of
      the wrong shape.
    - ImmutabilityViolationError on any ORM update or delete.

Audit relevance:
    For every (product, slot) the signed sum of ADJUST_IN, ADJUST_OUT,
    DEDUCT and MOVE rows equals the current SlotItem qty.  Slot, order and
    allocation ids are stored without foreign keys so history survives the
    deletion of the rows it mentions.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, DateTime, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from warehouse_kernel.db.base import Base, UUIDString
from warehouse_kernel.domain.statuses import MovementType

_TYPE_LIST = ", ".join(f"'{t.value}'" for t in MovementType)


class InventoryMovement(Base):
    """One stock event.  Immutable from creation."""

    __tablename__ = "inventory_movements"

    __table_args__ = (
        CheckConstraint(f"movement_type IN ({_TYPE_LIST})", name="ck_movement_type"),
        CheckConstraint("qty > 0", name="ck_movement_qty_positive"),
        CheckConstraint(
            "(movement_type = 'MOVE' AND slot_id IS NULL "
            "AND from_slot_id IS NOT NULL AND to_slot_id IS NOT NULL "
            "AND from_slot_id <> to_slot_id) "
            "OR (movement_type <> 'MOVE' AND slot_id IS NOT NULL "
            "AND from_slot_id IS NULL AND to_slot_id IS NULL)",
            name="ck_movement_slot_shape",
        ),
        # Query: ledger quantity for a (product, slot)
        Index("idx_movement_product_slot", "product_id", "slot_id"),
        Index("idx_movement_product_from", "product_id", "from_slot_id"),
        Index("idx_movement_product_to", "product_id", "to_slot_id"),
        # Query: everything that happened to an order
        Index("idx_movement_order", "order_id"),
        # Query: newest first
        Index("idx_movement_event_at", "event_at"),
    )

    movement_type: Mapped[MovementType] = mapped_column(String(16), nullable=False)

    product_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    slot_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    from_slot_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    to_slot_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    qty: Mapped[int] = mapped_column(nullable=False)

    order_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    allocation_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    actor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    unit_cbm: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    cbm: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    note: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    meta: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    event_at: Mapped[datetime] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    @property
    def slot_ids(self) -> tuple[UUID, ...]:
        """Every slot this movement touches."""
        if self.movement_type == MovementType.MOVE:
            return (self.from_slot_id, self.to_slot_id)
        return (self.slot_id,)

    def __repr__(self) -> str:
        where = (
            f"{self.from_slot_id}->{self.to_slot_id}"
            if self.movement_type == MovementType.MOVE
            else f"{self.slot_id}"
        )
        return f"<InventoryMovement {self.movement_type} product={self.product_id} @{where} qty={self.qty}>"

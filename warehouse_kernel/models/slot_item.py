"""
Module: warehouse_kernel.models.slot_item
Responsibility: ORM persistence for the stock ledger -- on-hand quantity of
    one product in one slot, with its derived volume.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - (product_id, slot_id) is unique: one stock row per product per slot.
    - qty >= 0 and cbm >= 0.  Services delete the row when qty reaches 0.
    - cbm == qty * product.unit_cbm, recomputed on every qty change
      (StockLedgerService) or scaled by qty when deducting
      (FulfillmentService).

Audit relevance:
    Every change to qty is paired with an InventoryMovement in the same
    transaction, so SUM(signed movements) reproduces qty.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from warehouse_kernel.db.base import TrackedBase, UUIDString


class SlotItem(TrackedBase):
    """On-hand stock of one product in one slot."""

    __tablename__ = "slot_items"

    __table_args__ = (
        UniqueConstraint("product_id", "slot_id", name="uq_slot_item_product_slot"),
        CheckConstraint("qty >= 0", name="ck_slot_item_qty_non_negative"),
        CheckConstraint("cbm >= 0", name="ck_slot_item_cbm_non_negative"),
        # Query: everything stored in a slot
        Index("idx_slot_item_slot", "slot_id"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=False
    )
    slot_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("slots.id"), nullable=False
    )
    qty: Mapped[int] = mapped_column(nullable=False, default=0)
    cbm: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    def __repr__(self) -> str:
        return f"<SlotItem product={self.product_id} slot={self.slot_id} qty={self.qty}>"

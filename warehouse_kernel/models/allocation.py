"""
Module: warehouse_kernel.models.allocation
Responsibility: ORM persistence for order allocations -- a reservation of a
    quantity of one product in one slot for one order.
Architecture position: Kernel > Models.  May import from db/ and
    domain/statuses.py only.

Invariants enforced:
    - (order_id, product_id, slot_id) is unique.
    - qty >= 1.
    - status is NOT NULL and one of Reserved / Deducted / Cancelled.  There
      is no "unknown" status: every row states where it is in its lifecycle.
    - SUM(qty WHERE status = Reserved) over all orders for a (product, slot)
      never exceeds the slot item's qty (AllocationService, under lock).

Audit relevance:
    deducted_at / deducted_by_id record who finalized the stock.  Rows are
    kept after finalize until expires_at so a later cancellation can be
    reversed from them.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from warehouse_kernel.db.base import TrackedBase, UUIDString
from warehouse_kernel.domain.statuses import AllocationStatus


class OrderAllocation(TrackedBase):
    """A reservation (or, after finalize, a deduction record)."""

    __tablename__ = "order_allocations"

    __table_args__ = (
        UniqueConstraint(
            "order_id", "product_id", "slot_id", name="uq_allocation_order_product_slot"
        ),
        CheckConstraint("qty >= 1", name="ck_allocation_qty_positive"),
        CheckConstraint(
            "status IN ('Reserved', 'Deducted', 'Cancelled')",
            name="ck_allocation_status",
        ),
        # Query: reserved_by_others for a (product, slot)
        Index("idx_allocation_product_slot_status", "product_id", "slot_id", "status"),
        # Query: all allocations of an order
        Index("idx_allocation_order", "order_id"),
        # Query: expired rows for cleanup
        Index("idx_allocation_expires_at", "expires_at"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("orders.id"), nullable=False
    )
    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=False
    )
    slot_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("slots.id"), nullable=False
    )
    qty: Mapped[int] = mapped_column(nullable=False)

    status: Mapped[AllocationStatus] = mapped_column(
        String(12),
        default=AllocationStatus.RESERVED.value,
        nullable=False,
    )

    deducted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    deducted_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    note: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @property
    def is_reserved(self) -> bool:
        return self.status == AllocationStatus.RESERVED

    @property
    def is_deducted(self) -> bool:
        return self.status == AllocationStatus.DEDUCTED

    def __repr__(self) -> str:
        return (
            f"<OrderAllocation order={self.order_id} product={self.product_id} "
            f"slot={self.slot_id} qty={self.qty} {self.status}>"
        )

"""
Module: warehouse_kernel.models.order
Responsibility: The slice of an order the kernel depends on: its lines, its
    status, whether it is invoiced, and the fields the kernel writes back
    (allocation rollup and stock stamps).
Architecture position: Kernel > Models.  May import from db/ and
    domain/statuses.py only.

Invariants enforced:
    - One line per (order, product); line qty >= 1.
    - The kernel writes only allocation_status, allocated_at,
      stock_finalized_at and stock_reversed_at.  Everything else belongs to
      the order system.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from warehouse_kernel.db.base import Base, TrackedBase, UUIDString
from warehouse_kernel.domain.statuses import AllocationRollup, OrderStatus


class Order(TrackedBase):
    """
    An order as seen by the warehouse.

    Guarantees:
        - status is one of OrderStatus (stored as its string value).
        - allocation_status is one of AllocationRollup.
        - stock_finalized_at is set iff the order's stock has been deducted
          and not since reversed.
    """

    __tablename__ = "orders"

    __table_args__ = (
        UniqueConstraint("order_number", name="uq_order_number"),
        Index("idx_order_status", "status"),
    )

    order_number: Mapped[str] = mapped_column(String(50), nullable=False)

    status: Mapped[OrderStatus] = mapped_column(
        String(20),
        default=OrderStatus.PROCESSING.value,
        nullable=False,
    )

    # Presence means "invoice issued"
    invoice_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    allocation_status: Mapped[AllocationRollup] = mapped_column(
        String(24),
        default=AllocationRollup.UNALLOCATED.value,
        nullable=False,
    )
    allocated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    stock_finalized_at: Mapped[datetime | None] = mapped_column(nullable=True)
    stock_reversed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    lines: Mapped[list["OrderLine"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderLine.product_id",
    )

    @property
    def has_invoice(self) -> bool:
        return self.invoice_id is not None

    @property
    def is_stock_finalized(self) -> bool:
        return self.stock_finalized_at is not None

    def ordered_quantities(self) -> dict[UUID, int]:
        """product_id -> ordered qty, summed if a product appears twice."""
        ordered: dict[UUID, int] = {}
        for line in self.lines:
            ordered[line.product_id] = ordered.get(line.product_id, 0) + line.qty
        return ordered

    def __repr__(self) -> str:
        return f"<Order {self.order_number}: {self.status} / {self.allocation_status}>"


class OrderLine(Base):
    """One (product, qty) line of an order."""

    __tablename__ = "order_lines"

    __table_args__ = (
        UniqueConstraint("order_id", "product_id", name="uq_order_line_product"),
        CheckConstraint("qty >= 1", name="ck_order_line_qty_positive"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=False
    )
    qty: Mapped[int] = mapped_column(nullable=False)

    order: Mapped[Order] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return f"<OrderLine {self.product_id} x{self.qty}>"

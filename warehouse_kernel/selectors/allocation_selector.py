"""
AllocationSelector -- read side of order allocations.
"""

from uuid import UUID

from sqlalchemy import select

from warehouse_kernel.domain.dtos import AllocationInfo, Page
from warehouse_kernel.domain.statuses import AllocationStatus, OrderStatus, status_value
from warehouse_kernel.domain.values import parse_id, parse_optional_id
from warehouse_kernel.exceptions import InvalidFilterError, OrderNotFoundError
from warehouse_kernel.models.allocation import OrderAllocation
from warehouse_kernel.models.order import Order
from warehouse_kernel.models.slot import Slot
from warehouse_kernel.selectors.base import BaseSelector

# Filter value -> stored statuses
STATUS_FILTERS: dict[str, tuple[str, ...]] = {
    "reserved": (AllocationStatus.RESERVED.value,),
    "deducted": (AllocationStatus.DEDUCTED.value,),
    "cancelled": (AllocationStatus.CANCELLED.value,),
    "all": tuple(s.value for s in AllocationStatus),
}


def allocation_to_info(allocation: OrderAllocation, slot_label: str | None = None) -> AllocationInfo:
    return AllocationInfo(
        id=allocation.id,
        order_id=allocation.order_id,
        product_id=allocation.product_id,
        slot_id=allocation.slot_id,
        qty=allocation.qty,
        status=status_value(allocation.status),
        created_by_id=allocation.created_by_id,
        deducted_at=allocation.deducted_at,
        deducted_by_id=allocation.deducted_by_id,
        note=allocation.note,
        expires_at=allocation.expires_at,
        slot_label=slot_label,
    )


class AllocationSelector(BaseSelector):
    """Read-only allocation queries."""

    def list_for_order(self, order_id: UUID | str) -> tuple[AllocationInfo, ...]:
        """Every allocation of an order, by product then slot label."""
        order_id = parse_id(order_id, "order_id")
        if self.session.get(Order, order_id) is None:
            raise OrderNotFoundError(str(order_id))

        rows = self.session.execute(
            select(OrderAllocation, Slot.label)
            .join(Slot, Slot.id == OrderAllocation.slot_id)
            .where(OrderAllocation.order_id == order_id)
            .order_by(OrderAllocation.product_id, Slot.label)
        ).all()
        return tuple(allocation_to_info(a, label) for a, label in rows)

    def list_allocations(
        self,
        status: str = "all",
        order_status: str | None = None,
        order_id: UUID | str | None = None,
        product_id: UUID | str | None = None,
        slot_id: UUID | str | None = None,
        page: int | None = 1,
        limit: int | None = None,
    ) -> Page[AllocationInfo]:
        """
        List allocations across orders, newest first.

        Raises:
            InvalidFilterError: Unknown status or order_status.
        """
        key = (status or "all").lower()
        if key not in STATUS_FILTERS:
            raise InvalidFilterError("status", status, list(STATUS_FILTERS))
        order_statuses = [s.value for s in OrderStatus]
        if order_status is not None and order_status not in order_statuses:
            raise InvalidFilterError("order_status", order_status, order_statuses)
        order_id = parse_optional_id(order_id, "order_id")
        product_id = parse_optional_id(product_id, "product_id")
        slot_id = parse_optional_id(slot_id, "slot_id")
        page, limit = self._clamp_paging(page, limit)

        query = (
            select(OrderAllocation, Slot.label)
            .join(Slot, Slot.id == OrderAllocation.slot_id)
            .where(OrderAllocation.status.in_(STATUS_FILTERS[key]))
        )
        if order_status is not None:
            query = query.join(Order, Order.id == OrderAllocation.order_id).where(
                Order.status == order_status
            )
        if order_id is not None:
            query = query.where(OrderAllocation.order_id == order_id)
        if product_id is not None:
            query = query.where(OrderAllocation.product_id == product_id)
        if slot_id is not None:
            query = query.where(OrderAllocation.slot_id == slot_id)

        total = self._count(query)
        rows = self.session.execute(
            query.order_by(OrderAllocation.created_at.desc(), OrderAllocation.id)
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        return Page(
            items=tuple(allocation_to_info(a, label) for a, label in rows),
            page=page,
            limit=limit,
            total=total,
        )

"""
SlotItemSelector -- read side of the stock ledger.

Answers "where is this product?", "what is in this slot?" and "where can
this order be picked from?".  Availability figures are computed from
Reserved allocations at query time; nothing here takes a lock, so the
numbers are advisory.  AllocationService re-checks under lock on write.
"""

from collections import defaultdict
from uuid import UUID

from sqlalchemy import func, select

from warehouse_kernel.domain.dtos import PicklistLine, SlotItemInfo
from warehouse_kernel.domain.occupancy import natural_sort_key
from warehouse_kernel.domain.statuses import AllocationStatus
from warehouse_kernel.domain.values import parse_id, parse_optional_id
from warehouse_kernel.exceptions import OrderNotFoundError, SlotNotFoundError
from warehouse_kernel.models.allocation import OrderAllocation
from warehouse_kernel.models.order import Order
from warehouse_kernel.models.slot import Slot
from warehouse_kernel.models.slot_item import SlotItem
from warehouse_kernel.selectors.base import BaseSelector


def slot_item_to_info(
    item: SlotItem, slot: Slot | None = None, reserved_qty: int | None = None
) -> SlotItemInfo:
    available = None
    if reserved_qty is not None:
        available = max(0, item.qty - reserved_qty)
    return SlotItemInfo(
        id=item.id,
        product_id=item.product_id,
        slot_id=item.slot_id,
        qty=item.qty,
        cbm=item.cbm,
        slot_label=slot.label if slot is not None else None,
        store=slot.store if slot is not None else None,
        reserved_qty=reserved_qty,
        available_qty=available,
    )


class SlotItemSelector(BaseSelector):
    """Read-only stock queries."""

    def list_by_product(
        self,
        product_id: UUID | str,
        exclude_order_id: UUID | str | None = None,
    ) -> tuple[SlotItemInfo, ...]:
        """
        Stock rows of a product, smallest first.

        With ``exclude_order_id`` each row also carries ``reserved_qty``
        (Reserved by every other order) and ``available_qty``; this is the
        view an order's allocation editor needs.
        """
        product_id = parse_id(product_id, "product_id")
        exclude_order_id = parse_optional_id(exclude_order_id, "exclude_order_id")

        rows = self.session.execute(
            select(SlotItem, Slot)
            .join(Slot, Slot.id == SlotItem.slot_id)
            .where(SlotItem.product_id == product_id)
            .order_by(SlotItem.qty.asc(), Slot.label)
        ).all()

        if exclude_order_id is None:
            return tuple(slot_item_to_info(item, slot) for item, slot in rows)

        reserved = dict(
            self.session.execute(
                select(OrderAllocation.slot_id, func.sum(OrderAllocation.qty))
                .where(
                    OrderAllocation.product_id == product_id,
                    OrderAllocation.status == AllocationStatus.RESERVED.value,
                    OrderAllocation.order_id != exclude_order_id,
                )
                .group_by(OrderAllocation.slot_id)
            ).all()
        )
        return tuple(
            slot_item_to_info(item, slot, int(reserved.get(item.slot_id, 0)))
            for item, slot in rows
        )

    def list_by_slot(self, slot_id: UUID | str) -> tuple[SlotItemInfo, ...]:
        """Contents of a slot, largest first."""
        slot_id = parse_id(slot_id, "slot_id")
        slot = self.session.get(Slot, slot_id)
        if slot is None:
            raise SlotNotFoundError(str(slot_id))
        items = self.session.execute(
            select(SlotItem)
            .where(SlotItem.slot_id == slot_id)
            .order_by(SlotItem.qty.desc(), SlotItem.product_id)
        ).scalars()
        return tuple(slot_item_to_info(item, slot) for item in items)

    def order_picklist(self, order_id: UUID | str) -> tuple[PicklistLine, ...]:
        """For each order line, the slots holding the product, by label."""
        order_id = parse_id(order_id, "order_id")
        order = self.session.get(Order, order_id)
        if order is None:
            raise OrderNotFoundError(str(order_id))

        ordered = order.ordered_quantities()
        candidates: dict[UUID, list[SlotItemInfo]] = defaultdict(list)
        if ordered:
            rows = self.session.execute(
                select(SlotItem, Slot)
                .join(Slot, Slot.id == SlotItem.slot_id)
                .where(SlotItem.product_id.in_(list(ordered)), SlotItem.qty > 0)
            ).all()
            for item, slot in rows:
                candidates[item.product_id].append(slot_item_to_info(item, slot))

        return tuple(
            PicklistLine(
                product_id=product_id,
                ordered_qty=qty,
                candidates=tuple(
                    sorted(
                        candidates.get(product_id, ()),
                        key=lambda c: (c.store or "", natural_sort_key(c.slot_label or "")),
                    )
                ),
            )
            for product_id, qty in ordered.items()
        )

"""
Movement log audit tests.

1. InventoryMovement rows cannot be updated or deleted through the ORM.
2. After a mixed sequence of stock operations, replaying the log gives
   the current SlotItem quantity for every (product, slot).
"""

import pytest
from sqlalchemy import select

from warehouse_kernel.domain.statuses import OrderStatus
from warehouse_kernel.exceptions import ImmutabilityViolationError
from warehouse_kernel.models.movement import InventoryMovement
from warehouse_kernel.models.slot_item import SlotItem


@pytest.fixture
def movement(make_slot, make_product, stock_service, session):
    result = stock_service.adjust_slot_item(make_product().id, make_slot().id, 4, note="count")
    return session.get(InventoryMovement, result.movement_id)


class TestAppendOnly:
    def test_update_blocked(self, movement, session, captured_logs):
        movement.note = "edited"
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        session.rollback()

        assert exc_info.value.entity_type == "InventoryMovement"
        assert any(r["message"] == "immutability_violation_blocked" for r in captured_logs())

    def test_delete_blocked(self, movement, session):
        session.delete(movement)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

        session.expire_all()
        assert session.get(InventoryMovement, movement.id) is not None


class TestConservation:
    def test_log_replays_to_stock(
        self, session, make_slot, make_product, make_order, set_order_status,
        stock_service, allocation_service, fulfillment_service, reversal_service,
        movement_selector,
    ):
        a, b = make_slot(), make_slot()
        p1, p2, p3 = make_product(), make_product(unit_cbm="1"), make_product()

        stock_service.adjust_slot_item(p1.id, a.id, 12)
        p2_item = stock_service.adjust_slot_item(p2.id, a.id, 3).slot_item
        item = stock_service.adjust_slot_item(p1.id, b.id, 2).slot_item
        stock_service.move_slot_items(b.id, a.id, [(item.id, 1)])
        stock_service.move_slot_items(a.id, b.id, [(p2_item.id, 1)])
        cleared = stock_service.adjust_slot_item(p3.id, b.id, 4).slot_item
        stock_service.clear_slot_items(b.id, [cleared.id])

        order = make_order([(p1, 5), (p2, 1)])
        allocation_service.upsert_allocation(order.id, p1.id, a.id, 5)
        allocation_service.upsert_allocation(order.id, p2.id, a.id, 1)
        set_order_status(order, OrderStatus.DELIVERED.value, invoiced=True)
        fulfillment_service.finalize_allocations(order.id)
        set_order_status(order, OrderStatus.CANCELLED.value)
        reversal_service.reverse_finalized_order(order.id)

        session.expire_all()
        items = session.execute(select(SlotItem)).scalars().all()
        assert items
        for row in items:
            assert movement_selector.ledger_quantity(row.product_id, row.slot_id) == row.qty

        assert (p3.id, b.id) not in {(row.product_id, row.slot_id) for row in items}
        assert movement_selector.ledger_quantity(p3.id, b.id) == 0

"""Tests for OccupancyService -- incremental deltas and full rebuild."""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select, update

from warehouse_kernel.domain.statuses import OrderStatus
from warehouse_kernel.exceptions import SlotNotFoundError
from warehouse_kernel.models.slot import Slot
from warehouse_kernel.models.slot_item import SlotItem


def _slot(session, slot_id) -> Slot:
    session.expire_all()
    return session.get(Slot, slot_id)


class TestApplyDelta:
    def test_positive_and_negative(self, make_slot, occupancy_service, session):
        slot = make_slot(capacity_cbm="8")

        occupancy_service.apply_slot_occupancy_delta(slot.id, Decimal("6"))
        occupancy_service.apply_slot_occupancy_delta(slot.id, Decimal("-2"))

        stored = _slot(session, slot.id)
        assert stored.occupied_cbm == Decimal("4")
        assert stored.fill_percent == Decimal("0.5")

    def test_clamped_at_zero(self, make_slot, occupancy_service, session):
        slot = make_slot()
        occupancy_service.apply_slot_occupancy_delta(slot.id, Decimal("1"))
        occupancy_service.apply_slot_occupancy_delta(slot.id, Decimal("-5"))
        assert _slot(session, slot.id).occupied_cbm == Decimal("0")

    def test_zero_capacity_fill_is_zero(self, make_slot, occupancy_service, session):
        slot = make_slot(capacity_cbm="0")
        occupancy_service.apply_slot_occupancy_delta(slot.id, Decimal("3"))
        stored = _slot(session, slot.id)
        assert stored.occupied_cbm == Decimal("3")
        assert stored.fill_percent == Decimal("0")

    def test_zero_delta_is_noop(self, occupancy_service, db_engine):
        # No lookup happens, so even an unknown slot is fine
        occupancy_service.apply_slot_occupancy_delta(uuid4(), Decimal("0"))

    def test_unknown_slot(self, occupancy_service, db_engine):
        with pytest.raises(SlotNotFoundError):
            occupancy_service.apply_slot_occupancy_delta(uuid4(), Decimal("1"))


class TestRebuild:
    def test_repairs_drift(
        self, make_slot, make_product, stock_service, occupancy_service, session, captured_logs
    ):
        slot = make_slot(capacity_cbm="10")
        product = make_product(unit_cbm="0.5")
        stock_service.adjust_slot_item(product.id, slot.id, 10)
        session.execute(update(Slot).where(Slot.id == slot.id).values(occupied_cbm=Decimal("9")))
        session.commit()

        result = occupancy_service.rebuild_slot_occupancy()

        assert result.updated == 1
        assert result.drifted_slot_ids == (slot.id,)
        stored = _slot(session, slot.id)
        assert stored.occupied_cbm == Decimal("5")
        assert stored.fill_percent == Decimal("0.5")
        assert any(r["message"] == "occupancy_drift_detected" for r in captured_logs())

    def test_idempotent(self, make_slot, make_product, stock_service, occupancy_service):
        slot = make_slot()
        product = make_product()
        stock_service.adjust_slot_item(product.id, slot.id, 4)

        occupancy_service.rebuild_slot_occupancy()
        second = occupancy_service.rebuild_slot_occupancy()
        assert second.drifted_slot_ids == ()

    def test_store_filter(self, make_slot, occupancy_service):
        make_slot(store="S1")
        make_slot(store="S1")
        make_slot(store="S2")

        result = occupancy_service.rebuild_slot_occupancy(store="S1")
        assert result.updated == 2
        assert result.store == "S1"

    def test_empty_slot_rebuilt_to_zero(self, make_slot, occupancy_service, session):
        slot = make_slot()
        session.execute(update(Slot).where(Slot.id == slot.id).values(occupied_cbm=Decimal("2")))
        session.commit()

        result = occupancy_service.rebuild_slot_occupancy()

        assert result.drifted_slot_ids == (slot.id,)
        assert _slot(session, slot.id).occupied_cbm == Decimal("0")

    def test_no_drift_after_mixed_operations(
        self, make_slot, make_product, make_order, set_order_status, stock_service,
        allocation_service, fulfillment_service, reversal_service, occupancy_service, session,
    ):
        """Every incremental update keeps the cache equal to the summed stock volume."""
        a, b = make_slot(capacity_cbm="20"), make_slot(capacity_cbm="20")
        p1, p2 = make_product(unit_cbm="0.3"), make_product(unit_cbm="1.25")

        p1_item = stock_service.adjust_slot_item(p1.id, a.id, 10).slot_item
        p2_item = stock_service.adjust_slot_item(p2.id, a.id, 4).slot_item
        stock_service.adjust_slot_item(p1.id, b.id, 3)
        stock_service.move_slot_items(a.id, b.id, [(p1_item.id, 4)])
        stock_service.move_slot_items(a.id, b.id, [(p2_item.id, 1)])
        stock_service.adjust_slot_item(p1.id, a.id, 2)

        order = make_order([(p1, 5), (p2, 3)])
        allocation_service.upsert_allocation(order.id, p1.id, a.id, 5)
        allocation_service.upsert_allocation(order.id, p2.id, a.id, 3)
        set_order_status(order, OrderStatus.DELIVERED.value, invoiced=True)
        fulfillment_service.finalize_allocations(order.id)
        set_order_status(order, OrderStatus.CANCELLED.value)
        reversal_service.reverse_finalized_order(order.id)

        session.expire_all()
        moved_p2 = session.execute(
            select(SlotItem).where(SlotItem.product_id == p2.id, SlotItem.slot_id == b.id)
        ).scalar_one()
        stock_service.clear_slot_items(b.id, [moved_p2.id])

        result = occupancy_service.rebuild_slot_occupancy()

        assert result.drifted_slot_ids == ()
        assert _slot(session, a.id).occupied_cbm == Decimal("6.15")
        assert _slot(session, b.id).occupied_cbm == Decimal("2.1")

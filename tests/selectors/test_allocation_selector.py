"""Tests for AllocationSelector -- per-order and cross-order allocation listings."""

from uuid import uuid4

import pytest

from warehouse_kernel.domain.statuses import OrderStatus
from warehouse_kernel.exceptions import InvalidFilterError, OrderNotFoundError


@pytest.fixture
def two_orders(
    make_slot, make_product, make_order, stock_service, allocation_service,
    fulfillment_service, set_order_status,
):
    """Order ``done`` finalized (Deducted), order ``open`` Reserved in two slots."""
    product = make_product()
    a1, a2 = make_slot(unit="A", position=1), make_slot(unit="A", position=2)
    stock_service.adjust_slot_item(product.id, a1.id, 10)
    stock_service.adjust_slot_item(product.id, a2.id, 10)

    done = make_order([(product, 2)])
    allocation_service.upsert_allocation(done.id, product.id, a1.id, 2)
    set_order_status(done, OrderStatus.DELIVERED.value, invoiced=True)
    fulfillment_service.finalize_allocations(done.id)

    open_order = make_order([(product, 6)])
    allocation_service.upsert_allocation(open_order.id, product.id, a2.id, 4)
    allocation_service.upsert_allocation(open_order.id, product.id, a1.id, 2)
    return {"done": done, "open": open_order, "product": product, "A1": a1, "A2": a2}


class TestListForOrder:
    def test_ordered_by_label_with_labels(self, two_orders, allocation_selector):
        rows = allocation_selector.list_for_order(two_orders["open"].id)
        assert [(r.slot_label, r.qty, r.status) for r in rows] == [
            ("A1", 2, "Reserved"),
            ("A2", 4, "Reserved"),
        ]

    def test_unknown_order(self, allocation_selector, db_engine):
        with pytest.raises(OrderNotFoundError):
            allocation_selector.list_for_order(uuid4())


class TestListAllocations:
    def test_status_filter(self, two_orders, allocation_selector):
        assert allocation_selector.list_allocations(status="reserved").total == 2
        deducted = allocation_selector.list_allocations(status="Deducted")
        assert deducted.total == 1
        assert deducted.items[0].order_id == two_orders["done"].id
        assert allocation_selector.list_allocations(status="cancelled").total == 0
        assert allocation_selector.list_allocations().total == 3

    def test_order_status_filter(self, two_orders, allocation_selector):
        page = allocation_selector.list_allocations(order_status="Delivered")
        assert [a.order_id for a in page.items] == [two_orders["done"].id]

    def test_id_filters(self, two_orders, allocation_selector):
        assert allocation_selector.list_allocations(order_id=two_orders["open"].id).total == 2
        assert allocation_selector.list_allocations(slot_id=str(two_orders["A1"].id)).total == 2
        assert allocation_selector.list_allocations(product_id=two_orders["product"].id).total == 3

    def test_paging(self, two_orders, allocation_selector):
        page = allocation_selector.list_allocations(limit=2, page=2)
        assert len(page.items) == 1
        assert page.total == 3

    @pytest.mark.parametrize("kwargs", [{"status": "pending"}, {"order_status": "Lost"}])
    def test_bad_filters(self, allocation_selector, db_engine, kwargs):
        with pytest.raises(InvalidFilterError):
            allocation_selector.list_allocations(**kwargs)

"""Tests for MovementSelector -- movement listing and ledger replay."""

from datetime import timedelta

import pytest

from warehouse_kernel.domain.dtos import MoveLine
from warehouse_kernel.exceptions import InvalidFilterError


@pytest.fixture
def history(make_slot, make_product, make_order, stock_service, allocation_service, deterministic_clock):
    """ADJUST_IN x2, MOVE, RESERVE, at one-hour steps."""
    src, dst = make_slot(), make_slot()
    product = make_product(unit_cbm="1")
    item = stock_service.adjust_slot_item(product.id, src.id, 10).slot_item
    deterministic_clock.advance(3600)
    stock_service.adjust_slot_item(product.id, dst.id, 1)
    deterministic_clock.advance(3600)
    stock_service.move_slot_items(src.id, dst.id, [MoveLine(slot_item_id=item.id, qty=4)])
    deterministic_clock.advance(3600)
    order = make_order([(product, 2)])
    allocation_service.upsert_allocation(order.id, product.id, dst.id, 2)
    return {"src": src, "dst": dst, "product": product, "order": order}


class TestListMovements:
    def test_newest_first(self, history, movement_selector):
        page = movement_selector.list_movements()
        assert [m.movement_type for m in page.items] == ["RESERVE", "MOVE", "ADJUST_IN", "ADJUST_IN"]

    def test_type_filter_case_insensitive(self, history, movement_selector):
        page = movement_selector.list_movements(movement_type="adjust_in")
        assert page.total == 2

    def test_slot_filter_matches_move_ends(self, history, movement_selector):
        src_page = movement_selector.list_movements(slot_id=history["src"].id)
        assert sorted(m.movement_type for m in src_page.items) == ["ADJUST_IN", "MOVE"]
        assert movement_selector.list_movements(slot_id=history["dst"].id).total == 3

    def test_order_filter(self, history, movement_selector):
        page = movement_selector.list_movements(order_id=history["order"].id)
        assert [m.movement_type for m in page.items] == ["RESERVE"]
        assert page.items[0].order_id == history["order"].id

    def test_date_range_inclusive(self, history, movement_selector, deterministic_clock):
        now = deterministic_clock.now()
        page = movement_selector.list_movements(
            date_from=now - timedelta(hours=2), date_to=now - timedelta(hours=1)
        )
        assert sorted(m.movement_type for m in page.items) == ["ADJUST_IN", "MOVE"]

    def test_inverted_dates(self, movement_selector, deterministic_clock, db_engine):
        now = deterministic_clock.now()
        with pytest.raises(InvalidFilterError):
            movement_selector.list_movements(date_from=now, date_to=now - timedelta(days=1))

    def test_unknown_type(self, movement_selector, db_engine):
        with pytest.raises(InvalidFilterError):
            movement_selector.list_movements(movement_type="TELEPORT")


class TestLedgerQuantity:
    def test_replay_matches_stock(self, history, movement_selector, slot_item_selector):
        product = history["product"]
        for slot in (history["src"], history["dst"]):
            rows = slot_item_selector.list_by_slot(slot.id)
            assert movement_selector.ledger_quantity(product.id, slot.id) == rows[0].qty

    def test_reservations_do_not_count(self, history, movement_selector):
        assert movement_selector.ledger_quantity(history["product"].id, history["dst"].id) == 5

    def test_unknown_pair_is_zero(self, history, make_slot, movement_selector):
        assert movement_selector.ledger_quantity(history["product"].id, make_slot().id) == 0

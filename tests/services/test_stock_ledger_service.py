"""
Tests for StockLedgerService -- adjust, move, and clear.

Every operation must leave SlotItem qty equal to the movement-log replay
and slot occupancy equal to the summed SlotItem volume.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import event, select

from warehouse_kernel.domain.dtos import MoveLine
from warehouse_kernel.exceptions import (
    InvalidFilterError,
    InvalidQuantityError,
    MoveRequestError,
    ProductNotFoundError,
    ReservationExistsError,
    SlotItemNotFoundError,
    SlotNotFoundError,
)
from warehouse_kernel.models.movement import InventoryMovement
from warehouse_kernel.models.slot import Slot
from warehouse_kernel.models.slot_item import SlotItem


def _item(session, product_id, slot_id):
    session.expire_all()
    return session.execute(
        select(SlotItem).where(SlotItem.product_id == product_id, SlotItem.slot_id == slot_id)
    ).scalar_one_or_none()


def _occupied(session, slot_id) -> Decimal:
    session.expire_all()
    return session.get(Slot, slot_id).occupied_cbm


class TestAdjust:
    def test_creates_row_and_movement(
        self, make_slot, make_product, stock_service, session, movement_selector, test_actor_id
    ):
        slot = make_slot()
        product = make_product(unit_cbm="0.5")

        result = stock_service.adjust_slot_item(product.id, slot.id, 20, actor_id=test_actor_id)

        assert result.created is True
        assert result.slot_item.qty == 20
        assert result.delta_cbm == Decimal("10")
        assert _occupied(session, slot.id) == Decimal("10")
        assert movement_selector.ledger_quantity(product.id, slot.id) == 20

        movement = session.get(InventoryMovement, result.movement_id)
        assert movement.movement_type == "ADJUST_IN"
        assert movement.actor_id == test_actor_id
        assert movement.cbm == Decimal("10")

    def test_increments_existing_row(self, make_slot, make_product, stock_service, session):
        slot = make_slot()
        product = make_product(unit_cbm="0.5")
        stock_service.adjust_slot_item(product.id, slot.id, 4)

        result = stock_service.adjust_slot_item(product.id, slot.id, 6)

        assert result.created is False
        assert result.slot_item.qty == 10
        assert result.delta_cbm == Decimal("3")
        assert _occupied(session, slot.id) == Decimal("5")

    @pytest.mark.parametrize("qty", [0, -2, "lots"])
    def test_rejects_bad_qty(self, make_slot, make_product, stock_service, qty):
        slot = make_slot()
        product = make_product()
        with pytest.raises(InvalidQuantityError):
            stock_service.adjust_slot_item(product.id, slot.id, qty)

    def test_missing_slot_or_product(self, make_slot, make_product, stock_service):
        slot = make_slot()
        product = make_product()
        with pytest.raises(SlotNotFoundError):
            stock_service.adjust_slot_item(product.id, uuid4(), 1)
        with pytest.raises(ProductNotFoundError):
            stock_service.adjust_slot_item(uuid4(), slot.id, 1)

    def test_reserved_row_is_guarded(
        self, make_slot, make_product, make_order, stock_service, allocation_service
    ):
        slot = make_slot()
        product = make_product()
        stock_service.adjust_slot_item(product.id, slot.id, 10)
        order = make_order([(product, 3)])
        allocation_service.upsert_allocation(order.id, product.id, slot.id, 3)

        with pytest.raises(ReservationExistsError):
            stock_service.adjust_slot_item(product.id, slot.id, 1)

    def test_row_locked_before_reservation_check(
        self, make_slot, make_product, stock_service, db_engine
    ):
        """Reservations are read only after the stock row is locked."""
        slot = make_slot()
        product = make_product()
        stock_service.adjust_slot_item(product.id, slot.id, 1)

        statements: list[str] = []

        def _record(conn, cursor, statement, parameters, context, executemany):
            if statement.lstrip().upper().startswith("SELECT"):
                statements.append(statement)

        event.listen(db_engine, "before_cursor_execute", _record)
        try:
            stock_service.adjust_slot_item(product.id, slot.id, 1)
        finally:
            event.remove(db_engine, "before_cursor_execute", _record)

        def _first(table: str) -> int:
            return next(i for i, s in enumerate(statements) if f"FROM {table}" in s)

        assert _first("slot_items") < _first("order_allocations")


class TestMove:
    def test_whole_row_moves(
        self, make_slot, make_product, stock_service, session, movement_selector
    ):
        src, dst = make_slot(), make_slot()
        product = make_product(unit_cbm="0.5")
        item = stock_service.adjust_slot_item(product.id, src.id, 8).slot_item

        result = stock_service.move_slot_items(src.id, dst.id, [item.id])

        assert result.moved == 1
        assert _item(session, product.id, src.id) is None
        assert _item(session, product.id, dst.id).qty == 8
        assert _occupied(session, src.id) == Decimal("0")
        assert _occupied(session, dst.id) == Decimal("4")
        assert movement_selector.ledger_quantity(product.id, src.id) == 0
        assert movement_selector.ledger_quantity(product.id, dst.id) == 8

    def test_partial_move_merges_into_destination(
        self, make_slot, make_product, stock_service, session, movement_selector
    ):
        src, dst = make_slot(), make_slot()
        product = make_product(unit_cbm="1")
        item = stock_service.adjust_slot_item(product.id, src.id, 10).slot_item
        stock_service.adjust_slot_item(product.id, dst.id, 2)

        stock_service.move_slot_items(src.id, dst.id, [MoveLine(slot_item_id=item.id, qty=3)])

        assert _item(session, product.id, src.id).qty == 7
        assert _item(session, product.id, dst.id).qty == 5
        assert _occupied(session, src.id) == Decimal("7")
        assert _occupied(session, dst.id) == Decimal("5")
        assert movement_selector.ledger_quantity(product.id, dst.id) == 5

    def test_accepts_pairs_and_dicts(self, make_slot, make_product, stock_service, session):
        src, dst = make_slot(), make_slot()
        p1, p2 = make_product(), make_product()
        i1 = stock_service.adjust_slot_item(p1.id, src.id, 4).slot_item
        i2 = stock_service.adjust_slot_item(p2.id, src.id, 4).slot_item

        result = stock_service.move_slot_items(
            src.id, dst.id, [(i1.id, 1), {"slot_item_id": str(i2.id), "qty": 2}]
        )

        assert result.moved == 2
        assert _item(session, p1.id, dst.id).qty == 1
        assert _item(session, p2.id, dst.id).qty == 2

    def test_same_slot_rejected(self, make_slot, stock_service):
        slot = make_slot()
        with pytest.raises(MoveRequestError):
            stock_service.move_slot_items(slot.id, slot.id, [uuid4()])

    def test_duplicate_and_empty_rejected(self, make_slot, stock_service):
        src, dst = make_slot(), make_slot()
        item_id = uuid4()
        with pytest.raises(MoveRequestError):
            stock_service.move_slot_items(src.id, dst.id, [item_id, item_id])
        with pytest.raises(MoveRequestError):
            stock_service.move_slot_items(src.id, dst.id, [])

    def test_qty_over_on_hand_rolls_back(
        self, make_slot, make_product, stock_service, session
    ):
        src, dst = make_slot(), make_slot()
        product = make_product()
        item = stock_service.adjust_slot_item(product.id, src.id, 3).slot_item

        with pytest.raises(MoveRequestError):
            stock_service.move_slot_items(src.id, dst.id, [(item.id, 4)])

        assert _item(session, product.id, src.id).qty == 3
        assert _item(session, product.id, dst.id) is None

    def test_item_from_other_slot(self, make_slot, make_product, stock_service):
        a, b, c = make_slot(), make_slot(), make_slot()
        product = make_product()
        item = stock_service.adjust_slot_item(product.id, a.id, 3).slot_item

        with pytest.raises(SlotItemNotFoundError):
            stock_service.move_slot_items(b.id, c.id, [item.id])


class TestClear:
    def test_clear_records_adjust_out(
        self, make_slot, make_product, stock_service, session, movement_selector
    ):
        slot = make_slot()
        product = make_product(unit_cbm="0.5")
        item = stock_service.adjust_slot_item(product.id, slot.id, 6).slot_item

        result = stock_service.clear_slot_items(slot.id, [item.id])

        assert result.deleted == 1
        assert len(result.movement_ids) == 1
        assert _item(session, product.id, slot.id) is None
        assert _occupied(session, slot.id) == Decimal("0")
        assert movement_selector.ledger_quantity(product.id, slot.id) == 0

    def test_empty_list_rejected(self, make_slot, stock_service):
        slot = make_slot()
        with pytest.raises(InvalidFilterError):
            stock_service.clear_slot_items(slot.id, [])

    def test_reserved_row_is_guarded(
        self, make_slot, make_product, make_order, stock_service, allocation_service
    ):
        slot = make_slot()
        product = make_product()
        item = stock_service.adjust_slot_item(product.id, slot.id, 10).slot_item
        order = make_order([(product, 2)])
        allocation_service.upsert_allocation(order.id, product.id, slot.id, 2)

        with pytest.raises(ReservationExistsError):
            stock_service.clear_slot_items(slot.id, [item.id])

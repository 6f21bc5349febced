"""
Tests for SlotService -- the slot registry write side.

Covers:
- create_slot(): label derivation, validation, duplicate location
- update_slot(): diff reporting, relabel on move, fill ratio on capacity
  change, duplicate location, unknown fields
- delete_slot(): unused slot removed, referenced slot refused
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from warehouse_kernel.exceptions import (
    DuplicateSlotError,
    InvalidQuantityError,
    InvalidSlotDefinitionError,
    SlotInUseError,
    SlotNotFoundError,
)
from warehouse_kernel.models.slot import Slot


class TestCreateSlot:
    def test_label_and_defaults(self, slot_service, test_actor_id):
        info = slot_service.create_slot("S1", "A", 3, "12.5", actor_id=test_actor_id)

        assert info.label == "A3"
        assert info.store == "S1"
        assert info.capacity_cbm == Decimal("12.5")
        assert info.occupied_cbm == Decimal("0")
        assert info.fill_percent == Decimal("0")
        assert info.is_active is True

    def test_codes_are_trimmed(self, slot_service):
        info = slot_service.create_slot("  S1 ", " B ", "4", 10)
        assert (info.store, info.unit, info.label) == ("S1", "B", "B4")

    @pytest.mark.parametrize("store, unit", [("", "A"), ("S1", "  "), (None, "A")])
    def test_missing_codes_rejected(self, slot_service, store, unit):
        with pytest.raises(InvalidSlotDefinitionError):
            slot_service.create_slot(store, unit, 1, 10)

    @pytest.mark.parametrize("position", [0, -1, "x", 1.5])
    def test_bad_position(self, slot_service, position):
        with pytest.raises(InvalidQuantityError):
            slot_service.create_slot("S1", "A", position, 10)

    def test_negative_capacity(self, slot_service):
        with pytest.raises(InvalidQuantityError):
            slot_service.create_slot("S1", "A", 1, "-1")

    def test_duplicate_location(self, slot_service):
        slot_service.create_slot("S1", "A", 1, 10)
        with pytest.raises(DuplicateSlotError):
            slot_service.create_slot("S1", "A", 1, 20)

    def test_same_position_other_store_allowed(self, slot_service):
        slot_service.create_slot("S1", "A", 1, 10)
        info = slot_service.create_slot("S2", "A", 1, 10)
        assert info.store == "S2"

    def test_logs_creation(self, slot_service, captured_logs):
        info = slot_service.create_slot("S1", "A", 1, 10)
        records = [r for r in captured_logs() if r["message"] == "slot_created"]
        assert records
        assert records[-1]["slot_id"] == str(info.id)
        assert records[-1]["label"] == "A1"


class TestUpdateSlot:
    def test_move_relabels(self, make_slot, slot_service):
        slot = make_slot(unit="A", position=1)
        result = slot_service.update_slot(slot.id, unit="C", position=7)

        assert result.slot.label == "C7"
        assert result.changes == {"unit": ("A", "C"), "position": (1, 7)}

    def test_unchanged_values_not_reported(self, make_slot, slot_service):
        slot = make_slot(position=2, notes="top shelf")
        result = slot_service.update_slot(slot.id, position=2, notes="top shelf")
        assert result.changes == {}

    def test_capacity_change_recomputes_fill(
        self, make_slot, make_product, slot_service, stock_service, session
    ):
        slot = make_slot(capacity_cbm="10")
        product = make_product(unit_cbm="1")
        stock_service.adjust_slot_item(product.id, slot.id, 5)

        result = slot_service.update_slot(slot.id, capacity_cbm="20")

        assert result.slot.capacity_cbm == Decimal("20")
        assert result.slot.fill_percent == Decimal("0.25")
        assert result.slot.occupied_cbm == Decimal("5")

    def test_move_onto_taken_location(self, make_slot, slot_service):
        make_slot(unit="A", position=1)
        other = make_slot(unit="A", position=2)
        with pytest.raises(DuplicateSlotError):
            slot_service.update_slot(other.id, position=1)

    def test_unknown_field(self, make_slot, slot_service):
        slot = make_slot()
        with pytest.raises(InvalidSlotDefinitionError):
            slot_service.update_slot(slot.id, occupied_cbm="5")

    def test_missing_slot(self, slot_service, db_engine):
        with pytest.raises(SlotNotFoundError):
            slot_service.update_slot(uuid4(), notes="x")

    def test_deactivate(self, make_slot, slot_service, test_actor_id, session):
        slot = make_slot()
        result = slot_service.update_slot(slot.id, actor_id=test_actor_id, is_active=False)

        assert result.slot.is_active is False
        assert session.get(Slot, slot.id).updated_by_id == test_actor_id


class TestDeleteSlot:
    def test_unused_slot_deleted(self, make_slot, slot_service, session):
        slot = make_slot()
        slot_service.delete_slot(slot.id)
        assert session.get(Slot, slot.id) is None

    def test_slot_with_stock_refused(self, make_slot, make_product, slot_service, stock_service):
        slot = make_slot()
        product = make_product()
        stock_service.adjust_slot_item(product.id, slot.id, 2)

        with pytest.raises(SlotInUseError) as exc_info:
            slot_service.delete_slot(slot.id)
        assert exc_info.value.slot_item_count == 1

    def test_missing_slot(self, slot_service, db_engine):
        with pytest.raises(SlotNotFoundError):
            slot_service.delete_slot(uuid4())

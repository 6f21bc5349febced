"""Tests for SnapshotService -- per-store capacity/occupancy summaries."""

from datetime import timezone
from decimal import Decimal

import pytest

from warehouse_kernel.exceptions import InvalidSlotDefinitionError


@pytest.fixture
def store_layout(make_slot, make_product, stock_service):
    """Store S1: unit A with slots A1, A2, A10; unit B with B1.  Stock in A2 and B1."""
    a1 = make_slot(capacity_cbm="10", unit="A", position=1)
    a10 = make_slot(capacity_cbm="10", unit="A", position=10)
    a2 = make_slot(capacity_cbm="10", unit="A", position=2)
    b1 = make_slot(capacity_cbm="5", unit="B", position=1)
    p1 = make_product(unit_cbm="0.5")
    p2 = make_product(unit_cbm="1")
    stock_service.adjust_slot_item(p1.id, a2.id, 6)
    stock_service.adjust_slot_item(p2.id, a2.id, 1)
    stock_service.adjust_slot_item(p2.id, b1.id, 2)
    return {"A1": a1, "A2": a2, "A10": a10, "B1": b1}


class TestRebuildStoreSnapshot:
    def test_store_totals(self, store_layout, snapshot_service, deterministic_clock):
        info = snapshot_service.rebuild_store_snapshot("S1")

        assert info.store == "S1"
        assert info.capacity_cbm == Decimal("35")
        assert info.occupied_cbm == Decimal("6")
        assert info.free_cbm == Decimal("29")
        assert info.n_units == 2
        assert info.n_slots == 4
        assert info.n_slot_items == 3
        assert info.generated_at.replace(tzinfo=timezone.utc) == deterministic_clock.now()

    def test_units_and_natural_order(self, store_layout, snapshot_service):
        info = snapshot_service.rebuild_store_snapshot("S1")

        assert list(info.units) == ["A", "B"]
        unit_a = info.units["A"]
        assert [s["label"] for s in unit_a["slots_ordered"]] == ["A1", "A2", "A10"]
        assert unit_a["n_slots"] == 3
        assert Decimal(unit_a["capacity_cbm"]) == Decimal("30")
        assert Decimal(unit_a["occupied_cbm"]) == Decimal("4")
        assert Decimal(unit_a["free_cbm"]) == Decimal("26")

        a2 = unit_a["slots_by_label"]["A2"]
        assert a2["id"] == str(store_layout["A2"].id)
        assert a2["n_items"] == 2
        assert Decimal(a2["occupied_cbm"]) == Decimal("4")
        assert Decimal(a2["fill_percent"]) == Decimal("0.4")
        assert a2["is_active"] is True

    def test_rebuild_replaces_previous(
        self, store_layout, make_product, stock_service, snapshot_service, snapshot_selector
    ):
        snapshot_service.rebuild_store_snapshot("S1")
        stock_service.adjust_slot_item(make_product(unit_cbm="2").id, store_layout["A1"].id, 1)

        snapshot_service.rebuild_store_snapshot("S1")

        snapshots = snapshot_selector.list_store_snapshots()
        assert len(snapshots) == 1
        assert snapshots[0].occupied_cbm == Decimal("8")

    def test_store_without_slots(self, snapshot_service, db_engine):
        info = snapshot_service.rebuild_store_snapshot("EMPTY")
        assert info.n_slots == 0
        assert info.units == {}
        assert info.capacity_cbm == Decimal("0")

    @pytest.mark.parametrize("store", ["", "  ", None])
    def test_store_required(self, snapshot_service, store):
        with pytest.raises(InvalidSlotDefinitionError):
            snapshot_service.rebuild_store_snapshot(store)

    def test_ignores_occupancy_cache(self, store_layout, snapshot_service, occupancy_service):
        """Snapshot sums stock rows even when the cache is wrong."""
        occupancy_service.apply_slot_occupancy_delta(store_layout["A1"].id, Decimal("3"))

        info = snapshot_service.rebuild_store_snapshot("S1")
        assert info.occupied_cbm == Decimal("6")


class TestRebuildAll:
    def test_one_per_store(self, make_slot, snapshot_service):
        make_slot(store="S2")
        make_slot(store="S1")

        infos = snapshot_service.rebuild_all_store_snapshots()
        assert [i.store for i in infos] == ["S1", "S2"]

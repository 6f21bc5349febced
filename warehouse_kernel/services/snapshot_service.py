"""
SnapshotService -- per-store capacity and occupancy summaries.

Builds one StoreSnapshot row per store from the slot registry and the stock
ledger.  Occupancy is summed from SlotItem rows rather than read from the
occupancy cache, so a snapshot is correct even if the cache has drifted.
Not on the write path of any stock operation; rebuilding is always safe.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select

from warehouse_kernel.db.types import ZERO_CBM, round_cbm, to_cbm
from warehouse_kernel.domain.dtos import StoreSnapshotInfo
from warehouse_kernel.domain.occupancy import fill_ratio, free_cbm, natural_sort_key
from warehouse_kernel.exceptions import InvalidSlotDefinitionError
from warehouse_kernel.logging_config import get_logger
from warehouse_kernel.models.slot import Slot
from warehouse_kernel.models.slot_item import SlotItem
from warehouse_kernel.models.snapshot import StoreSnapshot
from warehouse_kernel.selectors.snapshot_selector import snapshot_to_info
from warehouse_kernel.services.base import BaseService

logger = get_logger("services.snapshot")


def _slot_entry(slot: Slot, occupied: Decimal, n_items: int) -> dict[str, Any]:
    return {
        "id": str(slot.id),
        "label": slot.label,
        "position": slot.position,
        "capacity_cbm": str(round_cbm(to_cbm(slot.capacity_cbm))),
        "occupied_cbm": str(occupied),
        "free_cbm": str(free_cbm(slot.capacity_cbm, occupied)),
        "fill_percent": str(fill_ratio(occupied, slot.capacity_cbm)),
        "n_items": n_items,
        "is_active": bool(slot.is_active),
    }


class SnapshotService(BaseService):
    """Rebuilds StoreSnapshot rows."""

    def rebuild_store_snapshot(self, store: str) -> StoreSnapshotInfo:
        """
        Recompute and upsert the snapshot of one store.

        A store without slots gets an empty, zeroed snapshot.

        Raises:
            InvalidSlotDefinitionError: Missing store code.
        """
        if not isinstance(store, str) or not store.strip():
            raise InvalidSlotDefinitionError("store", "is required")
        store = store.strip()

        with self._unit_of_work("rebuild_store_snapshot"):
            slots = list(
                self.session.execute(select(Slot).where(Slot.store == store)).scalars()
            )
            totals: dict = {}
            if slots:
                rows = self.session.execute(
                    select(
                        SlotItem.slot_id,
                        func.coalesce(func.sum(SlotItem.cbm), 0),
                        func.count(SlotItem.id),
                    )
                    .where(SlotItem.slot_id.in_([s.id for s in slots]))
                    .group_by(SlotItem.slot_id)
                )
                for slot_id, cbm, count in rows:
                    totals[slot_id] = (round_cbm(to_cbm(cbm)), int(count))

            by_unit: dict[str, list[Slot]] = defaultdict(list)
            for slot in slots:
                by_unit[slot.unit].append(slot)

            units: dict[str, Any] = {}
            store_capacity = ZERO_CBM
            store_occupied = ZERO_CBM
            n_slot_items = 0
            for unit in sorted(by_unit, key=natural_sort_key):
                entries = []
                unit_capacity = ZERO_CBM
                unit_occupied = ZERO_CBM
                for slot in sorted(by_unit[unit], key=lambda s: natural_sort_key(s.label)):
                    occupied, n_items = totals.get(slot.id, (ZERO_CBM, 0))
                    entries.append(_slot_entry(slot, occupied, n_items))
                    unit_capacity += to_cbm(slot.capacity_cbm)
                    unit_occupied += occupied
                    n_slot_items += n_items
                units[unit] = {
                    "capacity_cbm": str(round_cbm(unit_capacity)),
                    "occupied_cbm": str(round_cbm(unit_occupied)),
                    "free_cbm": str(free_cbm(unit_capacity, unit_occupied)),
                    "n_slots": len(entries),
                    "slots_by_label": {entry["label"]: entry for entry in entries},
                    "slots_ordered": entries,
                }
                store_capacity += unit_capacity
                store_occupied += unit_occupied

            snapshot = self.session.execute(
                select(StoreSnapshot).where(StoreSnapshot.store == store).with_for_update()
            ).scalar_one_or_none()
            if snapshot is None:
                snapshot = StoreSnapshot(store=store)
                self.session.add(snapshot)
            snapshot.capacity_cbm = round_cbm(store_capacity)
            snapshot.occupied_cbm = round_cbm(store_occupied)
            snapshot.free_cbm = free_cbm(store_capacity, store_occupied)
            snapshot.n_units = len(units)
            snapshot.n_slots = len(slots)
            snapshot.n_slot_items = n_slot_items
            snapshot.units = units
            snapshot.generated_at = self.clock.now()
            self.session.flush()

            logger.info(
                "store_snapshot_rebuilt",
                extra={
                    "store": store,
                    "n_slots": len(slots),
                    "occupied_cbm": str(snapshot.occupied_cbm),
                },
            )
            return snapshot_to_info(snapshot)

    def rebuild_all_store_snapshots(self) -> tuple[StoreSnapshotInfo, ...]:
        """Rebuild the snapshot of every store that has slots."""
        stores = self.session.execute(
            select(Slot.store).distinct().order_by(Slot.store)
        ).scalars().all()
        return tuple(self.rebuild_store_snapshot(store) for store in stores)

"""
OccupancyService -- the per-slot occupancy cache.

Responsibility:
    Maintains Slot.occupied_cbm and Slot.fill_percent.  Every stock write
    reports its volume change here as a signed delta; the full rebuild
    exists for recovery and drift detection.

Architecture position:
    Kernel > Services.  apply_slot_occupancy_delta() is the only code path
    that changes occupancy during normal operation.

Invariants enforced:
    OCCUPANCY_ACCURACY -- deltas are applied by a single atomic SQL UPDATE
        (no read-modify-write race) in the same transaction as the stock
        write that caused them.  occupied_cbm is clamped at zero.

Failure modes:
    - SlotNotFoundError if the slot does not exist (non-zero delta only).

Audit relevance:
    rebuild_slot_occupancy() logs every slot whose cached value disagreed
    with the ledger (``occupancy_drift_detected``).
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import case, func, select, update

from warehouse_kernel.db.types import ZERO_CBM, round_cbm, to_cbm
from warehouse_kernel.domain.dtos import OccupancyRebuildResult
from warehouse_kernel.domain.occupancy import fill_ratio
from warehouse_kernel.domain.values import parse_id
from warehouse_kernel.exceptions import SlotNotFoundError
from warehouse_kernel.logging_config import get_logger
from warehouse_kernel.models.slot import Slot
from warehouse_kernel.models.slot_item import SlotItem
from warehouse_kernel.services.base import BaseService

logger = get_logger("services.occupancy")

# Differences below this are rounding noise, not drift
_DRIFT_TOLERANCE = Decimal("0.000001")


class OccupancyService(BaseService):
    """Incremental and full maintenance of the slot occupancy cache."""

    def apply_slot_occupancy_delta(self, slot_id: UUID | str, delta_cbm: Decimal) -> None:
        """
        Add ``delta_cbm`` to a slot's occupancy.

        Never reads SlotItem rows.  A zero delta is a no-op.

        Postconditions:
            occupied_cbm = max(0, occupied_cbm + delta)
            fill_percent = occupied_cbm / capacity_cbm (0 if capacity is 0)

        Raises:
            SlotNotFoundError: If the slot does not exist.
        """
        slot_id = parse_id(slot_id, "slot_id")
        delta = round_cbm(to_cbm(delta_cbm))
        if delta == 0:
            return

        with self._unit_of_work("apply_slot_occupancy_delta", slot_id=slot_id):
            summed = Slot.occupied_cbm + delta
            new_occupied = case((summed < 0, ZERO_CBM), else_=summed)
            new_fill = case(
                (Slot.capacity_cbm > 0, new_occupied / Slot.capacity_cbm),
                else_=ZERO_CBM,
            )
            result = self.session.execute(
                update(Slot)
                .where(Slot.id == slot_id)
                .values(occupied_cbm=new_occupied, fill_percent=new_fill)
                .execution_options(synchronize_session="fetch")
            )
            if result.rowcount == 0:
                raise SlotNotFoundError(str(slot_id))

            logger.debug(
                "occupancy_delta_applied",
                extra={"slot_id": str(slot_id), "delta_cbm": str(delta)},
            )

    def rebuild_slot_occupancy(self, store: str | None = None) -> OccupancyRebuildResult:
        """
        Recompute occupancy for every slot (optionally one store) from the
        stock ledger and overwrite the cache.

        Idempotent; each slot is computed independently.
        """
        with self._unit_of_work("rebuild_slot_occupancy"):
            slot_query = select(Slot).order_by(Slot.store, Slot.unit, Slot.position)
            if store:
                slot_query = slot_query.where(Slot.store == store)
            slots = list(self.session.execute(slot_query).scalars())

            totals_query = (
                select(SlotItem.slot_id, func.coalesce(func.sum(SlotItem.cbm), 0))
                .group_by(SlotItem.slot_id)
            )
            if store:
                totals_query = totals_query.where(
                    SlotItem.slot_id.in_(select(Slot.id).where(Slot.store == store))
                )
            totals = {
                slot_id: round_cbm(to_cbm(total))
                for slot_id, total in self.session.execute(totals_query)
            }

            drifted: list[UUID] = []
            for slot in slots:
                occupied = totals.get(slot.id, ZERO_CBM)
                cached = to_cbm(slot.occupied_cbm)
                if abs(cached - occupied) > _DRIFT_TOLERANCE:
                    drifted.append(slot.id)
                    logger.warning(
                        "occupancy_drift_detected",
                        extra={
                            "slot_id": str(slot.id),
                            "label": slot.label,
                            "cached_cbm": str(cached),
                            "ledger_cbm": str(occupied),
                        },
                    )
                slot.occupied_cbm = occupied
                slot.fill_percent = fill_ratio(occupied, slot.capacity_cbm)

            logger.info(
                "occupancy_rebuilt",
                extra={
                    "store": store,
                    "updated": len(slots),
                    "drifted": len(drifted),
                },
            )

        return OccupancyRebuildResult(
            updated=len(slots),
            store=store,
            drifted_slot_ids=tuple(drifted),
        )

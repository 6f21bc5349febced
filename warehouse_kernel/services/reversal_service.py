"""
ReversalService -- restock a finalized order after it is cancelled.

Responsibility:
    Puts back the stock a finalize deducted.  The order's Deducted
    allocations are the deduction record: each one re-increments (or
    re-creates) its SlotItem, writes an ADJUST_IN movement tagged as a
    reversal, and adds its volume back to the slot's occupancy.

Architecture position:
    Kernel > Services.  Consumes MovementLog, OccupancyService and
    AllocationService (rollup) on the same session.

Invariants enforced:
    ALL_OR_NOTHING -- every slot's capacity is checked before any stock is
        written; one slot over its ceiling aborts the whole reversal.
    A slot may end above its nominal capacity, but never above
    ``capacity * policy.over_capacity_ratio``.

Failure modes:
    - OrderNotFoundError (404).
    - OrderNotCancelledError, NothingToReverseError (409).
    - SlotCapacityExceededError (409).  Not retried automatically.
"""

from collections import defaultdict
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select, update

from warehouse_kernel.db.types import ZERO_CBM, round_cbm, to_cbm
from warehouse_kernel.domain.dtos import ReversalResult
from warehouse_kernel.domain.movements import AdjustIn
from warehouse_kernel.domain.occupancy import capacity_ceiling, line_cbm
from warehouse_kernel.domain.statuses import AllocationStatus, status_value
from warehouse_kernel.domain.values import parse_id, parse_optional_id
from warehouse_kernel.exceptions import (
    NothingToReverseError,
    OrderNotCancelledError,
    OrderNotFoundError,
    SlotCapacityExceededError,
    SlotNotFoundError,
)
from warehouse_kernel.logging_config import get_logger
from warehouse_kernel.models.allocation import OrderAllocation
from warehouse_kernel.models.order import Order
from warehouse_kernel.models.product import Product
from warehouse_kernel.models.slot import Slot
from warehouse_kernel.models.slot_item import SlotItem
from warehouse_kernel.services.allocation_service import AllocationService
from warehouse_kernel.services.base import BaseService
from warehouse_kernel.services.movement_log import MovementLog
from warehouse_kernel.services.occupancy_service import OccupancyService

logger = get_logger("services.reversal")

REVERSAL_NOTE = "reversal"


class ReversalService(BaseService):
    """Restocking of cancelled, finalized orders."""

    def __init__(self, session, clock=None, policy=None, auto_commit: bool = True):
        super().__init__(session, clock=clock, policy=policy, auto_commit=auto_commit)
        self._movements = MovementLog(session, clock=self.clock, policy=self.policy)
        self._occupancy = OccupancyService(session, clock=self.clock, policy=self.policy)
        self._allocations = AllocationService(session, clock=self.clock, policy=self.policy)

    def reverse_finalized_order(
        self,
        order_id: UUID | str,
        actor_id: UUID | str | None = None,
    ) -> ReversalResult:
        """
        Restock every Deducted allocation of a cancelled order.

        Postconditions:
            - SlotItems re-incremented or re-created; one ADJUST_IN per
              allocation (note "reversal", meta reason "reversal").
            - Occupancy increased once per slot.
            - Allocations flipped to Cancelled; rollup recomputed.
            - stock_finalized_at cleared, stock_reversed_at stamped.
        """
        order_id = parse_id(order_id, "order_id")
        actor_id = parse_optional_id(actor_id, "actor_id")

        with self._unit_of_work("reverse_finalized_order", order_id=order_id, actor_id=actor_id):
            order = self.session.execute(
                select(Order).where(Order.id == order_id).with_for_update()
            ).scalar_one_or_none()
            if order is None:
                raise OrderNotFoundError(str(order_id))

            status = status_value(order.status)
            if status != self.policy.reversal_order_status:
                raise OrderNotCancelledError(str(order_id), status)

            deducted = list(
                self.session.execute(
                    select(OrderAllocation)
                    .where(
                        OrderAllocation.order_id == order_id,
                        OrderAllocation.status == AllocationStatus.DEDUCTED.value,
                    )
                    .order_by(OrderAllocation.slot_id, OrderAllocation.product_id)
                    .with_for_update()
                ).scalars()
            )
            if not deducted or not order.is_stock_finalized:
                raise NothingToReverseError(str(order_id))

            products = {
                p.id: p
                for p in self.session.execute(
                    select(Product).where(Product.id.in_({a.product_id for a in deducted}))
                ).scalars()
            }

            by_slot: dict[UUID, list[OrderAllocation]] = defaultdict(list)
            for allocation in deducted:
                by_slot[allocation.slot_id].append(allocation)

            for slot_id, allocations in by_slot.items():
                incoming = sum(
                    (line_cbm(products[a.product_id].unit_cbm, a.qty) for a in allocations),
                    ZERO_CBM,
                )
                self._check_capacity(slot_id, incoming)

            now = self.clock.now()
            slot_deltas: dict[UUID, Decimal] = defaultdict(lambda: ZERO_CBM)
            movement_ids: list[UUID] = []
            restocked_qty = 0
            for allocation in deducted:
                product = products[allocation.product_id]
                item = self.session.execute(
                    select(SlotItem)
                    .where(
                        SlotItem.product_id == allocation.product_id,
                        SlotItem.slot_id == allocation.slot_id,
                    )
                    .with_for_update()
                ).scalar_one_or_none()
                if item is None:
                    item = SlotItem(
                        product_id=allocation.product_id,
                        slot_id=allocation.slot_id,
                        qty=0,
                        cbm=ZERO_CBM,
                        created_by_id=actor_id,
                    )
                    self.session.add(item)
                before = to_cbm(item.cbm)
                item.qty += allocation.qty
                item.cbm = line_cbm(product.unit_cbm, item.qty)
                item.updated_by_id = actor_id
                slot_deltas[allocation.slot_id] += round_cbm(to_cbm(item.cbm) - before)

                movement = self._movements.record(
                    AdjustIn(
                        product_id=allocation.product_id,
                        slot_id=allocation.slot_id,
                        qty=allocation.qty,
                        unit_cbm=to_cbm(product.unit_cbm),
                        actor_id=actor_id,
                        order_id=order_id,
                        allocation_id=allocation.id,
                        note=REVERSAL_NOTE,
                        meta={"reason": REVERSAL_NOTE},
                    ),
                    event_at=now,
                )
                movement_ids.append(movement.id)
                restocked_qty += allocation.qty
            self.session.flush()

            for slot_id, delta in slot_deltas.items():
                self._occupancy.apply_slot_occupancy_delta(slot_id, delta)

            self.session.execute(
                update(OrderAllocation)
                .where(OrderAllocation.id.in_([a.id for a in deducted]))
                .values(status=AllocationStatus.CANCELLED.value, updated_by_id=actor_id)
                .execution_options(synchronize_session="fetch")
            )
            self._allocations.recompute_allocation_status(order_id)

            order.stock_finalized_at = None
            order.stock_reversed_at = now
            self.session.flush()

            logger.info(
                "reversal_completed",
                extra={
                    "order_id": str(order_id),
                    "restocked_count": len(deducted),
                    "restocked_qty": restocked_qty,
                    "slots": len(slot_deltas),
                },
            )
            return ReversalResult(
                order_id=order_id,
                restocked_count=len(deducted),
                restocked_qty=restocked_qty,
                movement_ids=tuple(movement_ids),
            )

    def _check_capacity(self, slot_id: UUID, incoming_cbm: Decimal) -> None:
        """Raise if restocking ``incoming_cbm`` would pass the slot ceiling."""
        slot = self.session.execute(
            select(Slot).where(Slot.id == slot_id).with_for_update()
        ).scalar_one_or_none()
        if slot is None:
            raise SlotNotFoundError(str(slot_id))

        current = round_cbm(
            to_cbm(
                self.session.execute(
                    select(func.coalesce(func.sum(SlotItem.cbm), 0)).where(
                        SlotItem.slot_id == slot_id
                    )
                ).scalar_one()
            )
        )
        ceiling = capacity_ceiling(slot.capacity_cbm, self.policy.over_capacity_ratio)
        if current + incoming_cbm > ceiling:
            logger.warning(
                "reversal_capacity_exceeded",
                extra={
                    "slot_id": str(slot_id),
                    "label": slot.label,
                    "current_cbm": str(current),
                    "incoming_cbm": str(incoming_cbm),
                    "ceiling_cbm": str(ceiling),
                },
            )
            raise SlotCapacityExceededError(
                str(slot_id), slot.label, current, incoming_cbm, ceiling
            )

"""
FulfillmentService -- finalize: turn an order's reservations into deductions.

Responsibility:
    Converts every Reserved allocation of a delivered, invoiced order into a
    permanent stock deduction: SlotItem rows are decremented (deleted at
    zero), a DEDUCT movement is written per allocation, occupancy is
    reduced once per slot, the allocations flip to Deducted, and the order
    is stamped as stock-finalized.

Architecture position:
    Kernel > Services.  Consumes MovementLog, OccupancyService and
    AllocationService (rollup) on the same session.

Invariants enforced:
    FINALIZE_ONCE -- a second call on a finalized order only refreshes the
        allocation expiry and returns ``already_finalized=True`` with no
        movements.  Safe to retry.
    ALL_OR_NOTHING -- every check and every write happens in one unit of
        work.  A failure on the last allocation leaves no trace of the
        earlier ones.
    CONSERVATION -- one DEDUCT movement per decremented SlotItem.

Failure modes:
    - OrderNotFoundError (404).
    - OrderLockedError (cancelled), OrderNotDeliverableError,
      InvoiceRequiredError, NoReservationsError (409).
    - PartiallyDeductedError, ForeignProductAllocationError (409, need
      manual correction).
    - IncompleteReservationError (409): reserved totals differ from the
      ordered quantities.
    - SlotItemNotFoundError (404) / StockChangedError (409, retryable) when
      stock moved underneath the reservation.

Audit relevance:
    ``finalize_started`` / ``finalize_completed`` bracket every finalize;
    deducted_at / deducted_by_id on each allocation record who did it.
"""

from collections import defaultdict
from datetime import timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update

from warehouse_kernel.db.types import ZERO_CBM, round_cbm, to_cbm
from warehouse_kernel.domain.dtos import FinalizeResult
from warehouse_kernel.domain.movements import Deduct
from warehouse_kernel.domain.occupancy import unit_cbm_of
from warehouse_kernel.domain.statuses import AllocationStatus, OrderStatus, status_value
from warehouse_kernel.domain.values import parse_id, parse_optional_id
from warehouse_kernel.exceptions import (
    ForeignProductAllocationError,
    IncompleteReservationError,
    InvoiceRequiredError,
    NoReservationsError,
    OrderLockedError,
    OrderNotDeliverableError,
    OrderNotFoundError,
    PartiallyDeductedError,
    SlotItemNotFoundError,
    StockChangedError,
)
from warehouse_kernel.logging_config import get_logger
from warehouse_kernel.models.allocation import OrderAllocation
from warehouse_kernel.models.order import Order
from warehouse_kernel.models.slot_item import SlotItem
from warehouse_kernel.services.allocation_service import AllocationService
from warehouse_kernel.services.base import BaseService
from warehouse_kernel.services.movement_log import MovementLog
from warehouse_kernel.services.occupancy_service import OccupancyService

logger = get_logger("services.fulfillment")


class FulfillmentService(BaseService):
    """Stock finalization for delivered orders."""

    def __init__(self, session, clock=None, policy=None, auto_commit: bool = True):
        super().__init__(session, clock=clock, policy=policy, auto_commit=auto_commit)
        self._movements = MovementLog(session, clock=self.clock, policy=self.policy)
        self._occupancy = OccupancyService(session, clock=self.clock, policy=self.policy)
        self._allocations = AllocationService(session, clock=self.clock, policy=self.policy)

    def finalize_allocations(
        self,
        order_id: UUID | str,
        actor_id: UUID | str | None = None,
    ) -> FinalizeResult:
        """
        Deduct the stock reserved for an order.

        Preconditions:
            - The order exists, is not Cancelled, and is in the finalize
              status (Delivered).
            - The order has an invoice (when the policy requires one).
            - Reserved totals per product equal the ordered quantities.

        Postconditions:
            - Each reserved SlotItem is decremented by its allocation qty and
              deleted at zero; one DEDUCT movement each.
            - Occupancy reduced by the consumed volume, once per slot.
            - Allocations are Deducted with deducted_at / deducted_by_id.
            - order.stock_finalized_at is set (kept if already set) and all
              the order's allocations expire after the grace window.

        Returns:
            FinalizeResult.
        """
        order_id = parse_id(order_id, "order_id")
        actor_id = parse_optional_id(actor_id, "actor_id")

        with self._unit_of_work("finalize_allocations", order_id=order_id, actor_id=actor_id):
            order = self.session.execute(
                select(Order).where(Order.id == order_id).with_for_update()
            ).scalar_one_or_none()
            if order is None:
                raise OrderNotFoundError(str(order_id))

            status = status_value(order.status)
            if status == OrderStatus.CANCELLED.value:
                raise OrderLockedError(str(order_id), status, "order is cancelled")
            if status != self.policy.finalize_order_status:
                raise OrderNotDeliverableError(
                    str(order_id), status, self.policy.finalize_order_status
                )
            if self.policy.require_invoice_for_finalize and not order.has_invoice:
                raise InvoiceRequiredError(str(order_id))

            if order.is_stock_finalized:
                self._refresh_expiry(order)
                logger.info(
                    "finalize_already_done",
                    extra={"order_id": str(order_id)},
                )
                return FinalizeResult(order_id=order_id, already_finalized=True)

            allocations = list(
                self.session.execute(
                    select(OrderAllocation)
                    .where(OrderAllocation.order_id == order_id)
                    .order_by(OrderAllocation.slot_id, OrderAllocation.product_id)
                    .with_for_update()
                ).scalars()
            )
            reserved = [a for a in allocations if a.is_reserved]
            deducted = [a for a in allocations if a.is_deducted]
            ordered = order.ordered_quantities()

            for allocation in reserved + deducted:
                if allocation.product_id not in ordered:
                    raise ForeignProductAllocationError(str(order_id), str(allocation.product_id))

            if deducted and reserved:
                raise PartiallyDeductedError(str(order_id), len(deducted), len(reserved))
            if deducted:
                return self._finish_legacy_deduction(order, deducted, ordered)
            if not reserved:
                raise NoReservationsError(str(order_id))

            totals: dict[UUID, int] = defaultdict(int)
            for allocation in reserved:
                totals[allocation.product_id] += allocation.qty
            for product_id, ordered_qty in ordered.items():
                if totals.get(product_id, 0) != ordered_qty:
                    raise IncompleteReservationError(
                        str(order_id), str(product_id), ordered_qty, totals.get(product_id, 0)
                    )

            logger.info(
                "finalize_started",
                extra={"order_id": str(order_id), "allocations": len(reserved)},
            )

            now = self.clock.now()
            slot_deltas: dict[UUID, Decimal] = defaultdict(lambda: ZERO_CBM)
            movement_ids: list[UUID] = []
            deducted_qty = 0
            for allocation in reserved:
                item = self.session.execute(
                    select(SlotItem)
                    .where(
                        SlotItem.product_id == allocation.product_id,
                        SlotItem.slot_id == allocation.slot_id,
                    )
                    .with_for_update()
                ).scalar_one_or_none()
                if item is None:
                    raise SlotItemNotFoundError(
                        f"{allocation.product_id}@{allocation.slot_id}",
                        product_id=str(allocation.product_id),
                        slot_id=str(allocation.slot_id),
                    )
                if item.qty < allocation.qty:
                    raise StockChangedError(
                        str(order_id),
                        str(allocation.product_id),
                        str(allocation.slot_id),
                        item.qty,
                        allocation.qty,
                    )

                unit_cbm = unit_cbm_of(item.cbm, item.qty)
                consumed = round_cbm(unit_cbm * allocation.qty)
                remaining = item.qty - allocation.qty
                if remaining == 0:
                    consumed = round_cbm(to_cbm(item.cbm))
                    self.session.delete(item)
                else:
                    item.qty = remaining
                    item.cbm = max(round_cbm(to_cbm(item.cbm) - consumed), ZERO_CBM)
                    item.updated_by_id = actor_id
                slot_deltas[allocation.slot_id] -= consumed

                movement = self._movements.record(
                    Deduct(
                        product_id=allocation.product_id,
                        slot_id=allocation.slot_id,
                        qty=allocation.qty,
                        unit_cbm=unit_cbm,
                        actor_id=actor_id,
                        order_id=order_id,
                        allocation_id=allocation.id,
                        consumed_cbm=consumed,
                    ),
                    event_at=now,
                )
                movement_ids.append(movement.id)
                deducted_qty += allocation.qty

            for slot_id, delta in slot_deltas.items():
                self._occupancy.apply_slot_occupancy_delta(slot_id, delta)

            self.session.execute(
                update(OrderAllocation)
                .where(OrderAllocation.id.in_([a.id for a in reserved]))
                .values(
                    status=AllocationStatus.DEDUCTED.value,
                    deducted_at=now,
                    deducted_by_id=actor_id,
                    updated_by_id=actor_id,
                )
                .execution_options(synchronize_session="fetch")
            )
            self._allocations.recompute_allocation_status(order_id)

            if order.stock_finalized_at is None:
                order.stock_finalized_at = now
            self._refresh_expiry(order)

            logger.info(
                "finalize_completed",
                extra={
                    "order_id": str(order_id),
                    "deducted_count": len(reserved),
                    "deducted_qty": deducted_qty,
                    "slots": len(slot_deltas),
                },
            )
            return FinalizeResult(
                order_id=order_id,
                already_finalized=False,
                deducted_count=len(reserved),
                deducted_qty=deducted_qty,
                movement_ids=tuple(movement_ids),
            )

    def _finish_legacy_deduction(
        self,
        order: Order,
        deducted: list[OrderAllocation],
        ordered: dict[UUID, int],
    ) -> FinalizeResult:
        """Stamp an order whose allocations were deducted without the stamp."""
        totals: dict[UUID, int] = defaultdict(int)
        for allocation in deducted:
            totals[allocation.product_id] += allocation.qty
        if dict(totals) != ordered:
            raise PartiallyDeductedError(str(order.id), len(deducted), 0)

        order.stock_finalized_at = self.clock.now()
        self._refresh_expiry(order)
        logger.warning(
            "finalize_stamp_repaired",
            extra={"order_id": str(order.id), "deducted_count": len(deducted)},
        )
        return FinalizeResult(order_id=order.id, already_finalized=True)

    def _refresh_expiry(self, order: Order) -> None:
        expires_at = (order.stock_finalized_at or self.clock.now()) + timedelta(
            days=self.policy.allocation_grace_days
        )
        self.session.execute(
            update(OrderAllocation)
            .where(OrderAllocation.order_id == order.id)
            .values(expires_at=expires_at)
            .execution_options(synchronize_session="fetch")
        )
        self.session.flush()

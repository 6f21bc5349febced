"""
AllocationService -- reservations of slot stock for orders.

Responsibility:
    Creates, changes, and releases OrderAllocation rows while the order is
    open, records a RESERVE / RELEASE movement for every change, and keeps
    the order's allocation rollup (Unallocated / PartiallyAllocated /
    Allocated) current.  Purges finalized allocations once their grace
    window has passed.

Architecture position:
    Kernel > Services.  Consumes MovementLog.  FulfillmentService and
    ReversalService reuse recompute_allocation_status() on the same session.

Invariants enforced:
    NO_OVERBOOKING -- availability is read under a row lock on the SlotItem
        (and the order), inside the transaction that writes the allocation.
        Two concurrent reservations for the same stock row serialize; the
        second one sees the first one's reservation.
    NO_OVER_ORDERING -- the order's Reserved + Deducted total per product
        never exceeds the ordered qty.
    Allocation edits are refused once any allocation of the order is
    Deducted, once stock is finalized, and outside the reservable statuses.

Failure modes:
    - OrderNotFoundError, SlotItemNotFoundError, AllocationNotFoundError (404).
    - ProductNotInOrderError, InvalidQuantityError,
      AllocationOrderMismatchError (400).
    - OrderLockedError, StockFinalizedError, AllocationsDeductedError (409).
    - InsufficientAvailableStockError, OrderedQuantityExceededError (409).

Audit relevance:
    RESERVE / RELEASE movements carry the order and allocation ids and the
    acting user, so the reservation history of any stock row is replayable
    from the movement log.
"""

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import delete, func, select

from warehouse_kernel.db.types import ZERO_CBM
from warehouse_kernel.domain.allocation import (
    Availability,
    compute_rollup,
    exceeds_ordered,
    next_allocated_at,
)
from warehouse_kernel.domain.dtos import AllocationChange, AllocationInfo, AllocationResult
from warehouse_kernel.domain.movements import Release, Reserve
from warehouse_kernel.domain.occupancy import unit_cbm_of
from warehouse_kernel.domain.statuses import (
    ACTIVE_ALLOCATION_STATUSES,
    AllocationRollup,
    AllocationStatus,
    OrderStatus,
    status_value,
)
from warehouse_kernel.domain.values import parse_id, parse_optional_id, parse_positive_int
from warehouse_kernel.exceptions import (
    AllocationNotFoundError,
    AllocationOrderMismatchError,
    AllocationsDeductedError,
    InsufficientAvailableStockError,
    InvalidQuantityError,
    OrderLockedError,
    OrderNotFoundError,
    OrderedQuantityExceededError,
    ProductNotInOrderError,
    SlotItemNotFoundError,
    StockFinalizedError,
)
from warehouse_kernel.logging_config import get_logger
from warehouse_kernel.models.allocation import OrderAllocation
from warehouse_kernel.models.order import Order
from warehouse_kernel.models.slot_item import SlotItem
from warehouse_kernel.selectors.allocation_selector import allocation_to_info
from warehouse_kernel.services.base import BaseService
from warehouse_kernel.services.movement_log import MovementLog

logger = get_logger("services.allocation")

# Statuses in which no allocation edit is ever allowed, whatever the policy says
_TERMINAL_ORDER_STATUSES = frozenset(
    {OrderStatus.DELIVERED.value, OrderStatus.CANCELLED.value}
)


class AllocationService(BaseService):
    """Reservation writes and the order allocation rollup."""

    def __init__(self, session, clock=None, policy=None, auto_commit: bool = True):
        super().__init__(session, clock=clock, policy=policy, auto_commit=auto_commit)
        self._movements = MovementLog(session, clock=self.clock, policy=self.policy)

    # =========================================================================
    # Public API
    # =========================================================================

    def upsert_allocation(
        self,
        order_id: UUID | str,
        product_id: UUID | str,
        slot_id: UUID | str,
        qty: int,
        note: str | None = None,
        actor_id: UUID | str | None = None,
    ) -> AllocationResult:
        """
        Set the order's reservation of a product in a slot to ``qty``.

        Preconditions:
            - The order exists, is open for allocation edits, and has no
              Deducted allocation.
            - The product is one of the order's lines.
            - A stock row exists for (product, slot).
            - qty fits within that row's on-hand qty minus other orders'
              Reserved qty.  This holds for decreases too: a holding left
              over the limit after stock shrank must come down to it in one
              step, or be deleted with delete_allocation().

        Postconditions:
            - Exactly one Reserved allocation row for (order, product, slot)
              with the new qty; deduction stamps cleared.
            - One RESERVE (increase) or RELEASE (decrease) movement for the
              delta; none when qty is unchanged.
            - The order's rollup is recomputed.

        Raises:
            See module docstring.
        """
        order_id = parse_id(order_id, "order_id")
        product_id = parse_id(product_id, "product_id")
        slot_id = parse_id(slot_id, "slot_id")
        qty = parse_positive_int(qty, "qty")
        actor_id = parse_optional_id(actor_id, "actor_id")

        with self._unit_of_work("upsert_allocation", order_id=order_id, actor_id=actor_id):
            order = self._lock_order(order_id)
            self._assert_editable(order)
            allocation, delta, movement_id = self._set_reservation(
                order, product_id, slot_id, qty, note, actor_id
            )
            rollup = self._recompute(order)

            logger.info(
                "allocation_upserted",
                extra={
                    "order_id": str(order_id),
                    "product_id": str(product_id),
                    "slot_id": str(slot_id),
                    "qty": qty,
                    "delta_qty": delta,
                    "rollup": rollup.value,
                },
            )
            return AllocationResult(
                order_id=order_id,
                allocation=allocation_to_info(allocation),
                delta_qty=delta,
                movement_id=movement_id,
                rollup=rollup,
                invoice_warning=order.has_invoice,
            )

    def delete_allocation(
        self,
        order_id: UUID | str,
        allocation_id: UUID | str,
        actor_id: UUID | str | None = None,
    ) -> AllocationResult:
        """
        Release a reservation entirely.

        Emits a RELEASE movement for the full qty, deletes the row, and
        recomputes the rollup.

        Raises:
            AllocationNotFoundError: Unknown allocation.
            AllocationOrderMismatchError: The allocation belongs to another order.
            Plus the order lock checks of upsert_allocation().
        """
        order_id = parse_id(order_id, "order_id")
        allocation_id = parse_id(allocation_id, "allocation_id")
        actor_id = parse_optional_id(actor_id, "actor_id")

        with self._unit_of_work("delete_allocation", order_id=order_id, actor_id=actor_id):
            order = self._lock_order(order_id)
            self._assert_editable(order)

            allocation = self.session.execute(
                select(OrderAllocation)
                .where(OrderAllocation.id == allocation_id)
                .with_for_update()
            ).scalar_one_or_none()
            if allocation is None:
                raise AllocationNotFoundError(str(allocation_id))
            if allocation.order_id != order.id:
                raise AllocationOrderMismatchError(str(allocation_id), str(order_id))

            released_qty = allocation.qty
            movement_id = self._release(allocation, actor_id)
            rollup = self._recompute(order)

            logger.info(
                "allocation_deleted",
                extra={
                    "order_id": str(order_id),
                    "allocation_id": str(allocation_id),
                    "released_qty": released_qty,
                    "rollup": rollup.value,
                },
            )
            return AllocationResult(
                order_id=order_id,
                allocation=None,
                delta_qty=-released_qty,
                movement_id=movement_id,
                rollup=rollup,
                invoice_warning=order.has_invoice,
            )

    def apply_allocation_changes(
        self,
        order_id: UUID | str,
        changes: Sequence[AllocationChange],
        actor_id: UUID | str | None = None,
    ) -> tuple[AllocationResult, ...]:
        """
        Apply several reservation changes for one order atomically.

        Reductions (including qty == 0 releases) are applied before
        increases, so stock freed in one slot can be re-reserved in another
        within the same call.  Any failure rolls back every change.
        """
        order_id = parse_id(order_id, "order_id")
        actor_id = parse_optional_id(actor_id, "actor_id")
        normalized: list[AllocationChange] = []
        for change in changes:
            qty = change.qty
            if isinstance(qty, bool) or not isinstance(qty, int) or qty < 0:
                raise InvalidQuantityError("qty", qty, "must be a non-negative integer")
            normalized.append(
                AllocationChange(
                    product_id=parse_id(change.product_id, "product_id"),
                    slot_id=parse_id(change.slot_id, "slot_id"),
                    qty=qty,
                    note=change.note,
                )
            )

        with self._unit_of_work("apply_allocation_changes", order_id=order_id, actor_id=actor_id):
            order = self._lock_order(order_id)
            self._assert_editable(order)

            current = {
                (a.product_id, a.slot_id): a
                for a in self._order_allocations(order.id)
            }

            def held(change: AllocationChange) -> int:
                existing = current.get((change.product_id, change.slot_id))
                return existing.qty if existing is not None and existing.is_reserved else 0

            decreases = [c for c in normalized if c.qty < held(c)]
            others = [c for c in normalized if c.qty >= held(c)]

            applied: list[tuple[AllocationInfo | None, int, UUID | None]] = []
            for change in decreases + others:
                if change.qty == 0:
                    existing = current.get((change.product_id, change.slot_id))
                    if existing is None:
                        continue
                    released = existing.qty
                    movement_id = self._release(existing, actor_id)
                    applied.append((None, -released, movement_id))
                    continue
                allocation, delta, movement_id = self._set_reservation(
                    order, change.product_id, change.slot_id, change.qty, change.note, actor_id
                )
                applied.append((allocation_to_info(allocation), delta, movement_id))

            rollup = self._recompute(order)
            logger.info(
                "allocation_changes_applied",
                extra={
                    "order_id": str(order_id),
                    "changes": len(applied),
                    "rollup": rollup.value,
                },
            )
            return tuple(
                AllocationResult(
                    order_id=order_id,
                    allocation=info,
                    delta_qty=delta,
                    movement_id=movement_id,
                    rollup=rollup,
                    invoice_warning=order.has_invoice,
                )
                for info, delta, movement_id in applied
            )

    def recompute_allocation_status(self, order_id: UUID | str) -> AllocationRollup:
        """
        Recompute and store the order's allocation rollup.

        Sums Reserved + Deducted qty per product (Cancelled excluded) and
        compares with the order lines.  allocated_at is stamped on entry
        into Allocated and cleared on exit.
        """
        order_id = parse_id(order_id, "order_id")
        with self._unit_of_work("recompute_allocation_status", order_id=order_id):
            order = self._lock_order(order_id)
            return self._recompute(order)

    def purge_expired_allocations(self) -> int:
        """
        Delete finalized or cancelled allocations whose expiry has passed.

        Reserved rows never carry an expiry and are never purged.  No
        movements are recorded: the stock effect of a purged row was logged
        when it was deducted or reversed.  Once purged, an order can no
        longer be reversed from its allocations.

        Returns:
            The number of rows deleted.
        """
        with self._unit_of_work("purge_expired_allocations"):
            now = self.clock.now()
            result = self.session.execute(
                delete(OrderAllocation)
                .where(
                    OrderAllocation.expires_at.is_not(None),
                    OrderAllocation.expires_at <= now,
                    OrderAllocation.status != AllocationStatus.RESERVED.value,
                )
                .execution_options(synchronize_session="fetch")
            )
            purged = result.rowcount or 0
            self.session.flush()

            logger.info(
                "expired_allocations_purged",
                extra={"purged": purged, "cutoff": now.isoformat()},
            )
            return purged

    # =========================================================================
    # Internal
    # =========================================================================

    def _lock_order(self, order_id: UUID) -> Order:
        order = self.session.execute(
            select(Order).where(Order.id == order_id).with_for_update()
        ).scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(str(order_id))
        return order

    def _assert_editable(self, order: Order) -> None:
        if order.is_stock_finalized:
            raise StockFinalizedError(str(order.id))
        status = status_value(order.status)
        if status in _TERMINAL_ORDER_STATUSES:
            raise OrderLockedError(str(order.id), status, "order is closed")
        if status not in self.policy.reservable_order_statuses:
            raise OrderLockedError(
                str(order.id),
                status,
                f"allocations can be edited only in {', '.join(sorted(self.policy.reservable_order_statuses))}",
            )
        deducted = self.session.execute(
            select(func.count())
            .select_from(OrderAllocation)
            .where(
                OrderAllocation.order_id == order.id,
                OrderAllocation.status == AllocationStatus.DEDUCTED.value,
            )
        ).scalar_one()
        if deducted:
            raise AllocationsDeductedError(str(order.id))

    def _order_allocations(self, order_id: UUID) -> list[OrderAllocation]:
        return list(
            self.session.execute(
                select(OrderAllocation)
                .where(OrderAllocation.order_id == order_id)
                .with_for_update()
            ).scalars()
        )

    def _set_reservation(
        self,
        order: Order,
        product_id: UUID,
        slot_id: UUID,
        qty: int,
        note: str | None,
        actor_id: UUID | None,
    ) -> tuple[OrderAllocation, int, UUID | None]:
        """Validate and write one reservation.  Caller holds the order lock."""
        ordered = order.ordered_quantities()
        if product_id not in ordered:
            raise ProductNotInOrderError(str(order.id), str(product_id))

        item = self.session.execute(
            select(SlotItem)
            .where(SlotItem.product_id == product_id, SlotItem.slot_id == slot_id)
            .with_for_update()
        ).scalar_one_or_none()
        if item is None:
            raise SlotItemNotFoundError(
                f"{product_id}@{slot_id}", product_id=str(product_id), slot_id=str(slot_id)
            )

        existing = self.session.execute(
            select(OrderAllocation)
            .where(
                OrderAllocation.order_id == order.id,
                OrderAllocation.product_id == product_id,
                OrderAllocation.slot_id == slot_id,
            )
            .with_for_update()
        ).scalar_one_or_none()
        previous_qty = existing.qty if existing is not None and existing.is_reserved else 0

        reserved_by_others = self.session.execute(
            select(func.coalesce(func.sum(OrderAllocation.qty), 0)).where(
                OrderAllocation.product_id == product_id,
                OrderAllocation.slot_id == slot_id,
                OrderAllocation.status == AllocationStatus.RESERVED.value,
                OrderAllocation.order_id != order.id,
            )
        ).scalar_one()
        availability = Availability(
            on_hand_qty=item.qty,
            reserved_by_others=int(reserved_by_others),
            existing_qty=previous_qty,
        )
        if not availability.admits(qty):
            raise InsufficientAvailableStockError(
                product_id=str(product_id),
                slot_id=str(slot_id),
                requested_qty=qty,
                available_qty=availability.available_qty,
                on_hand_qty=availability.on_hand_qty,
                reserved_by_others=availability.reserved_by_others,
            )

        allocated_elsewhere = self.session.execute(
            select(func.coalesce(func.sum(OrderAllocation.qty), 0)).where(
                OrderAllocation.order_id == order.id,
                OrderAllocation.product_id == product_id,
                OrderAllocation.slot_id != slot_id,
                OrderAllocation.status.in_(ACTIVE_ALLOCATION_STATUSES),
            )
        ).scalar_one()
        if exceeds_ordered(ordered[product_id], int(allocated_elsewhere), qty):
            raise OrderedQuantityExceededError(
                order_id=str(order.id),
                product_id=str(product_id),
                ordered_qty=ordered[product_id],
                allocated_qty=int(allocated_elsewhere) + qty,
            )

        if existing is None:
            existing = OrderAllocation(
                order_id=order.id,
                product_id=product_id,
                slot_id=slot_id,
                created_by_id=actor_id,
            )
            self.session.add(existing)
        existing.qty = qty
        existing.status = AllocationStatus.RESERVED.value
        existing.deducted_at = None
        existing.deducted_by_id = None
        existing.expires_at = None
        existing.updated_by_id = actor_id
        if note is not None:
            existing.note = note
        self.session.flush()

        delta = qty - previous_qty
        movement_id = None
        if delta:
            variant = Reserve if delta > 0 else Release
            movement = self._movements.record(
                variant(
                    product_id=product_id,
                    slot_id=slot_id,
                    qty=abs(delta),
                    unit_cbm=unit_cbm_of(item.cbm, item.qty),
                    actor_id=actor_id,
                    order_id=order.id,
                    allocation_id=existing.id,
                    note=note,
                )
            )
            movement_id = movement.id
        return existing, delta, movement_id

    def _release(self, allocation: OrderAllocation, actor_id: UUID | None) -> UUID | None:
        """Delete an allocation, recording a RELEASE for a Reserved one."""
        movement_id = None
        if allocation.is_reserved:
            item = self.session.execute(
                select(SlotItem).where(
                    SlotItem.product_id == allocation.product_id,
                    SlotItem.slot_id == allocation.slot_id,
                )
            ).scalar_one_or_none()
            unit_cbm = unit_cbm_of(item.cbm, item.qty) if item is not None else ZERO_CBM
            movement = self._movements.record(
                Release(
                    product_id=allocation.product_id,
                    slot_id=allocation.slot_id,
                    qty=allocation.qty,
                    unit_cbm=unit_cbm,
                    actor_id=actor_id,
                    order_id=allocation.order_id,
                    allocation_id=allocation.id,
                )
            )
            movement_id = movement.id
        self.session.delete(allocation)
        self.session.flush()
        return movement_id

    def _recompute(self, order: Order) -> AllocationRollup:
        rows = self.session.execute(
            select(OrderAllocation.product_id, func.sum(OrderAllocation.qty))
            .where(
                OrderAllocation.order_id == order.id,
                OrderAllocation.status.in_(ACTIVE_ALLOCATION_STATUSES),
            )
            .group_by(OrderAllocation.product_id)
        ).all()
        allocated = {product_id: int(total) for product_id, total in rows}
        rollup = compute_rollup(order.ordered_quantities(), allocated)

        previous = order.allocation_status
        order.allocation_status = rollup.value
        order.allocated_at = next_allocated_at(rollup, order.allocated_at, self.clock.now())
        self.session.flush()

        if previous != rollup.value:
            logger.info(
                "allocation_rollup_changed",
                extra={
                    "order_id": str(order.id),
                    "from": str(previous),
                    "to": rollup.value,
                },
            )
        return rollup

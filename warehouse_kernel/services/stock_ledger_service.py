"""
StockLedgerService -- direct edits to on-hand stock.

Responsibility:
    Adds stock to a slot (adjust), relocates it between slots (move), and
    removes it (clear).  Each operation updates SlotItem rows, records one
    movement per affected row, and reports the volume change to the
    occupancy cache -- all in one transaction.

Architecture position:
    Kernel > Services.  Consumes MovementLog and OccupancyService on the
    same session.

Invariants enforced:
    CONSERVATION -- every qty change is paired with a movement.
    NO_OVERBOOKING -- stock rows with Reserved allocations cannot be edited
        here (ReservationExistsError).  Release the reservation first.
    OCCUPANCY_ACCURACY -- one occupancy delta per touched slot.

Failure modes:
    - ValidationError subclasses on malformed input (400).
    - Slot/Product/SlotItem NotFoundError (404).
    - ReservationExistsError (409).
"""

from collections.abc import Iterable, Sequence
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from warehouse_kernel.db.types import ZERO_CBM, round_cbm, to_cbm
from warehouse_kernel.domain.dtos import (
    AdjustResult,
    ClearResult,
    MoveLine,
    MoveResult,
)
from warehouse_kernel.domain.movements import AdjustIn, AdjustOut, Move
from warehouse_kernel.domain.occupancy import line_cbm, unit_cbm_of
from warehouse_kernel.domain.statuses import AllocationStatus
from warehouse_kernel.domain.values import parse_id, parse_optional_id, parse_positive_int
from warehouse_kernel.exceptions import (
    InvalidFilterError,
    MoveRequestError,
    ProductNotFoundError,
    ReservationExistsError,
    SlotItemNotFoundError,
    SlotNotFoundError,
)
from warehouse_kernel.logging_config import get_logger
from warehouse_kernel.models.allocation import OrderAllocation
from warehouse_kernel.models.product import Product
from warehouse_kernel.models.slot import Slot
from warehouse_kernel.models.slot_item import SlotItem
from warehouse_kernel.selectors.slot_item_selector import slot_item_to_info
from warehouse_kernel.services.base import BaseService
from warehouse_kernel.services.movement_log import MovementLog
from warehouse_kernel.services.occupancy_service import OccupancyService

logger = get_logger("services.stock_ledger")


def _normalize_move_lines(moves) -> list[MoveLine]:
    """Accept ids, MoveLine, (id, qty) pairs, or {"slot_item_id", "qty"} dicts."""
    if moves is None or isinstance(moves, (str, bytes)) or not isinstance(moves, Iterable):
        raise MoveRequestError("moves must be a list")
    lines: list[MoveLine] = []
    for entry in moves:
        if isinstance(entry, MoveLine):
            item_id, qty = entry.slot_item_id, entry.qty
        elif isinstance(entry, dict):
            item_id, qty = entry.get("slot_item_id"), entry.get("qty")
        elif isinstance(entry, (tuple, list)) and len(entry) == 2:
            item_id, qty = entry
        else:
            item_id, qty = entry, None
        item_id = parse_id(item_id, "slot_item_id")
        if qty is not None:
            qty = parse_positive_int(qty, "qty")
        lines.append(MoveLine(slot_item_id=item_id, qty=qty))
    if not lines:
        raise MoveRequestError("no items to move")
    seen: set[UUID] = set()
    for line in lines:
        if line.slot_item_id in seen:
            raise MoveRequestError("duplicate slot item", str(line.slot_item_id))
        seen.add(line.slot_item_id)
    return lines


class StockLedgerService(BaseService):
    """Adjust, move, and clear stock rows."""

    def __init__(self, session, clock=None, policy=None, auto_commit: bool = True):
        super().__init__(session, clock=clock, policy=policy, auto_commit=auto_commit)
        self._movements = MovementLog(session, clock=self.clock, policy=self.policy)
        self._occupancy = OccupancyService(session, clock=self.clock, policy=self.policy)

    # =========================================================================
    # Adjust
    # =========================================================================

    def adjust_slot_item(
        self,
        product_id: UUID | str,
        slot_id: UUID | str,
        delta_qty: int,
        actor_id: UUID | str | None = None,
        note: str | None = None,
    ) -> AdjustResult:
        """
        Add ``delta_qty`` units of a product to a slot.

        Creates the stock row when absent.  Volume is recomputed from the
        product's current unit_cbm.

        Raises:
            InvalidQuantityError: delta_qty not a positive integer.
            SlotNotFoundError / ProductNotFoundError.
            ReservationExistsError: The stock row has Reserved allocations.
        """
        product_id = parse_id(product_id, "product_id")
        slot_id = parse_id(slot_id, "slot_id")
        delta_qty = parse_positive_int(delta_qty, "delta_qty")
        actor_id = parse_optional_id(actor_id, "actor_id")

        with self._unit_of_work("adjust_slot_item", slot_id=slot_id, actor_id=actor_id):
            self._require_slot(slot_id)
            product = self.session.get(Product, product_id)
            if product is None:
                raise ProductNotFoundError(str(product_id))
            item = self._lock_item(product_id, slot_id)
            self._guard_reservations(slot_id, [product_id])

            created = item is None
            old_cbm = ZERO_CBM
            if created:
                item = SlotItem(
                    product_id=product_id,
                    slot_id=slot_id,
                    qty=delta_qty,
                    created_by_id=actor_id,
                )
                self.session.add(item)
            else:
                old_cbm = to_cbm(item.cbm)
                item.qty += delta_qty
                item.updated_by_id = actor_id
            item.cbm = line_cbm(product.unit_cbm, item.qty)
            self.session.flush()

            delta_cbm = round_cbm(to_cbm(item.cbm) - old_cbm)
            self._occupancy.apply_slot_occupancy_delta(slot_id, delta_cbm)
            movement = self._movements.record(
                AdjustIn(
                    product_id=product_id,
                    slot_id=slot_id,
                    qty=delta_qty,
                    unit_cbm=to_cbm(product.unit_cbm),
                    actor_id=actor_id,
                    note=note,
                )
            )

            logger.info(
                "slot_item_adjusted",
                extra={
                    "product_id": str(product_id),
                    "slot_id": str(slot_id),
                    "delta_qty": delta_qty,
                    "new_qty": item.qty,
                    "delta_cbm": str(delta_cbm),
                    "row_created": created,
                },
            )
            return AdjustResult(
                slot_item=slot_item_to_info(item),
                created=created,
                delta_cbm=delta_cbm,
                movement_id=movement.id,
            )

    # =========================================================================
    # Move
    # =========================================================================

    def move_slot_items(
        self,
        from_slot_id: UUID | str,
        to_slot_id: UUID | str,
        moves: Sequence,
        actor_id: UUID | str | None = None,
        note: str | None = None,
    ) -> MoveResult:
        """
        Relocate stock rows (or parts of them) from one slot to another.

        ``moves`` lists slot item ids (whole rows) or ``(slot_item_id, qty)``
        pairs / MoveLine values (partial).  A row that lands on an existing
        stock row for the same product in the destination merges into it.

        Raises:
            MoveRequestError: Same slot, duplicates, empty list, or qty
                greater than on-hand.
            SlotNotFoundError / SlotItemNotFoundError.
            ReservationExistsError: A moved product is reserved in the
                source slot.
        """
        from_slot_id = parse_id(from_slot_id, "from_slot_id")
        to_slot_id = parse_id(to_slot_id, "to_slot_id")
        if from_slot_id == to_slot_id:
            raise MoveRequestError("source and destination slots are the same")
        lines = _normalize_move_lines(moves)
        actor_id = parse_optional_id(actor_id, "actor_id")

        with self._unit_of_work("move_slot_items", slot_id=from_slot_id, actor_id=actor_id):
            self._require_slot(from_slot_id)
            self._require_slot(to_slot_id)

            items = self._lock_items_in_slot(from_slot_id, [line.slot_item_id for line in lines])
            self._guard_reservations(from_slot_id, [item.product_id for item in items.values()])

            moved_cbm = ZERO_CBM
            movement_ids: list[UUID] = []
            moved = 0
            for line in lines:
                item = items[line.slot_item_id]
                if item.qty <= 0:
                    # Empty row: nothing to move, just tidy it away
                    moved_cbm += to_cbm(item.cbm)
                    self.session.delete(item)
                    continue

                qty = line.qty if line.qty is not None else item.qty
                if qty > item.qty:
                    raise MoveRequestError(
                        f"qty {qty} exceeds on-hand {item.qty}", str(item.id)
                    )
                full = qty == item.qty
                unit_cbm = unit_cbm_of(item.cbm, item.qty)
                cbm = to_cbm(item.cbm) if full else line_cbm(unit_cbm, qty)

                dest = self._lock_item(item.product_id, to_slot_id)
                if dest is not None:
                    dest.qty += qty
                    dest.cbm = round_cbm(to_cbm(dest.cbm) + cbm)
                    dest.updated_by_id = actor_id
                if full:
                    if dest is not None:
                        self.session.delete(item)
                    else:
                        item.slot_id = to_slot_id
                        item.updated_by_id = actor_id
                else:
                    item.qty -= qty
                    item.cbm = round_cbm(to_cbm(item.cbm) - cbm)
                    item.updated_by_id = actor_id
                    if dest is None:
                        self.session.add(
                            SlotItem(
                                product_id=item.product_id,
                                slot_id=to_slot_id,
                                qty=qty,
                                cbm=cbm,
                                created_by_id=actor_id,
                            )
                        )
                self.session.flush()

                moved_cbm += cbm
                moved += 1
                movement = self._movements.record(
                    Move(
                        product_id=item.product_id,
                        from_slot_id=from_slot_id,
                        to_slot_id=to_slot_id,
                        qty=qty,
                        unit_cbm=unit_cbm,
                        actor_id=actor_id,
                        note=note,
                    )
                )
                movement_ids.append(movement.id)

            self._occupancy.apply_slot_occupancy_delta(from_slot_id, -moved_cbm)
            self._occupancy.apply_slot_occupancy_delta(to_slot_id, moved_cbm)

            logger.info(
                "slot_items_moved",
                extra={
                    "from_slot_id": str(from_slot_id),
                    "to_slot_id": str(to_slot_id),
                    "moved": moved,
                    "moved_cbm": str(moved_cbm),
                },
            )
            return MoveResult(moved=moved, movement_ids=tuple(movement_ids))

    # =========================================================================
    # Clear
    # =========================================================================

    def clear_slot_items(
        self,
        slot_id: UUID | str,
        slot_item_ids: Sequence,
        actor_id: UUID | str | None = None,
        note: str | None = None,
    ) -> ClearResult:
        """
        Remove stock rows from a slot entirely.

        Raises:
            InvalidFilterError: Empty id list.
            SlotNotFoundError / SlotItemNotFoundError.
            ReservationExistsError: A cleared product is reserved here.
        """
        slot_id = parse_id(slot_id, "slot_id")
        if not slot_item_ids or isinstance(slot_item_ids, (str, bytes)):
            raise InvalidFilterError("slot_item_ids", slot_item_ids)
        ids = list(dict.fromkeys(parse_id(i, "slot_item_id") for i in slot_item_ids))
        actor_id = parse_optional_id(actor_id, "actor_id")

        with self._unit_of_work("clear_slot_items", slot_id=slot_id, actor_id=actor_id):
            self._require_slot(slot_id)
            items = self._lock_items_in_slot(slot_id, ids)
            self._guard_reservations(slot_id, [item.product_id for item in items.values()])

            removed_cbm = ZERO_CBM
            movement_ids: list[UUID] = []
            for item_id in ids:
                item = items[item_id]
                if item.qty > 0:
                    movement = self._movements.record(
                        AdjustOut(
                            product_id=item.product_id,
                            slot_id=slot_id,
                            qty=item.qty,
                            unit_cbm=unit_cbm_of(item.cbm, item.qty),
                            actor_id=actor_id,
                            note=note,
                        )
                    )
                    movement_ids.append(movement.id)
                removed_cbm += to_cbm(item.cbm)
                self.session.delete(item)
            self.session.flush()

            self._occupancy.apply_slot_occupancy_delta(slot_id, -removed_cbm)

            logger.info(
                "slot_items_cleared",
                extra={
                    "slot_id": str(slot_id),
                    "deleted": len(ids),
                    "removed_cbm": str(removed_cbm),
                },
            )
            return ClearResult(deleted=len(ids), movement_ids=tuple(movement_ids))

    # =========================================================================
    # Internal
    # =========================================================================

    def _require_slot(self, slot_id: UUID) -> Slot:
        slot = self.session.get(Slot, slot_id)
        if slot is None:
            raise SlotNotFoundError(str(slot_id))
        return slot

    def _lock_item(self, product_id: UUID, slot_id: UUID) -> SlotItem | None:
        return self.session.execute(
            select(SlotItem)
            .where(SlotItem.product_id == product_id, SlotItem.slot_id == slot_id)
            .with_for_update()
        ).scalar_one_or_none()

    def _lock_items_in_slot(self, slot_id: UUID, item_ids: list[UUID]) -> dict[UUID, SlotItem]:
        rows = self.session.execute(
            select(SlotItem)
            .where(SlotItem.id.in_(item_ids), SlotItem.slot_id == slot_id)
            .with_for_update()
        ).scalars()
        items = {item.id: item for item in rows}
        for item_id in item_ids:
            if item_id not in items:
                raise SlotItemNotFoundError(str(item_id), slot_id=str(slot_id))
        return items

    def _guard_reservations(self, slot_id: UUID, product_ids: list[UUID]) -> None:
        """Refuse direct edits to stock rows that back a live reservation."""
        if not product_ids:
            return
        reserved = self.session.execute(
            select(OrderAllocation.product_id)
            .where(
                OrderAllocation.slot_id == slot_id,
                OrderAllocation.product_id.in_(product_ids),
                OrderAllocation.status == AllocationStatus.RESERVED.value,
            )
            .distinct()
        ).scalars().all()
        if reserved:
            raise ReservationExistsError(str(slot_id), sorted(str(p) for p in reserved))

"""
MovementLog -- the single writer of InventoryMovement rows.

Responsibility:
    Converts a movement variant (AdjustIn, AdjustOut, Move, Reserve,
    Release, Deduct) into an append-only InventoryMovement row inside the
    caller's transaction.

Architecture position:
    Kernel > Services.  Called by StockLedgerService, AllocationService,
    FulfillmentService, and ReversalService.  Never commits.

Invariants enforced:
    CONSERVATION -- every stock mutation records its movement in the same
        transaction, so a rollback removes both.
    APPEND_ONLY_LEDGER -- this class only inserts.

Failure modes:
    - ValueError (from the variant) on a non-positive qty or a MOVE between
      identical slots; raised before any row is added.
"""

from datetime import datetime

from warehouse_kernel.db.types import round_cbm
from warehouse_kernel.domain.movements import Move, StockMovement
from warehouse_kernel.logging_config import get_logger
from warehouse_kernel.models.movement import InventoryMovement
from warehouse_kernel.services.base import BaseService

logger = get_logger("services.movement_log")


class MovementLog(BaseService):
    """Append-only writer for the movement log."""

    def record(self, movement: StockMovement, event_at: datetime | None = None) -> InventoryMovement:
        """
        Persist one movement.

        Args:
            movement: A frozen movement variant.
            event_at: When the movement happened; defaults to clock.now().

        Returns:
            The flushed InventoryMovement row (id assigned).
        """
        row = InventoryMovement(
            movement_type=movement.movement_type.value,
            product_id=movement.product_id,
            qty=movement.qty,
            actor_id=movement.actor_id,
            unit_cbm=round_cbm(movement.unit_cbm),
            cbm=round_cbm(movement.cbm),
            note=movement.note,
            meta=dict(movement.meta) or None,
            event_at=event_at or self.clock.now(),
        )
        if isinstance(movement, Move):
            row.from_slot_id = movement.from_slot_id
            row.to_slot_id = movement.to_slot_id
        else:
            row.slot_id = movement.slot_id
            row.order_id = movement.order_id
            row.allocation_id = movement.allocation_id

        self.session.add(row)
        self.session.flush()

        logger.debug(
            "movement_recorded",
            extra={
                "movement_id": str(row.id),
                "movement_type": movement.movement_type.value,
                "product_id": str(movement.product_id),
                "qty": movement.qty,
            },
        )
        return row

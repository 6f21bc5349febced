"""
MovementSelector -- read side of the append-only movement log.

Invariants enforced:
    - ledger_quantity() replays the log with the on-hand sign of each
      movement type, so for any (product, slot) it equals SlotItem.qty
      (CONSERVATION).  Tests and the occupancy rebuild script use it as
      the independent check.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, case, func, or_, select

from warehouse_kernel.domain.dtos import MovementInfo, Page
from warehouse_kernel.domain.statuses import ON_HAND_SIGN, MovementType, status_value
from warehouse_kernel.domain.values import parse_id, parse_optional_id
from warehouse_kernel.exceptions import InvalidFilterError
from warehouse_kernel.models.movement import InventoryMovement
from warehouse_kernel.selectors.base import BaseSelector


def movement_to_info(row: InventoryMovement) -> MovementInfo:
    return MovementInfo(
        id=row.id,
        movement_type=status_value(row.movement_type),
        product_id=row.product_id,
        qty=row.qty,
        unit_cbm=row.unit_cbm,
        cbm=row.cbm,
        event_at=row.event_at,
        slot_id=row.slot_id,
        from_slot_id=row.from_slot_id,
        to_slot_id=row.to_slot_id,
        order_id=row.order_id,
        allocation_id=row.allocation_id,
        actor_id=row.actor_id,
        note=row.note,
        meta=row.meta,
    )


class MovementSelector(BaseSelector):
    """Read-only movement log queries."""

    def list_movements(
        self,
        movement_type: str | None = None,
        product_id: UUID | str | None = None,
        slot_id: UUID | str | None = None,
        order_id: UUID | str | None = None,
        actor_id: UUID | str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        page: int | None = 1,
        limit: int | None = None,
    ) -> Page[MovementInfo]:
        """
        List movements, newest first.

        ``slot_id`` matches the slot of single-slot movements and either
        end of a MOVE.  ``date_from`` / ``date_to`` bound event_at
        inclusively.

        Raises:
            InvalidFilterError: Unknown movement type or date_from > date_to.
        """
        known = [t.value for t in MovementType]
        if movement_type is not None and movement_type.upper() not in known:
            raise InvalidFilterError("movement_type", movement_type, known)
        if date_from is not None and date_to is not None and date_from > date_to:
            raise InvalidFilterError("date_from", date_from, None)
        product_id = parse_optional_id(product_id, "product_id")
        slot_id = parse_optional_id(slot_id, "slot_id")
        order_id = parse_optional_id(order_id, "order_id")
        actor_id = parse_optional_id(actor_id, "actor_id")
        page, limit = self._clamp_paging(page, limit)

        query = select(InventoryMovement)
        if movement_type is not None:
            query = query.where(InventoryMovement.movement_type == movement_type.upper())
        if product_id is not None:
            query = query.where(InventoryMovement.product_id == product_id)
        if slot_id is not None:
            query = query.where(
                or_(
                    InventoryMovement.slot_id == slot_id,
                    InventoryMovement.from_slot_id == slot_id,
                    InventoryMovement.to_slot_id == slot_id,
                )
            )
        if order_id is not None:
            query = query.where(InventoryMovement.order_id == order_id)
        if actor_id is not None:
            query = query.where(InventoryMovement.actor_id == actor_id)
        if date_from is not None:
            query = query.where(InventoryMovement.event_at >= date_from)
        if date_to is not None:
            query = query.where(InventoryMovement.event_at <= date_to)

        total = self._count(query)
        rows = self.session.execute(
            query.order_by(InventoryMovement.event_at.desc(), InventoryMovement.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars()
        return Page(
            items=tuple(movement_to_info(r) for r in rows),
            page=page,
            limit=limit,
            total=total,
        )

    def ledger_quantity(self, product_id: UUID | str, slot_id: UUID | str) -> int:
        """On-hand qty of (product, slot) implied by the movement log."""
        product_id = parse_id(product_id, "product_id")
        slot_id = parse_id(slot_id, "slot_id")

        signed = case(
            *(
                (
                    and_(
                        InventoryMovement.movement_type == kind.value,
                        InventoryMovement.slot_id == slot_id,
                    ),
                    InventoryMovement.qty * sign,
                )
                for kind, sign in ON_HAND_SIGN.items()
                if sign
            ),
            (
                and_(
                    InventoryMovement.movement_type == MovementType.MOVE.value,
                    InventoryMovement.to_slot_id == slot_id,
                ),
                InventoryMovement.qty,
            ),
            (
                and_(
                    InventoryMovement.movement_type == MovementType.MOVE.value,
                    InventoryMovement.from_slot_id == slot_id,
                ),
                -InventoryMovement.qty,
            ),
            else_=0,
        )
        total = self.session.execute(
            select(func.coalesce(func.sum(signed), 0)).where(
                InventoryMovement.product_id == product_id
            )
        ).scalar_one()
        return int(total)

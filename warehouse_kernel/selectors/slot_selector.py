"""
SlotSelector -- read side of the slot registry.

Listing supports the filters the warehouse screens use: store, unit,
active flag, and a free-text match on label or notes; sort by occupancy or
fill ratio (default: store, unit, position).
"""

from uuid import UUID

from sqlalchemy import case, func, or_, select

from warehouse_kernel.domain.dtos import Page, SlotInfo, SlotSummary
from warehouse_kernel.domain.values import parse_id
from warehouse_kernel.exceptions import InvalidFilterError, SlotNotFoundError
from warehouse_kernel.models.slot import Slot
from warehouse_kernel.selectors.base import BaseSelector

SORT_FIELDS = ("occupied_cbm", "fill_percent")
SORT_ORDERS = ("asc", "desc")


def slot_to_info(slot: Slot) -> SlotInfo:
    return SlotInfo(
        id=slot.id,
        store=slot.store,
        unit=slot.unit,
        position=slot.position,
        label=slot.label,
        capacity_cbm=slot.capacity_cbm,
        occupied_cbm=slot.occupied_cbm,
        fill_percent=slot.fill_percent,
        is_active=slot.is_active,
        notes=slot.notes,
    )


class SlotSelector(BaseSelector):
    """Read-only slot queries."""

    def get_slot(self, slot_id: UUID | str) -> SlotInfo:
        slot_id = parse_id(slot_id, "slot_id")
        slot = self.session.get(Slot, slot_id)
        if slot is None:
            raise SlotNotFoundError(str(slot_id))
        return slot_to_info(slot)

    def _filtered(self, store=None, unit=None, is_active=None, q=None):
        query = select(Slot)
        if store:
            query = query.where(Slot.store == store)
        if unit:
            query = query.where(Slot.unit == unit)
        if is_active is not None:
            query = query.where(Slot.is_active.is_(bool(is_active)))
        if q:
            pattern = f"%{q.strip().lower()}%"
            query = query.where(
                or_(
                    func.lower(Slot.label).like(pattern),
                    func.lower(func.coalesce(Slot.notes, "")).like(pattern),
                )
            )
        return query

    def list_slots(
        self,
        store: str | None = None,
        unit: str | None = None,
        is_active: bool | None = None,
        q: str | None = None,
        sort: str | None = None,
        order: str = "desc",
        page: int | None = 1,
        limit: int | None = None,
    ) -> Page[SlotInfo]:
        """
        List slots, filtered and paginated.

        Raises:
            InvalidFilterError: Unknown sort field or order.
        """
        if sort is not None and sort not in SORT_FIELDS:
            raise InvalidFilterError("sort", sort, list(SORT_FIELDS))
        if order not in SORT_ORDERS:
            raise InvalidFilterError("order", order, list(SORT_ORDERS))
        page, limit = self._clamp_paging(page, limit)

        query = self._filtered(store, unit, is_active, q)
        total = self._count(query)

        natural = (Slot.store, Slot.unit, Slot.position)
        if sort:
            column = getattr(Slot, sort)
            query = query.order_by(column.desc() if order == "desc" else column.asc(), *natural)
        else:
            query = query.order_by(*natural)

        rows = self.session.execute(
            query.offset((page - 1) * limit).limit(limit)
        ).scalars()
        return Page(
            items=tuple(slot_to_info(s) for s in rows),
            page=page,
            limit=limit,
            total=total,
        )

    def slot_summary(
        self,
        store: str | None = None,
        unit: str | None = None,
        q: str | None = None,
    ) -> SlotSummary:
        """Totals for the listing header: slot count, inactive count, stores."""
        query = self._filtered(store, unit, None, q).subquery()
        total, inactive = self.session.execute(
            select(
                func.count(),
                func.coalesce(func.sum(case((query.c.is_active.is_(False), 1), else_=0)), 0),
            ).select_from(query)
        ).one()
        stores = self.session.execute(
            select(query.c.store).distinct().order_by(query.c.store)
        ).scalars()
        return SlotSummary(total=total, inactive=int(inactive), stores=tuple(stores))

"""
SlotService -- the slot registry (write side).

Responsibility:
    Creates, updates, and deletes storage slots.  Keeps the derived label in
    step with unit/position and the fill ratio in step with capacity.

Architecture position:
    Kernel > Services.  Reads go through SlotSelector.

Invariants enforced:
    - (store, unit, position) is unique (checked before write, backed by
      uq_slot_location).
    - A slot referenced by stock rows or allocations is never deleted.
    - occupied_cbm is never written here; only OccupancyService owns it.

Failure modes:
    - InvalidSlotDefinitionError / InvalidQuantityError on bad input.
    - DuplicateSlotError when the location is taken.
    - SlotNotFoundError on update/delete of a missing slot.
    - SlotInUseError on delete of a referenced slot.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import func, select

from warehouse_kernel.domain.dtos import SlotInfo, SlotUpdateResult
from warehouse_kernel.domain.occupancy import fill_ratio
from warehouse_kernel.domain.values import (
    parse_id,
    parse_non_negative_decimal,
    parse_optional_id,
    parse_positive_int,
)
from warehouse_kernel.exceptions import (
    DuplicateSlotError,
    InvalidSlotDefinitionError,
    SlotInUseError,
    SlotNotFoundError,
)
from warehouse_kernel.logging_config import get_logger
from warehouse_kernel.models.allocation import OrderAllocation
from warehouse_kernel.models.slot import Slot, make_label
from warehouse_kernel.models.slot_item import SlotItem
from warehouse_kernel.selectors.slot_selector import slot_to_info
from warehouse_kernel.services.base import BaseService

logger = get_logger("services.slot")

_UPDATABLE_FIELDS = ("store", "unit", "position", "capacity_cbm", "is_active", "notes")


def _clean_code(value, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidSlotDefinitionError(field, "is required")
    return value.strip()


class SlotService(BaseService):
    """Slot registry writes."""

    def create_slot(
        self,
        store: str,
        unit: str,
        position: int,
        capacity_cbm,
        is_active: bool = True,
        notes: str | None = None,
        actor_id: UUID | str | None = None,
    ) -> SlotInfo:
        """
        Register a new slot.

        Raises:
            InvalidSlotDefinitionError: Missing store or unit.
            InvalidQuantityError: position not a positive int, or negative
                capacity.
            DuplicateSlotError: The location already exists.
        """
        store = _clean_code(store, "store")
        unit = _clean_code(unit, "unit")
        position = parse_positive_int(position, "position")
        capacity = parse_non_negative_decimal(capacity_cbm, "capacity_cbm")
        actor_id = parse_optional_id(actor_id, "actor_id")

        with self._unit_of_work("create_slot"):
            self._ensure_location_free(store, unit, position)
            slot = Slot(
                store=store,
                unit=unit,
                position=position,
                label=make_label(unit, position),
                capacity_cbm=capacity,
                occupied_cbm=0,
                fill_percent=0,
                is_active=bool(is_active),
                notes=notes,
                created_by_id=actor_id,
            )
            self.session.add(slot)
            self.session.flush()

            logger.info(
                "slot_created",
                extra={
                    "slot_id": str(slot.id),
                    "store": store,
                    "label": slot.label,
                    "capacity_cbm": str(capacity),
                },
            )
            return slot_to_info(slot)

    def update_slot(
        self,
        slot_id: UUID | str,
        actor_id: UUID | str | None = None,
        **changes: Any,
    ) -> SlotUpdateResult:
        """
        Change a slot's location, capacity, activity flag, or notes.

        Returns the updated slot and a ``{field: (old, new)}`` dict of the
        fields that actually changed.

        Raises:
            InvalidSlotDefinitionError: Unknown field or bad value.
            SlotNotFoundError: The slot does not exist.
            DuplicateSlotError: The new location is taken.
        """
        slot_id = parse_id(slot_id, "slot_id")
        actor_id = parse_optional_id(actor_id, "actor_id")
        unknown = set(changes) - set(_UPDATABLE_FIELDS)
        if unknown:
            raise InvalidSlotDefinitionError(", ".join(sorted(unknown)), "cannot be updated")

        clean: dict[str, Any] = {}
        for field, value in changes.items():
            if field in ("store", "unit"):
                clean[field] = _clean_code(value, field)
            elif field == "position":
                clean[field] = parse_positive_int(value, "position")
            elif field == "capacity_cbm":
                clean[field] = parse_non_negative_decimal(value, "capacity_cbm")
            elif field == "is_active":
                clean[field] = bool(value)
            else:
                clean[field] = value

        with self._unit_of_work("update_slot", slot_id=slot_id):
            slot = self.session.execute(
                select(Slot).where(Slot.id == slot_id).with_for_update()
            ).scalar_one_or_none()
            if slot is None:
                raise SlotNotFoundError(str(slot_id))

            diff: dict[str, tuple[Any, Any]] = {}
            for field, value in clean.items():
                old = getattr(slot, field)
                if old != value:
                    diff[field] = (old, value)

            if {"store", "unit", "position"} & diff.keys():
                store = clean.get("store", slot.store)
                unit = clean.get("unit", slot.unit)
                position = clean.get("position", slot.position)
                self._ensure_location_free(store, unit, position, exclude_id=slot.id)

            for field, (_, new) in diff.items():
                setattr(slot, field, new)
            slot.label = make_label(slot.unit, slot.position)
            if "capacity_cbm" in diff:
                slot.fill_percent = fill_ratio(slot.occupied_cbm, slot.capacity_cbm)
            if diff:
                slot.updated_by_id = actor_id
            self.session.flush()

            logger.info(
                "slot_updated",
                extra={
                    "slot_id": str(slot.id),
                    "changed_fields": sorted(diff),
                },
            )
            return SlotUpdateResult(slot=slot_to_info(slot), changes=diff)

    def delete_slot(self, slot_id: UUID | str) -> None:
        """
        Remove an unused slot.

        Raises:
            SlotNotFoundError: The slot does not exist.
            SlotInUseError: Stock rows or allocations still reference it.
        """
        slot_id = parse_id(slot_id, "slot_id")

        with self._unit_of_work("delete_slot", slot_id=slot_id):
            slot = self.session.execute(
                select(Slot).where(Slot.id == slot_id).with_for_update()
            ).scalar_one_or_none()
            if slot is None:
                raise SlotNotFoundError(str(slot_id))

            item_count = self.session.execute(
                select(func.count()).select_from(SlotItem).where(SlotItem.slot_id == slot_id)
            ).scalar_one()
            allocation_count = self.session.execute(
                select(func.count())
                .select_from(OrderAllocation)
                .where(OrderAllocation.slot_id == slot_id)
            ).scalar_one()
            if item_count or allocation_count:
                raise SlotInUseError(str(slot_id), item_count, allocation_count)

            self.session.delete(slot)
            self.session.flush()
            logger.info("slot_deleted", extra={"slot_id": str(slot_id), "label": slot.label})

    def _ensure_location_free(
        self, store: str, unit: str, position: int, exclude_id: UUID | None = None
    ) -> None:
        query = select(Slot.id).where(
            Slot.store == store, Slot.unit == unit, Slot.position == position
        )
        if exclude_id is not None:
            query = query.where(Slot.id != exclude_id)
        if self.session.execute(query).first() is not None:
            raise DuplicateSlotError(store, unit, position)

"""
Movement variants -- one frozen dataclass per kind of stock event.

Responsibility:
    Describes a stock-affecting event before it is persisted.  Each variant
    carries exactly the fields its kind needs: a MOVE has a source and a
    destination slot and nothing else does.  ``MovementLog.record()`` is
    the single writer that turns a variant into an InventoryMovement row.

Architecture position:
    Kernel > Domain -- pure, no I/O.

Invariants enforced:
    - qty is a positive int on every variant (checked in __post_init__).
    - A MOVE's slots differ.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Union
from uuid import UUID

from warehouse_kernel.domain.statuses import MovementType


@dataclass(frozen=True)
class _SingleSlotMovement:
    product_id: UUID
    slot_id: UUID
    qty: int
    unit_cbm: Decimal
    actor_id: UUID | None = None
    order_id: UUID | None = None
    allocation_id: UUID | None = None
    note: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)

    movement_type = None  # set by subclasses

    def __post_init__(self):
        if isinstance(self.qty, bool) or not isinstance(self.qty, int) or self.qty <= 0:
            raise ValueError(f"{type(self).__name__}.qty must be a positive int, got {self.qty!r}")
        if self.unit_cbm < 0:
            raise ValueError(f"{type(self).__name__}.unit_cbm cannot be negative")

    @property
    def cbm(self) -> Decimal:
        return self.unit_cbm * self.qty


@dataclass(frozen=True)
class AdjustIn(_SingleSlotMovement):
    """Stock added to a slot (receipt, manual adjust, reversal restock)."""

    movement_type = MovementType.ADJUST_IN


@dataclass(frozen=True)
class AdjustOut(_SingleSlotMovement):
    """Stock removed from a slot (clear)."""

    movement_type = MovementType.ADJUST_OUT


@dataclass(frozen=True)
class Reserve(_SingleSlotMovement):
    """Reservation increased; on-hand unchanged."""

    movement_type = MovementType.RESERVE


@dataclass(frozen=True)
class Release(_SingleSlotMovement):
    """Reservation decreased or removed; on-hand unchanged."""

    movement_type = MovementType.RELEASE


@dataclass(frozen=True)
class Deduct(_SingleSlotMovement):
    """Reserved stock permanently removed at finalize.

    ``consumed_cbm`` is the volume actually taken off the stock row.  When
    set it is recorded instead of unit_cbm * qty, which can differ in the
    last decimal place when the row is emptied.
    """

    consumed_cbm: Decimal | None = None

    movement_type = MovementType.DEDUCT

    @property
    def cbm(self) -> Decimal:
        if self.consumed_cbm is not None:
            return self.consumed_cbm
        return self.unit_cbm * self.qty


@dataclass(frozen=True)
class Move:
    """Stock relocated between two slots."""

    product_id: UUID
    from_slot_id: UUID
    to_slot_id: UUID
    qty: int
    unit_cbm: Decimal
    actor_id: UUID | None = None
    note: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)

    movement_type = MovementType.MOVE

    def __post_init__(self):
        if isinstance(self.qty, bool) or not isinstance(self.qty, int) or self.qty <= 0:
            raise ValueError(f"Move.qty must be a positive int, got {self.qty!r}")
        if self.from_slot_id == self.to_slot_id:
            raise ValueError("Move requires two different slots")
        if self.unit_cbm < 0:
            raise ValueError("Move.unit_cbm cannot be negative")

    @property
    def cbm(self) -> Decimal:
        return self.unit_cbm * self.qty


StockMovement = Union[AdjustIn, AdjustOut, Reserve, Release, Deduct, Move]

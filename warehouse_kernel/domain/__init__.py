"""Pure domain code: clock, statuses, movement variants, arithmetic, DTOs."""

from warehouse_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from warehouse_kernel.domain.policy import DEFAULT_POLICY, StockPolicy
from warehouse_kernel.domain.statuses import (
    AllocationRollup,
    AllocationStatus,
    MovementType,
    OrderStatus,
)

__all__ = [
    "AllocationRollup",
    "AllocationStatus",
    "Clock",
    "DEFAULT_POLICY",
    "DeterministicClock",
    "MovementType",
    "OrderStatus",
    "StockPolicy",
    "SystemClock",
]

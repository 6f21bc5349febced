"""
WarehouseSettings schema.

The parsed, validated form of a configuration profile.  YAML files under
``sets/`` are parsed into this type by the loader; bridges turn it into the
kernel's ``StockPolicy``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

ORDER_STATUSES = ("Processing", "Shipping", "Delivered", "Cancelled")


@dataclass(frozen=True)
class WarehouseSettings:
    """One configuration profile."""

    profile: str
    version: int = 1
    reservable_order_statuses: tuple[str, ...] = ("Shipping",)
    finalize_order_status: str = "Delivered"
    reversal_order_status: str = "Cancelled"
    require_invoice_for_finalize: bool = True
    allocation_grace_days: int = 60
    over_capacity_ratio: Decimal = Decimal("1.4")
    default_page_limit: int = 50
    max_page_limit: int = 200
    checksum: str = ""

    def __post_init__(self) -> None:
        if not self.profile:
            raise ValueError("profile is required")
        if not self.reservable_order_statuses:
            raise ValueError("reservable_order_statuses cannot be empty")
        for status in self.reservable_order_statuses:
            if status not in ORDER_STATUSES:
                raise ValueError(f"Unknown order status in reservable_order_statuses: {status!r}")
        # Closed orders never accept allocation edits
        closed = {"Delivered", "Cancelled"} & set(self.reservable_order_statuses)
        if closed:
            raise ValueError(f"Closed statuses cannot be reservable: {sorted(closed)}")
        for name in ("finalize_order_status", "reversal_order_status"):
            if getattr(self, name) not in ORDER_STATUSES:
                raise ValueError(f"{name} must be one of {list(ORDER_STATUSES)}")
        if self.allocation_grace_days < 0:
            raise ValueError("allocation_grace_days cannot be negative")
        if self.over_capacity_ratio < 1:
            raise ValueError("over_capacity_ratio must be at least 1")
        if not 1 <= self.default_page_limit <= self.max_page_limit:
            raise ValueError("default_page_limit must be between 1 and max_page_limit")

"""
StockPolicy -- the tunable rules the kernel services consult.

Responsibility:
    Holds the handful of values that differ between deployments: which
    order statuses permit reservation edits, which statuses gate finalize
    and reversal, whether finalize needs an invoice, the post-finalize
    expiry window, the reversal over-capacity ratio, and paging limits.

Architecture position:
    Kernel > Domain -- pure value object.  The kernel MUST NOT import
    ``warehouse_config``; ``warehouse_config.bridges.build_stock_policy``
    turns loaded settings into a StockPolicy.

Invariants enforced:
    None of these values can disable a StockInvariant.  They only choose
    which statuses and limits the invariant checks apply to.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from warehouse_kernel.domain.statuses import OrderStatus


@dataclass(frozen=True)
class StockPolicy:
    """Immutable rule set for allocation, finalize, and reversal."""

    reservable_order_statuses: frozenset[str] = field(
        default_factory=lambda: frozenset({OrderStatus.SHIPPING.value})
    )
    finalize_order_status: str = OrderStatus.DELIVERED.value
    reversal_order_status: str = OrderStatus.CANCELLED.value
    require_invoice_for_finalize: bool = True
    allocation_grace_days: int = 60
    over_capacity_ratio: Decimal = Decimal("1.4")
    default_page_limit: int = 50
    max_page_limit: int = 200

    def __post_init__(self):
        valid = {s.value for s in OrderStatus}
        unknown = set(self.reservable_order_statuses) - valid
        if unknown:
            raise ValueError(f"Unknown reservable order statuses: {sorted(unknown)}")
        for name in ("finalize_order_status", "reversal_order_status"):
            if getattr(self, name) not in valid:
                raise ValueError(f"{name} must be one of {sorted(valid)}")
        if self.allocation_grace_days < 0:
            raise ValueError("allocation_grace_days cannot be negative")
        if self.over_capacity_ratio < 1:
            raise ValueError("over_capacity_ratio must be at least 1")
        if not 1 <= self.default_page_limit <= self.max_page_limit:
            raise ValueError("default_page_limit must be between 1 and max_page_limit")


DEFAULT_POLICY = StockPolicy()

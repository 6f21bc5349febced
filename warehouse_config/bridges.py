"""
Config -> kernel bridges.

The kernel must never import warehouse_config, so the conversion from
loaded settings to kernel inputs lives here, on the producer side.

Usage:
    from warehouse_config import get_active_config
    from warehouse_config.bridges import build_stock_policy

    policy = build_stock_policy(get_active_config())
    AllocationService(session, policy=policy)
"""

from __future__ import annotations

from warehouse_config.schema import WarehouseSettings
from warehouse_kernel.domain.policy import StockPolicy


def build_stock_policy(settings: WarehouseSettings) -> StockPolicy:
    """Translate WarehouseSettings into the kernel's StockPolicy."""
    return StockPolicy(
        reservable_order_statuses=frozenset(settings.reservable_order_statuses),
        finalize_order_status=settings.finalize_order_status,
        reversal_order_status=settings.reversal_order_status,
        require_invoice_for_finalize=settings.require_invoice_for_finalize,
        allocation_grace_days=settings.allocation_grace_days,
        over_capacity_ratio=settings.over_capacity_ratio,
        default_page_limit=settings.default_page_limit,
        max_page_limit=settings.max_page_limit,
    )

"""Volume arithmetic for slots: fill ratio, unit volume, ceilings, label order."""

import re
from decimal import Decimal

from warehouse_kernel.db.types import ZERO_CBM, round_cbm, round_ratio, to_cbm


def fill_ratio(occupied_cbm: Decimal, capacity_cbm: Decimal) -> Decimal:
    """occupied / capacity, or 0 for a zero-capacity slot."""
    capacity = to_cbm(capacity_cbm)
    if capacity <= 0:
        return ZERO_CBM
    return round_ratio(to_cbm(occupied_cbm) / capacity)


def unit_cbm_of(total_cbm: Decimal, qty: int) -> Decimal:
    """Per-unit volume of a stock row; 0 when the row is empty."""
    if not qty:
        return ZERO_CBM
    return round_cbm(to_cbm(total_cbm) / qty)


def line_cbm(unit_cbm: Decimal, qty: int) -> Decimal:
    return round_cbm(to_cbm(unit_cbm) * qty)


def capacity_ceiling(capacity_cbm: Decimal, over_capacity_ratio: Decimal) -> Decimal:
    """Largest occupancy a restock may leave behind."""
    return round_cbm(to_cbm(capacity_cbm) * to_cbm(over_capacity_ratio))


def free_cbm(capacity_cbm: Decimal, occupied_cbm: Decimal) -> Decimal:
    return max(to_cbm(capacity_cbm) - to_cbm(occupied_cbm), ZERO_CBM)


_DIGITS = re.compile(r"(\d+)")


def natural_sort_key(label: str) -> tuple:
    """Sort "A2" before "A10" (digit runs compare numerically)."""
    parts = _DIGITS.split(label or "")
    return tuple(
        (0, int(part), "") if part.isdigit() else (1, 0, part.lower())
        for part in parts
        if part != ""
    )

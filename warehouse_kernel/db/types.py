"""
Module: warehouse_kernel.db.types
Responsibility: Annotated type aliases and rounding helpers for volume columns.
    Centralizes precision so that every model and service uses identical
    definitions for cubic-metre values and fill ratios.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats for volumes.  Cbm values are Decimal with CBM_DECIMAL_PLACES
      of precision; round_cbm() is the only sanctioned rounding function.

Failure modes:
    - decimal.InvalidOperation if a non-numeric value reaches to_cbm().
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import Numeric, String

# Cubic metres, 9 decimal places
Cbm = Annotated[Decimal, Numeric(38, 9)]

# Fill ratio (1.0 == full); may exceed 1.0 after an over-capacity restock
Ratio = Annotated[Decimal, Numeric(38, 9)]

# Short identifier strings (store codes, unit letters, SKUs)
ShortCode = Annotated[str, String(50)]

# Long free text (notes)
LongText = Annotated[str, String(4000)]

CBM_DECIMAL_PLACES = 9
RATIO_DECIMAL_PLACES = 6
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO_CBM = Decimal("0")


def to_cbm(value) -> Decimal:
    """
    Convert an int, str, or Decimal to an unrounded Decimal volume.

    Floats are routed through str() so that 0.1 becomes Decimal("0.1")
    rather than its binary expansion.
    """
    if value is None:
        return ZERO_CBM
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def round_cbm(value: Decimal) -> Decimal:
    """Round a volume to CBM_DECIMAL_PLACES using ROUND_HALF_UP."""
    return to_cbm(value).quantize(
        Decimal(1).scaleb(-CBM_DECIMAL_PLACES), rounding=DEFAULT_ROUNDING
    )


def round_ratio(value: Decimal) -> Decimal:
    """Round a fill ratio to RATIO_DECIMAL_PLACES."""
    return to_cbm(value).quantize(
        Decimal(1).scaleb(-RATIO_DECIMAL_PLACES), rounding=DEFAULT_ROUNDING
    )

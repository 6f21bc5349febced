"""
Input coercion for ids and quantities.

Every public service and selector method runs its arguments through these
helpers before touching the database, so malformed input always surfaces
as a ValidationError subclass (400) and never as a driver error.
"""

from decimal import Decimal, InvalidOperation
from uuid import UUID

from warehouse_kernel.exceptions import InvalidIdentifierError, InvalidQuantityError


def parse_id(value, field: str) -> UUID:
    """Coerce a UUID or UUID string; raise InvalidIdentifierError otherwise."""
    if isinstance(value, UUID):
        return value
    if isinstance(value, str):
        try:
            return UUID(value.strip())
        except ValueError:
            pass
    raise InvalidIdentifierError(field, value)


def parse_optional_id(value, field: str) -> UUID | None:
    if value is None or value == "":
        return None
    return parse_id(value, field)


def parse_positive_int(value, field: str) -> int:
    """
    Coerce a strictly positive integer.

    Accepts int, integral Decimal/float, and digit strings ("5").  Rejects
    bool, zero, negatives, fractions, and anything non-numeric.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidQuantityError(field, value)
    if isinstance(value, int):
        result = value
    elif isinstance(value, (float, Decimal, str)):
        try:
            number = Decimal(str(value).strip())
        except InvalidOperation:
            raise InvalidQuantityError(field, value) from None
        if not number.is_finite() or number != number.to_integral_value():
            raise InvalidQuantityError(field, value)
        result = int(number)
    else:
        raise InvalidQuantityError(field, value)
    if result <= 0:
        raise InvalidQuantityError(field, value)
    return result


def parse_non_negative_decimal(value, field: str) -> Decimal:
    """Coerce a finite Decimal >= 0 (used for capacities)."""
    if isinstance(value, bool) or value is None:
        raise InvalidQuantityError(field, value, "must be a non-negative number")
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        raise InvalidQuantityError(field, value, "must be a non-negative number") from None
    if not number.is_finite() or number < 0:
        raise InvalidQuantityError(field, value, "must be a non-negative number")
    return number

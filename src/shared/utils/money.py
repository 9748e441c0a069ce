from decimal import ROUND_HALF_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Union

# Type alias for money values
Money = Decimal

ZERO = Decimal("0.00")


def round_money(value: Union[Decimal, float, int, str]) -> Decimal:
    """
    Round monetary value to 2 decimal places using ROUND_HALF_UP.

    Examples:
        >>> round_money(10.125)
        Decimal('10.13')
        >>> round_money("10.115")
        Decimal('10.12')
    """
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    if value < 0:
        return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_DOWN)
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def to_money(value: Any, default: Decimal = ZERO) -> Decimal:
    """
    Parse a loosely-typed amount coming from external records.

    None, empty strings, booleans and anything unparseable or non-finite
    yield `default`.

        >>> to_money("1,250.50")
        Decimal('1250.50')
        >>> to_money("n/a")
        Decimal('0.00')
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, str):
        value = value.replace(",", "").strip()
        if not value:
            return default
    try:
        parsed = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default
    if not parsed.is_finite():
        return default
    return round_money(parsed)


def non_negative(value: Decimal) -> Decimal:
    """Clamp a money value at zero."""
    return value if value > ZERO else ZERO

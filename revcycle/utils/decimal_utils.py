"""Money helpers. All amounts are Decimal with two places, rounded half-up."""
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Optional, Union

FINANCIAL_PRECISION = Decimal("0.01")
ZERO = Decimal("0.00")

# Charge vs. paid + adjustments tolerance when checking a remittance balances
BALANCE_TOLERANCE = Decimal("0.01")

Number = Union[str, int, float, Decimal]


def to_money(value: Optional[Number]) -> Decimal:
    """
    Convert a value to a two-place Decimal.

    Raises:
        ValueError: If the value cannot be read as a number
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, float):
        # str() first so 0.1 does not turn into 0.1000000000000000055...
        result = Decimal(str(value))
    else:
        text = str(value).strip()
        if not text:
            return ZERO
        try:
            result = Decimal(text)
        except InvalidOperation as e:
            raise ValueError(f"Invalid amount: {value!r}") from e
    if not result.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return result.quantize(FINANCIAL_PRECISION, rounding=ROUND_HALF_UP)


def sum_money(values: Iterable[Optional[Number]]) -> Decimal:
    total = ZERO
    for value in values:
        total += to_money(value)
    return total


def format_amount(value: Number) -> str:
    """Render an amount with exactly two decimals, as EDI amount elements expect."""
    return f"{to_money(value):.2f}"


def amounts_balance(expected: Number, actual: Number, tolerance: Decimal = BALANCE_TOLERANCE) -> bool:
    return abs(to_money(expected) - to_money(actual)) <= tolerance

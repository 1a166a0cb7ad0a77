from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Union

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

MoneyLike = Union[Decimal, int, str]


def to_decimal(value: MoneyLike) -> Decimal:
    """Exact conversion; floats are refused so bracket boundaries compare exactly."""

    if isinstance(value, bool):
        raise TypeError("Booleans are not monetary values")
    if isinstance(value, float):
        raise TypeError(f"Refusing float {value!r}; pass a Decimal or a string")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(value)
        except (InvalidOperation, TypeError) as exc:
            raise ValueError(f"Not a decimal amount: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Not a finite amount: {value!r}")
    return result


def quantize(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_money(value: MoneyLike) -> Decimal:
    return quantize(to_decimal(value))


def money_sum(values: Iterable[Decimal]) -> Decimal:
    # every addend is already at currency scale, so the sum is exact
    return quantize(sum(values, ZERO))


def format_money(value: Decimal, symbol: str = "₱") -> str:
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.2f}"

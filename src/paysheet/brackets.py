from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Iterable, List, Optional, Sequence

from .exceptions import MalformedTable, NegativeAmount, NoMatchingBracket
from .money import ZERO, MoneyLike, quantize, to_decimal
from .periods import PeriodType


class FormulaKind(str, Enum):
    FLAT = "FLAT"  # base
    MARGINAL = "MARGINAL"  # base + (value - lower_bound) * rate
    PERCENT_OF_VALUE = "PERCENT_OF_VALUE"  # value * rate
    PERCENT_OF_CREDIT = "PERCENT_OF_CREDIT"  # base * rate, base being a salary credit


@dataclass(frozen=True)
class Bracket:
    index: int
    lower_bound: Decimal
    upper_bound: Optional[Decimal]  # None for the open-ended top bracket
    kind: FormulaKind = FormulaKind.MARGINAL
    base: Decimal = ZERO
    rate: Decimal = Decimal("0")

    def contains(self, value: Decimal) -> bool:
        if value < self.lower_bound:
            return False
        return self.upper_bound is None or value < self.upper_bound

    def raw_amount(self, value: Decimal) -> Decimal:
        """Unrounded amount for ``value``; callers round once at the end."""
        if self.kind is FormulaKind.FLAT:
            return self.base
        if self.kind is FormulaKind.MARGINAL:
            return self.base + (value - self.lower_bound) * self.rate
        if self.kind is FormulaKind.PERCENT_OF_VALUE:
            return value * self.rate
        return self.base * self.rate

    def amount(self, value: Decimal) -> Decimal:
        return quantize(self.raw_amount(value))

    def describe(self) -> str:
        upper = f"{self.upper_bound:,}" if self.upper_bound is not None else "and above"
        return f"#{self.index} [{self.lower_bound:,} - {upper})"


class BracketTable:
    """Ordered, contiguous, lower-inclusive brackets valid over ``[effective_from, effective_to)``.

    A value equal to a boundary belongs to the bracket that starts there.
    Every non-negative value matches exactly one bracket; tables that cannot
    guarantee that are rejected here rather than at lookup time.
    """

    def __init__(
        self,
        name: str,
        brackets: Sequence[Bracket],
        period_type: PeriodType = PeriodType.MONTHLY,
        effective_from: date = date.min,
        effective_to: Optional[date] = None,
    ):
        self.name = name
        self.period_type = period_type
        self.effective_from = effective_from
        self.effective_to = effective_to
        self.brackets: List[Bracket] = list(brackets)
        self._validate()
        self._lower_bounds = [b.lower_bound for b in self.brackets]

    def _validate(self) -> None:
        if not self.brackets:
            raise MalformedTable("Table has no brackets", table=self.name)
        if self.effective_to is not None and self.effective_to <= self.effective_from:
            raise MalformedTable("Effective window is empty", table=self.name)
        if self.brackets[0].lower_bound != ZERO:
            raise MalformedTable(
                f"First bracket starts at {self.brackets[0].lower_bound}, expected 0", table=self.name
            )
        previous: Optional[Bracket] = None
        for bracket in self.brackets:
            if not ZERO <= bracket.rate <= Decimal("1"):
                raise MalformedTable(f"Bracket {bracket.index} rate {bracket.rate} outside 0..1", table=self.name)
            if bracket.base < ZERO:
                raise MalformedTable(f"Bracket {bracket.index} base is negative", table=self.name)
            if bracket.upper_bound is not None and bracket.upper_bound <= bracket.lower_bound:
                raise MalformedTable(f"Bracket {bracket.index} is empty or inverted", table=self.name)
            if previous is not None:
                if bracket.index <= previous.index:
                    raise MalformedTable(f"Bracket {bracket.index} is out of order", table=self.name)
                if previous.upper_bound is None:
                    raise MalformedTable(
                        f"Bracket {previous.index} is open-ended but is not the last bracket", table=self.name
                    )
                if previous.upper_bound != bracket.lower_bound:
                    raise MalformedTable(
                        f"Gap or overlap between bracket {previous.index} (ends {previous.upper_bound}) "
                        f"and bracket {bracket.index} (starts {bracket.lower_bound})",
                        table=self.name,
                    )
            previous = bracket
        if self.brackets[-1].upper_bound is not None:
            raise MalformedTable("Top bracket must be open-ended", table=self.name)

    def find(self, value: MoneyLike) -> Bracket:
        amount = to_decimal(value)
        if amount < ZERO:
            raise NegativeAmount(f"{self.name} lookup value", amount)
        position = bisect_right(self._lower_bounds, amount) - 1
        bracket = self.brackets[position]
        if not bracket.contains(amount):
            raise NoMatchingBracket(self.name, amount)
        return bracket

    def covers(self, as_of: date) -> bool:
        if as_of < self.effective_from:
            return False
        return self.effective_to is None or as_of < self.effective_to

    def __len__(self) -> int:
        return len(self.brackets)

    def __repr__(self) -> str:
        return (
            f"BracketTable({self.name!r}, {self.period_type.value}, "
            f"{self.effective_from}..{self.effective_to or 'open'}, {len(self.brackets)} brackets)"
        )


def ensure_disjoint_windows(tables: Iterable[BracketTable], label: str) -> None:
    ordered = sorted(tables, key=lambda t: t.effective_from)
    for earlier, later in zip(ordered, ordered[1:]):
        if earlier.effective_to is None or earlier.effective_to > later.effective_from:
            raise MalformedTable(
                f"{label} tables {earlier.name} and {later.name} have overlapping effective windows",
                table=later.name,
            )


def select_effective(tables: Iterable[BracketTable], as_of: date) -> Optional[BracketTable]:
    for table in tables:
        if table.covers(as_of):
            return table
    return None

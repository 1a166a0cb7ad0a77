from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Iterable, List, Optional, Union

from .brackets import BracketTable, ensure_disjoint_windows, select_effective
from .exceptions import MalformedTable, NegativeAmount, NoActiveContributionTable
from .money import ZERO, MoneyLike, quantize, to_decimal
from .periods import Eligibility, SubPeriod


class Skipped(Enum):
    """Marker for a contribution that does not apply to the sub-period.

    Distinct from a share that computed to zero: skipped contributions are
    left out of the payslip entirely.
    """

    SKIPPED = "SKIPPED"

    def __bool__(self) -> bool:
        return False


SKIPPED = Skipped.SKIPPED


@dataclass(frozen=True)
class SplitRule:
    """Employee gets ``employee_part / total_part`` of the rounded total; the employer gets the rest.

    A split quoted as rates keeps both parts (5% of a 15% total is ``0.05 / 0.15``)
    so the employee share is computed without a repeating ratio.
    """

    employee_part: Decimal
    total_part: Decimal = Decimal("1")

    def __post_init__(self) -> None:
        if self.total_part <= ZERO:
            raise MalformedTable(f"Split total {self.total_part} must be positive")
        if not ZERO <= self.employee_part <= self.total_part:
            raise MalformedTable(f"Employee ratio {self.employee_ratio} outside 0..1")

    @classmethod
    def from_rates(cls, employee_rate: MoneyLike, employer_rate: MoneyLike) -> "SplitRule":
        employee, employer = to_decimal(employee_rate), to_decimal(employer_rate)
        if employee < ZERO or employer < ZERO:
            raise MalformedTable(f"Negative contribution rate in {employee}/{employer} split")
        return cls(employee, employee + employer)

    @property
    def employee_ratio(self) -> Decimal:
        return self.employee_part / self.total_part

    def employee_share_of(self, total: Decimal) -> Decimal:
        return quantize(total * self.employee_part / self.total_part)

    def employer_share_of(self, total: Decimal) -> Decimal:
        return quantize(total) - self.employee_share_of(total)


@dataclass(frozen=True)
class ContributionShare:
    kind: str
    employee_share: Decimal
    employer_share: Decimal
    base_amount: Decimal
    bracket_index: int
    table: str

    @property
    def total(self) -> Decimal:
        return self.employee_share + self.employer_share


class ContributionRule:
    def __init__(
        self,
        kind: str,
        tables: Iterable[BracketTable],
        split: SplitRule,
        applies_on: Eligibility = Eligibility.EVERY,
        flat_adder: MoneyLike = ZERO,
        label: Optional[str] = None,
    ):
        self.kind = kind
        self.label = label or kind
        self.tables: List[BracketTable] = sorted(tables, key=lambda t: t.effective_from)
        self.split = split
        self.applies_on = applies_on
        self.flat_adder = quantize(to_decimal(flat_adder))
        if not self.tables:
            raise MalformedTable(f"Contribution {kind} has no tables", table=kind)
        if self.flat_adder < ZERO:
            raise MalformedTable(f"Contribution {kind} has a negative flat adder", table=kind)
        ensure_disjoint_windows(self.tables, kind)

    def applies_to(self, sub_period: SubPeriod) -> bool:
        return self.applies_on.allows(sub_period)

    def table_for(self, as_of: date) -> BracketTable:
        table = select_effective(self.tables, as_of)
        if table is None:
            raise NoActiveContributionTable(self.kind, as_of)
        return table

    def compute(
        self, base_amount: MoneyLike, sub_period: SubPeriod, as_of: date
    ) -> Union[ContributionShare, Skipped]:
        if not self.applies_to(sub_period):
            return SKIPPED
        base = to_decimal(base_amount)
        if base < ZERO:
            raise NegativeAmount(f"{self.kind} contribution base", base)
        table = self.table_for(as_of)
        bracket = table.find(base)
        total = bracket.raw_amount(base)
        return ContributionShare(
            kind=self.kind,
            employee_share=self.split.employee_share_of(total),
            employer_share=self.split.employer_share_of(total) + self.flat_adder,
            base_amount=quantize(base),
            bracket_index=bracket.index,
            table=table.name,
        )

    def __repr__(self) -> str:
        return f"ContributionRule({self.kind!r}, applies_on={self.applies_on.value}, tables={len(self.tables)})"


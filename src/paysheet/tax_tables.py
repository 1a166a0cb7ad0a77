from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List

from .brackets import Bracket, BracketTable, FormulaKind, ensure_disjoint_windows, select_effective
from .exceptions import MalformedTable, NoActiveTaxTable
from .money import MoneyLike, quantize, to_decimal
from .periods import PeriodType


@dataclass(frozen=True)
class TaxComputation:
    taxable_income: Decimal
    table: str
    bracket: Bracket
    excess: Decimal
    tax: Decimal


class TaxSchedule:
    """Withholding tables keyed by period type, each with an effective window.

    ``tax = bracket.base + (taxable_income - bracket.lower_bound) * bracket.rate``,
    rounded half-up to the centavo once, after the multiplication.
    """

    def __init__(self, tables: Iterable[BracketTable], version: str = "unversioned"):
        self.version = version
        self._tables: Dict[PeriodType, List[BracketTable]] = {}
        for table in tables:
            for bracket in table.brackets:
                if bracket.kind is not FormulaKind.MARGINAL:
                    raise MalformedTable(
                        f"Withholding bracket {bracket.index} must be MARGINAL, got {bracket.kind.value}",
                        table=table.name,
                        version=version,
                    )
            self._tables.setdefault(table.period_type, []).append(table)
        for period_type, period_tables in self._tables.items():
            period_tables.sort(key=lambda t: t.effective_from)
            ensure_disjoint_windows(period_tables, f"{period_type.value} withholding")

    def period_types(self) -> List[PeriodType]:
        return [p for p in PeriodType if p in self._tables]

    def tables_for(self, period_type: PeriodType) -> List[BracketTable]:
        return list(self._tables.get(period_type, []))

    def table_for(self, period_type: PeriodType, as_of: date) -> BracketTable:
        table = select_effective(self._tables.get(period_type, []), as_of)
        if table is None:
            raise NoActiveTaxTable(period_type.value, as_of, version=self.version)
        return table

    def compute_detail(self, taxable_income: MoneyLike, period_type: PeriodType, as_of: date) -> TaxComputation:
        income = to_decimal(taxable_income)
        table = self.table_for(period_type, as_of)
        bracket = table.find(income)
        excess = income - bracket.lower_bound
        return TaxComputation(
            taxable_income=income,
            table=table.name,
            bracket=bracket,
            excess=excess,
            tax=quantize(bracket.base + excess * bracket.rate),
        )

    def compute(self, taxable_income: MoneyLike, period_type: PeriodType, as_of: date) -> Decimal:
        return self.compute_detail(taxable_income, period_type, as_of).tax


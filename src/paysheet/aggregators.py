from __future__ import annotations

from decimal import Decimal
from typing import Dict, Iterable

from .exceptions import NegativeAmount, NegativeDeductionLine, NegativeEarningsLine
from .models import DeductionLine, EarningLine
from .money import ZERO, MoneyLike, money_sum, quantize, to_decimal


class EarningsAggregator:
    def total(self, lines: Iterable[EarningLine]) -> Decimal:
        total = ZERO
        for line in lines:
            if line.amount < ZERO:
                raise NegativeEarningsLine(line.kind.value, line.amount)
            total += line.amount
        return quantize(total)

    def by_kind(self, lines: Iterable[EarningLine]) -> Dict[str, Decimal]:
        grouped: Dict[str, Decimal] = {}
        for line in lines:
            if line.amount < ZERO:
                raise NegativeEarningsLine(line.kind.value, line.amount)
            grouped[line.kind.value] = grouped.get(line.kind.value, ZERO) + line.amount
        return {kind: quantize(amount) for kind, amount in grouped.items()}


class DeductionAggregator:
    """Employee contributions + withholding tax + loan + other deduction lines."""

    def total(
        self,
        employee_shares: Iterable[Decimal],
        withholding_tax: MoneyLike,
        loan_amount: MoneyLike,
        other_lines: Iterable[DeductionLine],
    ) -> Decimal:
        loan = to_decimal(loan_amount)
        if loan < ZERO:
            raise NegativeAmount("loan_amount", loan)
        total = sum(employee_shares, ZERO) + to_decimal(withholding_tax) + loan
        total += money_sum(self.by_kind(other_lines).values())
        return quantize(total)

    def by_kind(self, lines: Iterable[DeductionLine]) -> Dict[str, Decimal]:
        grouped: Dict[str, Decimal] = {}
        for line in lines:
            if line.amount < ZERO:
                raise NegativeDeductionLine(line.kind.value, line.amount)
            grouped[line.kind.value] = grouped.get(line.kind.value, ZERO) + line.amount
        return {kind: quantize(amount) for kind, amount in grouped.items()}

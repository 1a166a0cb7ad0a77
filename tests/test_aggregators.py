from decimal import Decimal

import pytest

from paysheet.aggregators import DeductionAggregator, EarningsAggregator
from paysheet.exceptions import NegativeAmount, NegativeDeductionLine, NegativeEarningsLine
from paysheet.models import DeductionKind, DeductionLine, EarningKind, EarningLine


def test_earnings_total_and_grouping():
    lines = [
        EarningLine(EarningKind.BASIC, "12500"),
        EarningLine(EarningKind.OVERTIME, "512.25"),
        EarningLine(EarningKind.OVERTIME, "100.00"),
        EarningLine(EarningKind.ALLOWANCE, "1000"),
    ]
    aggregator = EarningsAggregator()

    assert aggregator.total(lines) == Decimal("14112.25")
    assert aggregator.by_kind(lines) == {
        "BASIC": Decimal("12500.00"),
        "OVERTIME": Decimal("612.25"),
        "ALLOWANCE": Decimal("1000.00"),
    }


def test_no_earnings_is_zero():
    assert EarningsAggregator().total([]) == Decimal("0.00")


def test_negative_earnings_line_is_rejected():
    with pytest.raises(NegativeEarningsLine) as excinfo:
        EarningsAggregator().total([EarningLine("BASIC", "100"), EarningLine("HOLIDAY", "-5")])

    assert excinfo.value.context["line"] == "HOLIDAY"


def test_deduction_total_combines_every_source():
    other = [DeductionLine(DeductionKind.ABSENCES, "500"), DeductionLine(DeductionKind.TARDINESS, "75.50")]

    total = DeductionAggregator().total(
        [Decimal("1250.00"), Decimal("625.00"), Decimal("100.00")], Decimal("16.20"), Decimal("300"), other
    )

    assert total == Decimal("2866.70")


def test_negative_deduction_line_is_rejected():
    with pytest.raises(NegativeDeductionLine):
        DeductionAggregator().total([], Decimal("0"), Decimal("0"), [DeductionLine("LOAN", "-1")])


def test_negative_loan_is_rejected():
    with pytest.raises(NegativeAmount):
        DeductionAggregator().total([], Decimal("0"), Decimal("-10"), [])

from datetime import date
from decimal import Decimal

import pytest

from paysheet.brackets import Bracket, BracketTable, FormulaKind
from paysheet.exceptions import MalformedTable, NoActiveTaxTable
from paysheet.periods import PeriodType
from paysheet.schedules import ScheduleRepository, default_schedules_dir
from paysheet.tax_tables import TaxSchedule

AS_OF = date(2025, 9, 30)


def build_tax() -> TaxSchedule:
    return ScheduleRepository(default_schedules_dir()).load("ph_2025").tax


def test_semi_monthly_tax_on_excess_over_bracket_floor():
    tax = build_tax()

    assert tax.compute("10525.00", PeriodType.SEMI_MONTHLY, AS_OF) == Decimal("16.20")


def test_monthly_boundary_uses_upper_bracket():
    tax = build_tax()

    detail = tax.compute_detail("20833.00", PeriodType.MONTHLY, AS_OF)

    assert detail.bracket.index == 2
    assert detail.excess == Decimal("0.00")
    assert detail.tax == Decimal("0.00")


def test_higher_brackets_add_fixed_base():
    tax = build_tax()

    # 1,875.00 + (40,000 - 33,333) * 20%
    assert tax.compute("40000", PeriodType.MONTHLY, AS_OF) == Decimal("3208.40")
    # 183,541.80 + (1,000,000 - 666,667) * 35%
    assert tax.compute("1000000", PeriodType.MONTHLY, AS_OF) == Decimal("300208.35")


def test_income_below_exemption_pays_nothing():
    tax = build_tax()

    for period_type in PeriodType:
        assert tax.compute("0", period_type, AS_OF) == Decimal("0.00")


def test_no_table_before_effective_date():
    with pytest.raises(NoActiveTaxTable) as excinfo:
        build_tax().compute("10000", PeriodType.MONTHLY, date(2022, 12, 31))

    assert excinfo.value.context["version"] == "ph_2025"
    assert excinfo.value.context["period_type"] == "MONTHLY"


def test_tables_switch_on_effective_date():
    def table(name, rate, **window):
        return BracketTable(
            name,
            [Bracket(1, Decimal("0"), None, FormulaKind.MARGINAL, rate=Decimal(rate))],
            period_type=PeriodType.MONTHLY,
            **window,
        )

    schedule = TaxSchedule(
        [
            table("old", "0.10", effective_from=date(2020, 1, 1), effective_to=date(2023, 1, 1)),
            table("new", "0.20", effective_from=date(2023, 1, 1)),
        ]
    )

    assert schedule.compute("100", PeriodType.MONTHLY, date(2022, 12, 31)) == Decimal("10.00")
    assert schedule.compute("100", PeriodType.MONTHLY, date(2023, 1, 1)) == Decimal("20.00")


def test_withholding_tables_must_be_marginal():
    flat = BracketTable("flat", [Bracket(1, Decimal("0"), None, FormulaKind.FLAT, base=Decimal("5"))])

    with pytest.raises(MalformedTable):
        TaxSchedule([flat])

from datetime import date
from decimal import Decimal

import pytest

from paysheet.brackets import Bracket, BracketTable, FormulaKind, ensure_disjoint_windows, select_effective
from paysheet.exceptions import MalformedTable, NegativeAmount


def build_table(name: str = "bir_monthly", **kwargs) -> BracketTable:
    rows = [
        (0, 20833, "0", "0"),
        (20833, 33333, "0", "0.15"),
        (33333, 66667, "1875.00", "0.20"),
        (66667, None, "8541.80", "0.25"),
    ]
    brackets = [
        Bracket(
            index=i + 1,
            lower_bound=Decimal(lower),
            upper_bound=Decimal(upper) if upper is not None else None,
            base=Decimal(base),
            rate=Decimal(rate),
        )
        for i, (lower, upper, base, rate) in enumerate(rows)
    ]
    return BracketTable(name, brackets, **kwargs)


def test_boundary_value_belongs_to_upper_bracket():
    table = build_table()

    assert table.find("20832.99").index == 1
    assert table.find("20833.00").index == 2
    assert table.find("33333").index == 3


def test_zero_and_huge_values_match():
    table = build_table()

    assert table.find(0).index == 1
    assert table.find("999999999").index == 4


def test_negative_lookup_is_an_input_error():
    with pytest.raises(NegativeAmount):
        build_table().find("-0.01")


def test_formula_kinds():
    flat = Bracket(1, Decimal("0"), None, FormulaKind.FLAT, base=Decimal("500"))
    marginal = Bracket(2, Decimal("10417"), None, FormulaKind.MARGINAL, base=Decimal("0"), rate=Decimal("0.15"))
    percent = Bracket(3, Decimal("0"), None, FormulaKind.PERCENT_OF_VALUE, rate=Decimal("0.05"))
    credit = Bracket(4, Decimal("0"), None, FormulaKind.PERCENT_OF_CREDIT, base=Decimal("25000"), rate=Decimal("0.15"))

    assert flat.amount(Decimal("123")) == Decimal("500.00")
    assert marginal.amount(Decimal("10525")) == Decimal("16.20")
    assert percent.amount(Decimal("25000")) == Decimal("1250.00")
    assert credit.amount(Decimal("24900")) == Decimal("3750.00")


def test_gap_between_brackets_is_rejected():
    brackets = [
        Bracket(1, Decimal("0"), Decimal("100")),
        Bracket(2, Decimal("101"), None),
    ]
    with pytest.raises(MalformedTable) as excinfo:
        BracketTable("gappy", brackets)

    assert excinfo.value.context["table"] == "gappy"


def test_open_ended_bracket_must_be_last():
    brackets = [
        Bracket(1, Decimal("0"), None),
        Bracket(2, Decimal("100"), None),
    ]
    with pytest.raises(MalformedTable):
        BracketTable("two_tops", brackets)


@pytest.mark.parametrize(
    "brackets",
    [
        [],
        [Bracket(1, Decimal("5"), None)],
        [Bracket(1, Decimal("0"), Decimal("100"))],
        [Bracket(1, Decimal("0"), None, rate=Decimal("1.5"))],
        [Bracket(1, Decimal("0"), None, base=Decimal("-1"))],
        [Bracket(2, Decimal("0"), Decimal("10")), Bracket(1, Decimal("10"), None)],
    ],
)
def test_malformed_tables_fail_at_construction(brackets):
    with pytest.raises(MalformedTable):
        BracketTable("bad", brackets)


def test_effective_window_selection():
    old = build_table("old", effective_from=date(2018, 1, 1), effective_to=date(2023, 1, 1))
    new = build_table("new", effective_from=date(2023, 1, 1))

    assert select_effective([old, new], date(2022, 12, 31)) is old
    assert select_effective([old, new], date(2023, 1, 1)) is new
    assert select_effective([old, new], date(2017, 12, 31)) is None


def test_overlapping_windows_are_rejected():
    first = build_table("first", effective_from=date(2023, 1, 1))
    second = build_table("second", effective_from=date(2024, 1, 1))

    with pytest.raises(MalformedTable):
        ensure_disjoint_windows([first, second], "monthly")

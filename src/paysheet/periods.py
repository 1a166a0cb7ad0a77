from __future__ import annotations

import calendar
import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

from .exceptions import MissingPeriodField


class PeriodType(str, Enum):
    MONTHLY = "MONTHLY"
    SEMI_MONTHLY = "SEMI_MONTHLY"
    WEEKLY = "WEEKLY"
    DAILY = "DAILY"

    @property
    def periods_per_month(self) -> Decimal:
        return PERIODS_PER_MONTH[self]

    def to_monthly(self, amount: Decimal) -> Decimal:
        """Monthly equivalent of a per-period amount (unrounded)."""
        return amount * self.periods_per_month

    def from_monthly(self, amount: Decimal) -> Decimal:
        return amount / self.periods_per_month


# weekly and daily factors follow the 4.33 weeks / 21.67 working days convention
PERIODS_PER_MONTH = {
    PeriodType.MONTHLY: Decimal("1"),
    PeriodType.SEMI_MONTHLY: Decimal("2"),
    PeriodType.WEEKLY: Decimal("4.33"),
    PeriodType.DAILY: Decimal("21.67"),
}


class SubPeriod(str, Enum):
    FIRST_HALF = "FIRST_HALF"
    SECOND_HALF = "SECOND_HALF"
    FULL_MONTH = "FULL_MONTH"


class Eligibility(str, Enum):
    FIRST_HALF = "FIRST_HALF"
    SECOND_HALF = "SECOND_HALF"
    EVERY = "EVERY"

    def allows(self, sub_period: SubPeriod) -> bool:
        if self is Eligibility.EVERY or sub_period is SubPeriod.FULL_MONTH:
            return True
        return self.value == sub_period.value


def sub_period_for(day: date) -> SubPeriod:
    return SubPeriod.FIRST_HALF if day.day <= 15 else SubPeriod.SECOND_HALF


PERIOD_CODE = re.compile(r"^(?P<year>\d{4})-(?P<month>\d{2})(?:[.-](?P<half>[AB]))?$")


@dataclass(frozen=True)
class PayPeriod:
    code: str
    start: date
    end: date
    sub_period: SubPeriod

    @classmethod
    def from_code(cls, code: str) -> "PayPeriod":
        """Parse ``2025-09.A`` (1st-15th), ``2025-09.B`` (16th-end) or ``2025-09`` (whole month).

        ``2025-09-A`` is read as ``2025-09.A``.
        """

        match = PERIOD_CODE.match(code.strip())
        if not match:
            raise MissingPeriodField("pay_period", f"Unrecognised pay period code {code!r}")
        year, month = int(match["year"]), int(match["month"])
        if not 1 <= month <= 12:
            raise MissingPeriodField("pay_period", f"Month out of range in pay period code {code!r}")
        last_day = calendar.monthrange(year, month)[1]
        half = match["half"]
        code = f"{year:04d}-{month:02d}" + (f".{half}" if half else "")
        if half == "A":
            return cls(code, date(year, month, 1), date(year, month, 15), SubPeriod.FIRST_HALF)
        if half == "B":
            return cls(code, date(year, month, 16), date(year, month, last_day), SubPeriod.SECOND_HALF)
        return cls(code, date(year, month, 1), date(year, month, last_day), SubPeriod.FULL_MONTH)

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

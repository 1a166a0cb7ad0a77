from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Mapping, NamedTuple, Optional, Tuple

from .contributions import ContributionShare
from .exceptions import MissingPeriodField, NegativeAmount, PayrollInputError
from .money import ZERO, to_money
from .periods import PeriodType, SubPeriod


class EarningKind(str, Enum):
    BASIC = "BASIC"
    OVERTIME = "OVERTIME"
    NIGHT_DIFFERENTIAL = "NIGHT_DIFFERENTIAL"
    HOLIDAY = "HOLIDAY"
    ALLOWANCE = "ALLOWANCE"
    OTHER = "OTHER"


class DeductionKind(str, Enum):
    ABSENCES = "ABSENCES"
    TARDINESS = "TARDINESS"
    LOAN = "LOAN"
    OTHER = "OTHER"


class PayslipStatus(str, Enum):
    DRAFT = "DRAFT"
    APPROVED = "APPROVED"
    PAID = "PAID"


NEGATIVE_NET_PAY = "NegativeNetPayWarning"


def _coerce(name: str, convert: Callable[[Any], Any], value: Any) -> Any:
    if value is None:
        raise MissingPeriodField(name)
    try:
        return convert(value)
    except (TypeError, ValueError) as exc:
        raise PayrollInputError(f"Invalid {name}: {value!r}", field=name) from exc


class PayslipKey(NamedTuple):
    company_id: str
    payroll_run_id: str
    employee_id: str

    def __str__(self) -> str:
        return f"{self.company_id}/{self.payroll_run_id}/{self.employee_id}"


@dataclass(frozen=True)
class EarningLine:
    kind: EarningKind
    amount: Decimal
    description: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", _coerce("earnings kind", EarningKind, self.kind))
        object.__setattr__(self, "amount", _coerce(f"{self.kind.value} amount", to_money, self.amount))


@dataclass(frozen=True)
class DeductionLine:
    kind: DeductionKind
    amount: Decimal
    description: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", _coerce("deduction kind", DeductionKind, self.kind))
        object.__setattr__(self, "amount", _coerce(f"{self.kind.value} amount", to_money, self.amount))


@dataclass(frozen=True)
class EmployeePeriodInput:
    company_id: str
    payroll_run_id: str
    employee_id: str
    period_type: PeriodType
    sub_period: SubPeriod
    monthly_equivalent_salary: Decimal
    earnings_lines: Tuple[EarningLine, ...] = ()
    other_deduction_lines: Tuple[DeductionLine, ...] = ()
    loan_amount: Decimal = ZERO

    def __post_init__(self) -> None:
        for name in ("company_id", "payroll_run_id", "employee_id"):
            if not getattr(self, name):
                raise MissingPeriodField(name)
        object.__setattr__(self, "period_type", _coerce("period_type", PeriodType, self.period_type))
        object.__setattr__(self, "sub_period", _coerce("sub_period", SubPeriod, self.sub_period))
        object.__setattr__(
            self,
            "monthly_equivalent_salary",
            _coerce("monthly_equivalent_salary", to_money, self.monthly_equivalent_salary),
        )
        object.__setattr__(self, "loan_amount", _coerce("loan_amount", to_money, self.loan_amount))
        if self.monthly_equivalent_salary < ZERO:
            raise NegativeAmount("monthly_equivalent_salary", self.monthly_equivalent_salary)
        object.__setattr__(self, "earnings_lines", tuple(self.earnings_lines))
        object.__setattr__(self, "other_deduction_lines", tuple(self.other_deduction_lines))

    @property
    def key(self) -> PayslipKey:
        return PayslipKey(self.company_id, self.payroll_run_id, self.employee_id)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], defaults: Optional[Mapping[str, Any]] = None) -> "EmployeePeriodInput":
        merged = {**(defaults or {}), **data}
        try:
            return cls(
                company_id=merged.get("company_id"),
                payroll_run_id=merged.get("payroll_run_id"),
                employee_id=merged.get("employee_id"),
                period_type=merged.get("period_type"),
                sub_period=merged.get("sub_period"),
                monthly_equivalent_salary=merged.get("monthly_equivalent_salary"),
                earnings_lines=tuple(
                    EarningLine(line["kind"], line["amount"], line.get("description", ""))
                    for line in merged.get("earnings", [])
                ),
                other_deduction_lines=tuple(
                    DeductionLine(line["kind"], line["amount"], line.get("description", ""))
                    for line in merged.get("deductions", [])
                ),
                loan_amount=merged.get("loan_amount", "0"),
            )
        except KeyError as exc:
            raise MissingPeriodField(str(exc.args[0])) from exc


@dataclass(frozen=True)
class PayslipWarning:
    code: str
    message: str


@dataclass(frozen=True)
class ExplanationLine:
    code: str
    label: str
    amount: Decimal
    details: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Payslip:
    company_id: str
    payroll_run_id: str
    employee_id: str
    period_type: PeriodType
    sub_period: SubPeriod
    as_of: date
    schedule_version: str
    earnings: Dict[str, Decimal]
    total_earnings: Decimal
    contributions: Dict[str, ContributionShare]
    taxable_income: Decimal
    withholding_tax: Decimal
    tax_bracket_index: int
    other_deductions: Dict[str, Decimal]
    loan_amount: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    status: PayslipStatus = PayslipStatus.DRAFT
    skipped_contributions: Tuple[str, ...] = ()
    warnings: Tuple[PayslipWarning, ...] = ()
    explanations: Tuple[ExplanationLine, ...] = ()

    @property
    def key(self) -> PayslipKey:
        return PayslipKey(self.company_id, self.payroll_run_id, self.employee_id)

    def employee_contributions(self) -> Decimal:
        return sum((share.employee_share for share in self.contributions.values()), ZERO)

    def employer_contributions(self) -> Decimal:
        return sum((share.employer_share for share in self.contributions.values()), ZERO)

    def has_warning(self, code: str) -> bool:
        return any(w.code == code for w in self.warnings)

    def to_dict(self, include_status: bool = True) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "company_id": self.company_id,
            "payroll_run_id": self.payroll_run_id,
            "employee_id": self.employee_id,
            "period_type": self.period_type.value,
            "sub_period": self.sub_period.value,
            "as_of": self.as_of.isoformat(),
            "schedule_version": self.schedule_version,
            "earnings": {kind: str(amount) for kind, amount in self.earnings.items()},
            "total_earnings": str(self.total_earnings),
            "contributions": {
                kind: {
                    "employee_share": str(share.employee_share),
                    "employer_share": str(share.employer_share),
                    "base_amount": str(share.base_amount),
                    "bracket_index": share.bracket_index,
                    "table": share.table,
                }
                for kind, share in self.contributions.items()
            },
            "taxable_income": str(self.taxable_income),
            "withholding_tax": str(self.withholding_tax),
            "tax_bracket_index": self.tax_bracket_index,
            "other_deductions": {kind: str(amount) for kind, amount in self.other_deductions.items()},
            "loan_amount": str(self.loan_amount),
            "total_deductions": str(self.total_deductions),
            "net_pay": str(self.net_pay),
            "skipped_contributions": list(self.skipped_contributions),
            "warnings": [{"code": w.code, "message": w.message} for w in self.warnings],
            "explanations": [
                {"code": e.code, "label": e.label, "amount": str(e.amount), "details": dict(e.details)}
                for e in self.explanations
            ],
        }
        if include_status:
            payload["status"] = self.status.value
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Payslip":
        return cls(
            company_id=data["company_id"],
            payroll_run_id=data["payroll_run_id"],
            employee_id=data["employee_id"],
            period_type=PeriodType(data["period_type"]),
            sub_period=SubPeriod(data["sub_period"]),
            as_of=date.fromisoformat(data["as_of"]),
            schedule_version=data["schedule_version"],
            earnings={kind: Decimal(amount) for kind, amount in data["earnings"].items()},
            total_earnings=Decimal(data["total_earnings"]),
            contributions={
                kind: ContributionShare(
                    kind=kind,
                    employee_share=Decimal(share["employee_share"]),
                    employer_share=Decimal(share["employer_share"]),
                    base_amount=Decimal(share["base_amount"]),
                    bracket_index=share["bracket_index"],
                    table=share["table"],
                )
                for kind, share in data["contributions"].items()
            },
            taxable_income=Decimal(data["taxable_income"]),
            withholding_tax=Decimal(data["withholding_tax"]),
            tax_bracket_index=data["tax_bracket_index"],
            other_deductions={kind: Decimal(amount) for kind, amount in data["other_deductions"].items()},
            loan_amount=Decimal(data["loan_amount"]),
            total_deductions=Decimal(data["total_deductions"]),
            net_pay=Decimal(data["net_pay"]),
            status=PayslipStatus(data.get("status", PayslipStatus.DRAFT.value)),
            skipped_contributions=tuple(data.get("skipped_contributions", [])),
            warnings=tuple(PayslipWarning(**w) for w in data.get("warnings", [])),
            explanations=tuple(
                ExplanationLine(e["code"], e["label"], Decimal(e["amount"]), dict(e.get("details", {})))
                for e in data.get("explanations", [])
            ),
        )


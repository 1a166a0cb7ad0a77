from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Dict, List, Optional

from .aggregators import DeductionAggregator, EarningsAggregator
from .contributions import SKIPPED, ContributionShare
from .exceptions import ConfigurationError, PayrollEngineError
from .logging import get_logger
from .models import NEGATIVE_NET_PAY, EmployeePeriodInput, ExplanationLine, Payslip, PayslipStatus, PayslipWarning
from .money import ZERO, format_money, quantize
from .monitoring import report_configuration_error
from .observability import get_meter, get_tracer
from .schedules import ScheduleSet

logger = get_logger(__name__)
tracer = get_tracer(__name__)
meter = get_meter(__name__)
payslips_computed = meter.create_counter(
    "paysheet.payslips.computed", unit="1", description="Payslips computed by the engine"
)


class ComputationStage(str, Enum):
    RECEIVED = "RECEIVED"
    EARNINGS_COMPUTED = "EARNINGS_COMPUTED"
    CONTRIBUTIONS_COMPUTED = "CONTRIBUTIONS_COMPUTED"
    TAX_COMPUTED = "TAX_COMPUTED"
    ASSEMBLED = "ASSEMBLED"


class PayslipComputer:
    """Turns one employee's period input into a DRAFT payslip.

    Pure with respect to its arguments: the same input, schedule snapshot and
    ``as_of`` date always produce an equal payslip. Contributions are
    computed on the monthly-equivalent salary; withholding tax on the period's
    taxable income using the table for the input's period type.
    """

    def __init__(
        self,
        earnings: Optional[EarningsAggregator] = None,
        deductions: Optional[DeductionAggregator] = None,
    ):
        self.earnings = earnings or EarningsAggregator()
        self.deductions = deductions or DeductionAggregator()

    def compute(self, request: EmployeePeriodInput, schedules: ScheduleSet, as_of: date) -> Payslip:
        stage = ComputationStage.RECEIVED
        with tracer.start_as_current_span("paysheet.compute_payslip") as span:
            span.set_attribute("paysheet.employee_id", request.employee_id)
            span.set_attribute("paysheet.payroll_run_id", request.payroll_run_id)
            span.set_attribute("paysheet.schedule_version", schedules.version)
            try:
                explanations: List[ExplanationLine] = []

                earnings = self.earnings.by_kind(request.earnings_lines)
                total_earnings = self.earnings.total(request.earnings_lines)
                for kind, amount in earnings.items():
                    explanations.append(
                        ExplanationLine(code=f"earning:{kind}", label=f"{kind.replace('_', ' ').title()} pay", amount=amount)
                    )
                stage = ComputationStage.EARNINGS_COMPUTED

                contributions: Dict[str, ContributionShare] = {}
                skipped: List[str] = []
                for kind, rule in schedules.contributions.items():
                    result = rule.compute(request.monthly_equivalent_salary, request.sub_period, as_of)
                    if result is SKIPPED:
                        skipped.append(kind)
                        continue
                    contributions[kind] = result
                    explanations.append(
                        ExplanationLine(
                            code=f"contribution:{kind}",
                            label=f"{rule.label} (employee share)",
                            amount=result.employee_share,
                            details={
                                "base": str(result.base_amount),
                                "bracket": str(result.bracket_index),
                                "table": result.table,
                                "employer_share": str(result.employer_share),
                            },
                        )
                    )
                stage = ComputationStage.CONTRIBUTIONS_COMPUTED

                employee_shares = [share.employee_share for share in contributions.values()]
                taxable_income = max(quantize(total_earnings - sum(employee_shares, ZERO)), ZERO)
                tax = schedules.tax.compute_detail(taxable_income, request.period_type, as_of)
                explanations.append(
                    ExplanationLine(
                        code="withholding_tax",
                        label="Withholding tax",
                        amount=tax.tax,
                        details={
                            "taxable_income": str(taxable_income),
                            "table": tax.table,
                            "bracket": tax.bracket.describe(),
                            "excess": str(tax.excess),
                        },
                    )
                )
                stage = ComputationStage.TAX_COMPUTED

                other_deductions = self.deductions.by_kind(request.other_deduction_lines)
                total_deductions = self.deductions.total(
                    employee_shares, tax.tax, request.loan_amount, request.other_deduction_lines
                )
                for kind, amount in other_deductions.items():
                    explanations.append(
                        ExplanationLine(code=f"deduction:{kind}", label=kind.replace("_", " ").title(), amount=amount)
                    )
                if request.loan_amount:
                    explanations.append(ExplanationLine(code="deduction:LOAN_AMOUNT", label="Loans", amount=request.loan_amount))

                net_pay = total_earnings - total_deductions
                warnings: List[PayslipWarning] = []
                if net_pay < ZERO:
                    warnings.append(
                        PayslipWarning(
                            code=NEGATIVE_NET_PAY,
                            message=f"Deductions exceed earnings; net pay is {format_money(net_pay)}",
                        )
                    )
                    logger.warning(
                        "negative_net_pay",
                        employee_id=request.employee_id,
                        payroll_run_id=request.payroll_run_id,
                        net_pay=str(net_pay),
                    )

                payslip = Payslip(
                    company_id=request.company_id,
                    payroll_run_id=request.payroll_run_id,
                    employee_id=request.employee_id,
                    period_type=request.period_type,
                    sub_period=request.sub_period,
                    as_of=as_of,
                    schedule_version=schedules.version,
                    earnings=earnings,
                    total_earnings=total_earnings,
                    contributions=contributions,
                    taxable_income=taxable_income,
                    withholding_tax=tax.tax,
                    tax_bracket_index=tax.bracket.index,
                    other_deductions=other_deductions,
                    loan_amount=request.loan_amount,
                    total_deductions=total_deductions,
                    net_pay=net_pay,
                    status=PayslipStatus.DRAFT,
                    skipped_contributions=tuple(skipped),
                    warnings=tuple(warnings),
                    explanations=tuple(explanations),
                )
                stage = ComputationStage.ASSEMBLED
            except PayrollEngineError as exc:
                exc.with_context(
                    employee_id=request.employee_id,
                    payroll_run_id=request.payroll_run_id,
                    version=schedules.version,
                    stage=stage.value,
                )
                span.record_exception(exc)
                if isinstance(exc, ConfigurationError):
                    report_configuration_error(exc)
                raise

        payslips_computed.add(1, {"schedule_version": schedules.version, "period_type": request.period_type.value})
        logger.debug(
            "payslip_computed",
            employee_id=request.employee_id,
            payroll_run_id=request.payroll_run_id,
            gross=str(total_earnings),
            net=str(net_pay),
            skipped=skipped,
            stage=stage.value,
        )
        return payslip


def compute_payslip(request: EmployeePeriodInput, schedules: ScheduleSet, as_of: date) -> Payslip:
    return PayslipComputer().compute(request, schedules, as_of)

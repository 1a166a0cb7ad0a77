from dataclasses import replace
from datetime import date
from decimal import Decimal

from paysheet.calculator import PayslipComputer
from paysheet.models import EarningLine, EmployeePeriodInput, PayslipStatus
from paysheet.schedules import ScheduleRepository, default_schedules_dir
from paysheet.verification import fingerprint, verification_code, verify


def build_payslip(basic: str = "12500"):
    request = EmployeePeriodInput(
        company_id="acme",
        payroll_run_id="2025-09.B",
        employee_id="emp1",
        period_type="SEMI_MONTHLY",
        sub_period="SECOND_HALF",
        monthly_equivalent_salary=Decimal("25000"),
        earnings_lines=(EarningLine("BASIC", basic),),
    )
    schedules = ScheduleRepository(default_schedules_dir()).load("ph_2025")
    return PayslipComputer().compute(request, schedules, date(2025, 9, 30))


def test_code_is_grouped_uppercase_hex():
    code = verification_code(build_payslip())

    assert len(code) == 14
    assert code.count("-") == 2
    assert code.replace("-", "") == fingerprint(build_payslip())[:12].upper()


def test_status_does_not_change_fingerprint():
    payslip = build_payslip()

    assert fingerprint(payslip) == fingerprint(replace(payslip, status=PayslipStatus.PAID))


def test_any_amount_change_changes_fingerprint():
    assert fingerprint(build_payslip("12500")) != fingerprint(build_payslip("12500.01"))


def test_verify_accepts_case_and_separator_variants():
    payslip = build_payslip()
    code = verification_code(payslip)

    assert verify(payslip, code)
    assert verify(payslip, code.lower().replace("-", " "))
    assert not verify(payslip, "0000-0000-0000")
    assert not verify(payslip, "")

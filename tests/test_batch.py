from datetime import date
from decimal import Decimal

import pytest

from paysheet.batch import EmployeeFailure, PayrollBatch
from paysheet.calculator import PayslipComputer
from paysheet.exceptions import ConfigurationError
from paysheet.models import EarningLine, EmployeePeriodInput
from paysheet.schedules import ScheduleRepository, default_schedules_dir
from paysheet.store import InMemoryPayslipStore

AS_OF = date(2025, 9, 30)


def build_batch(**kwargs) -> PayrollBatch:
    schedules = ScheduleRepository(default_schedules_dir()).load("ph_2025")
    return PayrollBatch(schedules, **kwargs)


def build_request(employee_id: str, basic: str = "12500", salary: str = "25000") -> EmployeePeriodInput:
    return EmployeePeriodInput(
        company_id="acme",
        payroll_run_id="2025-09.B",
        employee_id=employee_id,
        period_type="SEMI_MONTHLY",
        sub_period="SECOND_HALF",
        monthly_equivalent_salary=Decimal(salary),
        earnings_lines=(EarningLine("BASIC", basic),),
    )


def test_run_computes_every_employee_in_input_order():
    requests = [build_request(f"emp{i}") for i in range(20)]

    summary = build_batch(max_workers=4).run(requests, AS_OF)

    assert [p.employee_id for p in summary.payslips] == [r.employee_id for r in requests]
    assert summary.ok
    assert summary.total_net == Decimal("10508.80") * 20
    assert summary.total_gross == Decimal("250000.00")
    assert summary.total_employer_contributions == (Decimal("2530.00") + Decimal("625.00") + Decimal("100.00")) * 20


def test_input_errors_are_collected_and_the_run_continues():
    bad = EmployeePeriodInput(
        company_id="acme",
        payroll_run_id="2025-09.B",
        employee_id="bad",
        period_type="SEMI_MONTHLY",
        sub_period="SECOND_HALF",
        monthly_equivalent_salary=Decimal("25000"),
        earnings_lines=(EarningLine("BASIC", "-100"),),
    )

    summary = build_batch().run([build_request("emp1"), bad, build_request("emp2")], AS_OF)

    assert [p.employee_id for p in summary.payslips] == ["emp1", "emp2"]
    assert [f.employee_id for f in summary.failures] == ["bad"]
    assert summary.failures[0].context["line"] == "BASIC"
    assert not summary.ok


def test_duplicate_inputs_are_reported():
    summary = build_batch().run([build_request("emp1"), build_request("emp1", basic="1")], AS_OF)

    assert len(summary.payslips) == 1
    assert summary.payslips[0].total_earnings == Decimal("12500.00")
    assert "Duplicate" in summary.failures[0].error


def test_configuration_error_aborts_the_run():
    with pytest.raises(ConfigurationError):
        build_batch().run([build_request("emp1"), build_request("emp2")], date(2020, 1, 31))


def test_cancel_before_run_computes_nothing():
    batch = build_batch()
    batch.cancel()

    summary = batch.run([build_request("emp1"), build_request("emp2")], AS_OF)

    assert summary.payslips == []
    assert summary.cancelled == ["emp1", "emp2"]


def test_cancel_mid_run_lets_in_flight_work_finish():
    class CancellingComputer(PayslipComputer):
        def __init__(self, batch_ref):
            super().__init__()
            self.batch_ref = batch_ref

        def compute(self, request, schedules, as_of):
            payslip = super().compute(request, schedules, as_of)
            if request.employee_id == "emp0":
                self.batch_ref[0].cancel()
            return payslip

    batch_ref = []
    batch = build_batch(computer=CancellingComputer(batch_ref), max_workers=1)
    batch_ref.append(batch)

    summary = batch.run([build_request(f"emp{i}") for i in range(5)], AS_OF)

    assert [p.employee_id for p in summary.payslips] == ["emp0"]
    assert summary.cancelled == ["emp1", "emp2", "emp3", "emp4"]


def test_store_receives_each_payslip_once():
    store = InMemoryPayslipStore()
    batch = build_batch(store=store)
    requests = [build_request("emp1"), build_request("emp2")]

    first = batch.run(requests, AS_OF)
    second = batch.run(requests, AS_OF)

    assert first.stored_versions == {"emp1": 1, "emp2": 1}
    assert second.stored_versions == {"emp1": 1, "emp2": 1}
    assert len(store.history(requests[0].key)) == 1


def test_batch_can_rerun_after_a_configuration_error():
    batch = build_batch()
    requests = [build_request("emp1"), build_request("emp2")]
    with pytest.raises(ConfigurationError):
        batch.run(requests, date(2020, 1, 31))

    summary = batch.run(requests, AS_OF)

    assert not batch.cancelled
    assert [p.employee_id for p in summary.payslips] == ["emp1", "emp2"]
    assert summary.cancelled == []


def test_entries_rejected_before_the_run_are_reported_with_it():
    rejected = EmployeeFailure(employee_id="bad", error="Invalid BASIC amount: 'NaN'", context={"field": "BASIC amount"})

    summary = build_batch().run([build_request("good")], AS_OF, failures=[rejected])

    assert [p.employee_id for p in summary.payslips] == ["good"]
    assert [f.employee_id for f in summary.failures] == ["bad"]
    assert not summary.ok

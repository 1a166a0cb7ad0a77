from .batch import PayrollBatch, RunSummary
from .calculator import PayslipComputer, compute_payslip
from .models import EmployeePeriodInput, Payslip, PayslipKey, PayslipStatus
from .schedules import ScheduleRepository, ScheduleSet
from .store import InMemoryPayslipStore, SqlPayslipStore

__version__ = "0.1.0"

__all__ = [
    "EmployeePeriodInput",
    "InMemoryPayslipStore",
    "Payslip",
    "PayslipComputer",
    "PayslipKey",
    "PayslipStatus",
    "PayrollBatch",
    "RunSummary",
    "ScheduleRepository",
    "ScheduleSet",
    "SqlPayslipStore",
    "compute_payslip",
]

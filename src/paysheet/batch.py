from __future__ import annotations

import threading
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from .calculator import PayslipComputer
from .exceptions import ConfigurationError, PayrollInputError, PayslipLocked
from .logging import get_logger
from .models import EmployeePeriodInput, Payslip, PayslipKey
from .money import ZERO
from .schedules import ScheduleSet
from .store import PayslipStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class EmployeeFailure:
    employee_id: str
    error: str
    context: Dict[str, str] = field(default_factory=dict)


@dataclass
class RunSummary:
    schedule_version: str
    as_of: date
    payslips: List[Payslip] = field(default_factory=list)
    failures: List[EmployeeFailure] = field(default_factory=list)
    cancelled: List[str] = field(default_factory=list)
    stored_versions: Dict[str, int] = field(default_factory=dict)

    @property
    def total_gross(self) -> Decimal:
        return sum((p.total_earnings for p in self.payslips), ZERO)

    @property
    def total_net(self) -> Decimal:
        return sum((p.net_pay for p in self.payslips), ZERO)

    @property
    def total_withholding(self) -> Decimal:
        return sum((p.withholding_tax for p in self.payslips), ZERO)

    @property
    def total_employee_contributions(self) -> Decimal:
        return sum((p.employee_contributions() for p in self.payslips), ZERO)

    @property
    def total_employer_contributions(self) -> Decimal:
        return sum((p.employer_contributions() for p in self.payslips), ZERO)

    @property
    def ok(self) -> bool:
        return not self.failures and not self.cancelled


class PayrollBatch:
    """Computes a payroll run with one task per employee.

    The schedule set is pinned when the batch is built so every payslip in a
    run uses the same tables. Input errors are collected per employee and the
    rest of the run carries on; a configuration error stops the run and
    propagates. ``cancel()`` stops dispatching new employees; computations
    already running finish and are reported.
    """

    def __init__(
        self,
        schedules: ScheduleSet,
        computer: Optional[PayslipComputer] = None,
        max_workers: Optional[int] = None,
        store: Optional[PayslipStore] = None,
    ):
        self.schedules = schedules
        self.computer = computer or PayslipComputer()
        self.max_workers = max_workers
        self.store = store
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def _compute_one(self, request: EmployeePeriodInput, as_of: date, aborted: threading.Event) -> Optional[Payslip]:
        if self._cancelled.is_set() or aborted.is_set():
            return None
        return self.computer.compute(request, self.schedules, as_of)

    def run(
        self,
        inputs: Iterable[EmployeePeriodInput],
        as_of: date,
        failures: Iterable[EmployeeFailure] = (),
    ) -> RunSummary:
        """Compute every input. ``failures`` are entries rejected before computation; they are reported with the run."""
        summary = RunSummary(schedule_version=self.schedules.version, as_of=as_of, failures=list(failures))
        requests: List[EmployeePeriodInput] = []
        seen: Dict[PayslipKey, EmployeePeriodInput] = {}
        for request in inputs:
            if request.key in seen:
                summary.failures.append(
                    EmployeeFailure(
                        employee_id=request.employee_id,
                        error=f"Duplicate input for {request.key}",
                        context={"payroll_run_id": request.payroll_run_id},
                    )
                )
                continue
            seen[request.key] = request
            requests.append(request)

        logger.info("payroll_batch_started", employees=len(requests), version=self.schedules.version, as_of=str(as_of))
        aborted = threading.Event()
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="paysheet") as pool:
            futures: Dict[Future, EmployeePeriodInput] = {
                pool.submit(self._compute_one, request, as_of, aborted): request for request in requests
            }
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)
            configuration_error = self._first_configuration_error(done)
            if configuration_error is not None:
                aborted.set()
                for future in pending:
                    future.cancel()
                logger.error("payroll_batch_aborted", error=str(configuration_error))
                raise configuration_error
            if pending:
                done, _ = wait(pending)
                configuration_error = self._first_configuration_error(done)
                if configuration_error is not None:
                    logger.error("payroll_batch_aborted", error=str(configuration_error))
                    raise configuration_error

        for future, request in futures.items():
            self._collect(summary, request, future)

        logger.info(
            "payroll_batch_finished",
            computed=len(summary.payslips),
            failed=len(summary.failures),
            cancelled=len(summary.cancelled),
            total_net=str(summary.total_net),
        )
        return summary

    @staticmethod
    def _first_configuration_error(done: Iterable[Future]) -> Optional[ConfigurationError]:
        for future in done:
            if future.cancelled():
                continue
            error = future.exception()
            if isinstance(error, ConfigurationError):
                return error
        return None

    def _collect(self, summary: RunSummary, request: EmployeePeriodInput, future: Future) -> None:
        if future.cancelled():
            summary.cancelled.append(request.employee_id)
            return
        error = future.exception()
        if isinstance(error, PayrollInputError):
            logger.warning("employee_failed", employee_id=request.employee_id, error=str(error))
            summary.failures.append(
                EmployeeFailure(
                    employee_id=request.employee_id,
                    error=error.message,
                    context={key: str(value) for key, value in error.context.items()},
                )
            )
            return
        if error is not None:
            raise error
        payslip = future.result()
        if payslip is None:
            summary.cancelled.append(request.employee_id)
            return
        summary.payslips.append(payslip)
        if self.store is None:
            return
        try:
            stored = self.store.upsert(payslip)
        except PayslipLocked as exc:
            logger.warning("payslip_locked", employee_id=request.employee_id, status=exc.context.get("status"))
            summary.failures.append(EmployeeFailure(employee_id=request.employee_id, error=exc.message))
            return
        summary.stored_versions[request.employee_id] = stored.version

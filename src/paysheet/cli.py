from __future__ import annotations

import argparse
import json
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .batch import EmployeeFailure, PayrollBatch, RunSummary
from .config import Settings, get_settings
from .db import create_session_factory
from .exceptions import PayrollEngineError, PayrollInputError
from .logging import configure_logging
from .models import EmployeePeriodInput, PayslipKey, PayslipStatus
from .money import format_money, to_decimal
from .monitoring import configure_error_monitoring
from .observability import configure_observability
from .periods import PayPeriod, PeriodType
from .schedules import ScheduleRepository, ScheduleSet
from .store import SqlPayslipStore
from .verification import verification_code, verify


def settings_from_args(args: argparse.Namespace) -> Settings:
    return get_settings()


def repository_from_args(args: argparse.Namespace) -> ScheduleRepository:
    schedules_dir = args.schedules_dir or settings_from_args(args).schedules_dir
    return ScheduleRepository(Path(schedules_dir))


def schedules_from_args(args: argparse.Namespace) -> ScheduleSet:
    version = args.version or settings_from_args(args).schedule_version
    return repository_from_args(args).load(version)


def store_from_args(args: argparse.Namespace) -> SqlPayslipStore:
    database_url = args.database_url or settings_from_args(args).database_url
    return SqlPayslipStore(create_session_factory(database_url))


def parse_date(value: str) -> date:
    return date.fromisoformat(value)


def load_inputs(path: Path, pay_period: PayPeriod) -> Tuple[List[EmployeePeriodInput], List[EmployeeFailure]]:
    """Read a run file: shared fields at the top level, one entry per employee under ``employees``.

    Entries that cannot be parsed are returned as failures so the rest of the
    run is still computed.
    """
    with path.open("r", encoding="utf-8") as handle:
        data = json.load(handle, parse_float=Decimal)
    defaults: Dict[str, Any] = {k: v for k, v in data.items() if k != "employees"}
    defaults["sub_period"] = pay_period.sub_period.value
    inputs: List[EmployeePeriodInput] = []
    failures: List[EmployeeFailure] = []
    for index, entry in enumerate(data.get("employees", []), start=1):
        try:
            inputs.append(EmployeePeriodInput.from_dict(entry, defaults))
        except PayrollInputError as exc:
            failures.append(
                EmployeeFailure(
                    employee_id=str(entry.get("employee_id") or f"#{index}"),
                    error=exc.message,
                    context={key: str(value) for key, value in exc.context.items()},
                )
            )
    return inputs, failures


def print_summary(summary: RunSummary) -> None:
    for payslip in summary.payslips:
        contributions = " ".join(
            f"{kind}={share.employee_share}" for kind, share in payslip.contributions.items()
        )
        flags = " NEGATIVE_NET" if payslip.warnings else ""
        print(
            f"{payslip.employee_id} gross={payslip.total_earnings} {contributions} "
            f"taxable={payslip.taxable_income} tax={payslip.withholding_tax} net={payslip.net_pay}{flags}"
        )
    for failure in summary.failures:
        print(f"FAILED {failure.employee_id}: {failure.error}")
    for employee_id in summary.cancelled:
        print(f"CANCELLED {employee_id}")
    print(
        f"Totals: gross {format_money(summary.total_gross)}, withholding {format_money(summary.total_withholding)}, "
        f"employer contributions {format_money(summary.total_employer_contributions)}, net {format_money(summary.total_net)}"
    )


def cmd_versions(args: argparse.Namespace) -> None:
    repository = repository_from_args(args)
    for version in repository.available_versions():
        print(version)


def cmd_validate(args: argparse.Namespace) -> None:
    schedules = schedules_from_args(args)
    print(f"Schedule {schedules.version} is valid")
    for period_type in schedules.tax.period_types():
        for table in schedules.tax.tables_for(period_type):
            print(f"  tax {period_type.value}: {table.name} ({len(table)} brackets, from {table.effective_from})")
    for kind, rule in schedules.contributions.items():
        print(f"  contribution {kind}: {len(rule.tables)} table(s), applies on {rule.applies_on.value}")


def cmd_tax(args: argparse.Namespace) -> None:
    schedules = schedules_from_args(args)
    detail = schedules.tax.compute_detail(args.amount, PeriodType(args.period_type), args.as_of)
    print(f"{detail.table} bracket {detail.bracket.describe()}: tax {format_money(detail.tax)}")


def cmd_compute(args: argparse.Namespace) -> None:
    pay_period = PayPeriod.from_code(args.period)
    as_of = args.as_of or pay_period.end
    schedules = schedules_from_args(args)
    inputs, rejected = load_inputs(Path(args.inputs), pay_period)
    store = store_from_args(args) if args.persist else None
    max_workers = args.workers or settings_from_args(args).max_workers
    batch = PayrollBatch(schedules, max_workers=max_workers, store=store)
    summary = batch.run(inputs, as_of, failures=rejected)
    print_summary(summary)
    if store is not None:
        print(f"Stored {len(summary.stored_versions)} payslip(s)")
    if summary.failures:
        raise SystemExit(2)


def cmd_set_status(args: argparse.Namespace) -> None:
    store = store_from_args(args)
    key = PayslipKey(args.company, args.run, args.employee)
    stored = store.set_status(key, PayslipStatus(args.status))
    print(f"{key} version {stored.version} is {stored.status.value}")


def cmd_verify(args: argparse.Namespace) -> None:
    store = store_from_args(args)
    key = PayslipKey(args.company, args.run, args.employee)
    stored = store.get(key)
    if stored is None:
        print(f"No payslip stored for {key}")
        raise SystemExit(1)
    if args.code is None:
        print(verification_code(stored.payslip))
        return
    if not verify(stored.payslip, args.code):
        print(f"Code {args.code} does not match {key}")
        raise SystemExit(1)
    print(f"Verified {key}: net {format_money(stored.payslip.net_pay)}, {stored.status.value}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Statutory payroll computation")
    parser.add_argument("--schedules-dir", help="Directory holding schedule documents")
    parser.add_argument("--schedule-version", dest="version", help="Schedule version to load")
    parser.add_argument("--database-url", help="Payslip store connection string")
    sub = parser.add_subparsers(dest="command", required=True)

    versions = sub.add_parser("versions", help="List available schedule versions")
    versions.set_defaults(func=cmd_versions)

    validate = sub.add_parser("validate", help="Load and validate a schedule document")
    validate.set_defaults(func=cmd_validate)

    tax = sub.add_parser("tax", help="Withholding tax for one taxable amount")
    tax.add_argument("amount", type=to_decimal)
    tax.add_argument("--period-type", choices=[p.value for p in PeriodType], default=PeriodType.MONTHLY.value)
    tax.add_argument("--as-of", type=parse_date, default=date.today())
    tax.set_defaults(func=cmd_tax)

    compute = sub.add_parser("compute", help="Compute payslips for a run file")
    compute.add_argument("inputs", help="JSON run file")
    compute.add_argument("period", help="Pay period code, e.g. 2025-09.B")
    compute.add_argument("--as-of", type=parse_date, help="Effective date for table selection (default: period end)")
    compute.add_argument("--workers", type=int)
    compute.add_argument("--persist", action="store_true", help="Upsert payslips into the store")
    compute.set_defaults(func=cmd_compute)

    status = sub.add_parser("set-status", help="Approve or mark a stored payslip as paid")
    status.add_argument("company")
    status.add_argument("run")
    status.add_argument("employee")
    status.add_argument("status", choices=[s.value for s in PayslipStatus])
    status.set_defaults(func=cmd_set_status)

    check = sub.add_parser("verify", help="Print or check a payslip verification code")
    check.add_argument("company")
    check.add_argument("run")
    check.add_argument("employee")
    check.add_argument("code", nargs="?")
    check.set_defaults(func=cmd_verify)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = get_settings()
    configure_logging(settings.log_level)
    configure_error_monitoring(settings)
    configure_observability(settings)
    try:
        args.func(args)
    except PayrollEngineError as exc:
        print(f"error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()

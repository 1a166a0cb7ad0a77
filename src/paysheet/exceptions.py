"""
Exceptions raised by the payroll engine.

Configuration errors mean a schedule document or bracket table cannot be
trusted; they abort the computation instead of guessing a rate. Input errors
concern a single employee's period data and are collected per employee by
the batch runner.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class PayrollEngineError(Exception):
    """Base exception for the engine"""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = {k: v for k, v in context.items() if v is not None}

    def with_context(self, **context: Any) -> "PayrollEngineError":
        for key, value in context.items():
            if value is not None:
                self.context.setdefault(key, value)
        return self

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{key}={value}" for key, value in sorted(self.context.items()))
        return f"{self.message} ({details})"


class ConfigurationError(PayrollEngineError):
    """Bracket tables or schedule documents are unusable"""


class MalformedTable(ConfigurationError):
    def __init__(self, message: str, table: Optional[str] = None, **context: Any):
        super().__init__(message, table=table, **context)


class NoMatchingBracket(ConfigurationError):
    def __init__(self, table: str, value: Any):
        super().__init__(f"No bracket in table {table} matches {value}", table=table, value=value)


class NoActiveTaxTable(ConfigurationError):
    def __init__(self, period_type: str, as_of: Any, version: Optional[str] = None):
        super().__init__(
            f"No {period_type} withholding tax table is effective on {as_of}",
            period_type=period_type,
            as_of=as_of,
            version=version,
        )


class NoActiveContributionTable(ConfigurationError):
    def __init__(self, kind: str, as_of: Any, version: Optional[str] = None):
        super().__init__(
            f"No {kind} contribution table is effective on {as_of}",
            contribution=kind,
            as_of=as_of,
            version=version,
        )


class UnknownScheduleVersion(ConfigurationError):
    def __init__(self, version: str, location: Any):
        super().__init__(f"Schedule version {version} not found at {location}", version=version)


class PayrollInputError(PayrollEngineError):
    """Employee period data is invalid"""


class NegativeAmount(PayrollInputError):
    def __init__(self, field: str, amount: Any):
        super().__init__(f"{field} cannot be negative: {amount}", field=field)


class NegativeEarningsLine(PayrollInputError):
    def __init__(self, kind: str, amount: Any):
        super().__init__(
            f"Earnings line {kind} is negative ({amount}); record it as a deduction instead",
            line=kind,
        )


class NegativeDeductionLine(PayrollInputError):
    def __init__(self, kind: str, amount: Any):
        super().__init__(f"Deduction line {kind} is negative ({amount})", line=kind)


class MissingPeriodField(PayrollInputError):
    def __init__(self, field: str, message: Optional[str] = None):
        super().__init__(message or f"Required period field {field} is missing", field=field)


class PayslipLocked(PayrollEngineError):
    def __init__(self, key: Any, status: str):
        super().__init__(f"Payslip {key} is {status} and cannot be recomputed", key=key, status=status)


class InvalidStatusTransition(PayrollEngineError):
    def __init__(self, key: Any, current: str, requested: str):
        super().__init__(
            f"Payslip {key} cannot move from {current} to {requested}",
            key=key,
            current=current,
            requested=requested,
        )


class PayslipNotFound(PayrollEngineError):
    def __init__(self, key: Any):
        super().__init__(f"No payslip stored for {key}", key=key)


class StoreConflict(PayrollEngineError):
    def __init__(self, key: Any, attempts: int):
        super().__init__(f"Concurrent writers kept racing on {key}", key=key, attempts=attempts)

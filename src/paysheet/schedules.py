from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .brackets import Bracket, BracketTable, FormulaKind
from .contributions import ContributionRule, SplitRule
from .exceptions import MalformedTable, UnknownScheduleVersion
from .logging import get_logger
from .periods import Eligibility, PeriodType
from .tax_tables import TaxSchedule

logger = get_logger(__name__)


class BracketDoc(BaseModel):
    model_config = ConfigDict(extra="forbid")

    index: int
    lower: Decimal
    upper: Optional[Decimal] = None
    kind: FormulaKind = FormulaKind.MARGINAL
    base: Decimal = Decimal("0")
    rate: Decimal = Decimal("0")

    def to_bracket(self) -> Bracket:
        return Bracket(
            index=self.index,
            lower_bound=self.lower,
            upper_bound=self.upper,
            kind=self.kind,
            base=self.base,
            rate=self.rate,
        )


class TableDoc(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    period_type: PeriodType = PeriodType.MONTHLY
    effective_from: date
    effective_to: Optional[date] = None
    brackets: List[BracketDoc] = Field(min_length=1)

    def to_table(self) -> BracketTable:
        return BracketTable(
            name=self.name,
            brackets=[b.to_bracket() for b in self.brackets],
            period_type=self.period_type,
            effective_from=self.effective_from,
            effective_to=self.effective_to,
        )


class ContributionDoc(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: str
    label: Optional[str] = None
    employee_ratio: Optional[Decimal] = None
    employee_rate: Optional[Decimal] = None
    employer_rate: Optional[Decimal] = None
    applies_on: Eligibility = Eligibility.EVERY
    flat_adder: Decimal = Decimal("0")
    tables: List[TableDoc] = Field(min_length=1)

    @model_validator(mode="after")
    def one_split_form(self) -> "ContributionDoc":
        rates = (self.employee_rate, self.employer_rate)
        if self.employee_ratio is None and None in rates:
            raise ValueError(f"{self.kind} needs employee_ratio or both employee_rate and employer_rate")
        if self.employee_ratio is not None and rates != (None, None):
            raise ValueError(f"{self.kind} gives both employee_ratio and rates")
        return self

    def to_split(self) -> SplitRule:
        if self.employee_ratio is not None:
            return SplitRule(self.employee_ratio)
        return SplitRule.from_rates(self.employee_rate, self.employer_rate)

    def to_rule(self) -> ContributionRule:
        return ContributionRule(
            kind=self.kind,
            tables=[t.to_table() for t in self.tables],
            split=self.to_split(),
            applies_on=self.applies_on,
            flat_adder=self.flat_adder,
            label=self.label,
        )


class ScheduleDocument(BaseModel):
    model_config = ConfigDict(extra="forbid")

    version: str
    jurisdiction: str = ""
    description: str = ""
    withholding_tax: List[TableDoc] = Field(min_length=1)
    contributions: List[ContributionDoc] = Field(default_factory=list)

    @field_validator("contributions")
    @classmethod
    def unique_kinds(cls, value: List[ContributionDoc]) -> List[ContributionDoc]:
        kinds = [c.kind for c in value]
        duplicates = sorted({k for k in kinds if kinds.count(k) > 1})
        if duplicates:
            raise ValueError(f"duplicate contribution kinds: {', '.join(duplicates)}")
        return value


@dataclass(frozen=True)
class ScheduleSet:
    """Immutable snapshot of one schedule version: tax tables plus contribution rules."""

    version: str
    tax: TaxSchedule
    contributions: Dict[str, ContributionRule]

    @classmethod
    def from_document(cls, document: ScheduleDocument) -> "ScheduleSet":
        try:
            rules = {doc.kind: doc.to_rule() for doc in document.contributions}
            tax = TaxSchedule([t.to_table() for t in document.withholding_tax], version=document.version)
        except MalformedTable as exc:
            raise exc.with_context(version=document.version)
        return cls(version=document.version, tax=tax, contributions=rules)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], source: Optional[str] = None) -> "ScheduleSet":
        try:
            document = ScheduleDocument.model_validate(data)
        except ValidationError as exc:
            first = exc.errors()[0]
            location = ".".join(str(part) for part in first["loc"])
            raise MalformedTable(
                f"Schedule document failed validation at {location}: {first['msg']}",
                table=source,
                errors=exc.error_count(),
            ) from exc
        return cls.from_document(document)


class ScheduleRepository:
    def __init__(self, base_path: Path):
        self.base_path = Path(base_path)

    def available_versions(self) -> List[str]:
        return sorted([p.stem for p in self.base_path.glob("*.json")])

    def load(self, version: str) -> ScheduleSet:
        file_path = self.base_path / f"{version}.json"
        if not file_path.exists():
            raise UnknownScheduleVersion(version, file_path)
        with file_path.open("r", encoding="utf-8") as handle:
            try:
                data = json.load(handle, parse_float=Decimal)
            except json.JSONDecodeError as exc:
                raise MalformedTable(f"Schedule document is not valid JSON: {exc}", table=file_path.name) from exc
        schedules = ScheduleSet.from_mapping(data, source=file_path.name)
        if schedules.version != version:
            raise MalformedTable(
                f"Document {file_path.name} declares version {schedules.version}",
                table=file_path.name,
                version=version,
            )
        logger.info(
            "schedule_loaded",
            version=version,
            period_types=[p.value for p in schedules.tax.period_types()],
            contributions=sorted(schedules.contributions),
        )
        return schedules


def default_schedules_dir() -> Path:
    return Path(__file__).resolve().parent / "data" / "schedules"

from __future__ import annotations

import json
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import Column, DateTime, Integer, Numeric, String, Text, UniqueConstraint, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from .db import Base, session_scope
from .exceptions import InvalidStatusTransition, PayslipLocked, PayslipNotFound, StoreConflict
from .logging import get_logger
from .models import Payslip, PayslipKey, PayslipStatus
from .verification import fingerprint

logger = get_logger(__name__)

MAX_UPSERT_ATTEMPTS = 3

STATUS_FLOW = {
    PayslipStatus.DRAFT: PayslipStatus.APPROVED,
    PayslipStatus.APPROVED: PayslipStatus.PAID,
}


@dataclass(frozen=True)
class StoredPayslip:
    payslip: Payslip
    version: int
    fingerprint: str
    created: bool = True

    @property
    def key(self) -> PayslipKey:
        return self.payslip.key

    @property
    def status(self) -> PayslipStatus:
        return self.payslip.status


class PayslipStore(ABC):
    """Versioned payslip persistence keyed by company, payroll run and employee.

    Upserting a payslip whose fingerprint matches the current version is a
    no-op. A different payslip becomes the next version, unless the current
    version has been approved or paid, in which case ``PayslipLocked`` is
    raised. Earlier versions are kept and returned by ``history``.
    """

    @abstractmethod
    def get(self, key: PayslipKey) -> Optional[StoredPayslip]:
        ...

    @abstractmethod
    def history(self, key: PayslipKey) -> List[StoredPayslip]:
        ...

    @abstractmethod
    def _insert(self, payslip: Payslip, version: int, digest: str) -> Optional[StoredPayslip]:
        """Write a new version; return None when another writer took that version first."""

    @abstractmethod
    def _write_status(self, stored: StoredPayslip, status: PayslipStatus) -> StoredPayslip:
        ...

    def upsert(self, payslip: Payslip) -> StoredPayslip:
        digest = fingerprint(payslip)
        for _ in range(MAX_UPSERT_ATTEMPTS):
            current = self.get(payslip.key)
            if current is not None and current.fingerprint == digest:
                logger.debug("payslip_unchanged", key=str(payslip.key), version=current.version)
                return replace(current, created=False)
            if current is not None and current.status is not PayslipStatus.DRAFT:
                raise PayslipLocked(payslip.key, current.status.value)
            version = 1 if current is None else current.version + 1
            stored = self._insert(replace(payslip, status=PayslipStatus.DRAFT), version, digest)
            if stored is not None:
                logger.info("payslip_stored", key=str(payslip.key), version=version, fingerprint=digest[:12])
                return stored
        raise StoreConflict(payslip.key, MAX_UPSERT_ATTEMPTS)

    def set_status(self, key: PayslipKey, status: PayslipStatus) -> StoredPayslip:
        status = PayslipStatus(status)
        current = self.get(key)
        if current is None:
            raise PayslipNotFound(key)
        if current.status is status:
            return current
        if STATUS_FLOW.get(current.status) is not status:
            raise InvalidStatusTransition(key, current.status.value, status.value)
        logger.info("payslip_status_changed", key=str(key), version=current.version, status=status.value)
        return self._write_status(current, status)


class InMemoryPayslipStore(PayslipStore):
    def __init__(self) -> None:
        self._versions: Dict[PayslipKey, List[StoredPayslip]] = {}
        self._lock = threading.RLock()

    def get(self, key: PayslipKey) -> Optional[StoredPayslip]:
        with self._lock:
            versions = self._versions.get(key)
            return versions[-1] if versions else None

    def history(self, key: PayslipKey) -> List[StoredPayslip]:
        with self._lock:
            return list(self._versions.get(key, []))

    def upsert(self, payslip: Payslip) -> StoredPayslip:
        with self._lock:
            return super().upsert(payslip)

    def set_status(self, key: PayslipKey, status: PayslipStatus) -> StoredPayslip:
        with self._lock:
            return super().set_status(key, status)

    def _insert(self, payslip: Payslip, version: int, digest: str) -> Optional[StoredPayslip]:
        versions = self._versions.setdefault(payslip.key, [])
        if len(versions) + 1 != version:
            return None
        stored = StoredPayslip(payslip=payslip, version=version, fingerprint=digest)
        versions.append(stored)
        return stored

    def _write_status(self, stored: StoredPayslip, status: PayslipStatus) -> StoredPayslip:
        updated = replace(stored, payslip=replace(stored.payslip, status=status))
        self._versions[stored.key][stored.version - 1] = updated
        return updated


class PayslipRecord(Base):
    __tablename__ = "payslips"
    __table_args__ = (
        UniqueConstraint("company_id", "payroll_run_id", "employee_id", "version", name="uq_payslip_version"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String(64), nullable=False, index=True)
    payroll_run_id = Column(String(64), nullable=False, index=True)
    employee_id = Column(String(64), nullable=False)
    version = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=PayslipStatus.DRAFT.value)
    fingerprint = Column(String(64), nullable=False)
    schedule_version = Column(String(64), nullable=False)
    net_pay = Column(Numeric(scale=2), nullable=False)
    payload = Column(Text, nullable=False)  # Payslip.to_dict() without status
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))


class SqlPayslipStore(PayslipStore):
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    @staticmethod
    def _to_stored(record: PayslipRecord) -> StoredPayslip:
        data = json.loads(record.payload)
        data["status"] = record.status
        return StoredPayslip(payslip=Payslip.from_dict(data), version=record.version, fingerprint=record.fingerprint)

    @staticmethod
    def _key_query(key: PayslipKey):
        return select(PayslipRecord).where(
            PayslipRecord.company_id == key.company_id,
            PayslipRecord.payroll_run_id == key.payroll_run_id,
            PayslipRecord.employee_id == key.employee_id,
        )

    def get(self, key: PayslipKey) -> Optional[StoredPayslip]:
        with session_scope(self.session_factory) as db:
            record = db.scalars(self._key_query(key).order_by(PayslipRecord.version.desc()).limit(1)).first()
            return self._to_stored(record) if record is not None else None

    def history(self, key: PayslipKey) -> List[StoredPayslip]:
        with session_scope(self.session_factory) as db:
            records = db.scalars(self._key_query(key).order_by(PayslipRecord.version)).all()
            return [self._to_stored(record) for record in records]

    def _insert(self, payslip: Payslip, version: int, digest: str) -> Optional[StoredPayslip]:
        record = PayslipRecord(
            company_id=payslip.company_id,
            payroll_run_id=payslip.payroll_run_id,
            employee_id=payslip.employee_id,
            version=version,
            status=payslip.status.value,
            fingerprint=digest,
            schedule_version=payslip.schedule_version,
            net_pay=payslip.net_pay,
            payload=json.dumps(payslip.to_dict(include_status=False), sort_keys=True),
        )
        try:
            with session_scope(self.session_factory) as db:
                db.add(record)
        except IntegrityError:
            logger.warning("payslip_version_conflict", key=str(payslip.key), version=version)
            return None
        return StoredPayslip(payslip=payslip, version=version, fingerprint=digest)

    def _write_status(self, stored: StoredPayslip, status: PayslipStatus) -> StoredPayslip:
        with session_scope(self.session_factory) as db:
            record = db.scalars(self._key_query(stored.key).where(PayslipRecord.version == stored.version)).one()
            record.status = status.value
        return replace(stored, payslip=replace(stored.payslip, status=status))

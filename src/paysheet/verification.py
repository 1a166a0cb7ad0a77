"""Stable payslip fingerprints and the short codes printed for verification."""

from __future__ import annotations

import hashlib
import hmac
import json

from .models import Payslip

CODE_LENGTH = 12
GROUP_SIZE = 4


def canonical_json(payslip: Payslip) -> str:
    # status excluded: approving or paying a payslip keeps its fingerprint
    return json.dumps(payslip.to_dict(include_status=False), sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def fingerprint(payslip: Payslip) -> str:
    return hashlib.sha256(canonical_json(payslip).encode("utf-8")).hexdigest()


def verification_code(payslip: Payslip) -> str:
    digest = fingerprint(payslip)[:CODE_LENGTH].upper()
    return "-".join(digest[i : i + GROUP_SIZE] for i in range(0, CODE_LENGTH, GROUP_SIZE))


def normalize_code(code: str) -> str:
    return "".join(ch for ch in code.upper() if ch.isalnum())


def verify(payslip: Payslip, code: str) -> bool:
    expected = normalize_code(verification_code(payslip))
    return hmac.compare_digest(expected.encode("ascii"), normalize_code(code).encode("utf-8"))

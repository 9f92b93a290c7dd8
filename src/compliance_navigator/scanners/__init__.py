"""Scanner adapters for third-party security tools."""

from compliance_navigator.scanners.base import (
    Findings,
    ScanContext,
    ScannerAdapter,
    ScannerKind,
    ScannerRun,
    ScanOutcome,
    Unavailable,
    finding_id,
)
from compliance_navigator.scanners.checkov import CheckovAdapter
from compliance_navigator.scanners.gitleaks import GitleaksAdapter
from compliance_navigator.scanners.npm_audit import NpmAuditAdapter

ADAPTERS: dict[ScannerKind, type[ScannerAdapter]] = {
    ScannerKind.GITLEAKS: GitleaksAdapter,
    ScannerKind.NPM_AUDIT: NpmAuditAdapter,
    ScannerKind.CHECKOV: CheckovAdapter,
}


def get_adapters() -> list[ScannerAdapter]:
    """One adapter instance per scanner kind, in table order."""
    return [ADAPTERS[kind]() for kind in ScannerKind]


__all__ = [
    "ADAPTERS",
    "CheckovAdapter",
    "Findings",
    "GitleaksAdapter",
    "NpmAuditAdapter",
    "ScanContext",
    "ScanOutcome",
    "ScannerAdapter",
    "ScannerKind",
    "ScannerRun",
    "Unavailable",
    "finding_id",
    "get_adapters",
]

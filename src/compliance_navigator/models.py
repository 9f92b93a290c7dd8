"""Data models for scan runs, coverage, audit entries and ticket plans."""

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

SCANNER_MISSING_TAG = "scanner-missing"


class Severity(str, Enum):
    """Normalized finding severity."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"

    @property
    def rank(self) -> int:
        """Sort rank, most severe first."""
        return SEVERITY_ORDER.index(self)

    @classmethod
    def parse(cls, value: Optional[str], default: Optional["Severity"] = None) -> "Severity":
        """Map a scanner-specific severity string onto the normalized scale."""
        fallback = default or cls.MEDIUM
        if not value:
            return fallback
        normalized = str(value).strip().lower()
        aliases = {"moderate": "medium", "warning": "medium", "error": "high", "informational": "info"}
        normalized = aliases.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            return fallback


SEVERITY_ORDER: list[Severity] = [
    Severity.CRITICAL,
    Severity.HIGH,
    Severity.MEDIUM,
    Severity.LOW,
    Severity.INFO,
]


class ScannerState(str, Enum):
    """Outcome of a single scanner invocation within a run."""

    OK = "ok"
    MISSING = "missing"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass(frozen=True)
class Finding:
    """A normalized scanner result.

    ``controls`` maps a framework id ("soc2", "hipaa") to the control ids the
    finding is evidence for. Synthetic findings carry the ``scanner-missing``
    tag and never map to controls.
    """

    id: str
    scanner: str
    severity: Severity
    title: str
    location: str = ""
    rule_id: str = ""
    category: str = ""
    description: str = ""
    remediation: str = ""
    evidence_ref: str = ""
    controls: dict[str, tuple[str, ...]] = field(default_factory=dict)
    tags: frozenset[str] = frozenset()

    @property
    def is_synthetic(self) -> bool:
        return SCANNER_MISSING_TAG in self.tags

    @property
    def file(self) -> str:
        """File portion of ``location`` without the line suffix."""
        path, sep, line = self.location.rpartition(":")
        if sep and line.isdigit():
            return path
        return self.location

    def with_controls(self, controls: dict[str, tuple[str, ...]]) -> "Finding":
        return dataclasses.replace(self, controls={k: tuple(v) for k, v in controls.items()})

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "scanner": self.scanner,
            "severity": self.severity.value,
            "title": self.title,
            "location": self.location,
            "ruleId": self.rule_id,
            "category": self.category,
            "description": self.description,
            "remediation": self.remediation,
            "evidenceRef": self.evidence_ref,
            "controls": {k: list(v) for k, v in sorted(self.controls.items())},
            "tags": sorted(self.tags),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Finding":
        return cls(
            id=data["id"],
            scanner=data["scanner"],
            severity=Severity.parse(data.get("severity")),
            title=data.get("title", ""),
            location=data.get("location", ""),
            rule_id=data.get("ruleId", ""),
            category=data.get("category", ""),
            description=data.get("description", ""),
            remediation=data.get("remediation", ""),
            evidence_ref=data.get("evidenceRef", ""),
            controls={k: tuple(v) for k, v in (data.get("controls") or {}).items()},
            tags=frozenset(data.get("tags") or ()),
        )


@dataclass(frozen=True)
class ScannerStatus:
    """Per-scanner status recorded in the run manifest."""

    scanner: str
    state: ScannerState
    version: Optional[str] = None
    message: str = ""
    finding_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "scanner": self.scanner,
            "status": self.state.value,
            "version": self.version,
            "message": self.message,
            "findingCount": self.finding_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScannerStatus":
        return cls(
            scanner=data["scanner"],
            state=ScannerState(data.get("status", "ok")),
            version=data.get("version"),
            message=data.get("message", ""),
            finding_count=data.get("findingCount", 0),
        )


def count_by_severity(findings: list[Finding]) -> dict[str, int]:
    """Severity histogram with every level present."""
    counts = {severity.value: 0 for severity in SEVERITY_ORDER}
    for finding in findings:
        counts[finding.severity.value] += 1
    return counts


@dataclass(frozen=True)
class RunManifest:
    """Immutable record of a single scan run."""

    run_id: str
    repo_path: str
    framework: str
    created_at: str
    findings: tuple[Finding, ...] = ()
    scanner_versions: dict[str, Optional[str]] = field(default_factory=dict)
    scanner_statuses: tuple[ScannerStatus, ...] = ()
    repo_commit_hash: Optional[str] = None
    policy: dict[str, Any] = field(default_factory=dict)
    tool_version: str = ""

    @property
    def real_findings(self) -> list[Finding]:
        """Findings excluding synthetic scanner-missing entries."""
        return [f for f in self.findings if not f.is_synthetic]

    def status_for(self, scanner: str) -> Optional[ScannerStatus]:
        for status in self.scanner_statuses:
            if status.scanner == scanner:
                return status
        return None

    def counts_by_scanner(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for finding in self.real_findings:
            counts[finding.scanner] = counts.get(finding.scanner, 0) + 1
        return counts

    def to_dict(self) -> dict[str, Any]:
        return {
            "runId": self.run_id,
            "repoPath": self.repo_path,
            "framework": self.framework,
            "createdAt": self.created_at,
            "scannerVersions": dict(sorted(self.scanner_versions.items())),
            "scannerStatuses": [s.to_dict() for s in self.scanner_statuses],
            "repoCommitHash": self.repo_commit_hash,
            "policy": self.policy,
            "toolVersion": self.tool_version,
            "findings": [f.to_dict() for f in self.findings],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RunManifest":
        return cls(
            run_id=data["runId"],
            repo_path=data["repoPath"],
            framework=data["framework"],
            created_at=data["createdAt"],
            findings=tuple(Finding.from_dict(f) for f in data.get("findings", [])),
            scanner_versions=dict(data.get("scannerVersions") or {}),
            scanner_statuses=tuple(
                ScannerStatus.from_dict(s) for s in data.get("scannerStatuses", [])
            ),
            repo_commit_hash=data.get("repoCommitHash"),
            policy=dict(data.get("policy") or {}),
            tool_version=data.get("toolVersion", ""),
        )


@dataclass(frozen=True)
class ControlDetail:
    """Coverage detail for a single control."""

    control_id: str
    name: str
    evidence_finding_ids: tuple[str, ...] = ()
    # Scanners whose findings count as evidence, with confidence and rationale
    scanner_mappings: tuple[dict[str, Any], ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "controlId": self.control_id,
            "controlName": self.name,
            "findingCount": len(self.evidence_finding_ids),
            "evidenceFindingIds": list(self.evidence_finding_ids),
            "scannerMappings": [dict(m) for m in self.scanner_mappings],
        }


@dataclass(frozen=True)
class ControlCoverage:
    """Scanner reach of a run over a framework's technical controls.

    Percentages measure which controls scanner findings speak to, not
    whether an organization satisfies them.
    """

    framework: str
    total_controls: int
    covered_controls: tuple[ControlDetail, ...]
    missing_controls: tuple[ControlDetail, ...]
    potential_coverage_pct: float = 0.0
    full_coverage_pct: float = 0.0
    administrative_controls: tuple[dict[str, Any], ...] = ()

    @property
    def coverage_pct(self) -> float:
        if self.total_controls == 0:
            return 0.0
        return round(len(self.covered_controls) / self.total_controls * 100, 1)

    @property
    def covered_control_ids(self) -> list[str]:
        return [c.control_id for c in self.covered_controls]

    def _technical_dict(self) -> dict[str, Any]:
        return {
            "coveragePct": self.coverage_pct,
            "totalControls": self.total_controls,
            "coveredCount": len(self.covered_controls),
            "coveredControls": self.covered_control_ids,
            "missingControls": [c.control_id for c in self.missing_controls],
        }

    def to_dict(self) -> dict[str, Any]:
        details = [dict(c.to_dict(), status="covered") for c in self.covered_controls]
        details += [dict(c.to_dict(), status="missing") for c in self.missing_controls]
        data: dict[str, Any] = {"framework": self.framework}
        data.update(self._technical_dict())
        data.update(
            {
                "controlDetails": details,
                "coveragePctPotential": self.potential_coverage_pct,
                "coveragePctFull": self.full_coverage_pct,
                "disclaimer": (
                    "Coverage reflects scanner reach over technical controls. "
                    "It is not a compliance certification."
                ),
            }
        )
        if self.administrative_controls:
            data["technical"] = self._technical_dict()
            data["administrative"] = {
                "total": len(self.administrative_controls),
                "requiresHumanEvidence": True,
                "controls": list(self.administrative_controls),
            }
        return data


@dataclass(frozen=True)
class ROIEstimate:
    """Estimated engineer hours saved by automated triage."""

    conservative_hours: float
    likely_hours: float
    basis: str
    breakdown: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "hoursSavedConservative": self.conservative_hours,
            "hoursSavedLikely": self.likely_hours,
            "basis": self.basis,
            "breakdown": self.breakdown,
        }


@dataclass(frozen=True)
class AuditLogEntry:
    """One line of the hash-chained audit log."""

    seq: int
    timestamp: str
    actor: str
    action: str
    payload: dict[str, Any]
    payload_hash: str
    prev_hash: str
    entry_hash: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "seq": self.seq,
            "timestamp": self.timestamp,
            "actor": self.actor,
            "action": self.action,
            "payload": self.payload,
            "payloadHash": self.payload_hash,
            "prevHash": self.prev_hash,
            "entryHash": self.entry_hash,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AuditLogEntry":
        return cls(
            seq=data["seq"],
            timestamp=data["timestamp"],
            actor=data.get("actor", ""),
            action=data["action"],
            payload=data["payload"],
            payload_hash=data["payloadHash"],
            prev_hash=data["prevHash"],
            entry_hash=data["entryHash"],
        )


@dataclass(frozen=True)
class ChainVerification:
    """Result of walking the audit log from its genesis entry."""

    passed: bool
    total_entries: int
    first_broken_line: Optional[int] = None
    reason: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"pass": self.passed, "totalEntries": self.total_entries}
        if not self.passed:
            data["firstBrokenLine"] = self.first_broken_line
            data["reason"] = self.reason
        return data


@dataclass(frozen=True)
class RemediationStep:
    """A grouped, prioritized unit of remediation work."""

    step_id: str
    title: str
    severity: Severity
    scanner: str
    group_key: str
    finding_ids: tuple[str, ...]
    controls_addressed: tuple[str, ...]
    estimated_minutes: int
    remediation: str = ""
    files: tuple[str, ...] = ()

    @property
    def effort_estimate(self) -> str:
        if self.estimated_minutes < 60:
            return f"{self.estimated_minutes}m"
        hours = self.estimated_minutes / 60
        return f"{hours:g}h"

    def to_dict(self) -> dict[str, Any]:
        return {
            "stepId": self.step_id,
            "title": self.title,
            "severity": self.severity.value,
            "scanner": self.scanner,
            "groupKey": self.group_key,
            "findingIds": list(self.finding_ids),
            "findingCount": len(self.finding_ids),
            "controlsAddressed": list(self.controls_addressed),
            "effortEstimate": self.effort_estimate,
            "estimatedMinutes": self.estimated_minutes,
            "remediation": self.remediation,
            "files": list(self.files),
        }


@dataclass(frozen=True)
class TicketPlanItem:
    """A ticket that would be created for one finding."""

    finding_id: str
    action: str
    dedupe_key: str
    title: str
    body: str
    labels: tuple[str, ...] = ()
    severity: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "findingId": self.finding_id,
            "action": self.action,
            "dedupeKey": self.dedupe_key,
            "title": self.title,
            "body": self.body,
            "labels": list(self.labels),
            "severity": self.severity,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TicketPlanItem":
        return cls(
            finding_id=data["findingId"],
            action=data["action"],
            dedupe_key=data["dedupeKey"],
            title=data["title"],
            body=data["body"],
            labels=tuple(data.get("labels") or ()),
            severity=data.get("severity", ""),
        )


@dataclass(frozen=True)
class TicketPlan:
    """A pending dry-run ticket plan."""

    plan_id: str
    created_at: str
    target: str
    repo_full_name: str
    run_id: str
    plan_hash: str
    items: tuple[TicketPlanItem, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "planId": self.plan_id,
            "createdAt": self.created_at,
            "target": self.target,
            "repoFullName": self.repo_full_name,
            "runId": self.run_id,
            "planHash": self.plan_hash,
            "items": [item.to_dict() for item in self.items],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TicketPlan":
        return cls(
            plan_id=data["planId"],
            created_at=data["createdAt"],
            target=data["target"],
            repo_full_name=data["repoFullName"],
            run_id=data["runId"],
            plan_hash=data["planHash"],
            items=tuple(TicketPlanItem.from_dict(i) for i in data.get("items", [])),
        )


@dataclass(frozen=True)
class ApprovalArtifact:
    """Human approval bound to a plan hash."""

    plan_id: str
    approved_at: str
    approved_by: str
    plan_hash: str
    repo_full_name: str
    reason: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "planId": self.plan_id,
            "approvedAt": self.approved_at,
            "approvedBy": self.approved_by,
            "reason": self.reason,
            "planHash": self.plan_hash,
            "repoFullName": self.repo_full_name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ApprovalArtifact":
        return cls(
            plan_id=data["planId"],
            approved_at=data["approvedAt"],
            approved_by=data["approvedBy"],
            plan_hash=data["planHash"],
            repo_full_name=data["repoFullName"],
            reason=data.get("reason"),
        )


@dataclass(frozen=True)
class ExportRecord:
    """A packaged audit packet and its digest."""

    run_id: str
    zip_path: str
    sha256: str
    size_bytes: int
    file_count: int
    include_evidence: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "runId": self.run_id,
            "zipPath": self.zip_path,
            "sha256": self.sha256,
            "sizeBytes": self.size_bytes,
            "fileCount": self.file_count,
            "includeEvidence": self.include_evidence,
        }

"""Tool handlers behind the JSON-RPC surface.

Each handler validates its parameters once into a request dataclass, runs
the operation, and returns a plain dict. :meth:`ComplianceTools.call` wraps
handlers in ``ok``/``err`` envelopes so callers never see a raw exception.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

from compliance_navigator import paths
from compliance_navigator.audit_log import AuditLog, verify_chain
from compliance_navigator.compliance import ComplianceFramework, ComplianceMapper
from compliance_navigator.config import LABEL_POLICIES, NavigatorConfig, load_config
from compliance_navigator.errors import ComplianceError, ExternalFeature, ValidationError, err, ok
from compliance_navigator.export import export_packet
from compliance_navigator.manifest import build_manifest, load_manifest, save_manifest
from compliance_navigator.models import count_by_severity
from compliance_navigator.packet import generate_packet
from compliance_navigator.policy import get_tool_risk
from compliance_navigator.remediation import plan_remediation, total_hours, write_remediation_plan
from compliance_navigator.roi import calculate_roi
from compliance_navigator.scanners import ScannerAdapter
from compliance_navigator.tickets import TARGETS, TicketWorkflow, plan_to_dry_run
from compliance_navigator.tickets.workflow import DEFAULT_MAX_ITEMS, MAX_ITEMS_LIMIT, TrackerFactory

logger = logging.getLogger(__name__)

# Tools that never write to the audit log, even to record their own failure.
READ_ONLY_TOOLS = frozenset({"verify_audit_chain"})


def _require_str(params: dict[str, Any], key: str) -> str:
    value = params.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{key} is required and must be a non-empty string", {"field": key})
    return value


def _optional_str(params: dict[str, Any], key: str) -> Optional[str]:
    value = params.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{key} must be a non-empty string", {"field": key})
    return value


def _optional_bool(params: dict[str, Any], key: str, default: Optional[bool]) -> Optional[bool]:
    value = params.get(key, default)
    if value is not None and not isinstance(value, bool):
        raise ValidationError(f"{key} must be a boolean", {"field": key})
    return value


def _bounded_int(params: dict[str, Any], key: str, default: Optional[int], upper: int) -> Optional[int]:
    value = params.get(key, default)
    if value is None:
        return None
    # bool is an int subclass
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= upper:
        raise ValidationError(f"{key} must be an integer between 1 and {upper}", {"field": key})
    return value


def _framework(params: dict[str, Any]) -> ComplianceFramework:
    try:
        return ComplianceFramework.parse(params.get("framework") or "soc2")
    except ValueError as e:
        raise ValidationError(str(e), {"field": "framework"}) from e


@dataclass(frozen=True)
class ScanRepoRequest:
    repo_path: Path
    framework: ComplianceFramework

    @classmethod
    def from_params(cls, params: dict[str, Any]) -> "ScanRepoRequest":
        return cls(paths.validate_repo_path(params.get("repoPath")), _framework(params))


@dataclass(frozen=True)
class RunRequest:
    """Request addressing an existing run."""

    repo_path: Path
    run_id: str

    @classmethod
    def from_params(cls, params: dict[str, Any]) -> "RunRequest":
        return cls(
            paths.validate_repo_path(params.get("repoPath")),
            paths.validate_run_id(params.get("runId")),
        )


@dataclass(frozen=True)
class PlanRemediationRequest:
    repo_path: Path
    run_id: str
    max_items: Optional[int] = None

    @classmethod
    def from_params(cls, params: dict[str, Any]) -> "PlanRemediationRequest":
        return cls(
            paths.validate_repo_path(params.get("repoPath")),
            paths.validate_run_id(params.get("runId")),
            _bounded_int(params, "maxItems", None, 1000),
        )


@dataclass(frozen=True)
class CreateTicketsRequest:
    """Ticket request; dry runs plan, real runs execute an approved plan."""

    repo_path: Path
    run_id: str
    target: str
    max_items: int
    dry_run: bool
    approved_plan_id: Optional[str] = None
    target_repo: Optional[str] = None
    reopen_closed: Optional[bool] = None
    label_policy: Optional[str] = None

    @classmethod
    def from_params(cls, params: dict[str, Any]) -> "CreateTicketsRequest":
        repo_path = paths.validate_repo_path(params.get("repoPath"))
        run_id = paths.validate_run_id(params.get("runId"))

        target = params.get("target", "github")
        if target not in TARGETS:
            raise ValidationError(
                f"target must be one of {', '.join(TARGETS)}", {"field": "target", "value": target}
            )

        dry_run = _optional_bool(params, "dryRun", True)
        approved_plan_id = params.get("approvedPlanId")
        if approved_plan_id is not None:
            approved_plan_id = paths.validate_plan_id(approved_plan_id)
            if dry_run:
                raise ValidationError("approvedPlanId requires dryRun=false", {"field": "dryRun"})
        elif not dry_run:
            raise ValidationError(
                "dryRun=false requires approvedPlanId; create and approve a plan first",
                {"field": "approvedPlanId"},
            )

        label_policy = _optional_str(params, "labelPolicy")
        if label_policy is not None and label_policy not in LABEL_POLICIES:
            raise ValidationError(
                f"labelPolicy must be one of {', '.join(LABEL_POLICIES)}", {"field": "labelPolicy"}
            )

        return cls(
            repo_path=repo_path,
            run_id=run_id,
            target=target,
            max_items=_bounded_int(params, "maxItems", DEFAULT_MAX_ITEMS, MAX_ITEMS_LIMIT),
            dry_run=bool(dry_run),
            approved_plan_id=approved_plan_id,
            target_repo=_optional_str(params, "targetRepo"),
            reopen_closed=_optional_bool(params, "reopenClosed", None),
            label_policy=label_policy,
        )


@dataclass(frozen=True)
class ApprovePlanRequest:
    repo_path: Path
    plan_id: str
    approved_by: str
    reason: Optional[str] = None

    @classmethod
    def from_params(cls, params: dict[str, Any]) -> "ApprovePlanRequest":
        return cls(
            paths.validate_repo_path(params.get("repoPath")),
            paths.validate_plan_id(params.get("planId")),
            _require_str(params, "approvedBy").strip(),
            _optional_str(params, "reason"),
        )


@dataclass(frozen=True)
class ExportRequest:
    repo_path: Path
    run_id: str
    include_evidence: bool = True

    @classmethod
    def from_params(cls, params: dict[str, Any]) -> "ExportRequest":
        return cls(
            paths.validate_repo_path(params.get("repoPath")),
            paths.validate_run_id(params.get("runId")),
            bool(_optional_bool(params, "includeEvidence", True)),
        )


class ComplianceTools:
    """Dispatches tool calls to their handlers."""

    def __init__(
        self,
        config_loader: Callable[[Optional[Path]], NavigatorConfig] = load_config,
        adapters: Optional[Sequence[ScannerAdapter]] = None,
        tracker_factory: Optional[TrackerFactory] = None,
        mapper: Optional[ComplianceMapper] = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            config_loader: Loads per-repository configuration.
            adapters: Scanner adapters; defaults to every registered scanner.
            tracker_factory: Builds issue tracker clients for ticket execution.
            mapper: Control mapper shared by all handlers.
        """
        self.config_loader = config_loader
        self.adapters = adapters
        self.tracker_factory = tracker_factory
        self.mapper = mapper or ComplianceMapper()
        self.handlers: dict[str, Callable[[dict[str, Any]], dict[str, Any]]] = {
            "scan_repo": self.scan_repo,
            "generate_audit_packet": self.generate_audit_packet,
            "plan_remediation": self.plan_remediation,
            "create_tickets": self.create_tickets,
            "approve_ticket_plan": self.approve_ticket_plan,
            "verify_audit_chain": self.verify_audit_chain,
            "export_audit_packet": self.export_audit_packet,
            "create_demo_fixture": self.create_demo_fixture,
            "open_dashboard": self.open_dashboard,
        }

    @property
    def names(self) -> list[str]:
        return list(self.handlers)

    def call(self, name: str, params: Optional[dict[str, Any]]) -> dict[str, Any]:
        """Run one tool and wrap its outcome in an envelope."""
        handler = self.handlers.get(name)
        if handler is None:
            return err("E_VALIDATION", f"Unknown tool: {name}", {"tool": name})
        if params is None:
            params = {}
        if not isinstance(params, dict):
            return err("E_VALIDATION", "Tool arguments must be an object", {"tool": name})

        logger.info("Tool %s called (risk: %s)", name, get_tool_risk(name).value)
        try:
            return ok(handler(params))
        except ComplianceError as e:
            logger.warning("Tool %s failed: %s %s", name, e.code, e.message)
            self._record_error(name, params, e.code, e.message)
            return e.to_envelope()
        except Exception as e:
            logger.exception("Unhandled error in tool %s", name)
            self._record_error(name, params, "E_INTERNAL", str(e))
            return err("E_INTERNAL", "Unhandled server error.", {"exception": str(e)})

    def _record_error(self, name: str, params: dict[str, Any], code: str, message: str) -> None:
        if name in READ_ONLY_TOOLS:
            return
        try:
            repo_path = paths.validate_repo_path(params.get("repoPath"))
            self._audit_log(repo_path).append(
                "tool_error", {"tool": name, "code": code, "message": message}
            )
        except (ComplianceError, OSError) as e:
            logger.debug("Tool error for %s not recorded in audit log: %s", name, e)

    def _audit_log(self, repo_path: Path) -> AuditLog:
        return AuditLog(paths.audit_log_path(repo_path))

    def _config(self, repo_path: Path) -> NavigatorConfig:
        return self.config_loader(repo_path)

    # -- handlers ---------------------------------------------------------

    def scan_repo(self, params: dict[str, Any]) -> dict[str, Any]:
        request = ScanRepoRequest.from_params(params)
        config = self._config(request.repo_path)
        manifest = build_manifest(request.repo_path, request.framework, config, self.adapters)
        manifest_path = save_manifest(request.repo_path, manifest)

        coverage = self.mapper.map_coverage(manifest, request.framework)
        roi = calculate_roi(manifest)
        self._audit_log(request.repo_path).append(
            "scan_completed",
            {
                "runId": manifest.run_id,
                "framework": manifest.framework,
                "findingCount": len(manifest.real_findings),
                "scanners": {s.scanner: s.state.value for s in manifest.scanner_statuses},
                "manifestSha256": paths.sha256_file(manifest_path),
            },
        )

        coverage_dict = coverage.to_dict()
        result: dict[str, Any] = {
            "runId": manifest.run_id,
            "framework": manifest.framework,
            "findings": [f.to_dict() for f in manifest.findings],
            "countsBySeverity": {
                "actionable": count_by_severity(manifest.real_findings),
                "all": count_by_severity(list(manifest.findings)),
            },
            "countsByScanner": manifest.counts_by_scanner(),
            "controlCoverage": coverage_dict,
            "roiEstimate": roi.to_dict(),
            "scannerStatuses": [s.to_dict() for s in manifest.scanner_statuses],
            "manifestPath": str(manifest_path),
        }
        if request.framework is ComplianceFramework.HIPAA:
            result["hipaaCoverageDetail"] = {
                "technical": coverage_dict["technical"],
                "administrative": coverage_dict["administrative"],
            }
        return result

    def generate_audit_packet(self, params: dict[str, Any]) -> dict[str, Any]:
        request = RunRequest.from_params(params)
        manifest = load_manifest(request.repo_path, request.run_id)
        coverage = self.mapper.map_coverage(manifest)
        packet = generate_packet(request.repo_path, manifest, coverage, calculate_roi(manifest))
        self._audit_log(request.repo_path).append(
            "audit_packet_generated",
            {"runId": manifest.run_id, "path": str(packet.path), "files": list(packet.files)},
        )
        return packet.to_dict()

    def plan_remediation(self, params: dict[str, Any]) -> dict[str, Any]:
        request = PlanRemediationRequest.from_params(params)
        manifest = load_manifest(request.repo_path, request.run_id)
        steps = plan_remediation(manifest, request.max_items, self.mapper)
        json_path, md_path = write_remediation_plan(request.repo_path, manifest, steps)
        self._audit_log(request.repo_path).append(
            "remediation_planned",
            {"runId": manifest.run_id, "stepCount": len(steps), "estimatedHours": total_hours(steps)},
        )
        return {
            "runId": manifest.run_id,
            "framework": manifest.framework,
            "steps": [step.to_dict() for step in steps],
            "totalSteps": len(steps),
            "estimatedHours": total_hours(steps),
            "planPath": str(json_path),
            "markdownPath": str(md_path),
        }

    def create_tickets(self, params: dict[str, Any]) -> dict[str, Any]:
        request = CreateTicketsRequest.from_params(params)
        manifest = load_manifest(request.repo_path, request.run_id)
        workflow = TicketWorkflow(
            request.repo_path,
            self._audit_log(request.repo_path),
            self._config(request.repo_path),
            self.tracker_factory,
        )
        if request.dry_run:
            plan = workflow.create_plan(
                manifest, request.target, request.max_items, request.target_repo
            )
            return plan_to_dry_run(plan)

        result = workflow.execute(
            manifest.run_id,
            request.target,
            request.approved_plan_id,
            target_repo=request.target_repo,
            reopen_closed=request.reopen_closed,
            label_policy=request.label_policy,
        )
        return result.to_dict()

    def approve_ticket_plan(self, params: dict[str, Any]) -> dict[str, Any]:
        request = ApprovePlanRequest.from_params(params)
        workflow = TicketWorkflow(
            request.repo_path,
            self._audit_log(request.repo_path),
            self._config(request.repo_path),
            self.tracker_factory,
        )
        artifact = workflow.approve(request.plan_id, request.approved_by, request.reason)
        approval_path = paths.approvals_dir(request.repo_path, "approved") / f"{artifact.plan_id}.json"
        return {
            "planId": artifact.plan_id,
            "approvalPath": str(approval_path),
            "approval": artifact.to_dict(),
        }

    def verify_audit_chain(self, params: dict[str, Any]) -> dict[str, Any]:
        repo_path = paths.validate_repo_path(params.get("repoPath"))
        log_path = paths.audit_log_path(repo_path)
        return {**verify_chain(log_path).to_dict(), "logPath": str(log_path)}

    def export_audit_packet(self, params: dict[str, Any]) -> dict[str, Any]:
        request = ExportRequest.from_params(params)
        record = export_packet(request.repo_path, request.run_id, request.include_evidence)
        self._audit_log(request.repo_path).append(
            "audit_packet_exported",
            {
                "runId": record.run_id,
                "sha256": record.sha256,
                "sizeBytes": record.size_bytes,
                "includeEvidence": record.include_evidence,
            },
        )
        return {
            **record.to_dict(),
            "bytes": record.size_bytes,
            "includesEvidence": record.include_evidence,
        }

    def create_demo_fixture(self, params: dict[str, Any]) -> dict[str, Any]:
        raise ExternalFeature(
            "create_demo_fixture is provided by the fixture generator, not this server",
            {"tool": "create_demo_fixture"},
        )

    def open_dashboard(self, params: dict[str, Any]) -> dict[str, Any]:
        raise ExternalFeature(
            "open_dashboard is provided by the dashboard application, not this server",
            {"tool": "open_dashboard"},
        )

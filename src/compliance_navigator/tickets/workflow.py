"""Ticket workflow: dry-run plan, human approval, then a single execution.

A plan moves through three states, each persisted under
``.compliance/approvals/``:

* PLANNED: ``pending/<planId>.json`` holds the items and their plan hash.
  No tracker is contacted.
* APPROVED: ``approved/<planId>.json`` binds a named approver to that hash.
* EXECUTED: ``executed/<planId>.json`` records each repository the plan ran
  against. A plan runs at most once per repository.

Before executing, the plan hash is recomputed against the repository the
tickets would land in now. Any difference from the approved hash (edited
items, a different run, a different repository) refuses execution.
"""

import logging
import re
import secrets
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

from compliance_navigator import paths
from compliance_navigator.audit_log import AuditLog, utc_timestamp
from compliance_navigator.compliance import ComplianceFramework
from compliance_navigator.config import NavigatorConfig
from compliance_navigator.errors import (
    ApprovalRequired,
    PlanAlreadyExecuted,
    PlanHashMismatch,
    PlanNotFound,
    RateLimited,
    TrackerError,
    ValidationError,
)
from compliance_navigator.models import (
    ApprovalArtifact,
    RunManifest,
    TicketPlan,
    TicketPlanItem,
)
from compliance_navigator.repository import get_repo_full_name
from compliance_navigator.tickets.base import IssueTracker
from compliance_navigator.tickets.formatting import (
    build_labels,
    dedupe_key,
    format_body,
    format_title,
)
from compliance_navigator.tickets.github import GitHubTracker
from compliance_navigator.tickets.jira import JiraTracker

logger = logging.getLogger(__name__)

TARGETS = ("github", "jira")
DEFAULT_MAX_ITEMS = 10
MAX_ITEMS_LIMIT = 100

_REPO_FULL_NAME = re.compile(r"^[\w.-]+/[\w.-]+$")
_execution_lock = threading.Lock()

TrackerFactory = Callable[[str, str], IssueTracker]


def compute_plan_hash(items: tuple[TicketPlanItem, ...], repo_full_name: str, run_id: str) -> str:
    """Hash binding plan items to their destination repository and run."""
    canonical_items = paths.canonical_json([item.to_dict() for item in items])
    return paths.sha256_hex("|".join([canonical_items, repo_full_name, run_id]))


def create_tracker(config: NavigatorConfig) -> TrackerFactory:
    """Factory building real tracker clients from configuration."""

    def factory(target: str, repo_full_name: str) -> IssueTracker:
        common: dict[str, Any] = {
            "retry_count": config.ticket_retry_count,
            "retry_delay": config.ticket_retry_delay,
            "timeout": config.http_timeout,
        }
        if target == "github":
            owner, name = repo_full_name.split("/", 1)
            return GitHubTracker(owner, name, config.github_token or "", **common)
        return JiraTracker(
            config.jira_base_url or "",
            config.jira_email or "",
            config.jira_api_token or "",
            repo_full_name.split("/", 1)[1],
            **common,
        )

    return factory


@dataclass
class TicketExecution:
    """Outcome of executing an approved plan."""

    plan_id: str
    target: str
    repo_full_name: str
    run_id: str
    requested: int
    created: list[dict[str, Any]] = field(default_factory=list)
    duplicates: list[dict[str, Any]] = field(default_factory=list)
    reopened: list[dict[str, Any]] = field(default_factory=list)
    failed: list[dict[str, Any]] = field(default_factory=list)
    missing_labels: list[str] = field(default_factory=list)

    def summary(self) -> dict[str, int]:
        return {
            "requested": self.requested,
            "wouldCreate": 0,
            "duplicates": len(self.duplicates),
            "reopened": len(self.reopened),
            "created": len(self.created),
            "failed": len(self.failed),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "planId": self.plan_id,
            "dryRun": False,
            "target": self.target,
            "repoFullName": self.repo_full_name,
            "runId": self.run_id,
            "summary": self.summary(),
            "created": self.created,
            "skippedAsDuplicate": self.duplicates,
            "reopened": self.reopened,
            "failed": self.failed,
            "missingLabels": self.missing_labels,
        }


def plan_to_dry_run(plan: TicketPlan) -> dict[str, Any]:
    """Dry-run response for a freshly created plan."""
    return {
        "planId": plan.plan_id,
        "dryRun": True,
        "target": plan.target,
        "repoFullName": plan.repo_full_name,
        "runId": plan.run_id,
        "planHash": plan.plan_hash,
        "summary": {
            "requested": len(plan.items),
            "wouldCreate": len(plan.items),
            "duplicates": 0,
            "reopened": 0,
            "created": 0,
            "failed": 0,
        },
        "items": [item.to_dict() for item in plan.items],
        "nextStep": (
            f"Review the plan, then call approve_ticket_plan with planId {plan.plan_id} "
            "and create_tickets with dryRun=false and approvedPlanId."
        ),
    }


class TicketWorkflow:
    """Ticket plan state machine for one repository."""

    def __init__(
        self,
        repo_path: Path,
        audit_log: AuditLog,
        config: Optional[NavigatorConfig] = None,
        tracker_factory: Optional[TrackerFactory] = None,
    ) -> None:
        self.repo_path = repo_path
        self.audit_log = audit_log
        self.config = config or NavigatorConfig()
        self.tracker_factory = tracker_factory or create_tracker(self.config)

    # -- identity ---------------------------------------------------------

    def resolve_repo_full_name(self, target: str, target_repo: Optional[str] = None) -> str:
        """Destination identity that plan hashes are bound to.

        GitHub uses ``targetRepo``, then the configured ``target_repo``, then
        the origin remote. Jira uses ``jira/<project key>``.
        """
        if target == "github":
            name = target_repo or self.config.target_repo or get_repo_full_name(self.repo_path)
            if not name:
                raise ValidationError(
                    "Cannot determine the GitHub repository: no origin remote found. "
                    "Pass targetRepo as owner/name."
                )
            if not _REPO_FULL_NAME.match(name):
                raise ValidationError("targetRepo must be owner/name", {"targetRepo": name})
            return name
        if target == "jira":
            project = target_repo or self.config.jira_project_key
            if not project:
                raise ValidationError("Jira target requires JIRA_PROJECT_KEY or targetRepo")
            return f"jira/{project}"
        raise ValidationError(f"Unsupported ticket target: {target}", {"target": target})

    # -- PLANNED ----------------------------------------------------------

    def build_items(
        self, manifest: RunManifest, target: str, max_items: int
    ) -> tuple[TicketPlanItem, ...]:
        framework = ComplianceFramework.parse(manifest.framework)
        findings = sorted(manifest.real_findings, key=lambda f: (f.severity.rank, f.id))
        items = []
        for finding in findings[:max_items]:
            key = dedupe_key(target, finding.id)
            items.append(
                TicketPlanItem(
                    finding_id=finding.id,
                    action="create",
                    dedupe_key=key,
                    title=format_title(finding, framework),
                    body=format_body(finding, framework, manifest.run_id, key),
                    labels=build_labels(finding, framework),
                    severity=finding.severity.value,
                )
            )
        return tuple(items)

    def create_plan(
        self,
        manifest: RunManifest,
        target: str,
        max_items: int = DEFAULT_MAX_ITEMS,
        target_repo: Optional[str] = None,
    ) -> TicketPlan:
        """Build and persist a pending plan without contacting any tracker."""
        repo_full_name = self.resolve_repo_full_name(target, target_repo)
        items = self.build_items(manifest, target, max_items)
        plan = TicketPlan(
            plan_id=secrets.token_hex(6),
            created_at=utc_timestamp(),
            target=target,
            repo_full_name=repo_full_name,
            run_id=manifest.run_id,
            plan_hash=compute_plan_hash(items, repo_full_name, manifest.run_id),
            items=items,
        )
        pending = paths.approvals_dir(self.repo_path, "pending")
        paths.atomic_write_json(paths.assert_under(pending, pending / f"{plan.plan_id}.json"), plan.to_dict())

        self.audit_log.append(
            "ticket_plan_created",
            {
                "planId": plan.plan_id,
                "runId": plan.run_id,
                "target": target,
                "repoFullName": repo_full_name,
                "planHash": plan.plan_hash,
                "itemCount": len(items),
            },
        )
        logger.info("Created ticket plan %s with %d items", plan.plan_id, len(items))
        return plan

    def load_plan(self, plan_id: str) -> TicketPlan:
        pending = paths.approvals_dir(self.repo_path, "pending")
        target = paths.assert_under(pending, pending / f"{paths.validate_plan_id(plan_id)}.json")
        if not target.is_file():
            raise PlanNotFound(f"No pending plan {plan_id}", {"planId": plan_id})
        return TicketPlan.from_dict(paths.read_json(target))

    # -- APPROVED ---------------------------------------------------------

    def load_approval(self, plan_id: str) -> Optional[ApprovalArtifact]:
        approved = paths.approvals_dir(self.repo_path, "approved")
        target = paths.assert_under(approved, approved / f"{paths.validate_plan_id(plan_id)}.json")
        if not target.is_file():
            return None
        return ApprovalArtifact.from_dict(paths.read_json(target))

    def approve(
        self, plan_id: str, approved_by: str, reason: Optional[str] = None
    ) -> ApprovalArtifact:
        """Record human approval of a pending plan.

        Approving an already approved plan returns the existing artifact.
        """
        plan = self.load_plan(plan_id)
        existing = self.load_approval(plan_id)
        if existing is not None:
            logger.info("Plan %s already approved by %s", plan_id, existing.approved_by)
            return existing

        artifact = ApprovalArtifact(
            plan_id=plan.plan_id,
            approved_at=utc_timestamp(),
            approved_by=approved_by,
            plan_hash=plan.plan_hash,
            repo_full_name=plan.repo_full_name,
            reason=reason,
        )
        approved = paths.approvals_dir(self.repo_path, "approved")
        paths.atomic_write_json(
            paths.assert_under(approved, approved / f"{plan.plan_id}.json"), artifact.to_dict()
        )
        self.audit_log.append(
            "ticket_plan_approved",
            {
                "planId": plan.plan_id,
                "planHash": plan.plan_hash,
                "repoFullName": plan.repo_full_name,
                "approvedBy": approved_by,
                "reason": reason,
            },
            actor=approved_by,
        )
        return artifact

    # -- EXECUTED ---------------------------------------------------------

    def execute(
        self,
        run_id: str,
        target: str,
        plan_id: str,
        target_repo: Optional[str] = None,
        reopen_closed: Optional[bool] = None,
        label_policy: Optional[str] = None,
    ) -> TicketExecution:
        """Execute an approved plan against the tracker.

        Raises:
            PlanNotFound: No pending plan with this id.
            ApprovalRequired: The plan was never approved.
            PlanHashMismatch: The plan no longer matches its approval.
            PlanAlreadyExecuted: The plan already ran for this repository.
        """
        plan = self.load_plan(plan_id)
        approval = self.load_approval(plan_id)
        if approval is None:
            raise ApprovalRequired(
                f"Plan {plan_id} has not been approved. Call approve_ticket_plan first.",
                {"planId": plan_id},
            )
        if plan.run_id != run_id:
            raise ValidationError(
                "approvedPlanId belongs to a different run",
                {"planId": plan_id, "planRunId": plan.run_id, "runId": run_id},
            )
        if plan.target != target:
            raise ValidationError(
                "approvedPlanId was planned for a different target",
                {"planId": plan_id, "planTarget": plan.target, "target": target},
            )

        repo_full_name = self.resolve_repo_full_name(target, target_repo)
        current_hash = compute_plan_hash(plan.items, repo_full_name, plan.run_id)
        if current_hash != approval.plan_hash:
            self.audit_log.append(
                "ticket_execution_refused",
                {
                    "planId": plan_id,
                    "reason": "plan hash mismatch",
                    "approvedHash": approval.plan_hash,
                    "currentHash": current_hash,
                    "repoFullName": repo_full_name,
                },
            )
            raise PlanHashMismatch(
                "Plan does not match its approval; create and approve a new plan",
                {
                    "planId": plan_id,
                    "approvedRepo": approval.repo_full_name,
                    "currentRepo": repo_full_name,
                },
            )

        reopen = self.config.reopen_closed if reopen_closed is None else reopen_closed
        policy = label_policy or self.config.label_policy
        result = TicketExecution(
            plan_id=plan_id,
            target=target,
            repo_full_name=repo_full_name,
            run_id=run_id,
            requested=len(plan.items),
        )

        # A tracker that cannot be built leaves the plan unclaimed and retryable.
        tracker = self.tracker_factory(target, repo_full_name)
        try:
            self._claim_execution(plan, repo_full_name)
            self.audit_log.append(
                "ticket_execution_started",
                {"planId": plan_id, "repoFullName": repo_full_name, "itemCount": len(plan.items)},
            )
            try:
                self._run_items(tracker, plan.items, result, reopen, policy)
            except Exception:
                if result.created or result.reopened:
                    self._finish_execution(plan, repo_full_name, result, status="interrupted")
                else:
                    self._release_execution(plan, repo_full_name)
                raise
        finally:
            tracker.close()

        self._finish_execution(plan, repo_full_name, result)
        self.audit_log.append(
            "tickets_executed",
            {
                "planId": plan_id,
                "repoFullName": repo_full_name,
                "summary": result.summary(),
                "created": [c["url"] for c in result.created],
            },
        )
        return result

    def _run_items(
        self,
        tracker: IssueTracker,
        items: tuple[TicketPlanItem, ...],
        result: TicketExecution,
        reopen_closed: bool,
        label_policy: str,
    ) -> None:
        try:
            result.missing_labels = tracker.ensure_labels(
                {label for item in items for label in item.labels}, label_policy
            )
        except (RateLimited, TrackerError) as e:
            logger.warning("Label check failed: %s", e.message)

        for item in items:
            try:
                existing = tracker.find_duplicate(item)
                if existing is not None:
                    entry = {"findingId": item.finding_id, "url": existing.url, "state": existing.state}
                    if existing.is_closed and reopen_closed and tracker.supports_reopen:
                        tracker.reopen(existing)
                        result.reopened.append(entry)
                    else:
                        result.duplicates.append(entry)
                    continue
                created = tracker.create(item)
                result.created.append(
                    {"findingId": item.finding_id, "url": created.url, "number": created.number}
                )
            except (RateLimited, TrackerError) as e:
                logger.warning("Ticket for finding %s failed: %s", item.finding_id, e.message)
                result.failed.append(
                    {"findingId": item.finding_id, "code": e.code, "message": e.message}
                )

    def _executed_path(self, plan_id: str) -> Path:
        executed = paths.approvals_dir(self.repo_path, "executed")
        return paths.assert_under(executed, executed / f"{plan_id}.json")

    def _claim_execution(self, plan: TicketPlan, repo_full_name: str) -> None:
        record_path = self._executed_path(plan.plan_id)
        with _execution_lock:
            record = paths.read_json(record_path) if record_path.is_file() else {}
            executions = record.setdefault("executions", {})
            if repo_full_name in executions:
                raise PlanAlreadyExecuted(
                    f"Plan {plan.plan_id} was already executed for {repo_full_name}",
                    {"planId": plan.plan_id, "repoFullName": repo_full_name},
                )
            record["planId"] = plan.plan_id
            executions[repo_full_name] = {"status": "started", "startedAt": utc_timestamp()}
            paths.atomic_write_json(record_path, record)

    def _release_execution(self, plan: TicketPlan, repo_full_name: str) -> None:
        """Drop a claim made before any ticket was written."""
        record_path = self._executed_path(plan.plan_id)
        with _execution_lock:
            record = paths.read_json(record_path)
            record["executions"].pop(repo_full_name, None)
            if record["executions"]:
                paths.atomic_write_json(record_path, record)
            else:
                record_path.unlink()
        logger.warning("Released execution claim on plan %s for %s", plan.plan_id, repo_full_name)

    def _finish_execution(
        self,
        plan: TicketPlan,
        repo_full_name: str,
        result: TicketExecution,
        status: str = "completed",
    ) -> None:
        record_path = self._executed_path(plan.plan_id)
        with _execution_lock:
            record = paths.read_json(record_path)
            record["executions"][repo_full_name].update(
                {
                    "status": status,
                    "completedAt": utc_timestamp(),
                    "summary": result.summary(),
                }
            )
            paths.atomic_write_json(record_path, record)

"""Remediation planner: groups findings into prioritized work items."""

import logging
from pathlib import Path
from typing import Optional

from compliance_navigator import paths
from compliance_navigator.compliance import ComplianceFramework, ComplianceMapper
from compliance_navigator.models import Finding, RemediationStep, RunManifest, Severity

logger = logging.getLogger(__name__)

# Minutes of effort by severity for count buckets (1, 2-5, 6+)
EFFORT_MINUTES: dict[Severity, tuple[int, int, int]] = {
    Severity.CRITICAL: (120, 360, 960),
    Severity.HIGH: (60, 180, 480),
    Severity.MEDIUM: (30, 90, 240),
    Severity.LOW: (15, 45, 120),
    Severity.INFO: (5, 15, 30),
}

PLAN_JSON = "remediation_plan.json"
PLAN_MD = "remediation_plan.md"


def estimate_minutes(severity: Severity, count: int) -> int:
    """Static effort lookup by severity and finding-count bucket."""
    single, few, many = EFFORT_MINUTES[severity]
    if count <= 1:
        return single
    if count <= 5:
        return few
    return many


def group_key(finding: Finding) -> str:
    return f"{finding.scanner}:{finding.rule_id or finding.category}"


def plan_remediation(
    manifest: RunManifest,
    max_items: Optional[int] = None,
    mapper: Optional[ComplianceMapper] = None,
) -> list[RemediationStep]:
    """Group a run's findings into remediation steps.

    Steps are ordered by severity (most severe first), then finding count
    (largest first), then group key. Synthetic findings are ignored.

    Args:
        manifest: The run to plan for.
        max_items: Optional cap on the number of steps returned.
        mapper: Used to order control IDs by their framework table.

    Returns:
        Remediation steps with sequential ``REM-<n>`` ids.
    """
    mapper = mapper or ComplianceMapper()
    framework = ComplianceFramework.parse(manifest.framework)

    groups: dict[str, list[Finding]] = {}
    for finding in manifest.real_findings:
        groups.setdefault(group_key(finding), []).append(finding)

    drafts = []
    for key, findings in groups.items():
        findings.sort(key=lambda f: (f.severity.rank, f.id))
        lead = findings[0]
        severity = lead.severity
        controls = {c for f in findings for c in f.controls.get(framework.value, ())}
        files = sorted({f.file for f in findings if f.file})
        title = lead.title if len(findings) == 1 else f"{lead.title} ({len(findings)} findings)"
        drafts.append(
            (
                (severity.rank, -len(findings), key),
                dict(
                    title=title,
                    severity=severity,
                    scanner=lead.scanner,
                    group_key=key,
                    finding_ids=tuple(sorted(f.id for f in findings)),
                    controls_addressed=mapper.order_controls(framework, controls),
                    estimated_minutes=estimate_minutes(severity, len(findings)),
                    remediation=lead.remediation,
                    files=tuple(files),
                ),
            )
        )

    drafts.sort(key=lambda d: d[0])
    if max_items is not None:
        drafts = drafts[:max_items]

    steps = [RemediationStep(step_id=f"REM-{i}", **fields) for i, (_, fields) in enumerate(drafts, 1)]
    logger.info("Planned %d remediation steps for run %s", len(steps), manifest.run_id)
    return steps


def total_hours(steps: list[RemediationStep]) -> float:
    return round(sum(s.estimated_minutes for s in steps) / 60, 2)


def render_markdown(manifest: RunManifest, steps: list[RemediationStep]) -> str:
    lines = [
        "# Remediation Plan",
        "",
        f"**Run ID**: {manifest.run_id}",
        f"**Framework**: {ComplianceFramework.parse(manifest.framework).title}",
        f"**Steps**: {len(steps)}",
        f"**Estimated effort**: {total_hours(steps)}h",
        "",
    ]
    if not steps:
        lines.append("No actionable findings.")
    for step in steps:
        lines += [
            f"## {step.step_id}: {step.title}",
            "",
            f"- Severity: {step.severity.value}",
            f"- Scanner: {step.scanner}",
            f"- Findings: {len(step.finding_ids)}",
            f"- Effort: {step.effort_estimate}",
            f"- Controls: {', '.join(step.controls_addressed) or 'none'}",
        ]
        if step.files:
            lines.append(f"- Files: {', '.join(step.files)}")
        lines += ["", step.remediation or "Review the findings and remediate.", ""]
    return "\n".join(lines).rstrip() + "\n"


def write_remediation_plan(
    repo_path: Path, manifest: RunManifest, steps: list[RemediationStep]
) -> tuple[Path, Path]:
    """Write the plan as JSON and Markdown into the run directory."""
    run_dir = paths.run_dir(repo_path, manifest.run_id)
    json_path = paths.atomic_write_json(
        paths.assert_under(run_dir, run_dir / PLAN_JSON),
        {
            "runId": manifest.run_id,
            "framework": manifest.framework,
            "totalEstimatedHours": total_hours(steps),
            "steps": [s.to_dict() for s in steps],
        },
    )
    md_path = paths.atomic_write_text(
        paths.assert_under(run_dir, run_dir / PLAN_MD), render_markdown(manifest, steps)
    )
    return json_path, md_path

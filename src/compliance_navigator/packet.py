"""Audit packet generator.

A packet is a self-contained directory of deterministic JSON plus a
Markdown index, written under ``.compliance/audit_packet/<runId>/``.
"""

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from compliance_navigator import paths
from compliance_navigator.compliance import ComplianceFramework
from compliance_navigator.models import (
    SEVERITY_ORDER,
    ControlCoverage,
    ROIEstimate,
    RunManifest,
    count_by_severity,
)

logger = logging.getLogger(__name__)

TOP_FINDINGS = 10

SCOPE_LIMITATIONS = (
    "This packet reports what automated scanners observed in the repository at scan time.",
    "Scanner reach percentages measure which technical controls the findings speak to. "
    "They are not a compliance certification or an auditor's opinion.",
    "Controls with no findings are not proven effective; they may simply be outside scanner reach.",
    "Administrative safeguards, policies and procedures require human evidence.",
)


@dataclass(frozen=True)
class AuditPacket:
    """Location and contents of a generated packet."""

    run_id: str
    path: Path
    files: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {"runId": self.run_id, "auditPacketPath": str(self.path), "files": list(self.files)}


def generate_packet(
    repo_path: Path,
    manifest: RunManifest,
    coverage: ControlCoverage,
    roi: ROIEstimate,
) -> AuditPacket:
    """Write the audit packet for a run.

    Every target path is confined to the packet directory before anything is
    written. Existing files are replaced atomically.

    Args:
        repo_path: Validated repository root.
        manifest: The run being documented.
        coverage: Coverage of the run's framework.
        roi: Hours-saved estimate.

    Returns:
        AuditPacket describing what was written.
    """
    root = paths.packet_dir(repo_path, manifest.run_id)

    documents: dict[str, str] = {
        "manifest.json": paths.dump_json(manifest.to_dict()),
        "findings.json": paths.dump_json([f.to_dict() for f in manifest.findings]),
        "coverage.json": paths.dump_json(coverage.to_dict()),
        "roi.json": paths.dump_json(roi.to_dict()),
    }

    evidence_sources = _evidence_files(paths.evidence_dir(repo_path, manifest.run_id))
    evidence_names = [f"evidence/{source.name}" for source in evidence_sources]
    documents["index.md"] = render_index(manifest, coverage, roi, evidence_names)

    targets = {name: paths.assert_under(root, root / name) for name in documents}
    evidence_targets = [
        (source, paths.assert_under(root, root / name))
        for source, name in zip(evidence_sources, evidence_names)
    ]

    root.mkdir(parents=True, exist_ok=True)
    for name, content in documents.items():
        paths.atomic_write_text(targets[name], content)
    for source, target in evidence_targets:
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, target, follow_symlinks=False)

    files = tuple(sorted(list(documents) + evidence_names))
    logger.info("Audit packet for run %s written to %s", manifest.run_id, root)
    return AuditPacket(run_id=manifest.run_id, path=root, files=files)


def _evidence_files(directory: Path) -> list[Path]:
    """Regular files directly under the run's evidence directory, symlinks skipped."""
    if not directory.is_dir() or directory.is_symlink():
        return []
    result = []
    with os.scandir(directory) as entries:
        for entry in entries:
            if entry.is_symlink():
                logger.warning("Skipping symlinked evidence file: %s", entry.path)
                continue
            if entry.is_file(follow_symlinks=False):
                result.append(Path(entry.path))
    return sorted(result, key=lambda p: p.name)


def render_index(
    manifest: RunManifest,
    coverage: ControlCoverage,
    roi: ROIEstimate,
    evidence_names: list[str],
) -> str:
    """Render ``index.md``. Output depends only on its inputs."""
    framework = ComplianceFramework.parse(manifest.framework)
    real = manifest.real_findings
    severity_counts = count_by_severity(real)
    is_hipaa = framework is ComplianceFramework.HIPAA

    lines = [
        "# Compliance Audit Packet",
        "",
        f"**Repository**: `{manifest.repo_path}`",
        f"**Framework**: {framework.title}",
        f"**Run ID**: {manifest.run_id}",
        f"**Scan Date**: {manifest.created_at}",
        f"**Commit**: {manifest.repo_commit_hash or 'unknown'}",
        f"**Tool Version**: {manifest.tool_version or 'unknown'}",
        "",
        "## Executive Summary",
        "",
        "| Metric | Value |",
        "|---|---|",
        f"| Findings | {len(real)} |",
        f"| Scanner reach | {coverage.coverage_pct}% "
        f"({len(coverage.covered_controls)}/{coverage.total_controls} technical controls) |",
        f"| Reach with scanners that ran | {coverage.potential_coverage_pct}% |",
        f"| Reach with all scanners installed | {coverage.full_coverage_pct}% |",
        f"| Estimated hours saved | {roi.conservative_hours}-{roi.likely_hours}h |",
        "",
        "## Severity Histogram",
        "",
        "| Severity | Count |",
        "|---|---|",
    ]
    lines += [f"| {s.value} | {severity_counts[s.value]} |" for s in SEVERITY_ORDER]

    lines += ["", "## Scanner Status", "", "| Scanner | Status | Version | Findings | Note |", "|---|---|---|---|---|"]
    for status in manifest.scanner_statuses:
        lines.append(
            f"| {status.scanner} | {status.state.value} | {status.version or '-'} "
            f"| {status.finding_count} | {status.message or '-'} |"
        )

    heading = "Technical Safeguard Scanner Reach" if is_hipaa else "Control Coverage"
    lines += ["", f"## {heading}", "", "| Control | Name | Status | Findings |", "|---|---|---|---|"]
    for detail in coverage.covered_controls:
        lines.append(
            f"| {detail.control_id} | {detail.name} | covered | {len(detail.evidence_finding_ids)} |"
        )
    for detail in coverage.missing_controls:
        lines.append(f"| {detail.control_id} | {detail.name} | no findings | 0 |")

    if is_hipaa:
        lines += [
            "",
            "## Administrative Safeguards — Human Evidence Required",
            "",
            "These safeguards cannot be assessed by scanners and are excluded from scanner reach.",
            "",
            "| Control | Name | CFR Section |",
            "|---|---|---|",
        ]
        for control in coverage.administrative_controls:
            lines.append(
                f"| {control['controlId']} | {control['controlName']} | {control['cfrSection']} |"
            )

    lines += ["", "## Top Findings", ""]
    top = sorted(real, key=lambda f: (f.severity.rank, f.id))[:TOP_FINDINGS]
    if top:
        lines += ["| Severity | Scanner | Title | Location |", "|---|---|---|---|"]
        for finding in top:
            title = finding.title.replace("|", "\\|")
            lines.append(
                f"| {finding.severity.value} | {finding.scanner} | {title} | {finding.location or '-'} |"
            )
    else:
        lines.append("No findings.")

    lines += [
        "",
        "## ROI Estimate",
        "",
        f"- Conservative: {roi.conservative_hours}h",
        f"- Likely: {roi.likely_hours}h",
        f"- Basis: {roi.basis}",
        "",
        "## Security Policy",
        "",
    ]
    for description in manifest.policy.get("commandAllowlist", []):
        lines.append(f"- Allowlisted: {description}")
    if manifest.policy.get("shellExecution"):
        lines.append(f"- Shell execution: {manifest.policy['shellExecution']}")
    if manifest.policy.get("writeConfinement"):
        lines.append(f"- Writes confined to: `{manifest.policy['writeConfinement']}`")

    lines += ["", "## Scope Limitations", ""]
    lines += [f"- {item}" for item in SCOPE_LIMITATIONS]

    lines += ["", "## Evidence", ""]
    lines += [f"- `{name}`" for name in evidence_names] or ["No raw scanner output was captured."]

    return "\n".join(lines) + "\n"

"""Ticket titles, bodies, labels and dedupe markers."""

from compliance_navigator.compliance import ComplianceFramework
from compliance_navigator.models import Finding
from compliance_navigator.paths import sha256_hex

DEDUPE_MARKER = "CN-DEDUPE"
FINDING_MARKER = "CN-FINDING-ID"
RUN_MARKER = "CN-RUN-ID"
TOOL_LABEL = "compliance-navigator"
MAX_CONTROL_LABELS = 3

LABEL_COLORS = {
    "severity:critical": "b60205",
    "severity:high": "d93f0b",
    "severity:medium": "fbca04",
    "severity:low": "0e8a16",
    "severity:info": "c5def5",
    "scanner:gitleaks": "5319e7",
    "scanner:npm_audit": "0052cc",
    "scanner:checkov": "006b75",
    TOOL_LABEL: "1d76db",
}
CONTROL_LABEL_COLOR = "e4e669"
DEFAULT_LABEL_COLOR = "d4c5f9"


def dedupe_key(target: str, finding_id: str) -> str:
    """Stable key identifying one finding's ticket on one tracker."""
    return sha256_hex(f"{target}:{finding_id}")[:16]


def dedupe_marker(key: str) -> str:
    return f"{DEDUPE_MARKER}: {key}"


def label_color(label: str) -> str:
    if label in LABEL_COLORS:
        return LABEL_COLORS[label]
    if ":" in label and label.split(":", 1)[0] in {f.value for f in ComplianceFramework}:
        return CONTROL_LABEL_COLOR
    return DEFAULT_LABEL_COLOR


def format_title(finding: Finding, framework: ComplianceFramework) -> str:
    prefix = framework.name if finding.controls.get(framework.value) else "SEC"
    return f"[{prefix}][{finding.severity.value.upper()}][{finding.scanner}] {finding.title}"


def format_body(finding: Finding, framework: ComplianceFramework, run_id: str, key: str) -> str:
    lines = [
        "## Finding Summary",
        "",
        f"**Severity**: {finding.severity.value.upper()}",
        f"**Scanner**: {finding.scanner}",
    ]
    if finding.location:
        lines.append(f"**Location**: `{finding.location}`")
    if finding.rule_id:
        lines.append(f"**Rule**: `{finding.rule_id}`")
    lines.append("")
    if finding.description:
        lines += [finding.description, ""]

    lines += ["## Evidence", ""]
    lines.append(f"- **Reference**: `{finding.evidence_ref or 'n/a'}`")
    lines.append("")

    controls = finding.controls.get(framework.value, ())
    if controls:
        lines += [f"## {framework.name} Controls", ""]
        lines += [f"- {control}" for control in controls]
        lines.append("")

    if finding.remediation:
        lines += ["## Remediation", "", finding.remediation, ""]

    # Markers stay at the bottom so tracker search can find them verbatim.
    lines += [
        "---",
        "",
        f"`{dedupe_marker(key)}`",
        f"`{FINDING_MARKER}: {finding.id}`",
        f"`{RUN_MARKER}: {run_id}`",
    ]
    return "\n".join(lines)


def build_labels(finding: Finding, framework: ComplianceFramework) -> tuple[str, ...]:
    labels = [
        f"severity:{finding.severity.value}",
        f"scanner:{finding.scanner}",
        TOOL_LABEL,
    ]
    controls = finding.controls.get(framework.value, ())[:MAX_CONTROL_LABELS]
    labels += [f"{framework.value}:{control}" for control in controls]
    return tuple(labels)

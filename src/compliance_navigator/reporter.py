"""Scan report generators for the command line."""

import io
import json
from abc import ABC, abstractmethod
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from compliance_navigator.models import SCANNER_MISSING_TAG, SEVERITY_ORDER, Severity

REPORT_WIDTH = 160


class ReportGenerator(ABC):
    """Abstract base class for report generators."""

    @abstractmethod
    def generate(self, result: dict[str, Any]) -> str:
        """Generate a report from a ``scan_repo`` result.

        Args:
            result: The scan result payload.

        Returns:
            Formatted report as a string.
        """
        pass


class JSONReporter(ReportGenerator):
    """Generate JSON format reports."""

    def __init__(self, indent: int = 2) -> None:
        self.indent = indent

    def generate(self, result: dict[str, Any]) -> str:
        return json.dumps(result, indent=self.indent, sort_keys=True)


class TableReporter(ReportGenerator):
    """Generate rich table format reports for CLI output."""

    SEVERITY_COLORS = {
        Severity.CRITICAL: "red bold",
        Severity.HIGH: "red",
        Severity.MEDIUM: "yellow",
        Severity.LOW: "blue",
        Severity.INFO: "dim",
    }

    STATE_COLORS = {"ok": "green", "skipped": "dim", "missing": "yellow", "error": "red"}

    def __init__(self, show_details: bool = True, max_findings: int = 50) -> None:
        """Initialize table reporter.

        Args:
            show_details: Whether to include finding titles.
            max_findings: Maximum number of finding rows to render.
        """
        self.show_details = show_details
        self.max_findings = max_findings
        self.console = Console(record=True, force_terminal=True, file=io.StringIO(), width=REPORT_WIDTH)

    def generate(self, result: dict[str, Any]) -> str:
        self._render_summary(result)
        self._render_scanners(result.get("scannerStatuses", []))

        findings = [f for f in result.get("findings", []) if SCANNER_MISSING_TAG not in f.get("tags", [])]
        if findings:
            self._render_findings(findings)

        self._render_coverage(result.get("controlCoverage", {}))
        return self.console.export_text()

    def _render_summary(self, result: dict[str, Any]) -> None:
        counts = result.get("countsBySeverity", {}).get("actionable", {})

        summary_text = Text()
        summary_text.append(f"Run ID: {result.get('runId')}\n")
        summary_text.append(f"Framework: {result.get('framework', '').upper()}\n")
        summary_text.append(f"Total Findings: {sum(counts.values())}\n\n")

        summary_text.append("By Severity:\n", style="bold")
        for severity in SEVERITY_ORDER:
            color = self.SEVERITY_COLORS[severity]
            summary_text.append(f"  {severity.value}: ", style=color)
            summary_text.append(f"{counts.get(severity.value, 0)}\n")

        roi = result.get("roiEstimate") or {}
        if roi:
            summary_text.append(
                f"\nEstimated hours saved: {roi.get('hoursSavedConservative')}"
                f" - {roi.get('hoursSavedLikely')}"
            )

        self.console.print(Panel(summary_text, title="Compliance Scan Summary", border_style="blue"))

    def _render_scanners(self, statuses: list[dict[str, Any]]) -> None:
        table = Table(title="Scanners", show_header=True, header_style="bold cyan")
        table.add_column("Scanner", width=12)
        table.add_column("Status", width=9)
        table.add_column("Version", width=10)
        table.add_column("Findings", width=8)
        table.add_column("Message", width=40)

        for status in statuses:
            state = status.get("status", "")
            table.add_row(
                status.get("scanner", ""),
                Text(state, style=self.STATE_COLORS.get(state, "")),
                status.get("version") or "-",
                str(status.get("findingCount", 0)),
                (status.get("message") or "")[:40],
            )
        self.console.print(table)

    def _render_findings(self, findings: list[dict[str, Any]]) -> None:
        table = Table(title="Findings", show_header=True, header_style="bold cyan")
        table.add_column("Severity", width=10)
        table.add_column("Scanner", width=10)
        table.add_column("Rule", width=20)
        table.add_column("Location", width=30)
        if self.show_details:
            table.add_column("Title", width=40)

        ordered = sorted(findings, key=lambda f: Severity.parse(f.get("severity")).rank)
        for finding in ordered[: self.max_findings]:
            severity = Severity.parse(finding.get("severity"))
            location = finding.get("location") or ""
            row = [
                Text(severity.value, style=self.SEVERITY_COLORS[severity]),
                finding.get("scanner", ""),
                (finding.get("ruleId") or "")[:20],
                location[-30:] if len(location) > 30 else location,
            ]
            if self.show_details:
                title = finding.get("title", "")
                row.append(title[:40] if len(title) > 40 else title)
            table.add_row(*row)

        self.console.print(table)
        if len(findings) > self.max_findings:
            self.console.print(f"[dim]... and {len(findings) - self.max_findings} more[/dim]")

    def _render_coverage(self, coverage: dict[str, Any]) -> None:
        if not coverage:
            return
        text = Text()
        text.append(
            f"Scanner reach: {coverage.get('coveragePct', 0)}% "
            f"({coverage.get('coveredCount', 0)}/{coverage.get('totalControls', 0)} controls)\n"
        )
        covered = coverage.get("coveredControls") or []
        if covered:
            text.append(f"Covered: {', '.join(covered)}\n", style="green")
        administrative = coverage.get("administrative")
        if administrative:
            text.append(
                f"Administrative safeguards requiring human evidence: {administrative.get('total', 0)}\n",
                style="yellow",
            )
        text.append(coverage.get("disclaimer", ""), style="dim")
        self.console.print(Panel(text, title="Control Coverage", border_style="cyan"))


def create_reporter(format: str, show_details: bool = True) -> ReportGenerator:
    """Create a reporter for the specified format.

    Args:
        format: Output format ('json' or 'table').
        show_details: Whether to show full details (for table format).

    Returns:
        Appropriate ReportGenerator instance.

    Raises:
        ValueError: If format is not supported.
    """
    if format == "json":
        return JSONReporter()
    elif format == "table":
        return TableReporter(show_details=show_details)
    else:
        raise ValueError(f"Unsupported format: {format}. Use 'json' or 'table'.")

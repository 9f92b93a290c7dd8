"""Command-line interface for compliance-navigator."""

import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

import click
from rich.console import Console

from compliance_navigator import __version__, paths
from compliance_navigator.audit_log import AuditLog, verify_chain
from compliance_navigator.config import load_config
from compliance_navigator.errors import ComplianceError
from compliance_navigator.models import SCANNER_MISSING_TAG, Severity
from compliance_navigator.reporter import create_reporter
from compliance_navigator.tickets.workflow import TicketWorkflow
from compliance_navigator.tools import ComplianceTools

console = Console(stderr=True)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]
FAIL_ON_CHOICES = ["none", "critical", "high", "medium", "low"]


def _configure_logging(level: Optional[str]) -> None:
    level = level or load_config().log_level
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _call(tools: ComplianceTools, name: str, params: dict[str, Any]) -> dict[str, Any]:
    """Run a tool and return its result, raising ClickException on error."""
    envelope = tools.call(name, params)
    if not envelope["ok"]:
        error = envelope["error"]
        raise click.ClickException(f"{error['code']}: {error['message']}")
    return envelope["result"]


def _plan_run_id(repo_path: str, plan_id: str) -> str:
    """Run id recorded in a pending plan."""
    root = Path(repo_path)
    workflow = TicketWorkflow(root, AuditLog(paths.audit_log_path(root)))
    try:
        return workflow.load_plan(plan_id).run_id
    except ComplianceError as e:
        raise click.ClickException(f"{e.code}: {e.message}") from e


def should_fail(findings: list[dict[str, Any]], fail_on: str) -> bool:
    """Whether any real finding is at or above the ``fail_on`` severity."""
    if fail_on == "none":
        return False
    threshold = Severity(fail_on).rank
    return any(
        Severity.parse(f.get("severity")).rank <= threshold
        for f in findings
        if SCANNER_MISSING_TAG not in f.get("tags", [])
    )


@click.group()
@click.version_option(version=__version__, prog_name="compliance-navigator")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Logging level for diagnostics written to stderr",
)
def main(log_level: Optional[str]) -> None:
    """compliance-navigator - Compliance evidence from third-party security scanners."""
    _configure_logging(log_level)


@main.command()
def version() -> None:
    """Show version information."""
    click.echo(f"compliance-navigator version {__version__}")


@main.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False), default=".")
@click.option(
    "--framework",
    type=click.Choice(["soc2", "hipaa"]),
    default="soc2",
    help="Control framework to map findings onto",
)
@click.option(
    "--format",
    "-f",
    type=click.Choice(["json", "table"]),
    default="table",
    help="Output format",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(),
    help="Write output to file",
)
def scan(path: str, framework: str, format: str, output: Optional[str]) -> None:
    """Scan a repository and record a run manifest.

    PATH is the repository root (default: current directory).
    """
    if format == "table":
        console.print(f"[blue]Scanning {path} ({framework.upper()})...[/blue]")

    result = _call(ComplianceTools(), "scan_repo", {"repoPath": str(Path(path).resolve()), "framework": framework})
    report = create_reporter(format).generate(result)

    if output:
        Path(output).write_text(report, encoding="utf-8")
        console.print(f"[green]Report written to {output}[/green]")
    else:
        click.echo(report)


@main.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False), default=".")
@click.option("--format", "-f", type=click.Choice(["json", "text"]), default="text", help="Output format")
def verify(path: str, format: str) -> None:
    """Verify the repository's hash-chained audit log.

    Exits 1 when the chain is broken.
    """
    try:
        log_path = paths.audit_log_path(paths.validate_repo_path(str(Path(path).resolve())))
    except ComplianceError as e:
        raise click.ClickException(f"{e.code}: {e.message}")

    result = verify_chain(log_path)
    if format == "json":
        click.echo(json.dumps(result.to_dict(), indent=2))
    elif result.passed:
        click.echo(f"PASSED: {result.total_entries} entries verified")
    else:
        click.echo(f"FAILED: line {result.first_broken_line}: {result.reason}")
    if not result.passed:
        sys.exit(1)


@main.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False), default=".")
@click.argument("plan_id")
@click.option("--by", "approved_by", required=True, help="Name of the approver")
@click.option("--reason", help="Why the plan is approved")
def approve(path: str, plan_id: str, approved_by: str, reason: Optional[str]) -> None:
    """Approve a pending ticket plan.

    PATH is the repository root; PLAN_ID comes from a dry-run ticket plan.
    """
    params: dict[str, Any] = {
        "repoPath": str(Path(path).resolve()),
        "planId": plan_id,
        "approvedBy": approved_by,
    }
    if reason:
        params["reason"] = reason
    result = _call(ComplianceTools(), "approve_ticket_plan", params)
    click.echo(f"Approved plan {result['planId']}: {result['approvalPath']}")


# =============================================================================
# CI/CD Command
# =============================================================================


@main.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False), default=".")
@click.option("--framework", type=click.Choice(["soc2", "hipaa"]), default="soc2")
@click.option(
    "--fail-on",
    type=click.Choice(FAIL_ON_CHOICES),
    default="none",
    help="Fail the build on findings at or above this severity",
)
@click.option(
    "--include-evidence/--no-evidence",
    default=True,
    help="Include raw scanner evidence in the ZIP",
)
@click.option("--create-tickets", is_flag=True, help="Run the ticket step after export")
@click.option("--dry-run/--no-dry-run", default=True, help="Plan tickets without creating them")
@click.option("--approved-plan-id", help="Approved plan to execute (implies --no-dry-run)")
@click.option("--target", type=click.Choice(["github", "jira"]), default="github")
@click.option("--max-items", type=click.IntRange(1, 100), default=10)
def ci(
    path: str,
    framework: str,
    fail_on: str,
    include_evidence: bool,
    create_tickets: bool,
    dry_run: bool,
    approved_plan_id: Optional[str],
    target: str,
    max_items: int,
) -> None:
    """Scan, build the audit packet and export it, for CI pipelines.

    Writes .compliance/ci/summary.json and exits with:
      - Exit 0: No findings at or above the --fail-on severity
      - Exit 1: Findings at or above the threshold, or an error
      - Exit 2: Usage error
    """
    if approved_plan_id:
        create_tickets = True
        dry_run = False
    elif create_tickets and not dry_run:
        raise click.UsageError(
            "--no-dry-run requires --approved-plan-id. Run with --dry-run first, "
            "approve the plan, then pass its ID."
        )

    repo_path = str(Path(path).resolve())
    tools = ComplianceTools()
    summary: dict[str, Any] = {"framework": framework, "failOn": fail_on}
    exit_code = 0

    try:
        click.echo("Step 1/3: Scanning repository...", err=True)
        scan_result = _call(tools, "scan_repo", {"repoPath": repo_path, "framework": framework})
        counts = dict(scan_result["countsBySeverity"]["actionable"])
        counts["total"] = sum(counts.values())
        coverage = scan_result["controlCoverage"]
        summary["runId"] = scan_result["runId"]
        summary["findings"] = counts
        summary["coverage"] = {
            "percent": coverage["coveragePct"],
            "covered": coverage["coveredCount"],
            "total": coverage["totalControls"],
        }
        click.echo(
            f"  Findings: {counts['critical']} critical, {counts['high']} high, "
            f"{counts['medium']} medium, {counts['low']} low ({counts['total']} total)",
            err=True,
        )
        click.echo(
            f"  Scanner reach: {coverage['coveragePct']}% "
            f"({coverage['coveredCount']}/{coverage['totalControls']} controls)",
            err=True,
        )

        click.echo("Step 2/3: Generating audit packet...", err=True)
        packet = _call(tools, "generate_audit_packet", {"repoPath": repo_path, "runId": scan_result["runId"]})
        summary["auditPacketPath"] = packet["auditPacketPath"]

        click.echo("Step 3/3: Exporting ZIP archive...", err=True)
        export = _call(
            tools,
            "export_audit_packet",
            {"repoPath": repo_path, "runId": scan_result["runId"], "includeEvidence": include_evidence},
        )
        summary["zip"] = {"path": export["zipPath"], "bytes": export["bytes"], "sha256": export["sha256"]}
        click.echo(f"  ZIP: {export['zipPath']} ({export['bytes']} bytes)", err=True)
        click.echo(f"  SHA-256: {export['sha256']}", err=True)

        if create_tickets:
            click.echo("Step 4: Creating tickets...", err=True)
            # An approved plan executes against the run it was planned from.
            ticket_run_id = (
                _plan_run_id(repo_path, approved_plan_id) if approved_plan_id else scan_result["runId"]
            )
            ticket_params: dict[str, Any] = {
                "repoPath": repo_path,
                "runId": ticket_run_id,
                "target": target,
                "maxItems": max_items,
                "dryRun": dry_run,
            }
            if approved_plan_id:
                ticket_params["approvedPlanId"] = approved_plan_id
            tickets = _call(tools, "create_tickets", ticket_params)
            summary["tickets"] = {
                "planId": tickets["planId"],
                "runId": ticket_run_id,
                "dryRun": tickets["dryRun"],
                **tickets["summary"],
            }
            if tickets["dryRun"]:
                click.echo(
                    f"  Dry-run: {tickets['summary']['wouldCreate']} would create. "
                    f"Plan ID: {tickets['planId']}",
                    err=True,
                )
            else:
                click.echo(f"  Created: {tickets['summary']['created']} tickets", err=True)

        if should_fail(scan_result["findings"], fail_on):
            click.echo(f"FAILED: findings at or above '{fail_on}' severity", err=True)
            exit_code = 1
        else:
            click.echo("PASSED", err=True)
    except click.ClickException as e:
        click.echo(f"ERROR: {e.message}", err=True)
        summary["error"] = e.message
        exit_code = 1

    summary["exitCode"] = exit_code
    try:
        summary_path = paths.ci_summary_path(Path(repo_path))
        paths.atomic_write_json(summary_path, summary)
        click.echo(f"Summary written to: {summary_path}", err=True)
    except (ComplianceError, OSError) as e:
        click.echo(f"ERROR: could not write summary: {e}", err=True)
        exit_code = 1
    sys.exit(exit_code)


@main.command()
def serve() -> None:
    """Run the JSON-RPC tool server on stdin/stdout."""
    from compliance_navigator.server import serve as serve_stdio

    serve_stdio()


if __name__ == "__main__":
    main()

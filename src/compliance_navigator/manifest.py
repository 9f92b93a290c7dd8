"""Run manifest builder: runs every scanner and freezes the combined result."""

import asyncio
import logging
import secrets
import time
from pathlib import Path
from typing import Optional, Sequence

from compliance_navigator import __version__, allowlist, paths
from compliance_navigator.audit_log import utc_timestamp
from compliance_navigator.compliance import ComplianceFramework, ComplianceMapper
from compliance_navigator.config import NavigatorConfig
from compliance_navigator.errors import RunNotFound, ValidationError
from compliance_navigator.models import RunManifest
from compliance_navigator.repository import get_commit_hash
from compliance_navigator.scanners import ScanContext, ScannerAdapter, get_adapters

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"


def generate_run_id() -> str:
    """``<8 hex>-<epoch ms>``; unique per call and valid under the run id rule."""
    return f"{secrets.token_hex(4)}-{int(time.time() * 1000)}"


def _policy() -> dict:
    return {
        "commandAllowlist": allowlist.describe_policy(),
        "shellExecution": "never (argv exec only)",
        "writeConfinement": f"<repo>/{paths.COMPLIANCE_DIR}/",
    }


async def build_manifest_async(
    repo_path: Path,
    framework: ComplianceFramework,
    config: Optional[NavigatorConfig] = None,
    adapters: Optional[Sequence[ScannerAdapter]] = None,
    mapper: Optional[ComplianceMapper] = None,
) -> RunManifest:
    """Scan a repository with every adapter concurrently and build its manifest.

    Args:
        repo_path: Validated repository root.
        framework: Framework recorded as the run's target.
        config: Runtime settings for timeouts.
        adapters: Adapters to run, defaulting to the full scanner table.
        mapper: Mapper used to annotate findings with control references.

    Returns:
        The frozen manifest. It is not persisted; see :func:`save_manifest`.

    Raises:
        CommandNotAllowlisted: If any adapter builds a command the gate rejects.
    """
    config = config or NavigatorConfig()
    adapters = list(adapters) if adapters is not None else get_adapters()
    mapper = mapper or ComplianceMapper()

    run_id = generate_run_id()
    ctx = ScanContext(
        repo_path=repo_path,
        evidence_dir=paths.evidence_dir(repo_path, run_id),
        timeout=config.scan_timeout_seconds,
        version_timeout=float(config.version_timeout_seconds),
    )
    logger.info("Starting run %s on %s (%s)", run_id, repo_path, framework.value)

    runs = await asyncio.gather(*(adapter.run(ctx) for adapter in adapters))

    findings = []
    for run in runs:
        findings.extend(mapper.annotate(finding) for finding in run.findings)

    manifest = RunManifest(
        run_id=run_id,
        repo_path=str(repo_path),
        framework=framework.value,
        created_at=utc_timestamp(),
        findings=tuple(findings),
        scanner_versions={run.kind.value: run.status.version for run in runs},
        scanner_statuses=tuple(run.status for run in runs),
        repo_commit_hash=get_commit_hash(repo_path),
        policy=_policy(),
        tool_version=__version__,
    )
    logger.info("Run %s complete: %d findings", run_id, len(manifest.real_findings))
    return manifest


def build_manifest(
    repo_path: Path,
    framework: ComplianceFramework,
    config: Optional[NavigatorConfig] = None,
    adapters: Optional[Sequence[ScannerAdapter]] = None,
) -> RunManifest:
    """Synchronous wrapper around :func:`build_manifest_async`."""
    return asyncio.run(build_manifest_async(repo_path, framework, config, adapters))


def save_manifest(repo_path: Path, manifest: RunManifest) -> Path:
    """Persist the manifest once; an existing manifest is never overwritten."""
    target = paths.run_dir(repo_path, manifest.run_id) / MANIFEST_NAME
    if target.exists():
        raise ValidationError("Manifest already exists for run", {"runId": manifest.run_id})
    return paths.atomic_write_json(target, manifest.to_dict())


def load_manifest(repo_path: Path, run_id: str) -> RunManifest:
    """Load a persisted manifest.

    Raises:
        RunNotFound: If the run has no manifest on disk.
    """
    target = paths.run_dir(repo_path, run_id) / MANIFEST_NAME
    if not target.is_file():
        raise RunNotFound(f"No manifest found for run {run_id}", {"runId": run_id})
    return RunManifest.from_dict(paths.read_json(target))

"""Base class for scanner adapters."""

import hashlib
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

from compliance_navigator import process
from compliance_navigator.errors import ScannerUnavailable
from compliance_navigator.models import (
    SCANNER_MISSING_TAG,
    Finding,
    ScannerState,
    ScannerStatus,
    Severity,
)
from compliance_navigator.paths import atomic_write_text

logger = logging.getLogger(__name__)

_MISSING_STDERR = re.compile(r"ENOENT|not found|is not recognized", re.IGNORECASE)
_VERSION = re.compile(r"v?(\d+\.\d+(?:\.\d+)?)")


class ScannerKind(str, Enum):
    """The closed set of supported scanners."""

    GITLEAKS = "gitleaks"
    NPM_AUDIT = "npm_audit"
    CHECKOV = "checkov"


@dataclass(frozen=True)
class ScanContext:
    """Inputs shared by every adapter in one run."""

    repo_path: Path
    evidence_dir: Path
    timeout: float = 600.0
    version_timeout: float = 10.0


@dataclass(frozen=True)
class Findings:
    """Scanner ran and its output was read."""

    findings: tuple[Finding, ...]
    parsed: bool = True


@dataclass(frozen=True)
class Unavailable:
    """Scanner could not be run."""

    reason: str


ScanOutcome = Union[Findings, Unavailable]


@dataclass(frozen=True)
class ScannerRun:
    """Findings and status contributed by one adapter to a run."""

    kind: ScannerKind
    findings: tuple[Finding, ...]
    status: ScannerStatus


def finding_id(**parts: Any) -> str:
    """Stable 16-hex-char identifier derived from a finding's identity fields."""
    raw = json.dumps(parts, sort_keys=True, default=str)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]


class ScannerAdapter(ABC):
    """Abstract base class for scanner adapters.

    Subclasses build the scanner's command line and turn its JSON output into
    normalized findings. Spawning, evidence capture and the missing-scanner
    fallback live here.
    """

    kind: ScannerKind
    label: str = ""
    install_hint: str = ""

    @abstractmethod
    def build_command(self, ctx: ScanContext) -> list[str]:
        """Argv for a scan of ``ctx.repo_path``."""
        pass

    @abstractmethod
    def version_command(self) -> list[str]:
        pass

    @abstractmethod
    def parse(self, document: Any, evidence_ref: str) -> list[Finding]:
        """Convert the scanner's decoded JSON output into findings.

        Args:
            document: Decoded JSON document.
            evidence_ref: Relative path of the saved raw output.

        Returns:
            Normalized findings in scanner output order.
        """
        pass

    def skip_reason(self, ctx: ScanContext) -> Optional[str]:
        """Reason to skip the scan for this repository, or None to run it."""
        return None

    def read_output(self, ctx: ScanContext, result: process.ProcessResult) -> str:
        return result.stdout

    @property
    def evidence_name(self) -> str:
        return f"{self.kind.value}.json"

    async def scan(self, ctx: ScanContext) -> ScanOutcome:
        """Run the scanner and parse its output.

        Raises:
            CommandNotAllowlisted: Propagated unchanged from the gate.
        """
        argv = self.build_command(ctx)
        ctx.evidence_dir.mkdir(parents=True, exist_ok=True)
        try:
            result = await process.run_command(argv, cwd=ctx.repo_path, timeout=ctx.timeout)
        except ScannerUnavailable as e:
            logger.warning("%s unavailable: %s", self.label, e.message)
            return Unavailable(e.message)

        if result.exit_code == 127 or (
            result.exit_code != 0
            and not result.stdout.strip()
            and _MISSING_STDERR.search(result.stderr)
        ):
            logger.warning("%s not installed (exit %d)", self.label, result.exit_code)
            return Unavailable(f"{self.label} not installed")

        raw = self.read_output(ctx, result)
        evidence_ref = self._save_evidence(ctx, raw, result.stderr)

        if not raw.strip():
            return Findings(())

        try:
            document = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("%s produced malformed JSON: %s", self.label, e)
            return Findings((), parsed=False)

        try:
            findings = self.parse(document, evidence_ref)
        except (AttributeError, TypeError, KeyError, ValueError, IndexError) as e:
            logger.warning("%s output has an unexpected shape: %s", self.label, e)
            return Findings((), parsed=False)
        return Findings(tuple(findings))

    async def get_version(self, ctx: ScanContext) -> Optional[str]:
        """Read the scanner version through the same gate, or None."""
        try:
            result = await process.run_command(
                self.version_command(), cwd=ctx.repo_path, timeout=ctx.version_timeout
            )
        except ScannerUnavailable as e:
            logger.debug("%s version check failed: %s", self.label, e.message)
            return None
        if result.exit_code != 0:
            return None
        match = _VERSION.search(result.stdout or result.stderr)
        return match.group(1) if match else None

    async def run(self, ctx: ScanContext) -> ScannerRun:
        """Scan and resolve the outcome into findings plus a status record."""
        reason = self.skip_reason(ctx)
        if reason:
            logger.info("Skipping %s: %s", self.label, reason)
            status = ScannerStatus(self.kind.value, ScannerState.SKIPPED, message=reason)
            return ScannerRun(self.kind, (), status)

        outcome = await self.scan(ctx)
        if isinstance(outcome, Unavailable):
            status = ScannerStatus(self.kind.value, ScannerState.MISSING, message=outcome.reason)
            return ScannerRun(self.kind, (self.missing_finding(outcome.reason),), status)

        version = await self.get_version(ctx)
        if not outcome.parsed:
            status = ScannerStatus(
                self.kind.value,
                ScannerState.ERROR,
                version=version,
                message="Scanner output could not be parsed",
            )
            return ScannerRun(self.kind, (), status)

        status = ScannerStatus(
            self.kind.value,
            ScannerState.OK,
            version=version,
            finding_count=len(outcome.findings),
        )
        return ScannerRun(self.kind, outcome.findings, status)

    def missing_finding(self, reason: str) -> Finding:
        """Synthetic informational finding recording that the scanner did not run."""
        return Finding(
            id=f"missing-{self.kind.value}",
            scanner=self.kind.value,
            severity=Severity.INFO,
            title=f"{self.label} not available: scan skipped",
            description=reason,
            remediation=self.install_hint,
            category=SCANNER_MISSING_TAG,
            tags=frozenset({SCANNER_MISSING_TAG, self.kind.value}),
        )

    def _save_evidence(self, ctx: ScanContext, stdout: str, stderr: str) -> str:
        ctx.evidence_dir.mkdir(parents=True, exist_ok=True)
        atomic_write_text(ctx.evidence_dir / self.evidence_name, stdout)
        if stderr.strip():
            atomic_write_text(ctx.evidence_dir / f"{self.kind.value}.stderr.txt", stderr)
        return f"evidence/{self.evidence_name}"

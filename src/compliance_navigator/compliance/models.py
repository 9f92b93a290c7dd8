"""Data models for compliance mapping."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class ComplianceFramework(Enum):
    """Supported compliance frameworks."""

    SOC2 = "soc2"
    HIPAA = "hipaa"

    @property
    def title(self) -> str:
        return FRAMEWORK_TITLES[self]

    @classmethod
    def parse(cls, value: str) -> "ComplianceFramework":
        normalized = (value or "").strip().lower().replace("-", "").replace("_", "")
        for framework in cls:
            if framework.value == normalized:
                return framework
        raise ValueError(f"Unsupported framework: {value}")


FRAMEWORK_TITLES = {
    ComplianceFramework.SOC2: "SOC2-Lite (20 controls)",
    ComplianceFramework.HIPAA: "HIPAA Security Rule (12 technical + 7 administrative)",
}


class SafeguardType(Enum):
    TECHNICAL = "technical"
    ADMINISTRATIVE = "administrative"


@dataclass(frozen=True)
class ScannerMapping:
    """A scanner whose findings count as evidence for a control."""

    scanner: str
    confidence: float
    rationale: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"scanner": self.scanner, "confidence": self.confidence, "rationale": self.rationale}


@dataclass(frozen=True)
class ComplianceControl:
    """Represents a compliance control/requirement."""

    framework: ComplianceFramework
    control_id: str
    title: str
    description: str
    category: Optional[str] = None
    safeguard: SafeguardType = SafeguardType.TECHNICAL
    requires_human_evidence: bool = False
    scanner_mappings: tuple[ScannerMapping, ...] = ()

    @property
    def scanners(self) -> set[str]:
        return {m.scanner for m in self.scanner_mappings}


@dataclass
class ComplianceMapping:
    """Maps a scanner rule to compliance controls beyond its scanner-level reach."""

    rule_id: str
    controls: list[ComplianceControl] = field(default_factory=list)

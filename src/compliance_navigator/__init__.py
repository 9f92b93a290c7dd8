"""compliance-navigator - Scanner-driven compliance evidence for SOC2 and HIPAA."""

__version__ = "0.4.0"

from compliance_navigator.models import Finding, RunManifest, Severity
from compliance_navigator.compliance import ComplianceFramework, ComplianceMapper

__all__ = [
    "__version__",
    "Finding",
    "RunManifest",
    "Severity",
    "ComplianceFramework",
    "ComplianceMapper",
]

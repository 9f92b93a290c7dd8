"""Compliance framework mapping module."""

from compliance_navigator.compliance.mapper import ComplianceMapper
from compliance_navigator.compliance.models import (
    ComplianceControl,
    ComplianceFramework,
    ComplianceMapping,
    SafeguardType,
    ScannerMapping,
)

__all__ = [
    "ComplianceControl",
    "ComplianceFramework",
    "ComplianceMapper",
    "ComplianceMapping",
    "SafeguardType",
    "ScannerMapping",
]

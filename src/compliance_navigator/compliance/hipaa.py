"""HIPAA Security Rule controls.

Technical safeguards (45 CFR 164.312) are what scanners can speak to.
Administrative safeguards (164.308) always need human or policy evidence and
are listed for the packet only; they never count toward scanner reach.
"""

from compliance_navigator.compliance.models import (
    ComplianceControl,
    ComplianceFramework,
    SafeguardType,
    ScannerMapping,
)
from compliance_navigator.compliance.soc2 import CHECKOV, GITLEAKS, NPM_AUDIT, SCANNER_RATIONALE


def _technical(
    control_id: str,
    title: str,
    description: str,
    *mappings: tuple[str, float],
) -> ComplianceControl:
    return ComplianceControl(
        framework=ComplianceFramework.HIPAA,
        control_id=control_id,
        title=title,
        description=description,
        category=f"45 CFR {control_id}",
        safeguard=SafeguardType.TECHNICAL,
        requires_human_evidence=not mappings,
        scanner_mappings=tuple(
            ScannerMapping(scanner, confidence, SCANNER_RATIONALE[scanner])
            for scanner, confidence in mappings
        ),
    )


def _administrative(control_id: str, title: str, description: str) -> ComplianceControl:
    return ComplianceControl(
        framework=ComplianceFramework.HIPAA,
        control_id=control_id,
        title=title,
        description=description,
        category=f"45 CFR {control_id}",
        safeguard=SafeguardType.ADMINISTRATIVE,
        requires_human_evidence=True,
    )


HIPAA_TECHNICAL_CONTROLS: tuple[ComplianceControl, ...] = (
    _technical(
        "164.312(a)(1)", "Access Control",
        "Implement technical policies and procedures for electronic information systems that "
        "maintain ePHI to allow access only to authorized persons or software programs.",
        (GITLEAKS, 0.8), (CHECKOV, 0.7),
    ),
    _technical(
        "164.312(a)(2)(i)", "Unique User Identification",
        "Assign a unique name and/or number for identifying and tracking user identity.",
        (GITLEAKS, 0.6),
    ),
    _technical(
        "164.312(a)(2)(ii)", "Emergency Access Procedure",
        "Establish and implement procedures for obtaining necessary ePHI during an emergency.",
    ),
    _technical(
        "164.312(a)(2)(iii)", "Automatic Logoff",
        "Implement electronic procedures that terminate an electronic session after a "
        "predetermined time of inactivity.",
        (CHECKOV, 0.5),
    ),
    _technical(
        "164.312(a)(2)(iv)", "Encryption and Decryption",
        "Implement a mechanism to encrypt and decrypt ePHI.",
        (CHECKOV, 0.7),
    ),
    _technical(
        "164.312(b)", "Audit Controls",
        "Implement hardware, software, and/or procedural mechanisms that record and examine "
        "activity in systems that contain or use ePHI.",
        (CHECKOV, 0.6), (GITLEAKS, 0.5),
    ),
    _technical(
        "164.312(c)(1)", "Integrity",
        "Implement policies and procedures to protect ePHI from improper alteration or destruction.",
        (NPM_AUDIT, 0.7), (CHECKOV, 0.6),
    ),
    _technical(
        "164.312(c)(2)", "Mechanism to Authenticate ePHI",
        "Implement electronic mechanisms to corroborate that ePHI has not been altered or destroyed.",
        (CHECKOV, 0.6),
    ),
    _technical(
        "164.312(d)", "Person or Entity Authentication",
        "Implement procedures to verify that a person or entity seeking access to ePHI is the "
        "one claimed.",
        (GITLEAKS, 0.7), (CHECKOV, 0.5),
    ),
    _technical(
        "164.312(e)(1)", "Transmission Security",
        "Implement technical security measures to guard against unauthorized access to ePHI "
        "being transmitted over an electronic communications network.",
        (CHECKOV, 0.8),
    ),
    _technical(
        "164.312(e)(2)(i)", "Integrity Controls",
        "Implement security measures to ensure that electronically transmitted ePHI is not "
        "improperly modified without detection.",
        (CHECKOV, 0.7), (NPM_AUDIT, 0.6),
    ),
    _technical(
        "164.312(e)(2)(ii)", "Encryption",
        "Implement a mechanism to encrypt ePHI whenever deemed appropriate.",
        (CHECKOV, 0.8),
    ),
)

HIPAA_ADMINISTRATIVE_CONTROLS: tuple[ComplianceControl, ...] = (
    _administrative(
        "164.308(a)(1)", "Security Management Process",
        "Implement policies and procedures to prevent, detect, contain, and correct security violations.",
    ),
    _administrative(
        "164.308(a)(3)", "Workforce Security",
        "Implement policies and procedures to ensure all workforce members have appropriate access to ePHI.",
    ),
    _administrative(
        "164.308(a)(4)", "Information Access Management",
        "Implement policies and procedures for authorizing access to ePHI.",
    ),
    _administrative(
        "164.308(a)(5)", "Security Awareness and Training",
        "Implement a security awareness and training program for all workforce members.",
    ),
    _administrative(
        "164.308(a)(6)", "Security Incident Procedures",
        "Implement policies and procedures to address security incidents.",
    ),
    _administrative(
        "164.308(a)(7)", "Contingency Plan",
        "Establish and implement policies and procedures for responding to an emergency that "
        "damages systems containing ePHI.",
    ),
    _administrative(
        "164.308(a)(8)", "Evaluation",
        "Perform periodic technical and nontechnical evaluation based on standards implemented "
        "under the Security Rule.",
    ),
)

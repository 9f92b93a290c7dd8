"""SOC2-Lite baseline: 20 Trust Services Criteria controls.

Confidence values are heuristic. 0.8-0.9 means the scanner detects the
control's primary concern directly, 0.5-0.7 an indirect signal, 0.4 a
plausible but weak link. A finding mapped to a control indicates a potential
gap, never a proven failure.
"""

from compliance_navigator.compliance.models import (
    ComplianceControl,
    ComplianceFramework,
    ScannerMapping,
)

GITLEAKS = "gitleaks"
NPM_AUDIT = "npm_audit"
CHECKOV = "checkov"

SCANNER_RATIONALE = {
    GITLEAKS: "Secrets in code increase unauthorized access risk and incident likelihood.",
    NPM_AUDIT: "Vulnerable dependencies increase likelihood/impact of security events.",
    CHECKOV: "Misconfigurations weaken logical access controls and monitoring.",
}


def _control(
    control_id: str,
    title: str,
    description: str,
    category: str,
    *mappings: tuple[str, float],
) -> ComplianceControl:
    return ComplianceControl(
        framework=ComplianceFramework.SOC2,
        control_id=control_id,
        title=title,
        description=description,
        category=category,
        scanner_mappings=tuple(
            ScannerMapping(scanner, confidence, SCANNER_RATIONALE[scanner])
            for scanner, confidence in mappings
        ),
    )


SOC2_CONTROLS: tuple[ComplianceControl, ...] = (
    _control(
        "CC6.1", "Logical Access Security",
        "The entity implements logical access security measures to protect against unauthorized access.",
        "Logical and Physical Access",
        (GITLEAKS, 0.9), (CHECKOV, 0.7),
    ),
    _control(
        "CC6.2", "User Access Administration",
        "The entity registers and authorizes users prior to granting access.",
        "Logical and Physical Access",
        (GITLEAKS, 0.6),
    ),
    _control(
        "CC6.3", "Role-Based Access",
        "The entity authorizes, modifies, or removes access based on roles.",
        "Logical and Physical Access",
        (CHECKOV, 0.5),
    ),
    _control(
        "CC6.6", "System Boundaries Protection",
        "The entity implements logical access security measures to protect boundaries.",
        "Logical and Physical Access",
        (GITLEAKS, 0.8), (CHECKOV, 0.8),
    ),
    _control(
        "CC6.7", "Data Transmission Protection",
        "The entity restricts data transmission and movement to authorized channels.",
        "Logical and Physical Access",
        (CHECKOV, 0.7),
    ),
    _control(
        "CC6.8", "Malicious Software Prevention",
        "The entity implements controls to prevent or detect malicious software.",
        "Logical and Physical Access",
        (NPM_AUDIT, 0.7),
    ),
    _control(
        "CC7.1", "Infrastructure Monitoring",
        "The entity monitors system components and detects anomalies.",
        "System Operations",
        (NPM_AUDIT, 0.6), (CHECKOV, 0.6),
    ),
    _control(
        "CC7.2", "Security Event Detection",
        "The entity monitors system components for security anomalies and evaluates events.",
        "System Operations",
        (GITLEAKS, 0.8), (NPM_AUDIT, 0.7), (CHECKOV, 0.7),
    ),
    _control(
        "CC7.3", "Security Incident Evaluation",
        "The entity evaluates security events to determine if they constitute incidents.",
        "System Operations",
        (GITLEAKS, 0.5),
    ),
    _control(
        "CC7.4", "Incident Response",
        "The entity responds to identified security incidents.",
        "System Operations",
        (GITLEAKS, 0.4),
    ),
    _control(
        "CC8.1", "Change Management Process",
        "The entity authorizes, designs, develops, configures, documents, tests, and implements changes.",
        "Change Management",
        (NPM_AUDIT, 0.7), (CHECKOV, 0.6),
    ),
    _control(
        "CC9.1", "Risk Identification and Assessment",
        "The entity identifies, selects, and develops risk mitigation activities.",
        "Risk Mitigation",
        (GITLEAKS, 0.6), (NPM_AUDIT, 0.6), (CHECKOV, 0.6),
    ),
    _control(
        "A1.1", "System Availability Objectives",
        "The entity maintains, monitors, and evaluates availability commitments.",
        "Availability",
        (CHECKOV, 0.5),
    ),
    _control(
        "A1.2", "Environmental Protections",
        "The entity authorizes, designs, and implements environmental protections.",
        "Availability",
        (CHECKOV, 0.6),
    ),
    _control(
        "C1.1", "Confidential Information Identification",
        "The entity identifies and maintains confidential information.",
        "Confidentiality",
        (GITLEAKS, 0.9),
    ),
    _control(
        "C1.2", "Confidential Information Disposal",
        "The entity disposes of confidential information per objectives.",
        "Confidentiality",
        (GITLEAKS, 0.5),
    ),
    _control(
        "PI1.1", "Processing Integrity Definitions",
        "The entity obtains or generates data that is complete, accurate, and timely.",
        "Processing Integrity",
        (NPM_AUDIT, 0.4),
    ),
    _control(
        "P6.1", "Data Retention and Disposal",
        "Personal information is retained and disposed of per policies.",
        "Privacy",
        (GITLEAKS, 0.5),
    ),
    _control(
        "CC3.1", "Risk Assessment",
        "The entity specifies objectives and identifies risks to achievement.",
        "Risk Assessment",
        (GITLEAKS, 0.5), (NPM_AUDIT, 0.5), (CHECKOV, 0.5),
    ),
    _control(
        "CC5.1", "Control Activities",
        "The entity selects and develops control activities.",
        "Control Activities",
        (CHECKOV, 0.6),
    ),
)

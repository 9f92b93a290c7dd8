"""Per-tool risk tiers."""

from enum import Enum


class RiskTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


TOOL_RISK: dict[str, RiskTier] = {
    "scan_repo": RiskTier.MEDIUM,
    "generate_audit_packet": RiskTier.MEDIUM,
    "plan_remediation": RiskTier.LOW,
    "create_tickets": RiskTier.HIGH,
    "approve_ticket_plan": RiskTier.HIGH,
    "verify_audit_chain": RiskTier.LOW,
    "export_audit_packet": RiskTier.MEDIUM,
    "open_dashboard": RiskTier.LOW,
    "create_demo_fixture": RiskTier.LOW,
}


def get_tool_risk(tool_name: str) -> RiskTier:
    """Risk tier for a tool; unknown tools are high risk."""
    return TOOL_RISK.get(tool_name, RiskTier.HIGH)

"""Remediation ticket workflow and issue tracker clients."""

from compliance_navigator.tickets.base import CreatedTicket, ExistingTicket, IssueTracker
from compliance_navigator.tickets.github import GitHubTracker
from compliance_navigator.tickets.jira import JiraTracker
from compliance_navigator.tickets.workflow import (
    TARGETS,
    TicketExecution,
    TicketWorkflow,
    compute_plan_hash,
    create_tracker,
    plan_to_dry_run,
)

__all__ = [
    "TARGETS",
    "CreatedTicket",
    "ExistingTicket",
    "GitHubTracker",
    "IssueTracker",
    "JiraTracker",
    "TicketExecution",
    "TicketWorkflow",
    "compute_plan_hash",
    "create_tracker",
    "plan_to_dry_run",
]

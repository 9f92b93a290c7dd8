"""Jira Cloud client.

Jira full-text search is fuzzy, so the dedupe marker is also stored as a
label (``cn-<dedupeKey>``) and duplicates are found with an exact label query.
"""

import logging
import time
from typing import Callable, Optional

import httpx

from compliance_navigator.errors import TrackerError
from compliance_navigator.models import TicketPlanItem
from compliance_navigator.tickets.base import CreatedTicket, ExistingTicket, IssueTracker

logger = logging.getLogger(__name__)

DEDUPE_LABEL_PREFIX = "cn-"


def dedupe_label(key: str) -> str:
    return f"{DEDUPE_LABEL_PREFIX}{key}"


class JiraTracker(IssueTracker):
    """Creates and searches issues in one Jira project."""

    name = "Jira"

    def __init__(
        self,
        base_url: str,
        email: str,
        api_token: str,
        project_key: str,
        client: Optional[httpx.Client] = None,
        retry_count: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
        issue_type: str = "Task",
    ) -> None:
        super().__init__(client, retry_count, retry_delay, timeout, sleep)
        if not (base_url and email and api_token and project_key):
            raise TrackerError(
                "Jira requires JIRA_BASE_URL, JIRA_EMAIL, JIRA_API_TOKEN and JIRA_PROJECT_KEY"
            )
        self.base_url = base_url.rstrip("/")
        self.project_key = project_key
        self.issue_type = issue_type
        self.auth = httpx.BasicAuth(email, api_token)

    @property
    def repo_full_name(self) -> str:
        return f"jira/{self.project_key}"

    def _headers(self) -> dict[str, str]:
        return {**super()._headers(), "Accept": "application/json"}

    def find_duplicate(self, item: TicketPlanItem) -> Optional[ExistingTicket]:
        jql = f'project = "{self.project_key}" AND labels = "{dedupe_label(item.dedupe_key)}"'
        response = self._request(
            "GET",
            f"{self.base_url}/rest/api/2/search",
            params={"jql": jql, "maxResults": 1, "fields": "status"},
            auth=self.auth,
        )
        data = self._json(response, "issue search")
        try:
            issues = data.get("issues") or []
            if not issues:
                return None
            issue = issues[0]
            status = ((issue.get("fields") or {}).get("status") or {}).get("statusCategory") or {}
            state = "closed" if status.get("key") == "done" else "open"
            key = str(issue["key"])
        except (AttributeError, TypeError, KeyError, IndexError) as e:
            raise self._malformed("issue search", e) from e
        return ExistingTicket(url=f"{self.base_url}/browse/{key}", state=state, number=key)

    def create(self, item: TicketPlanItem) -> CreatedTicket:
        # Jira labels may not contain spaces.
        labels = [label.replace(" ", "_") for label in item.labels]
        labels.append(dedupe_label(item.dedupe_key))
        payload = {
            "fields": {
                "project": {"key": self.project_key},
                "summary": item.title[:255],
                "description": item.body,
                "issuetype": {"name": self.issue_type},
                "labels": labels,
            }
        }
        response = self._request(
            "POST", f"{self.base_url}/rest/api/2/issue", json=payload, auth=self.auth
        )
        data = self._json(response, "issue creation")
        try:
            key = str(data["key"])
        except (TypeError, KeyError) as e:
            raise self._malformed("issue creation", e) from e
        return CreatedTicket(url=f"{self.base_url}/browse/{key}", number=key)

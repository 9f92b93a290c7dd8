"""GitHub Issues client."""

import logging
import time
from typing import Any, Callable, Optional

import httpx

from compliance_navigator.errors import TrackerError
from compliance_navigator.models import TicketPlanItem
from compliance_navigator.tickets.base import CreatedTicket, ExistingTicket, IssueTracker
from compliance_navigator.tickets.formatting import dedupe_marker, label_color

logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"


class GitHubTracker(IssueTracker):
    """Creates, searches and reopens issues in one GitHub repository."""

    name = "GitHub"
    supports_reopen = True

    def __init__(
        self,
        owner: str,
        repo: str,
        token: str,
        client: Optional[httpx.Client] = None,
        retry_count: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
        api_url: str = GITHUB_API,
    ) -> None:
        super().__init__(client, retry_count, retry_delay, timeout, sleep)
        if not token:
            raise TrackerError("GitHub token required: set GH_TOKEN or GITHUB_TOKEN")
        self.owner = owner
        self.repo = repo
        self.token = token
        self.api_url = api_url.rstrip("/")

    @property
    def repo_full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    def _headers(self) -> dict[str, str]:
        return {
            **super()._headers(),
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    def find_duplicate(self, item: TicketPlanItem) -> Optional[ExistingTicket]:
        query = f'repo:{self.repo_full_name} "{dedupe_marker(item.dedupe_key)}" is:issue'
        response = self._request(
            "GET", f"{self.api_url}/search/issues", params={"q": query, "per_page": 1}
        )
        data = self._json(response, "issue search")
        try:
            matches = data.get("items") or []
            if not matches:
                return None
            issue = matches[0]
            return ExistingTicket(
                url=str(issue.get("html_url") or ""),
                state=str(issue.get("state") or "open"),
                number=str(issue["number"]),
            )
        except (AttributeError, TypeError, KeyError, IndexError) as e:
            raise self._malformed("issue search", e) from e

    def create(self, item: TicketPlanItem) -> CreatedTicket:
        payload: dict[str, Any] = {"title": item.title, "body": item.body, "labels": list(item.labels)}
        response = self._request(
            "POST", f"{self.api_url}/repos/{self.repo_full_name}/issues", json=payload
        )
        data = self._json(response, "issue creation")
        try:
            return CreatedTicket(url=str(data["html_url"]), number=str(data["number"]))
        except (TypeError, KeyError) as e:
            raise self._malformed("issue creation", e) from e

    def reopen(self, ticket: ExistingTicket) -> ExistingTicket:
        response = self._request(
            "PATCH",
            f"{self.api_url}/repos/{self.repo_full_name}/issues/{ticket.number}",
            json={"state": "open"},
        )
        data = self._json(response, "issue reopen")
        url = data.get("html_url") if isinstance(data, dict) else None
        return ExistingTicket(url=str(url or ticket.url), state="open", number=ticket.number)

    def ensure_labels(self, labels: set[str], policy: str) -> list[str]:
        """Check or create labels.

        Args:
            labels: Labels the plan will apply.
            policy: ``require-existing`` only reports missing labels;
                ``create-if-missing`` creates them.

        Returns:
            Labels that are missing after the policy was applied.
        """
        response = self._request(
            "GET", f"{self.api_url}/repos/{self.repo_full_name}/labels", params={"per_page": 100}
        )
        listing = self._json(response, "label listing")
        try:
            existing = {label.get("name") for label in listing}
        except (AttributeError, TypeError) as e:
            raise self._malformed("label listing", e) from e
        missing = sorted(labels - existing)
        if not missing or policy != "create-if-missing":
            for label in missing:
                logger.warning(
                    'Label "%s" does not exist in %s; use label_policy create-if-missing '
                    "or create it manually",
                    label,
                    self.repo_full_name,
                )
            return missing

        still_missing = []
        for label in missing:
            created = self._request(
                "POST",
                f"{self.api_url}/repos/{self.repo_full_name}/labels",
                json={"name": label, "color": label_color(label)},
            )
            # 422 means another writer created it first
            if not created.is_success and created.status_code != 422:
                logger.warning("Could not create label %s: HTTP %d", label, created.status_code)
                still_missing.append(label)
        return still_missing

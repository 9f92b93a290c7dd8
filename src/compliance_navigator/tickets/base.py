"""Issue tracker client base with bounded rate-limit retries."""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx

from compliance_navigator import __version__
from compliance_navigator.errors import RateLimited, TrackerError
from compliance_navigator.models import TicketPlanItem

logger = logging.getLogger(__name__)

MAX_RETRY_DELAY = 60.0


@dataclass(frozen=True)
class ExistingTicket:
    """A ticket already carrying a plan item's dedupe marker."""

    url: str
    state: str
    number: Optional[str] = None

    @property
    def is_closed(self) -> bool:
        return self.state.lower() in ("closed", "done", "resolved")


@dataclass(frozen=True)
class CreatedTicket:
    url: str
    number: str


class IssueTracker(ABC):
    """Abstract base class for issue tracker clients.

    Requests that hit a rate limit (HTTP 429, or 403 with an exhausted rate
    limit) are retried with exponential backoff, honouring ``Retry-After``.
    After ``retry_count`` retries :class:`RateLimited` is raised.
    """

    name = "tracker"
    supports_reopen = False

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        retry_count: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the tracker client.

        Args:
            client: Preconfigured httpx client; one is created when omitted.
            retry_count: Number of retries after a rate-limited response.
            retry_delay: Initial backoff in seconds (doubles each attempt).
            timeout: Request timeout in seconds for a created client.
            sleep: Sleep function, replaceable in tests.
        """
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=timeout)
        self.retry_count = retry_count
        self.retry_delay = retry_delay
        self._sleep = sleep

    @property
    @abstractmethod
    def repo_full_name(self) -> str:
        """Identity of the ticket destination bound into plan hashes."""
        pass

    @abstractmethod
    def find_duplicate(self, item: TicketPlanItem) -> Optional[ExistingTicket]:
        """Look up an existing ticket carrying the item's dedupe marker."""
        pass

    @abstractmethod
    def create(self, item: TicketPlanItem) -> CreatedTicket:
        pass

    def reopen(self, ticket: ExistingTicket) -> ExistingTicket:
        raise TrackerError(f"{self.name} does not support reopening tickets")

    def ensure_labels(self, labels: set[str], policy: str) -> list[str]:
        """Make labels available per policy; returns labels still missing."""
        return []

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> "IssueTracker":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _headers(self) -> dict[str, str]:
        return {"User-Agent": f"compliance-navigator/{__version__}"}

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        headers = {**self._headers(), **kwargs.pop("headers", {})}
        attempt = 0
        while True:
            try:
                response = self.client.request(method, url, headers=headers, **kwargs)
            except httpx.RequestError as e:
                raise TrackerError(f"{self.name} request failed: {e}", {"url": url}) from e

            if not _is_rate_limited(response):
                return response

            retry_after = _retry_after(response)
            if attempt >= self.retry_count:
                logger.error(
                    "%s still rate limited after %d attempts: %s %s",
                    self.name,
                    attempt + 1,
                    method,
                    url,
                )
                raise RateLimited(
                    f"{self.name} rate limit exceeded",
                    retry_after=retry_after,
                    details={"url": url, "status": response.status_code},
                )

            attempt += 1
            delay = retry_after if retry_after is not None else self.retry_delay * (2 ** (attempt - 1))
            delay = min(delay, MAX_RETRY_DELAY)
            logger.warning(
                "%s rate limited (attempt %d/%d), retrying in %.1fs",
                self.name,
                attempt,
                self.retry_count + 1,
                delay,
            )
            self._sleep(delay)

    def _check(self, response: httpx.Response, what: str) -> httpx.Response:
        if response.is_success:
            return response
        raise TrackerError(
            f"{self.name} {what} failed: HTTP {response.status_code}",
            {"status": response.status_code, "body": response.text[:200]},
        )

    def _json(self, response: httpx.Response, what: str) -> Any:
        """Body of a successful response, decoded as JSON."""
        self._check(response, what)
        try:
            return response.json()
        except ValueError as e:
            raise TrackerError(
                f"{self.name} {what} returned a body that is not JSON",
                {"status": response.status_code, "body": response.text[:200]},
            ) from e

    def _malformed(self, what: str, error: Exception) -> TrackerError:
        return TrackerError(
            f"{self.name} {what} returned an unexpected response",
            {"error": f"{type(error).__name__}: {error}"},
        )


def _is_rate_limited(response: httpx.Response) -> bool:
    if response.status_code == 429:
        return True
    if response.status_code == 403:
        if response.headers.get("x-ratelimit-remaining") == "0":
            return True
        return "rate limit" in response.text.lower()
    return False


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None

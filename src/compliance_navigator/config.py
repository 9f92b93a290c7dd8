"""Configuration for compliance-navigator."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml

from compliance_navigator.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".compliance-navigator.yaml"

LABEL_POLICIES = ("require-existing", "create-if-missing")


@dataclass
class NavigatorConfig:
    """Runtime settings, read from the repository's config file and environment."""

    # Scanner timeouts
    scan_timeout_minutes: float = 10
    version_timeout_seconds: float = 10

    # Issue tracker behaviour
    ticket_retry_count: int = 3
    ticket_retry_delay: float = 1.0  # doubles each attempt
    http_timeout: float = 30.0
    reopen_closed: bool = False
    label_policy: str = "require-existing"
    target_repo: Optional[str] = None  # owner/name override for GitHub

    # Credentials (environment only, never written back)
    github_token: Optional[str] = None
    jira_base_url: Optional[str] = None
    jira_email: Optional[str] = None
    jira_api_token: Optional[str] = None
    jira_project_key: Optional[str] = None

    # Logging
    log_level: str = "WARNING"

    @property
    def scan_timeout_seconds(self) -> float:
        return float(self.scan_timeout_minutes) * 60

    @classmethod
    def from_dict(cls, data: dict) -> "NavigatorConfig":
        """Create config from dictionary, falling back to environment variables."""
        config = cls(
            scan_timeout_minutes=data.get("scan_timeout_minutes", 10),
            version_timeout_seconds=data.get("version_timeout_seconds", 10),
            ticket_retry_count=data.get("ticket_retry_count", 3),
            ticket_retry_delay=data.get("ticket_retry_delay", 1.0),
            http_timeout=data.get("http_timeout", 30.0),
            reopen_closed=data.get("reopen_closed", False),
            label_policy=data.get("label_policy", "require-existing"),
            target_repo=data.get("target_repo"),
            github_token=os.environ.get("GH_TOKEN") or os.environ.get("GITHUB_TOKEN"),
            jira_base_url=data.get("jira_base_url") or os.environ.get("JIRA_BASE_URL"),
            jira_email=data.get("jira_email") or os.environ.get("JIRA_EMAIL"),
            jira_api_token=os.environ.get("JIRA_API_TOKEN"),
            jira_project_key=data.get("jira_project_key") or os.environ.get("JIRA_PROJECT_KEY"),
            log_level=os.environ.get("COMPLIANCE_NAVIGATOR_LOG_LEVEL")
            or data.get("log_level", "WARNING"),
        )
        config.validate()
        return config

    def validate(self) -> None:
        if self.label_policy not in LABEL_POLICIES:
            raise ConfigError(
                f"label_policy must be one of {', '.join(LABEL_POLICIES)}",
                {"label_policy": self.label_policy},
            )
        for name in ("scan_timeout_minutes", "version_timeout_seconds", "http_timeout"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or value <= 0:
                raise ConfigError(f"{name} must be a positive number", {name: value})
        if not isinstance(self.ticket_retry_count, int) or self.ticket_retry_count < 0:
            raise ConfigError(
                "ticket_retry_count must be a non-negative integer",
                {"ticket_retry_count": self.ticket_retry_count},
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary. Secrets are reported only as present/absent."""
        return {
            "scan_timeout_minutes": self.scan_timeout_minutes,
            "version_timeout_seconds": self.version_timeout_seconds,
            "ticket_retry_count": self.ticket_retry_count,
            "ticket_retry_delay": self.ticket_retry_delay,
            "http_timeout": self.http_timeout,
            "reopen_closed": self.reopen_closed,
            "label_policy": self.label_policy,
            "target_repo": self.target_repo,
            "github_token_set": bool(self.github_token),
            "jira_base_url": self.jira_base_url,
            "jira_project_key": self.jira_project_key,
            "jira_credentials_set": bool(self.jira_email and self.jira_api_token),
            "log_level": self.log_level,
        }


def load_config(repo_path: Optional[Path] = None) -> NavigatorConfig:
    """Load configuration for a repository.

    Args:
        repo_path: Repository root; ``.compliance-navigator.yaml`` is read from
            it when present.

    Returns:
        NavigatorConfig with environment overrides applied.

    Raises:
        ConfigError: If the file is not valid YAML or holds invalid values.
    """
    data: dict = {}
    if repo_path is not None:
        config_file = Path(repo_path) / CONFIG_FILE_NAME
        if config_file.is_file():
            try:
                loaded = yaml.safe_load(config_file.read_text(encoding="utf-8"))
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {CONFIG_FILE_NAME}: {e}") from e
            if loaded is None:
                loaded = {}
            if not isinstance(loaded, dict):
                raise ConfigError(f"{CONFIG_FILE_NAME} must contain a mapping")
            logger.debug("Loaded config from %s", config_file)
            data = loaded
    return NavigatorConfig.from_dict(data)

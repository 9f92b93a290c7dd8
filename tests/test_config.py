"""Tests for configuration loading."""

import pytest

from compliance_navigator.config import CONFIG_FILE_NAME, NavigatorConfig, load_config
from compliance_navigator.errors import ConfigError


class TestNavigatorConfig:
    """Tests for NavigatorConfig defaults and validation."""

    def test_defaults(self):
        config = NavigatorConfig()
        assert config.ticket_retry_count == 3
        assert config.label_policy == "require-existing"
        assert config.reopen_closed is False
        assert config.scan_timeout_seconds == 600

    def test_invalid_label_policy(self):
        with pytest.raises(ConfigError):
            NavigatorConfig.from_dict({"label_policy": "create-always"})

    @pytest.mark.parametrize("field", ["scan_timeout_minutes", "http_timeout"])
    def test_non_positive_timeouts(self, field):
        with pytest.raises(ConfigError):
            NavigatorConfig.from_dict({field: 0})

    def test_negative_retry_count(self):
        with pytest.raises(ConfigError):
            NavigatorConfig.from_dict({"ticket_retry_count": -1})

    def test_secrets_not_serialized(self, monkeypatch):
        monkeypatch.setenv("GH_TOKEN", "ghp_secret")
        monkeypatch.setenv("JIRA_API_TOKEN", "jira_secret")
        data = NavigatorConfig.from_dict({}).to_dict()

        assert data["github_token_set"] is True
        assert "ghp_secret" not in str(data)
        assert "jira_secret" not in str(data)


class TestLoadConfig:
    """Tests for load_config."""

    def test_missing_file_uses_defaults(self, repo):
        assert load_config(repo).to_dict() == NavigatorConfig.from_dict({}).to_dict()

    def test_reads_yaml(self, repo):
        (repo / CONFIG_FILE_NAME).write_text(
            "scan_timeout_minutes: 2\n"
            "reopen_closed: true\n"
            "label_policy: create-if-missing\n"
            "target_repo: acme/api\n"
        )
        config = load_config(repo)

        assert config.scan_timeout_seconds == 120
        assert config.reopen_closed is True
        assert config.label_policy == "create-if-missing"
        assert config.target_repo == "acme/api"

    def test_environment_credentials(self, repo, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "t1")
        monkeypatch.setenv("JIRA_PROJECT_KEY", "SEC")
        config = load_config(repo)

        assert config.github_token == "t1"
        assert config.jira_project_key == "SEC"

    def test_gh_token_preferred(self, repo, monkeypatch):
        monkeypatch.setenv("GH_TOKEN", "preferred")
        monkeypatch.setenv("GITHUB_TOKEN", "fallback")
        assert load_config(repo).github_token == "preferred"

    def test_empty_file(self, repo):
        (repo / CONFIG_FILE_NAME).write_text("")
        assert load_config(repo).label_policy == "require-existing"

    @pytest.mark.parametrize("content", ["key: [unclosed\n", "- a\n- b\n"])
    def test_invalid_file(self, repo, content):
        (repo / CONFIG_FILE_NAME).write_text(content)
        with pytest.raises(ConfigError):
            load_config(repo)

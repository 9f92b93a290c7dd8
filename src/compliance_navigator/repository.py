"""Repository identity read from the working tree's .git directory.

The git binary is not on the command allowlist, so the config and HEAD
files are parsed directly.
"""

import configparser
import logging
import re
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

_SSH_URL = re.compile(r"^[\w.-]+@([\w.-]+):(?P<owner>[\w.-]+)/(?P<name>[\w.-]+?)(?:\.git)?/?$")
_URL = re.compile(
    r"^(?:https?|git|ssh)://(?:[^@/]+@)?[\w.-]+(?::\d+)?/(?P<owner>[\w.-]+)/(?P<name>[\w.-]+?)(?:\.git)?/?$"
)
_SHA = re.compile(r"^[0-9a-f]{40}([0-9a-f]{24})?$")


def parse_remote_url(url: str) -> Optional[tuple[str, str]]:
    """Extract ``(owner, name)`` from an SSH, HTTPS or git remote URL."""
    url = url.strip()
    for pattern in (_SSH_URL, _URL):
        match = pattern.match(url)
        if match:
            return match.group("owner"), match.group("name")
    return None


def _git_dir(repo_path: Path) -> Optional[Path]:
    git_path = repo_path / ".git"
    if git_path.is_dir():
        return git_path
    if git_path.is_file():
        # Worktrees and submodules: ".git" holds "gitdir: <path>"
        content = git_path.read_text(encoding="utf-8").strip()
        if content.startswith("gitdir:"):
            target = Path(content[len("gitdir:"):].strip())
            return target if target.is_absolute() else (repo_path / target).resolve()
    return None


def get_origin_url(repo_path: Path) -> Optional[str]:
    git_dir = _git_dir(repo_path)
    if git_dir is None:
        return None
    config_file = git_dir / "config"
    if not config_file.is_file():
        return None

    parser = configparser.ConfigParser(strict=False, interpolation=None)
    try:
        parser.read(config_file, encoding="utf-8")
    except configparser.Error as e:
        logger.warning("Could not parse %s: %s", config_file, e)
        return None
    section = 'remote "origin"'
    if parser.has_section(section):
        return parser.get(section, "url", fallback=None)
    return None


def get_repo_full_name(repo_path: Path) -> Optional[str]:
    """``owner/name`` of the origin remote, or None when unavailable."""
    url = get_origin_url(repo_path)
    if not url:
        return None
    parsed = parse_remote_url(url)
    if parsed is None:
        logger.warning("Unrecognized origin URL: %s", url)
        return None
    return f"{parsed[0]}/{parsed[1]}"


def get_commit_hash(repo_path: Path) -> Optional[str]:
    """Commit SHA that HEAD points at, resolving one level of symbolic ref."""
    git_dir = _git_dir(repo_path)
    if git_dir is None:
        return None
    head_file = git_dir / "HEAD"
    if not head_file.is_file():
        return None

    head = head_file.read_text(encoding="utf-8").strip()
    if _SHA.match(head):
        return head
    if not head.startswith("ref:"):
        return None

    ref = head[len("ref:"):].strip()
    ref_file = git_dir / ref
    if ref_file.is_file():
        sha = ref_file.read_text(encoding="utf-8").strip()
        return sha if _SHA.match(sha) else None

    packed = git_dir / "packed-refs"
    if packed.is_file():
        for line in packed.read_text(encoding="utf-8").splitlines():
            parts = line.split()
            if len(parts) == 2 and parts[1] == ref and _SHA.match(parts[0]):
                return parts[0]
    return None

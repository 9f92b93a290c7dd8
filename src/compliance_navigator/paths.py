"""Path policy, identifier validation and atomic file writes.

Every file the navigator writes lives under ``<repo>/.compliance/``. Callers
resolve their target through :func:`assert_under` before touching the disk,
so a crafted run id or a symlinked directory cannot redirect a write outside
that root.
"""

import hashlib
import json
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Union

from compliance_navigator.errors import PathEscapeError, ValidationError

COMPLIANCE_DIR = ".compliance"
AUDIT_LOG_NAME = "audit-chain.jsonl"

_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,64}$")
_ALNUM = re.compile(r"[A-Za-z0-9]")
MAX_REPO_PATH_LENGTH = 4096


def validate_run_id(run_id: Any) -> str:
    """Validate a run identifier.

    Args:
        run_id: Candidate identifier from a tool request.

    Returns:
        The identifier unchanged.

    Raises:
        ValidationError: If the identifier is not 1-64 characters of
            ``[A-Za-z0-9._-]`` with at least one alphanumeric.
    """
    if not isinstance(run_id, str) or not _ID_PATTERN.match(run_id) or not _ALNUM.search(run_id):
        raise ValidationError("Invalid runId", {"runId": run_id})
    return run_id


def validate_plan_id(plan_id: Any) -> str:
    """Validate a plan identifier (run id rules, at least 6 characters)."""
    if (
        not isinstance(plan_id, str)
        or len(plan_id) < 6
        or not _ID_PATTERN.match(plan_id)
        or not _ALNUM.search(plan_id)
    ):
        raise ValidationError("Invalid planId", {"planId": plan_id})
    return plan_id


def validate_repo_path(repo_path: Any) -> Path:
    """Validate a caller-supplied repository path and resolve it.

    Args:
        repo_path: Path string from a tool request.

    Returns:
        The resolved absolute directory path.

    Raises:
        ValidationError: If the path is empty, contains null bytes or ``..``
            segments, or is not an existing directory.
    """
    if not isinstance(repo_path, str) or not repo_path.strip():
        raise ValidationError("repoPath is required")
    if "\x00" in repo_path:
        raise ValidationError("repoPath contains a null byte")
    if len(repo_path) > MAX_REPO_PATH_LENGTH:
        raise ValidationError("repoPath is too long")
    if ".." in re.split(r"[\\/]", repo_path):
        raise ValidationError("repoPath must not contain '..' segments", {"repoPath": repo_path})

    path = Path(repo_path).expanduser().resolve()
    if not path.is_dir():
        raise ValidationError("repoPath is not a directory", {"repoPath": str(path)})
    return path


def compliance_root(repo_path: Path) -> Path:
    """Return ``<repo>/.compliance``, refusing a symlinked root."""
    repo = repo_path.resolve()
    root = repo / COMPLIANCE_DIR
    if root.is_symlink():
        raise PathEscapeError("The .compliance directory must not be a symlink", {"path": str(root)})
    return root


def assert_under(root: Path, target: Path) -> Path:
    """Ensure ``target`` resolves strictly inside ``root``.

    Returns:
        The resolved target path.

    Raises:
        PathEscapeError: If the resolved target is ``root`` itself or lies
            outside it.
    """
    resolved_root = root.resolve()
    resolved = target.resolve()
    if resolved == resolved_root or not resolved.is_relative_to(resolved_root):
        raise PathEscapeError(
            "Path escape blocked",
            {"root": str(resolved_root), "target": str(resolved)},
        )
    return resolved


def run_dir(repo_path: Path, run_id: str) -> Path:
    root = compliance_root(repo_path)
    return assert_under(root, root / "runs" / validate_run_id(run_id))


def evidence_dir(repo_path: Path, run_id: str) -> Path:
    return run_dir(repo_path, run_id) / "evidence"


def packet_dir(repo_path: Path, run_id: str) -> Path:
    root = compliance_root(repo_path)
    return assert_under(root, root / "audit_packet" / validate_run_id(run_id))


def exports_dir(repo_path: Path, run_id: str) -> Path:
    root = compliance_root(repo_path)
    return assert_under(root, root / "exports" / validate_run_id(run_id))


def approvals_dir(repo_path: Path, state: str) -> Path:
    """Directory for ``pending``, ``approved`` or ``executed`` plan records."""
    if state not in ("pending", "approved", "executed"):
        raise ValueError(f"Unknown approval state: {state}")
    root = compliance_root(repo_path)
    return assert_under(root, root / "approvals" / state)


def audit_log_path(repo_path: Path) -> Path:
    root = compliance_root(repo_path)
    return assert_under(root, root / "audit" / AUDIT_LOG_NAME)


def ci_summary_path(repo_path: Path) -> Path:
    root = compliance_root(repo_path)
    return assert_under(root, root / "ci" / "summary.json")


def canonical_json(data: Any) -> str:
    """Serialize with sorted keys and no insignificant whitespace."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def dump_json(data: Any) -> str:
    """Deterministic pretty JSON: sorted keys, 2-space indent, trailing newline."""
    return json.dumps(data, sort_keys=True, indent=2, ensure_ascii=False, default=str) + "\n"


def sha256_hex(data: Union[str, bytes]) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def sha256_file(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


def atomic_write_bytes(path: Path, data: bytes) -> Path:
    """Write ``data`` to a sibling temp file, fsync it, then rename over ``path``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
    return path


def atomic_write_text(path: Path, text: str) -> Path:
    return atomic_write_bytes(path, text.encode("utf-8"))


def atomic_write_json(path: Path, data: Any) -> Path:
    return atomic_write_text(path, dump_json(data))


def read_json(path: Path) -> Any:
    with open(path, encoding="utf-8") as fh:
        return json.load(fh)

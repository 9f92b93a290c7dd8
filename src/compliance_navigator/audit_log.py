"""Append-only, hash-chained audit log.

Each line of the log is one JSON entry. An entry's ``entryHash`` covers its
sequence number, timestamp, action, payload hash and the previous entry's
hash, so editing, removing or reordering any line breaks every hash after it.
The first entry chains from 64 zeros.
"""

import json
import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from compliance_navigator.models import AuditLogEntry, ChainVerification
from compliance_navigator.paths import canonical_json, sha256_hex

logger = logging.getLogger(__name__)

GENESIS_HASH = "0" * 64
DEFAULT_ACTOR = "compliance-navigator"

_locks: dict[str, threading.Lock] = {}
_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    key = str(path.resolve())
    with _locks_guard:
        lock = _locks.get(key)
        if lock is None:
            lock = _locks[key] = threading.Lock()
        return lock


def utc_timestamp() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def compute_payload_hash(payload: Any) -> str:
    return sha256_hex(canonical_json(payload))


def compute_entry_hash(
    seq: int, timestamp: str, action: str, payload_hash: str, prev_hash: str
) -> str:
    return sha256_hex("|".join([str(seq), timestamp, action, payload_hash, prev_hash]))


class AuditLog:
    """Single-writer audit log bound to one file.

    Appends from threads of this process are serialized per file. Other
    processes must not write the same log.
    """

    def __init__(self, log_path: Path, actor: str = DEFAULT_ACTOR) -> None:
        self.log_path = Path(log_path)
        self.actor = actor

    def append(
        self,
        action: str,
        payload: dict[str, Any],
        actor: Optional[str] = None,
    ) -> AuditLogEntry:
        """Append one entry chained to the current tail.

        Args:
            action: Short verb naming the state change, e.g. ``scan_completed``.
            payload: JSON-serializable details of the change.
            actor: Who performed the action; defaults to the log's actor.

        Returns:
            The written entry.
        """
        # Normalize through JSON so the stored payload hashes identically on re-read.
        normalized = json.loads(canonical_json(payload))
        payload_hash = compute_payload_hash(normalized)

        with _lock_for(self.log_path):
            seq, prev_hash = self._tail()
            timestamp = utc_timestamp()
            entry = AuditLogEntry(
                seq=seq,
                timestamp=timestamp,
                actor=actor or self.actor,
                action=action,
                payload=normalized,
                payload_hash=payload_hash,
                prev_hash=prev_hash,
                entry_hash=compute_entry_hash(seq, timestamp, action, payload_hash, prev_hash),
            )
            line = json.dumps(entry.to_dict(), sort_keys=True, ensure_ascii=False) + "\n"

            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.log_path, "a", encoding="utf-8") as fh:
                fh.write(line)
                fh.flush()
                os.fsync(fh.fileno())

        logger.debug("Audit entry %d: %s", entry.seq, action)
        return entry

    def verify(self) -> ChainVerification:
        return verify_chain(self.log_path)

    def entries(self) -> list[AuditLogEntry]:
        """All parseable entries, in file order."""
        if not self.log_path.exists():
            return []
        result = []
        with open(self.log_path, "rb") as fh:
            for raw in fh:
                try:
                    result.append(AuditLogEntry.from_dict(json.loads(raw.decode("utf-8"))))
                except (ValueError, KeyError, TypeError):
                    continue
        return result

    def _tail(self) -> tuple[int, str]:
        """Next sequence number and the hash to chain from."""
        last_line = _read_last_line(self.log_path)
        if last_line is None:
            return 0, GENESIS_HASH
        try:
            last = AuditLogEntry.from_dict(json.loads(last_line))
        except (ValueError, KeyError, TypeError):
            # Keep appending after a corrupt tail; verification reports the break.
            logger.error("Audit log tail is not a valid entry: %s", self.log_path)
            return _count_lines(self.log_path), sha256_hex(last_line)
        return last.seq + 1, last.entry_hash


def _read_last_line(path: Path) -> Optional[str]:
    if not path.exists():
        return None
    with open(path, "rb") as fh:
        fh.seek(0, os.SEEK_END)
        end = fh.tell()
        if end == 0:
            return None
        block = 4096
        data = b""
        pos = end
        while pos > 0:
            step = min(block, pos)
            pos -= step
            fh.seek(pos)
            data = fh.read(step) + data
            stripped = data.rstrip(b"\r\n")
            if b"\n" in stripped:
                break
    stripped = data.rstrip(b"\r\n")
    if not stripped:
        return None
    return stripped.rsplit(b"\n", 1)[-1].decode("utf-8", errors="replace")


def _count_lines(path: Path) -> int:
    with open(path, "rb") as fh:
        return sum(1 for line in fh if line.strip())


def verify_chain(log_path: Path) -> ChainVerification:
    """Walk the log from genesis and report the first broken line.

    A missing or empty log verifies trivially. Line numbers are 1-based.
    """
    path = Path(log_path)
    if not path.exists():
        return ChainVerification(passed=True, total_entries=0)

    expected_prev = GENESIS_HASH
    expected_seq = 0
    total = 0

    with open(path, "rb") as fh:
        for line_no, raw in enumerate(fh, start=1):
            try:
                line = raw.decode("utf-8").rstrip("\r\n")
            except UnicodeDecodeError:
                return _broken(line_no, total, "invalid UTF-8")

            if not line.strip():
                return _broken(line_no, total, "empty line")
            try:
                entry = AuditLogEntry.from_dict(json.loads(line))
            except (ValueError, KeyError, TypeError):
                return _broken(line_no, total, "invalid JSON entry")

            if entry.seq != expected_seq:
                return _broken(line_no, total, f"sequence gap: expected {expected_seq}, found {entry.seq}")
            if entry.prev_hash != expected_prev:
                return _broken(line_no, total, "prevHash does not match previous entryHash")
            if compute_payload_hash(entry.payload) != entry.payload_hash:
                return _broken(line_no, total, "payloadHash does not match payload")
            recomputed = compute_entry_hash(
                entry.seq, entry.timestamp, entry.action, entry.payload_hash, entry.prev_hash
            )
            if recomputed != entry.entry_hash:
                return _broken(line_no, total, "entryHash mismatch")

            expected_prev = entry.entry_hash
            expected_seq += 1
            total += 1

    return ChainVerification(passed=True, total_entries=total)


def _broken(line_no: int, total: int, reason: str) -> ChainVerification:
    logger.warning("Audit chain broken at line %d: %s", line_no, reason)
    return ChainVerification(False, total, line_no, reason)

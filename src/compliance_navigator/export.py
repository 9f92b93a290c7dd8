"""Export packager: zips an audit packet and records its digest."""

import logging
import os
import tempfile
import zipfile
from pathlib import Path

from compliance_navigator import paths
from compliance_navigator.errors import PacketNotFound
from compliance_navigator.models import ExportRecord

logger = logging.getLogger(__name__)

ZIP_NAME = "audit_packet.zip"
ARCHIVE_ROOT = "audit_packet"


def collect_packet_files(packet_root: Path, include_evidence: bool = True) -> list[tuple[Path, str]]:
    """Regular files of a packet with their archive names, sorted by name.

    Symlinks are never followed. ``evidence/`` is left out when
    ``include_evidence`` is False.
    """
    collected: list[tuple[Path, str]] = []

    def walk(directory: Path, prefix: str) -> None:
        with os.scandir(directory) as entries:
            for entry in sorted(entries, key=lambda e: e.name):
                if entry.is_symlink():
                    logger.warning("Skipping symlink in packet: %s", entry.path)
                    continue
                rel = f"{prefix}{entry.name}"
                if entry.is_dir(follow_symlinks=False):
                    if not include_evidence and rel == "evidence":
                        continue
                    walk(Path(entry.path), f"{rel}/")
                elif entry.is_file(follow_symlinks=False):
                    collected.append((Path(entry.path), f"{ARCHIVE_ROOT}/{rel}"))

    walk(packet_root, "")
    return collected


def export_packet(repo_path: Path, run_id: str, include_evidence: bool = True) -> ExportRecord:
    """Package ``.compliance/audit_packet/<runId>/`` into a ZIP archive.

    The archive is written to a temp file in the exports directory and
    renamed into place, so a partial ZIP is never visible.

    Args:
        repo_path: Validated repository root.
        run_id: Run whose packet is exported.
        include_evidence: Whether to include raw scanner output.

    Returns:
        ExportRecord with the archive path, size and SHA-256.

    Raises:
        PacketNotFound: If the packet directory does not exist. Nothing is
            written under ``exports/`` in that case.
    """
    packet_root = paths.packet_dir(repo_path, run_id)
    if not packet_root.is_dir() or packet_root.is_symlink():
        raise PacketNotFound(
            f"No audit packet found for run {run_id}. Generate the packet first.",
            {"runId": run_id},
        )

    out_dir = paths.exports_dir(repo_path, run_id)
    zip_path = paths.assert_under(out_dir, out_dir / ZIP_NAME)
    files = collect_packet_files(packet_root, include_evidence)

    out_dir.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{ZIP_NAME}.", suffix=".tmp", dir=out_dir)
    try:
        with os.fdopen(fd, "wb") as fh:
            with zipfile.ZipFile(fh, "w", compression=zipfile.ZIP_DEFLATED) as archive:
                for source, arcname in files:
                    archive.write(source, arcname)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, zip_path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise

    record = ExportRecord(
        run_id=run_id,
        zip_path=str(zip_path),
        sha256=paths.sha256_file(zip_path),
        size_bytes=zip_path.stat().st_size,
        file_count=len(files),
        include_evidence=include_evidence,
    )
    logger.info("Exported %s (%d bytes, sha256 %s)", zip_path, record.size_bytes, record.sha256)
    return record

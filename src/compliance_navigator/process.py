"""Gated asynchronous subprocess execution."""

import asyncio
import logging
import shlex
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from compliance_navigator.allowlist import assert_argv_allowed
from compliance_navigator.errors import ScannerUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessResult:
    """Captured output of a finished subprocess."""

    argv: tuple[str, ...]
    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int


async def run_command(
    argv: list[str],
    cwd: Optional[Path] = None,
    timeout: float = 600.0,
) -> ProcessResult:
    """Run an allowlisted command without a shell.

    Args:
        argv: Program and arguments.
        cwd: Working directory for the child.
        timeout: Hard timeout in seconds; the child is killed when exceeded.

    Returns:
        ProcessResult with decoded stdout/stderr.

    Raises:
        CommandNotAllowlisted: If the argv fails the gate. Nothing
            is spawned in that case.
        ScannerUnavailable: If the binary cannot be started or times out.
    """
    command = shlex.join(argv)
    assert_argv_allowed(argv)
    logger.debug("Spawning: %s", command)

    started = time.monotonic()
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(cwd) if cwd else None,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise ScannerUnavailable(f"{argv[0]} not found", {"command": command}) from e
    except OSError as e:
        raise ScannerUnavailable(f"{argv[0]} failed to start: {e}", {"command": command}) from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError as e:
        proc.kill()
        await proc.wait()
        logger.warning("Command timed out after %.0fs: %s", timeout, command)
        raise ScannerUnavailable(
            f"{argv[0]} timed out after {timeout:.0f}s", {"command": command}
        ) from e

    duration_ms = int((time.monotonic() - started) * 1000)
    return ProcessResult(
        argv=tuple(argv),
        exit_code=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
        duration_ms=duration_ms,
    )

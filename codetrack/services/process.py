"""Async subprocess wrapper with a wall-clock timeout and cooperative cancellation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

# How long to wait for pipes to drain after the child is killed
KILL_GRACE_SECONDS = 5.0


class CancellationToken:
    """Set once to abort every process started with this token."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


@dataclass
class ProcessResult:
    """Outcome of one subprocess run. ``returncode`` is -1 when it never exited normally."""

    args: list[str]
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out and not self.cancelled

    def describe(self) -> str:
        if self.timed_out:
            return "timed out"
        if self.cancelled:
            return "cancelled"
        detail = self.stderr.strip().splitlines()[-1:] or [""]
        return f"exit code {self.returncode} {detail[0]}".strip()


def _decode(data: bytes | None) -> str:
    return (data or b"").decode("utf-8", errors="replace")


async def _kill(proc: asyncio.subprocess.Process, pending: asyncio.Future) -> tuple[bytes, bytes]:
    try:
        proc.kill()
    except ProcessLookupError:
        pass
    try:
        return await asyncio.wait_for(pending, timeout=KILL_GRACE_SECONDS)
    except asyncio.TimeoutError:
        logger.warning("Process %s did not release its pipes after kill", proc.pid)
        return b"", b""


async def run_process(
    args: Sequence[str],
    *,
    cwd: str | Path | None = None,
    timeout: float = 120.0,
    cancel: CancellationToken | None = None,
) -> ProcessResult:
    """Run ``args`` and capture stdout/stderr as text.

    Never raises for tool failures: a missing executable, a non-zero exit, a
    timeout or a cancellation are all reported in the ProcessResult. On
    timeout or cancellation the child is killed. If the awaiting task itself
    is cancelled the child is killed before the CancelledError propagates.
    """
    argv = [str(a) for a in args]
    if cancel is not None and cancel.cancelled:
        return ProcessResult(argv, -1, "", "", cancelled=True)

    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(cwd) if cwd is not None else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError:
        return ProcessResult(argv, -1, "", f"Command not found: {argv[0]}")
    except PermissionError:
        return ProcessResult(argv, -1, "", f"Command not executable: {argv[0]}")

    communicate = asyncio.ensure_future(proc.communicate())
    waiters: set[asyncio.Future] = {communicate}
    cancel_wait: asyncio.Future | None = None
    if cancel is not None:
        cancel_wait = asyncio.ensure_future(cancel.wait())
        waiters.add(cancel_wait)

    try:
        done, _ = await asyncio.wait(
            waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        await _kill(proc, communicate)
        raise
    finally:
        if cancel_wait is not None:
            cancel_wait.cancel()

    if communicate in done:
        stdout, stderr = communicate.result()
        return ProcessResult(argv, proc.returncode, _decode(stdout), _decode(stderr))

    timed_out = not done
    logger.warning(
        "Killing %s after %s", argv[0], "timeout" if timed_out else "cancellation"
    )
    stdout, stderr = await _kill(proc, communicate)
    return ProcessResult(
        argv,
        -1,
        _decode(stdout),
        _decode(stderr),
        timed_out=timed_out,
        cancelled=not timed_out,
    )

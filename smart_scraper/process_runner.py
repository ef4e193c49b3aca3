"""
Subprocess lifecycle management for external executables (Lightpanda, headless
Chrome).

A run is supervised against two deadlines: when ``timeout_ms`` expires the
process group receives SIGTERM, and if it is still alive ``grace_ms`` later it
receives SIGKILL. ``run`` always resolves with a ``ProcessExecution``; it never
raises, even when the executable cannot be spawned.
"""
import asyncio
import os
import signal
import time
from enum import Enum
from typing import List, NamedTuple, Optional, Sequence

from smart_scraper.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_GRACE_MS = 1000
SPAWN_ERROR_EXIT_CODE = -1
_KILL_SIGNAL = getattr(signal, "SIGKILL", signal.SIGTERM)


class TerminationCause(str, Enum):
    NATURAL = "natural"
    SOFT_TIMEOUT = "soft-timeout"
    HARD_TIMEOUT = "hard-timeout"
    SPAWN_ERROR = "spawn-error"


class ProcessExecution(NamedTuple):
    exit_code: int
    stdout: str
    stderr: str
    termination_cause: TerminationCause
    duration_ms: int

    @property
    def timed_out(self) -> bool:
        return self.termination_cause in (TerminationCause.SOFT_TIMEOUT, TerminationCause.HARD_TIMEOUT)


class _Deadlines(NamedTuple):
    soft: float
    hard: float


def _send_signal(process: asyncio.subprocess.Process, sig: int) -> None:
    """Signals the whole process group so helper processes die with the parent."""
    try:
        if os.name == "posix":
            os.killpg(process.pid, sig)  # session leader: pgid == pid
        elif sig == _KILL_SIGNAL:
            process.kill()
        else:
            process.terminate()
    except (ProcessLookupError, PermissionError):
        pass  # already gone


class ProcessRunner:
    def __init__(self, grace_ms: int = DEFAULT_GRACE_MS):
        self.grace_ms = grace_ms

    async def run(self, executable: str, args: Sequence[str], timeout_ms: int) -> ProcessExecution:
        cmd: List[str] = [executable, *args]
        started = time.monotonic()
        logger.debug(f"Spawning {executable}", extra={"command": " ".join(cmd), "timeout_ms": timeout_ms, "event_type": "process_spawn"})

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=(os.name == "posix"),
            )
        except (OSError, ValueError) as e:
            logger.warning(f"Could not spawn {executable}: {e}", extra={"executable": executable, "event_type": "process_spawn_error"})
            return ProcessExecution(
                exit_code=SPAWN_ERROR_EXIT_CODE,
                stdout="",
                stderr=str(e),
                termination_cause=TerminationCause.SPAWN_ERROR,
                duration_ms=_elapsed_ms(started),
            )

        deadlines = _Deadlines(soft=timeout_ms / 1000.0, hard=self.grace_ms / 1000.0)
        output = asyncio.ensure_future(process.communicate())
        try:
            cause = await self._supervise(process, output, deadlines)
            stdout, stderr = await output
        finally:
            if not output.done():
                _send_signal(process, _KILL_SIGNAL)
                output.cancel()

        execution = ProcessExecution(
            exit_code=process.returncode if process.returncode is not None else SPAWN_ERROR_EXIT_CODE,
            stdout=_decode(stdout),
            stderr=_decode(stderr),
            termination_cause=cause,
            duration_ms=_elapsed_ms(started),
        )
        logger.debug(
            f"{executable} exited with code {execution.exit_code} ({cause.value})",
            extra={"executable": executable, "exit_code": execution.exit_code, "termination_cause": cause.value,
                   "duration_ms": execution.duration_ms, "event_type": "process_exit"},
        )
        return execution

    async def _supervise(self, process: asyncio.subprocess.Process, output: "asyncio.Future", deadlines: _Deadlines) -> TerminationCause:
        done, _ = await asyncio.wait({output}, timeout=deadlines.soft)
        if done:
            return TerminationCause.NATURAL

        logger.info(f"Process {process.pid} timed out, sending SIGTERM", extra={"pid": process.pid, "event_type": "process_soft_timeout"})
        _send_signal(process, signal.SIGTERM)
        done, _ = await asyncio.wait({output}, timeout=deadlines.hard)
        if done:
            return TerminationCause.SOFT_TIMEOUT

        logger.warning(f"Process {process.pid} ignored SIGTERM, sending SIGKILL", extra={"pid": process.pid, "event_type": "process_hard_timeout"})
        _send_signal(process, _KILL_SIGNAL)
        return TerminationCause.HARD_TIMEOUT


def _decode(data: Optional[bytes]) -> str:
    return data.decode("utf-8", errors="replace") if data else ""


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)

"""
Phase Runner - one subprocess lifecycle as one awaitable.

Spawns an external command, mirrors its stdout/stderr to this process's own
standard streams and into the phase's RollingLogBuffer, and resolves to
True only when the process exits with code 0. Failures are recorded on the
shared SupervisorState; nothing is raised to the caller.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from dataclasses import dataclass
from typing import BinaryIO, Optional, Sequence

from .log_buffer import RollingLogBuffer
from .state import Stage, SupervisorState

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096

EXIT_POLL_INTERVAL = 0.05

# How long output is still read after the process exited
PUMP_DRAIN_TIMEOUT = 1.0

# Exit code recorded when the process could not be spawned at all
SPAWN_FAILURE_EXIT_CODE = 1


@dataclass(frozen=True)
class PhaseOutcome:
    """How a phase ended: an exit code, a signal, or neither for spawn errors."""

    exit_code: Optional[int]
    signal: Optional[str]
    spawn_error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0 and self.signal is None and self.spawn_error is None

    @classmethod
    def from_returncode(cls, returncode: int) -> "PhaseOutcome":
        # asyncio reports death by signal N as returncode -N
        if returncode < 0:
            return cls(exit_code=None, signal=signal_name(-returncode))
        return cls(exit_code=returncode, signal=None)


def signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return f"SIG{signum}"


class PhaseRunner:
    """Runs a single phase subprocess for ``stage``."""

    def __init__(
        self,
        stage: Stage,
        state: SupervisorState,
        log_buffer: RollingLogBuffer,
        stdout: Optional[BinaryIO] = None,
        stderr: Optional[BinaryIO] = None,
    ) -> None:
        self.stage = stage
        self.state = state
        self.log_buffer = log_buffer
        self._stdout = stdout if stdout is not None else sys.stdout.buffer
        self._stderr = stderr if stderr is not None else sys.stderr.buffer
        self.outcome: Optional[PhaseOutcome] = None
        self.pid: Optional[int] = None

    async def run(self, command: str, args: Sequence[str] = ()) -> bool:
        """Run ``command`` with ``args`` to completion.

        Returns True on exit code 0. On spawn failure, non-zero exit or
        signal death the failure is recorded on the state and False is
        returned.
        """
        logger.info(f"[{self.stage.value}] Starting: {' '.join([command, *args])}")

        try:
            process = await asyncio.create_subprocess_exec(
                command,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"[{self.stage.value}] Failed to spawn {command}: {e}")
            self.outcome = PhaseOutcome(exit_code=None, signal=None, spawn_error=str(e))
            self.state.record_failure(self.stage, SPAWN_FAILURE_EXIT_CODE, None)
            return False

        self.pid = process.pid
        logger.info(f"[{self.stage.value}] Started (PID {process.pid})")

        pumps = [
            asyncio.ensure_future(self._pump(process.stdout, self._stdout)),
            asyncio.ensure_future(self._pump(process.stderr, self._stderr)),
        ]
        returncode = await self._wait_for_exit(process)

        # Descendants may still hold the pipes open; give the pumps a short
        # window to pick up what the process itself wrote, then stop reading
        _done, pending = await asyncio.wait(pumps, timeout=PUMP_DRAIN_TIMEOUT)
        if pending:
            logger.warning(
                f"[{self.stage.value}] Output still open after exit "
                "(inherited by a child process?), no longer capturing it"
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        outcome = PhaseOutcome.from_returncode(returncode)
        self.outcome = outcome

        if outcome.succeeded:
            logger.info(f"[{self.stage.value}] Exited with code 0")
            return True

        logger.warning(
            f"[{self.stage.value}] Failed with code={outcome.exit_code} "
            f"signal={outcome.signal or 'null'}"
        )
        self.state.record_failure(self.stage, outcome.exit_code, outcome.signal)
        return False

    async def _wait_for_exit(self, process: asyncio.subprocess.Process) -> int:
        # process.wait() also waits for the pipes to close, which never
        # happens while a descendant keeps them; the return code is set as
        # soon as the process itself has been reaped
        while process.returncode is None:
            await asyncio.sleep(EXIT_POLL_INTERVAL)
        return process.returncode

    async def _pump(self, reader: Optional[asyncio.StreamReader], sink: BinaryIO) -> None:
        if reader is None:
            return
        loop = asyncio.get_running_loop()
        while True:
            chunk = await reader.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            self.log_buffer.append(chunk)
            # Parent streams may block; writes happen off the loop
            await loop.run_in_executor(None, self._mirror, sink, chunk)

    def _mirror(self, sink: BinaryIO, chunk: bytes) -> None:
        try:
            sink.write(chunk)
            sink.flush()
        except (OSError, ValueError) as e:
            # Parent stream closed; keep capturing into the buffer
            logger.debug(f"[{self.stage.value}] Could not mirror output: {e}")

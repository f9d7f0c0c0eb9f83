"""
Process Runner for the external analysis tool.

Runs one child process with a hard wall-clock budget:
- stdout/stderr are drained on background threads as data arrives, so a
  chatty tool can never block on a full pipe
- the wait is a race between "process exited", "timeout elapsed" and
  "caller cancelled"; whichever comes first wins and is handled once
- on timeout or cancellation the process group gets SIGTERM, then SIGKILL
  if it is still alive after the grace period

Exit codes are reported raw. Deciding whether a nonzero exit means
"findings present" or "failure" belongs to the output parser.
"""

import errno
import logging
import os
import signal
import subprocess
import threading
import time
from typing import IO, List, Optional, Sequence

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from contract_audit.exceptions import (
    AnalysisCancelledError,
    ExecutionFailedError,
    ToolTimeoutError,
)
from contract_audit.models import RawToolOutput

__all__ = ["ProcessRunner", "is_transient_spawn_error"]

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024
_TRANSIENT_ERRNOS = {errno.EAGAIN, errno.EINTR, errno.ENOMEM}
_USE_PROCESS_GROUP = os.name == "posix"


def is_transient_spawn_error(error: BaseException) -> bool:
    """Spawn failures worth retrying: resource exhaustion, interrupted fork"""
    if isinstance(error, (FileNotFoundError, PermissionError)):
        return False
    return isinstance(error, OSError) and error.errno in _TRANSIENT_ERRNOS


class _StreamDrainer(threading.Thread):
    """Reads a pipe to EOF, buffering chunks as they become available"""

    def __init__(self, stream: IO[bytes], name: str):
        super().__init__(name=name, daemon=True)
        self.stream = stream
        self.chunks: List[bytes] = []

    def run(self) -> None:
        try:
            read = getattr(self.stream, "read1", self.stream.read)
            for chunk in iter(lambda: read(_CHUNK_SIZE), b""):
                self.chunks.append(chunk)
        except (OSError, ValueError) as e:
            # Pipe closed underneath us during forced termination
            logger.debug("Stream %s closed early: %s", self.name, e)

    def data(self) -> bytes:
        return b"".join(self.chunks)


class ProcessRunner:
    """
    Launch a command and collect its output under a hard timeout

    Stateless across calls; one instance may serve concurrent runs.
    """

    def __init__(
        self,
        termination_grace_ms: int = 5_000,
        spawn_attempts: int = 3,
        poll_interval: float = 0.05,
    ):
        """
        Args:
            termination_grace_ms: Time allowed between SIGTERM and SIGKILL
            spawn_attempts: Attempts for transient spawn failures (EAGAIN etc.)
            poll_interval: Seconds between cancellation checks while waiting
        """
        self.termination_grace_ms = termination_grace_ms
        self.poll_interval = poll_interval

        self._spawn = retry(
            stop=stop_after_attempt(max(1, spawn_attempts)),
            wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
            retry=retry_if_exception(is_transient_spawn_error),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )(self._popen)

    def _popen(self, cmd: Sequence[str], cwd: Optional[str]) -> subprocess.Popen:
        return subprocess.Popen(
            list(cmd),
            cwd=cwd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            start_new_session=_USE_PROCESS_GROUP,
        )

    def run(
        self,
        cmd: Sequence[str],
        timeout_ms: int,
        cwd: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
        termination_grace_ms: Optional[int] = None,
    ) -> RawToolOutput:
        """
        Run ``cmd`` to completion, timeout, or cancellation

        Args:
            cmd: Program and arguments (no shell)
            timeout_ms: Wall-clock budget for the child
            cwd: Working directory for the child
            cancel_event: Set by the caller to abort the run
            termination_grace_ms: Overrides the runner default for this call

        Returns:
            RawToolOutput with both streams and the raw exit code

        Raises:
            ExecutionFailedError: the process could not be started
            ToolTimeoutError: the budget elapsed first
            AnalysisCancelledError: cancel_event was set first
        """
        tool = os.path.basename(cmd[0]) if cmd else "tool"
        grace_ms = self.termination_grace_ms if termination_grace_ms is None else termination_grace_ms
        start = time.monotonic()

        try:
            proc = self._spawn(cmd, cwd)
        except OSError as e:
            raise ExecutionFailedError(f"{tool} execution failed: {e}") from e

        logger.debug("Started %s (pid=%s, timeout=%dms)", tool, proc.pid, timeout_ms)

        stdout_drainer = _StreamDrainer(proc.stdout, f"{tool}-stdout")
        stderr_drainer = _StreamDrainer(proc.stderr, f"{tool}-stderr")
        stdout_drainer.start()
        stderr_drainer.start()

        outcome = "running"
        try:
            outcome = self._wait(proc, start + timeout_ms / 1000.0, cancel_event)
        finally:
            if proc.poll() is None:
                self._terminate(proc, tool, grace_ms)
            # Descendants can outlive the leader and keep the pipes open
            self._kill_group(proc, tool)
            self._collect(proc, (stdout_drainer, stderr_drainer), grace_ms)

        elapsed_ms = int((time.monotonic() - start) * 1000)
        stdout, stderr = stdout_drainer.data(), stderr_drainer.data()

        if outcome == "timeout":
            logger.warning("%s timed out after %dms; process terminated", tool, timeout_ms)
            raise ToolTimeoutError(timeout_ms, elapsed_ms, stdout, stderr)
        if outcome == "cancelled":
            logger.info("%s cancelled after %dms; process terminated", tool, elapsed_ms)
            raise AnalysisCancelledError(elapsed_ms)

        logger.debug("%s exited with code %s in %dms", tool, proc.returncode, elapsed_ms)
        return RawToolOutput(
            stdout=stdout,
            stderr=stderr,
            exit_code=proc.returncode,
            timed_out=False,
            elapsed_ms=elapsed_ms,
        )

    def _wait(
        self,
        proc: subprocess.Popen,
        deadline: float,
        cancel_event: Optional[threading.Event],
    ) -> str:
        """Block until exit, deadline, or cancellation; report which came first"""
        while True:
            if cancel_event is not None and cancel_event.is_set():
                return "cancelled"
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return "timeout"
            slice_s = remaining if cancel_event is None else min(self.poll_interval, remaining)
            try:
                proc.wait(timeout=slice_s)
                return "exited"
            except subprocess.TimeoutExpired:
                continue

    def _terminate(self, proc: subprocess.Popen, tool: str, grace_ms: int) -> None:
        """SIGTERM the process group, escalate to SIGKILL after the grace period"""
        self._signal(proc, signal.SIGTERM)
        try:
            proc.wait(timeout=grace_ms / 1000.0)
            return
        except subprocess.TimeoutExpired:
            logger.warning("%s ignored SIGTERM for %dms, killing", tool, grace_ms)

        self._signal(proc, signal.SIGKILL if _USE_PROCESS_GROUP else None)
        proc.wait()

    @staticmethod
    def _signal(proc: subprocess.Popen, sig: Optional[int]) -> None:
        try:
            if _USE_PROCESS_GROUP:
                os.killpg(proc.pid, sig)
            elif sig == signal.SIGTERM:
                proc.terminate()
            else:
                proc.kill()
        except ProcessLookupError:
            pass

    @staticmethod
    def _kill_group(proc: subprocess.Popen, tool: str) -> None:
        """SIGKILL whatever is left in the child's process group"""
        if not _USE_PROCESS_GROUP:
            return
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            return
        logger.debug("Killed leftover processes in %s process group %s", tool, proc.pid)

    def _collect(self, proc: subprocess.Popen, drainers: Sequence[_StreamDrainer], grace_ms: int) -> None:
        """Join drainer threads under one deadline and release finished pipes"""
        deadline = time.monotonic() + grace_ms / 1000.0 + 1.0
        for drainer in drainers:
            drainer.join(timeout=max(0.0, deadline - time.monotonic()))

        for drainer in drainers:
            if drainer.is_alive():
                # Closing a buffered pipe blocks while another thread reads it
                logger.warning("Output drainer %s did not finish; leaving it detached", drainer.name)
                continue
            try:
                drainer.stream.close()
            except OSError:
                pass

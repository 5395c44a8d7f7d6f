"""Bounded-time execution of the kopia command with streamed output."""

import io
import logging
import subprocess
import threading
import time
from typing import BinaryIO, Callable, List, Optional, Sequence, TypeVar

from .errors import CommandTimeout, ProcessFailed

T = TypeVar('T')

DEFAULT_TIMEOUT_SECONDS = 15.0

# Only the tail of stderr is kept for error messages
STDERR_LIMIT = 64 * 1024

# Time allowed for pipe readers to reach EOF once the process is gone
DRAIN_GRACE_SECONDS = 1.0


class _StreamWorker(threading.Thread):
    """Runs a consumer over one pipe of the child process and records its outcome."""

    def __init__(self, name: str, pipe, target: Callable[[], T]):
        super().__init__(name=name, daemon=True)
        self.pipe = pipe
        self._target_fn = target
        self.result = None
        self.error: Optional[BaseException] = None

    def run(self):
        try:
            self.result = self._target_fn()
        except Exception as e:  # re-raised on the calling thread
            self.error = e


def _drain_stderr(pipe: BinaryIO) -> str:
    tail = b''
    for chunk in iter(lambda: pipe.read(4096), b''):
        tail = (tail + chunk)[-STDERR_LIMIT:]
    return tail.decode('utf-8', errors='replace').strip()


class CommandExecutor:
    """Runs an external command and streams its stdout into a consumer.

    Stdout is consumed on a dedicated thread while the process runs, so a
    listing larger than the pipe buffer never blocks the child. Stderr is
    drained on a second thread. The calling thread only waits, and kills
    the process once the deadline passes.
    """

    def __init__(self, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS):
        """Initialize command executor.

        Args:
            timeout_seconds: Deadline for one command run, in seconds.
        """
        if timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be positive, got {timeout_seconds}")
        self.timeout_seconds = timeout_seconds
        self.logger = logging.getLogger(__name__)

    def run(self, command: Sequence[str], consumer: Callable[[io.TextIOBase], T]) -> T:
        """Run ``command`` and return what ``consumer`` makes of its stdout.

        Args:
            command: Program and arguments.
            consumer: Called with the process stdout as a UTF-8 text stream.

        Returns:
            The consumer's return value.

        Raises:
            CommandTimeout: If the deadline passes before the process exits
                and its output is consumed.
            ProcessFailed: If the process cannot be started or exits non-zero.
            Exception: Whatever the consumer raised, for a zero exit status.
        """
        argv: List[str] = list(command)
        deadline = time.monotonic() + self.timeout_seconds
        self.logger.debug(f"Running {' '.join(argv)} (timeout {self.timeout_seconds:g}s)")

        try:
            process = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            self.logger.error(f"Could not start {argv[0]}: {e}")
            raise ProcessFailed(None, str(e)) from e

        stdout_text = io.TextIOWrapper(process.stdout, encoding='utf-8')
        reader = _StreamWorker('kopia-stdout', stdout_text, lambda: consumer(stdout_text))
        stderr_reader = _StreamWorker('kopia-stderr', process.stderr,
                                      lambda: _drain_stderr(process.stderr))
        workers = (reader, stderr_reader)
        for worker in workers:
            worker.start()

        try:
            returncode = process.wait(timeout=self.timeout_seconds)
        except subprocess.TimeoutExpired:
            self._kill(process)
            self._finish(workers)
            self.logger.error(f"{argv[0]} timed out after {self.timeout_seconds:g} seconds, killed")
            raise CommandTimeout(self.timeout_seconds)

        # Output may still be in flight after exit; the deadline covers it too
        reader.join(max(0.0, deadline - time.monotonic()))
        if reader.is_alive():
            self._finish(workers)
            self.logger.error(f"{argv[0]} exited but its output was not consumed within "
                              f"{self.timeout_seconds:g} seconds")
            raise CommandTimeout(self.timeout_seconds)
        self._finish(workers)

        if returncode != 0:
            stderr = stderr_reader.result or ''
            self.logger.error(f"{argv[0]} exited with status {returncode}: {stderr}")
            raise ProcessFailed(returncode, stderr)

        if reader.error is not None:
            raise reader.error
        return reader.result

    def _kill(self, process: subprocess.Popen) -> None:
        process.kill()
        try:
            process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            self.logger.warning(f"Process {process.pid} did not exit after kill")

    def _finish(self, workers: Sequence[_StreamWorker]) -> None:
        """Wait briefly for pipe readers and close the pipes they are done with.

        A pipe whose reader is still blocked (a grandchild holding it open)
        is left to its daemon thread, which exits once the pipe reaches EOF.
        """
        for worker in workers:
            worker.join(DRAIN_GRACE_SECONDS)
            if worker.is_alive():
                self.logger.warning(f"{worker.name} reader still blocked, leaving pipe open")
                continue
            try:
                worker.pipe.close()
            except (OSError, ValueError):
                pass

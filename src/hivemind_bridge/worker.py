"""Subprocess ownership for the HiveMind worker.

WorkerHandle spawns the worker with redirected stdin/stdout and exposes
three primitives: write a line, read whatever output has arrived, and
terminate. It knows nothing about the command protocol beyond writing an
optional first line at startup.

Output is pumped by a daemon thread into an in-memory buffer, so
read_available() never blocks: it returns exactly the bytes the worker has
written since the previous read.
"""

from __future__ import annotations

import logging
import subprocess
import threading
import weakref
from collections.abc import Sequence
from pathlib import Path
from typing import IO

from hivemind_bridge.errors import EncodingFailure, SpawnFailure, WriteFailure
from hivemind_bridge.protocol import (
    DEFAULT_TERMINATE_TIMEOUT,
    ENCODING,
    READ_BUFFER_SIZE,
    normalize_line,
)

logger = logging.getLogger(__name__)


class OutputPump:
    """Background reader that accumulates a pipe's bytes.

    The reader thread performs blocking reads and appends each chunk to a
    lock-protected buffer. drain() takes everything collected so far.
    """

    def __init__(self, stream: IO[bytes], pid: int) -> None:
        self._stream = stream
        self._pid = pid
        self._buffer = bytearray()
        self._lock = threading.Lock()
        self._eof = threading.Event()
        self._thread = threading.Thread(
            target=self._reader_thread,
            name=f"hivemind-output-{pid}",
            daemon=True,
        )

    def start(self) -> None:
        """Start the background reader thread."""
        self._thread.start()

    def _reader_thread(self) -> None:
        """Read chunks until EOF and append them to the buffer."""
        try:
            while True:
                chunk = self._stream.read1(READ_BUFFER_SIZE)  # type: ignore[attr-defined]
                if not chunk:
                    logger.debug("(PID %d): Worker output reached EOF", self._pid)
                    break
                with self._lock:
                    self._buffer.extend(chunk)
        except (OSError, ValueError) as e:
            # ValueError: the stream was closed underneath us during shutdown
            logger.debug("(PID %d): Output reader stopped: %s", self._pid, e)
        finally:
            self._eof.set()

    @property
    def at_eof(self) -> bool:
        """True once the worker's output stream has closed."""
        return self._eof.is_set()

    def drain(self) -> bytes:
        """Take every byte buffered since the previous drain."""
        with self._lock:
            data = bytes(self._buffer)
            self._buffer.clear()
        return data

    def join(self, timeout: float) -> None:
        """Wait for the reader thread to finish."""
        if self._thread.is_alive():
            self._thread.join(timeout)


def _reap(process: subprocess.Popen[bytes], pump: OutputPump, timeout: float) -> None:
    """Stop the worker if it is still running and release its pipes.

    Kept outside WorkerHandle so a weakref finalizer can run it without
    holding a reference to the handle.
    """
    if process.poll() is None:
        process.terminate()
        try:
            process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            logger.warning(
                "(PID %d): Worker ignored terminate after %.1fs, killing",
                process.pid,
                timeout,
            )
            process.kill()
            process.wait()
        logger.info("(PID %d): Terminated worker process", process.pid)
    else:
        logger.debug(
            "(PID %d): Worker already exited with code %s",
            process.pid,
            process.returncode,
        )

    if process.stdin is not None:
        try:
            process.stdin.close()
        except OSError:
            # Flushing into a dead pipe; nothing left to deliver
            pass
    pump.join(timeout)
    # close() blocks while the reader thread is still inside read1()
    if process.stdout is not None and pump.at_eof:
        process.stdout.close()


class WorkerHandle:
    """Owns one worker subprocess and its two pipes.

    The pipes are opened once, in start(), and used for the lifetime of the
    handle. terminate() is idempotent; it also runs automatically if the
    handle is garbage-collected while the worker is alive.

    Attributes:
        path: The executable the worker was launched from
        pid: The worker's process identifier
    """

    def __init__(
        self,
        process: subprocess.Popen[bytes],
        path: Path,
        terminate_timeout: float = DEFAULT_TERMINATE_TIMEOUT,
    ) -> None:
        """Wrap an already-spawned process.

        Prefer WorkerHandle.start(), which spawns and initializes the worker.

        Args:
            process: A process opened with stdin and stdout pipes
            path: The executable the process was launched from
            terminate_timeout: Seconds to wait for exit before killing
        """
        if process.stdin is None or process.stdout is None:
            raise ValueError("Worker process must be spawned with stdin and stdout pipes")

        self.path = path
        self._process = process
        self._stdin: IO[bytes] = process.stdin
        self._pump = OutputPump(process.stdout, process.pid)
        self._pump.start()
        self._finalizer = weakref.finalize(
            self, _reap, process, self._pump, terminate_timeout
        )

    @classmethod
    def start(
        cls,
        path: str | Path,
        init_line: str | None = None,
        *,
        args: Sequence[str] = (),
        terminate_timeout: float = DEFAULT_TERMINATE_TIMEOUT,
    ) -> WorkerHandle:
        """Spawn the worker and send its initialization line.

        Args:
            path: Resolved path of the worker executable
            init_line: First line to write, e.g. "new true"; skipped if None
            args: Extra command-line arguments for the worker
            terminate_timeout: Seconds to wait for exit before killing

        Returns:
            A handle owning the running worker

        Raises:
            SpawnFailure: If the executable cannot be launched or the
                initialization line cannot be sent
        """
        path = Path(path)
        argv = [str(path), *args]
        try:
            process = subprocess.Popen(
                argv,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
            )
        except OSError as e:
            logger.error("Failed to launch worker %s: %s", path, e)
            raise SpawnFailure(f"Failed to launch worker {path}: {e}", path=str(path)) from e

        handle = cls(process, path, terminate_timeout=terminate_timeout)

        if init_line is not None:
            try:
                handle.write_line(init_line)
            except (EncodingFailure, WriteFailure) as e:
                handle.terminate()
                raise SpawnFailure(
                    f"Failed to initialize worker {path}: {e}", path=str(path)
                ) from e

        logger.info("(PID %d): Initialized worker process %s", handle.pid, path)
        return handle

    @property
    def pid(self) -> int:
        """The worker's process identifier."""
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        """The worker's exit code, or None while it is running."""
        return self._process.poll()

    @property
    def is_running(self) -> bool:
        """Check if the worker process is still alive."""
        return self._process.poll() is None

    @property
    def is_terminated(self) -> bool:
        """Check if terminate() has already run."""
        return not self._finalizer.alive

    @property
    def output_closed(self) -> bool:
        """True once the worker has closed its output stream."""
        return self._pump.at_eof

    def write_line(self, text: str) -> None:
        """Write one newline-terminated line to the worker's stdin.

        May block while the OS pipe buffer is full.

        Args:
            text: The line to write, without its newline

        Raises:
            EncodingFailure: If the text cannot be encoded
            WriteFailure: If the pipe is closed or the write fails
        """
        line = normalize_line(text)
        if not line:
            raise EncodingFailure("Refusing to write a blank line")
        try:
            data = line.encode(ENCODING)
        except UnicodeEncodeError as e:
            raise EncodingFailure(f"Failed to encode {text!r}: {e}") from e

        if self.is_terminated:
            raise WriteFailure(f"(PID {self.pid}): Worker has been terminated")

        try:
            self._stdin.write(data)
            self._stdin.flush()
        except (OSError, ValueError) as e:
            logger.error("(PID %d): Failed to write to worker: %s", self.pid, e)
            raise WriteFailure(f"(PID {self.pid}): Failed to write to worker: {e}") from e

        logger.debug("(PID %d): Wrote %r", self.pid, line.rstrip("\n"))

    def read_available(self) -> bytes:
        """Return the output bytes that have arrived since the last read.

        Never waits for more data; returns b"" if nothing is buffered.
        """
        return self._pump.drain()

    def terminate(self) -> None:
        """Stop the worker if it is still running.

        Safe to call any number of times.
        """
        self._finalizer()

"""Request/response orchestration over the HiveMind line protocol.

The bridge turns typed calls into worker commands and worker output into
typed decisions:

    caller -> request_decision() -> "play\\n" -> (response delay)
           -> read output -> extract JSON -> decode -> Movement

    caller -> apply_move(move) -> "move {...}\\n"   (no reply)

The worker frames nothing: its answer is a JSON object somewhere in a stream
that may also carry log text. The bridge therefore waits a configured delay
after "play", reads whatever has arrived, and pulls the first balanced JSON
object out of it. With max_wait configured, a read that yields no complete
object is retried every poll_interval until the budget runs out.

There are no message IDs, so only one "play" may be outstanding. An
asyncio.Lock serializes request_decision() and apply_move(); concurrent
callers queue behind the lock in arrival order.

A request that gives up (timeout, extraction failure, cancellation) leaves
its "play" unanswered, and the worker still answers it later. The bridge
counts such plays and skips one complete object per unanswered play before
taking the next answer, so a late answer is never returned for a newer
request.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Generic

from hivemind_bridge.config import BridgeConfig, get_config
from hivemind_bridge.errors import (
    BridgeClosed,
    ContextGone,
    DecodeFailure,
    ExtractionFailure,
    ResponseTimeout,
    WorkerUnreachable,
)
from hivemind_bridge.extraction import find_json_span
from hivemind_bridge.models import DecisionT, Movement, decode_decision, encode_decision
from hivemind_bridge.protocol import (
    ENCODING,
    SCAN_ENCODING,
    move_command,
    new_game_command,
    play_command,
    preview,
)
from hivemind_bridge.worker import WorkerHandle

logger = logging.getLogger(__name__)


class HiveMindBridge(Generic[DecisionT]):
    """Drives one worker process through the new/play/move protocol.

    One bridge owns exactly one worker for its whole lifetime; nothing else
    may read or write the worker's pipes.

    Usage:
        bridge = HiveMindBridge.start(is_first=True)
        try:
            move = await bridge.request_decision()
            await bridge.apply_move(opponent_move)
        finally:
            bridge.close()

        # or
        async with HiveMindBridge.start(is_first=False) as bridge:
            ...

    Attributes:
        config: The settings the bridge was started with
        decision_model: Pydantic model decisions are decoded into
    """

    def __init__(
        self,
        worker: WorkerHandle,
        config: BridgeConfig,
        decision_model: type[DecisionT],
    ) -> None:
        """Wrap an already-initialized worker.

        Prefer HiveMindBridge.start(), which spawns the worker.

        Args:
            worker: The worker handle this bridge takes ownership of
            config: Timing and extraction settings
            decision_model: Pydantic model to decode decisions into
        """
        self.config = config
        self.decision_model = decision_model
        self._worker = worker
        self._lock = asyncio.Lock()
        self._closed_event = asyncio.Event()
        self._closed = False
        # Plays written whose answer has not been read yet
        self._unanswered_plays = 0
        # Output left unconsumed by a request that ended without an answer
        self._backlog = b""

    @classmethod
    def start(
        cls,
        is_first: bool,
        config: BridgeConfig | None = None,
        *,
        decision_model: type[Any] = Movement,
    ) -> HiveMindBridge[Any]:
        """Spawn a worker and tell it which side moves first.

        Args:
            is_first: Whether the worker's side moves first
            config: Settings to use (defaults to the global config)
            decision_model: Pydantic model to decode decisions into

        Returns:
            A bridge owning the new worker

        Raises:
            SpawnFailure: If the worker cannot be launched or initialized
        """
        config = config if config is not None else get_config()
        worker = WorkerHandle.start(
            config.resolve_executable(),
            new_game_command(is_first),
            args=config.worker_args,
            terminate_timeout=config.terminate_timeout,
        )
        return cls(worker, config, decision_model)

    # =========================================================================
    # State
    # =========================================================================

    @property
    def pid(self) -> int:
        """Process identifier of the worker."""
        return self._worker.pid

    @property
    def is_closed(self) -> bool:
        """Check if close() has been called."""
        return self._closed

    @property
    def is_running(self) -> bool:
        """Check if the worker is alive and the bridge is open."""
        return not self._closed and self._worker.is_running

    def _ensure_usable(self) -> None:
        if self._closed:
            raise BridgeClosed(f"(PID {self.pid}): Bridge is closed")
        returncode = self._worker.returncode
        if returncode is not None:
            raise WorkerUnreachable(
                f"(PID {self.pid}): Worker exited with code {returncode}",
                returncode=returncode,
            )

    # =========================================================================
    # Protocol Operations
    # =========================================================================

    async def request_decision(self, timeout: float | None = None) -> DecisionT:
        """Ask the worker for its next decision.

        Writes "play", waits the response delay, then reads and decodes the
        first JSON object in the worker's output. Completes exactly once,
        with a decision or an error. The worker is never told to abandon a
        computation, and failed requests are not retried. Answers the
        worker writes late for earlier failed requests are skipped.

        Args:
            timeout: Overrides the configured response delay for this call

        Returns:
            The decoded decision

        Raises:
            BridgeClosed: If the bridge was closed before the request started
            WorkerUnreachable: If the worker has exited
            EncodingFailure: If the command cannot be encoded
            WriteFailure: If the command cannot be written
            ContextGone: If the bridge is closed while waiting for output
            ResponseTimeout: If the worker wrote nothing in time
            ExtractionFailure: If no complete JSON object arrived in time
            DecodeFailure: If the JSON does not match the decision model
        """
        async with self._lock:
            self._ensure_usable()
            received = self._take_backlog()

            logger.info("(PID %d): Playing move", self.pid)
            self._worker.write_line(play_command())
            self._unanswered_plays += 1

            loop = asyncio.get_running_loop()
            started = loop.time()
            delay = timeout if timeout is not None else self.config.response_delay
            deadline: float | None = None
            if self.config.max_wait is not None:
                deadline = started + max(delay, self.config.max_wait)

            text: str | None = None
            offset = 0
            try:
                await self._wait(delay)
                received.extend(self._worker.read_available())
                text, offset = self._extract(received, offset)

                while text is None:
                    if self._worker.output_closed:
                        # The last chunk may have landed after the previous read
                        received.extend(self._worker.read_available())
                        text, offset = self._extract(received, offset)
                        break
                    if deadline is None:
                        break
                    remaining = deadline - loop.time()
                    if remaining <= 0:
                        break
                    await self._wait(min(self.config.poll_interval, remaining))
                    received.extend(self._worker.read_available())
                    text, offset = self._extract(received, offset)
            finally:
                if text is None:
                    self._backlog = bytes(received[offset:])

            if text is None:
                raise self._extraction_error(
                    bytes(received[offset:]), loop.time() - started
                )

            try:
                decision = decode_decision(text, self.decision_model)
            except DecodeFailure:
                logger.error("(PID %d): Failed data: `%s`", self.pid, preview(text))
                raise

            logger.info("(PID %d): Received decision `%s`", self.pid, decision)
            return decision

    def play(self, timeout: float | None = None) -> asyncio.Task[DecisionT]:
        """Schedule request_decision() and return its task.

        For callers that compose futures instead of awaiting directly.
        Must be called from a running event loop.
        """
        return asyncio.get_running_loop().create_task(self.request_decision(timeout))

    async def apply_move(self, move: DecisionT) -> None:
        """Tell the worker about a move that has been applied.

        No reply is read. A move the worker considers invalid is ignored by
        the worker without any output, so success here only means the
        command was written.

        Args:
            move: The move to forward

        Raises:
            BridgeClosed: If the bridge has been closed
            WorkerUnreachable: If the worker has exited
            EncodingFailure: If the move cannot be serialized
            WriteFailure: If the command cannot be written
        """
        command = move_command(encode_decision(move))
        async with self._lock:
            self._ensure_usable()
            logger.info("(PID %d): Applying move `%s`", self.pid, move)
            self._worker.write_line(command)

    def close(self) -> None:
        """Terminate the worker.

        Safe to call multiple times. A request waiting for output fails
        with ContextGone.
        """
        if self._closed:
            return
        self._closed = True
        self._closed_event.set()
        self._worker.terminate()

    async def __aenter__(self) -> HiveMindBridge[DecisionT]:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _wait(self, seconds: float) -> None:
        """Sleep, waking early with ContextGone if the bridge is closed."""
        try:
            await asyncio.wait_for(self._closed_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise ContextGone(f"(PID {self.pid}): Bridge closed while awaiting a decision")

    def _take_backlog(self) -> bytearray:
        """Collect output that arrived while no request was reading.

        With every play answered it cannot hold an answer and is dropped.
        Otherwise it is kept, since it may carry the late answers.
        """
        data = self._backlog + self._worker.read_available()
        self._backlog = b""
        if self._unanswered_plays:
            return bytearray(data)
        if data:
            logger.debug(
                "(PID %d): Discarding output received before play: %r",
                self.pid,
                preview(data.decode(ENCODING, errors="replace")),
            )
        return bytearray()

    def _extract(self, received: bytearray, offset: int) -> tuple[str | None, int]:
        """Find the answer to the current play in the output read so far.

        Answers to earlier unanswered plays come first in the stream and are
        skipped, one object per play.

        Returns:
            The answer (or None) and the offset up to which output is consumed
        """
        scan = received.decode(SCAN_ENCODING)
        while True:
            span = find_json_span(
                scan[offset:], string_aware=self.config.string_aware_extraction
            )
            if span is None:
                return None, offset
            start, end = offset + span[0], offset + span[1]
            text = received[start:end].decode(ENCODING, errors="replace")
            offset = end
            self._unanswered_plays -= 1
            if self._unanswered_plays == 0:
                break
            logger.warning(
                "(PID %d): Skipping late answer to an earlier play: `%s`",
                self.pid,
                preview(text),
            )

        trailing = received[end:].decode(ENCODING, errors="replace")
        if trailing.strip():
            logger.debug(
                "(PID %d): Ignoring output after decision: %r",
                self.pid,
                preview(trailing),
            )
        return text, offset

    def _extraction_error(self, raw: bytes, elapsed: float) -> ExtractionFailure:
        if not raw:
            logger.error(
                "(PID %d): Worker wrote nothing within %.2fs", self.pid, elapsed
            )
            return ResponseTimeout(
                f"(PID {self.pid}): Worker wrote nothing within {elapsed:.2f}s",
                raw=raw,
            )
        logger.error(
            "(PID %d): Failed data: `%s`",
            self.pid,
            preview(raw.decode(ENCODING, errors="replace")),
        )
        return ExtractionFailure(
            f"(PID {self.pid}): No complete JSON object in {len(raw)} bytes of output",
            raw=raw,
        )

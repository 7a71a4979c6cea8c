"""Fold canonical stream events into a single RPC result."""

from __future__ import annotations

import logging
from typing import Any, Callable

from sandbox_envd.interpreter import interpret, parse_message
from sandbox_envd.models.events import Exit, Started, StderrChunk, StdoutChunk, StreamUpdate
from sandbox_envd.models.process import RpcResult
from sandbox_envd.protocol import Envelope

logger = logging.getLogger(__name__)

EventSink = Callable[[StreamUpdate], None]


class StreamAccumulator:
    """Running stdout/stderr/exit state for one in-flight call.

    When a sink is given it is called once per interpreted message, in wire
    order, with the output that message contributed.
    """

    def __init__(self, sink: EventSink | None = None) -> None:
        self._sink = sink
        self._events: list[dict[str, Any]] = []
        self._stdout: list[bytes] = []
        self._stderr: list[bytes] = []
        self._exit_code: int | None = None
        self._pid: int | None = None
        self._error: str | None = None
        self._messages = 0
        self._skipped = 0

    @property
    def exit_code(self) -> int | None:
        return self._exit_code

    @property
    def exited(self) -> bool:
        return self._exit_code is not None

    @property
    def messages(self) -> int:
        """Number of envelopes that decoded to a JSON object, trailers included."""
        return self._messages

    @property
    def skipped(self) -> int:
        return self._skipped

    def feed_envelopes(self, envelopes: list[Envelope]) -> None:
        for envelope in envelopes:
            self.feed_envelope(envelope)

    def feed_envelope(self, envelope: Envelope) -> None:
        message = parse_message(envelope.payload)
        if message is None:
            self._skipped += 1
            return
        self._messages += 1
        if envelope.end_stream:
            self._record_trailer(message)
            return
        self.feed_message(message)

    def feed_message(self, message: dict[str, Any]) -> None:
        self._events.append(message)
        stdout: list[bytes] = []
        stderr: list[bytes] = []
        for event in interpret(message):
            if self.exited:
                logger.debug("ignoring %s event received after exit", event.kind.value)
                continue
            if isinstance(event, StdoutChunk):
                stdout.append(event.data)
            elif isinstance(event, StderrChunk):
                stderr.append(event.data)
            elif isinstance(event, Exit):
                self._exit_code = event.exit_code
            elif isinstance(event, Started):
                self._pid = event.pid

        self._stdout.extend(stdout)
        self._stderr.extend(stderr)
        if self._sink is not None:
            self._sink(
                StreamUpdate(
                    stdout=b"".join(stdout) or None,
                    stderr=b"".join(stderr) or None,
                    exit_code=self._exit_code,
                    event=message,
                )
            )

    def _record_trailer(self, message: dict[str, Any]) -> None:
        error = message.get("error")
        if not error:
            return
        if isinstance(error, dict):
            code = str(error.get("code") or "unknown")
            detail = str(error.get("message") or "").strip()
            self._error = f"{code}: {detail}" if detail else code
        else:
            self._error = str(error)
        logger.warning("stream ended with error: %s", self._error)

    def result(self) -> RpcResult:
        return RpcResult(
            events=list(self._events),
            stdout=b"".join(self._stdout),
            stderr=b"".join(self._stderr),
            exit_code=self._exit_code,
            pid=self._pid,
            error=self._error,
        )

"""Map the JSON shapes envd has shipped onto canonical stream events.

The same logical event has been sent several ways: nested under ``event``
with PascalCase or lowercase keys, flat on the message, or wrapped in a
``result`` object. Each shape is handled by one matcher; every matcher runs
against every message and contributes zero or more events.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Any, Callable

from sandbox_envd.exit_codes import normalize_exit_code
from sandbox_envd.models.events import Exit, Started, StderrChunk, StdoutChunk, StreamEvent

logger = logging.getLogger(__name__)

ShapeMatcher = Callable[[dict[str, Any]], list[StreamEvent]]


def parse_message(payload: str) -> dict[str, Any] | None:
    """Decode one envelope payload, unwrapping a legacy ``result`` wrapper."""
    try:
        message = json.loads(payload)
    except ValueError as exc:
        logger.warning("skipping malformed message: %s", exc)
        return None
    if not isinstance(message, dict):
        logger.warning("skipping non-object message of type %s", type(message).__name__)
        return None
    wrapped = message.get("result")
    if isinstance(wrapped, dict):
        return wrapped
    return message


def decode_chunk(value: Any) -> bytes:
    if not value:
        return b""
    if not isinstance(value, str):
        logger.warning("ignoring non-string output chunk of type %s", type(value).__name__)
        return b""
    try:
        # URL-safe chunks are accepted alongside the standard alphabet.
        return base64.b64decode(value + "=" * (-len(value) % 4), altchars=b"-_")
    except (binascii.Error, ValueError):
        logger.warning("output chunk is not base64, passing it through as text")
        return value.encode("utf-8")


def _first_present(obj: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if obj.get(key) is not None:
            return obj[key]
    return None


def _variant(message: dict[str, Any], *names: str) -> dict[str, Any] | None:
    event = message.get("event")
    if not isinstance(event, dict):
        return None
    value = _first_present(event, *names)
    return value if isinstance(value, dict) else None


def _output_events(container: dict[str, Any]) -> list[StreamEvent]:
    out: list[StreamEvent] = []
    stdout = decode_chunk(container.get("stdout"))
    if stdout:
        out.append(StdoutChunk(data=stdout))
    stderr = decode_chunk(container.get("stderr"))
    if stderr:
        out.append(StderrChunk(data=stderr))
    return out


def _match_start(message: dict[str, Any]) -> list[StreamEvent]:
    start = _variant(message, "Start", "start")
    if start is None:
        return []
    try:
        return [Started(pid=int(start["pid"]))]
    except (KeyError, TypeError, ValueError):
        return []


def _match_nested_data(message: dict[str, Any]) -> list[StreamEvent]:
    data = _variant(message, "Data", "data")
    return _output_events(data) if data is not None else []


def _match_legacy_streams(message: dict[str, Any]) -> list[StreamEvent]:
    out: list[StreamEvent] = []
    stdout = _variant(message, "Stdout", "stdout")
    if stdout is not None:
        chunk = decode_chunk(stdout.get("data"))
        if chunk:
            out.append(StdoutChunk(data=chunk))
    stderr = _variant(message, "Stderr", "stderr")
    if stderr is not None:
        chunk = decode_chunk(stderr.get("data"))
        if chunk:
            out.append(StderrChunk(data=chunk))
    return out


def _match_flat_output(message: dict[str, Any]) -> list[StreamEvent]:
    return _output_events(message)


def _match_nested_end(message: dict[str, Any]) -> list[StreamEvent]:
    end = _variant(message, "End", "end", "Exit", "exit")
    if end is None:
        return []
    return [Exit(exit_code=normalize_exit_code(_first_present(end, "exitCode", "exit_code", "status")))]


def _match_flat_exit(message: dict[str, Any]) -> list[StreamEvent]:
    value = _first_present(message, "exitCode", "exit_code")
    if value is None:
        return []
    return [Exit(exit_code=normalize_exit_code(value))]


# Output matchers run before exit matchers so a message carrying both yields
# its output ahead of the exit event.
SHAPE_MATCHERS: tuple[ShapeMatcher, ...] = (
    _match_start,
    _match_nested_data,
    _match_legacy_streams,
    _match_flat_output,
    _match_nested_end,
    _match_flat_exit,
)


def interpret(message: dict[str, Any]) -> list[StreamEvent]:
    """Return the canonical events carried by one decoded message."""
    events: list[StreamEvent] = []
    for matcher in SHAPE_MATCHERS:
        events.extend(matcher(message))
    return events

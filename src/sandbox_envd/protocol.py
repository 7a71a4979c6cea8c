"""Connect envelope framing shared by the buffered and streaming transports.

Every message on the wire is ``flags (1 byte) | length (uint32, big-endian) |
payload``. The payload is UTF-8 JSON.
"""

from __future__ import annotations

import gzip
import json
import logging
import struct
from typing import Any

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

CONTENT_TYPE = "application/connect+json"
HEADER_SIZE = 5
FLAG_COMPRESSED = 0x01
FLAG_END_STREAM = 0x02

_HEADER = struct.Struct("!BI")


class Envelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    flags: int = 0
    payload: str

    @property
    def compressed(self) -> bool:
        return bool(self.flags & FLAG_COMPRESSED)

    @property
    def end_stream(self) -> bool:
        return bool(self.flags & FLAG_END_STREAM)


def encode_envelope(message: dict[str, Any] | str) -> bytes:
    """Frame one JSON message. Client envelopes are never compressed."""
    text = message if isinstance(message, str) else json.dumps(message, separators=(",", ":"))
    data = text.encode("utf-8")
    return _HEADER.pack(0, len(data)) + data


def decode_all(buffer: bytes) -> tuple[list[Envelope], bytes]:
    """Extract every complete envelope from ``buffer``.

    Returns the decoded envelopes and the unread remainder. A header whose
    payload has not fully arrived stays in the remainder so the next call can
    read it again once more bytes are appended.
    """
    envelopes, consumed = _scan(buffer)
    return envelopes, bytes(buffer[consumed:])


def _scan(buffer: bytes | bytearray) -> tuple[list[Envelope], int]:
    envelopes: list[Envelope] = []
    offset = 0
    total = len(buffer)
    while total - offset >= HEADER_SIZE:
        flags, length = _HEADER.unpack_from(buffer, offset)
        end = offset + HEADER_SIZE + length
        if end > total:
            break
        raw = bytes(buffer[offset + HEADER_SIZE : end])
        offset = end
        payload = _decode_payload(flags, raw)
        if payload:
            envelopes.append(Envelope(flags=flags, payload=payload))
    return envelopes, offset


def _decode_payload(flags: int, raw: bytes) -> str:
    if raw and flags & FLAG_COMPRESSED:
        try:
            raw = gzip.decompress(raw)
        except (OSError, EOFError) as exc:
            logger.warning("dropping compressed envelope that failed to decompress: %s", exc)
            return ""
    return raw.decode("utf-8", errors="replace")


class EnvelopeDecoder:
    """Incremental decoder holding the bytes of the next partial envelope.

    Chunks are appended in place; only consumed bytes are dropped.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        return len(self._buffer)

    def feed(self, chunk: bytes) -> list[Envelope]:
        if chunk:
            self._buffer.extend(chunk)
        envelopes, consumed = _scan(self._buffer)
        if consumed:
            del self._buffer[:consumed]
        return envelopes


def split_messages(body: bytes) -> list[Envelope]:
    """Split a fully buffered response body into messages.

    Envelope framing is tried first. Bodies that are not framed are read as
    one JSON document, then as newline-delimited JSON.
    """
    if not body:
        return []
    if body[0] in (0, FLAG_COMPRESSED, FLAG_END_STREAM) and len(body) >= HEADER_SIZE:
        envelopes, remainder = decode_all(body)
        if envelopes:
            if remainder:
                logger.warning("discarding %d trailing bytes of a truncated envelope", len(remainder))
            return envelopes

    text = body.decode("utf-8", errors="replace").strip()
    if not text:
        return []
    try:
        json.loads(text)
    except ValueError:
        return [Envelope(payload=line.strip()) for line in text.splitlines() if line.strip()]
    return [Envelope(payload=text)]

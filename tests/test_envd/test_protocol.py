from __future__ import annotations

import gzip
import json
import struct

import pytest

from sandbox_envd.protocol import (
    FLAG_COMPRESSED,
    FLAG_END_STREAM,
    EnvelopeDecoder,
    decode_all,
    encode_envelope,
    split_messages,
)
from wire import frame


def test_encode_envelope_header_layout() -> None:
    body = encode_envelope({"process": {"cmd": "ls"}})
    payload = b'{"process":{"cmd":"ls"}}'

    assert body[0] == 0
    assert struct.unpack("!I", body[1:5])[0] == len(payload)
    assert body[5:] == payload


def test_encode_envelope_counts_utf8_bytes_not_characters() -> None:
    body = encode_envelope('{"msg":"héllo"}')
    assert struct.unpack("!I", body[1:5])[0] == len('{"msg":"héllo"}'.encode("utf-8"))


def test_decode_all_roundtrip_leaves_no_remainder() -> None:
    message = {"event": {"Data": {"stdout": "aGVsbG8="}}}
    envelopes, remainder = decode_all(encode_envelope(message))

    assert [json.loads(env.payload) for env in envelopes] == [message]
    assert remainder == b""


def test_decode_all_keeps_short_header_as_remainder() -> None:
    body = frame({"a": 1})
    envelopes, remainder = decode_all(body[:3])

    assert envelopes == []
    assert remainder == body[:3]


def test_decode_all_does_not_consume_header_of_incomplete_payload() -> None:
    first = frame({"a": 1})
    second = frame({"b": 2})
    buffer = first + second[:-2]

    envelopes, remainder = decode_all(buffer)

    assert [env.payload for env in envelopes] == ['{"a":1}']
    assert remainder == second[:-2]

    envelopes, remainder = decode_all(remainder + second[-2:])
    assert [env.payload for env in envelopes] == ['{"b":2}']
    assert remainder == b""


def test_decode_all_skips_empty_payload() -> None:
    body = b"\x00\x00\x00\x00\x00" + frame({"a": 1})
    envelopes, remainder = decode_all(body)

    assert [env.payload for env in envelopes] == ['{"a":1}']
    assert remainder == b""


def test_decode_all_reads_flags() -> None:
    trailer = json.dumps({"error": {"code": "internal"}}).encode()
    body = struct.pack("!BI", FLAG_END_STREAM, len(trailer)) + trailer
    envelopes, _ = decode_all(body)

    assert envelopes[0].end_stream is True
    assert envelopes[0].compressed is False


def test_decode_all_decompresses_gzip_payload() -> None:
    packed = gzip.compress(b'{"stdout":"aGk="}')
    body = struct.pack("!BI", FLAG_COMPRESSED, len(packed)) + packed
    envelopes, _ = decode_all(body)

    assert envelopes[0].compressed is True
    assert envelopes[0].payload == '{"stdout":"aGk="}'


def test_decode_all_drops_corrupt_compressed_payload() -> None:
    body = struct.pack("!BI", FLAG_COMPRESSED, 4) + b"nope" + frame({"a": 1})
    envelopes, remainder = decode_all(body)

    assert [env.payload for env in envelopes] == ['{"a":1}']
    assert remainder == b""


@pytest.mark.parametrize("cuts", [[1], [4, 5, 6], [2, 9, 17, 18], list(range(1, 60, 3))])
def test_fragmented_feed_matches_single_decode(cuts: list[int]) -> None:
    body = frame({"a": 1}, {"event": {"data": {"stdout": "eA=="}}}, {"event": {"end": {"exitCode": 3}}})
    expected, _ = decode_all(body)

    decoder = EnvelopeDecoder()
    collected = []
    start = 0
    for cut in [c for c in cuts if c < len(body)] + [len(body)]:
        collected.extend(decoder.feed(body[start:cut]))
        start = cut

    assert [env.payload for env in collected] == [env.payload for env in expected]
    assert len(collected) == 3
    assert decoder.pending == 0


def test_byte_at_a_time_feed_matches_single_decode() -> None:
    body = frame(*({"n": i} for i in range(5)))
    decoder = EnvelopeDecoder()
    collected = []
    for index in range(len(body)):
        collected.extend(decoder.feed(body[index : index + 1]))

    assert [json.loads(env.payload)["n"] for env in collected] == [0, 1, 2, 3, 4]


def test_large_envelope_in_many_chunks_keeps_only_pending_bytes() -> None:
    big = "x" * (1 << 20)
    body = frame({"stdout": big}, {"n": 1})
    first_len = len(frame({"stdout": big}))
    decoder = EnvelopeDecoder()
    collected = []
    for start in range(0, len(body), 4096):
        collected.extend(decoder.feed(body[start : start + 4096]))
        if len(collected) == 1 and start + 4096 < len(body):
            assert decoder.pending == min(len(body), start + 4096) - first_len

    assert [json.loads(env.payload) for env in collected] == [{"stdout": big}, {"n": 1}]
    assert decoder.pending == 0


def test_feed_with_empty_chunk_returns_nothing() -> None:
    decoder = EnvelopeDecoder()
    assert decoder.feed(b"") == []
    assert decoder.feed(frame({"a": 1})[:3]) == []
    assert decoder.pending == 3


def test_split_messages_prefers_envelopes() -> None:
    body = frame({"a": 1}, {"b": 2})
    assert [env.payload for env in split_messages(body)] == ['{"a":1}', '{"b":2}']


def test_split_messages_falls_back_to_whole_json_body() -> None:
    body = json.dumps({"processes": [{"pid": 1}]}, indent=2).encode()
    messages = split_messages(body)

    assert len(messages) == 1
    assert json.loads(messages[0].payload) == {"processes": [{"pid": 1}]}


def test_split_messages_falls_back_to_ndjson() -> None:
    body = b'{"stdout":"aGk="}\n\n{"exitCode":0}\n'
    assert [env.payload for env in split_messages(body)] == ['{"stdout":"aGk="}', '{"exitCode":0}']


def test_split_messages_empty_body() -> None:
    assert split_messages(b"") == []

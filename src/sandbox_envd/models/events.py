"""Canonical process stream events."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EventKind(str, Enum):
    STDOUT = "stdout"
    STDERR = "stderr"
    EXIT = "exit"
    START = "start"


class StreamEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: EventKind


class StdoutChunk(StreamEvent):
    kind: EventKind = EventKind.STDOUT
    data: bytes


class StderrChunk(StreamEvent):
    kind: EventKind = EventKind.STDERR
    data: bytes


class Exit(StreamEvent):
    kind: EventKind = EventKind.EXIT
    exit_code: int


class Started(StreamEvent):
    kind: EventKind = EventKind.START
    pid: int


class StreamUpdate(BaseModel):
    """What a streaming sink receives for each wire message.

    ``stdout`` and ``stderr`` hold only the bytes this message contributed;
    ``exit_code`` is the exit code observed so far, if any.
    """

    model_config = ConfigDict(frozen=True)

    stdout: bytes | None = None
    stderr: bytes | None = None
    exit_code: int | None = None
    event: dict[str, Any] = Field(default_factory=dict)

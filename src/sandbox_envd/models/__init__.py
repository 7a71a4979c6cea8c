"""Typed stream and process models."""

from sandbox_envd.models.events import EventKind, Exit, Started, StderrChunk, StdoutChunk, StreamEvent, StreamUpdate
from sandbox_envd.models.process import ProcessResult, ProcessSpec, RpcResult

__all__ = [
    "EventKind",
    "Exit",
    "ProcessResult",
    "ProcessSpec",
    "RpcResult",
    "Started",
    "StderrChunk",
    "StdoutChunk",
    "StreamEvent",
    "StreamUpdate",
]

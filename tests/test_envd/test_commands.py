from __future__ import annotations

from typing import Iterator

import httpx
import pytest

from sandbox_envd.commands import Commands, split_command
from sandbox_envd.exceptions import EnvdError, ErrorCode
from sandbox_envd.models.events import StreamUpdate
from sandbox_envd.transport.http import RpcTransport
from sandbox_envd.transport.retry import RetryPolicy
from wire import data_event, end_event, frame, request_json


class FakeEnvd:
    """Records requests and replays a canned response body."""

    def __init__(self, body: bytes, *, chunk_size: int | None = None, status: int = 200) -> None:
        self.body = body
        self.chunk_size = chunk_size
        self.status = status
        self.requests: list[tuple[str, dict[str, object]]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append((request.url.path, request_json(request.content)))
        if self.chunk_size is None:
            return httpx.Response(self.status, content=self.body)
        return httpx.Response(self.status, content=self._chunks())

    def _chunks(self) -> Iterator[bytes]:
        for start in range(0, len(self.body), self.chunk_size or 1):
            yield self.body[start : start + (self.chunk_size or 1)]


def _commands(fake: FakeEnvd, **kwargs: object) -> Commands:
    transport = RpcTransport(
        "https://49983-sbx.example.test",
        retry_policy=RetryPolicy(sleep=lambda _delay: None),
        transport=httpx.MockTransport(fake),
    )
    return Commands(transport, **kwargs)  # type: ignore[arg-type]


ECHO_WIRE = frame({"event": {"start": {"pid": 3}}}, data_event("hello\n"), end_event(0))


@pytest.mark.parametrize(
    ("command", "expected"),
    [
        ("echo hello", ("/bin/bash", ["-c", "echo hello"])),
        ("  ls -la | wc -l  ", ("/bin/bash", ["-c", "ls -la | wc -l"])),
        ("pwd", ("pwd", [])),
        ("/usr/bin/env FOO=1 'my arg'", ("/usr/bin/env", ["FOO=1", "my arg"])),
        ('/bin/echo "a b" c\\ d', ("/bin/echo", ["a b", "c d"])),
    ],
)
def test_split_command(command: str, expected: tuple[str, list[str]]) -> None:
    assert split_command(command) == expected


def test_split_command_custom_shell() -> None:
    assert split_command("echo hi", shell="/bin/sh") == ("/bin/sh", ["-c", "echo hi"])


@pytest.mark.parametrize("command", ["", "   "])
def test_split_command_rejects_empty(command: str) -> None:
    with pytest.raises(EnvdError) as exc:
        split_command(command)
    assert exc.value.code == ErrorCode.INVALID_ARGS


def test_split_command_rejects_unbalanced_quotes() -> None:
    with pytest.raises(EnvdError) as exc:
        split_command("/bin/echo 'oops")
    assert exc.value.code == ErrorCode.INVALID_ARGS


def test_run_echo_hello() -> None:
    fake = FakeEnvd(ECHO_WIRE)
    result = _commands(fake).run("echo hello")

    assert result.stdout == b"hello\n"
    assert result.stderr == b""
    assert result.exit_code == 0
    assert result.success is True
    assert result.pid == 3


def test_run_builds_start_request() -> None:
    fake = FakeEnvd(ECHO_WIRE)
    _commands(fake).run("echo hello", cwd="/work", envs={"A": "1"}, timeout=10)

    path, body = fake.requests[0]
    assert path == "/process.Process/Start"
    assert body == {
        "process": {"cmd": "/bin/bash", "args": ["-c", "echo hello"], "envs": {"A": "1"}, "cwd": "/work"},
        "timeout": 10_000,
    }


def test_run_uses_default_timeout_and_omits_empty_envs() -> None:
    fake = FakeEnvd(ECHO_WIRE)
    _commands(fake, default_timeout=60).run("pwd")

    _, body = fake.requests[0]
    assert body == {"process": {"cmd": "pwd", "args": []}, "timeout": 60_000}


def test_run_streams_callbacks_per_chunk() -> None:
    wire = frame(data_event("a"), data_event(stderr="e1"), data_event("b"), end_event(1))
    fake = FakeEnvd(wire, chunk_size=5)
    stdout: list[bytes] = []
    stderr: list[bytes] = []
    updates: list[StreamUpdate] = []

    result = _commands(fake).run(
        "make test",
        on_stdout=stdout.append,
        on_stderr=stderr.append,
        on_event=updates.append,
    )

    assert stdout == [b"a", b"b"]
    assert stderr == [b"e1"]
    assert len(updates) == 4
    assert result.stdout == b"ab"
    assert result.exit_code == 1
    assert result.success is False


def test_buffered_mode_invokes_callbacks_once_at_end() -> None:
    wire = frame(data_event("a"), data_event("b", "warn"), end_event(0))
    fake = FakeEnvd(wire)
    stdout: list[bytes] = []
    stderr: list[bytes] = []
    updates: list[StreamUpdate] = []

    result = _commands(fake).run(
        "make",
        on_stdout=stdout.append,
        on_stderr=stderr.append,
        on_event=updates.append,
        stream=False,
    )

    assert stdout == [b"ab"]
    assert stderr == [b"warn"]
    assert [(u.stdout, u.stderr, u.exit_code) for u in updates] == [(b"ab", b"warn", 0)]
    assert result.stdout == b"ab"


def test_buffered_mode_skips_callbacks_for_empty_output() -> None:
    fake = FakeEnvd(frame(end_event(0)))
    stdout: list[bytes] = []

    _commands(fake).run("true", on_stdout=stdout.append, stream=False)

    assert stdout == []


def test_stream_and_buffered_results_match() -> None:
    wire = frame(*(data_event(f"line {i}\n") for i in range(20)), data_event(stderr="done\n"), end_event(7))
    buffered = _commands(FakeEnvd(wire)).run("seq 20")
    streamed = _commands(FakeEnvd(wire, chunk_size=3)).run("seq 20", stream=True)

    assert (buffered.stdout, buffered.stderr, buffered.exit_code) == (streamed.stdout, streamed.stderr, streamed.exit_code)


def test_kill_sends_signal() -> None:
    fake = FakeEnvd(frame({}))
    assert _commands(fake).kill(42) is True
    assert _commands(fake).kill(42, signal=15) is True

    assert fake.requests == [
        ("/process.Process/SendSignal", {"process": {"pid": 42}, "signal": 9}),
        ("/process.Process/SendSignal", {"process": {"pid": 42}, "signal": 15}),
    ]


def test_list_reads_processes() -> None:
    processes = [{"pid": 1, "config": {"cmd": "/bin/bash", "args": ["-l"]}}, {"pid": 2, "tag": "srv"}]
    fake = FakeEnvd(frame({"processes": processes}))

    assert _commands(fake).list() == processes
    assert fake.requests == [("/process.Process/List", {})]


def test_list_without_processes_returns_empty() -> None:
    assert _commands(FakeEnvd(frame({}))).list() == []


def test_not_found_propagates() -> None:
    fake = FakeEnvd(b'{"message":"sandbox not found"}', status=404)
    with pytest.raises(EnvdError) as exc:
        _commands(fake).run("ls")
    assert exc.value.code == ErrorCode.NOT_FOUND
    assert exc.value.message == "sandbox not found"

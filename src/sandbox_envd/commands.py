"""Run and manage processes inside a sandbox over the envd process service."""

from __future__ import annotations

import logging
import shlex
from typing import Any, Callable

from sandbox_envd.accumulator import EventSink
from sandbox_envd.exceptions import EnvdError, ErrorCode
from sandbox_envd.models.events import StreamUpdate
from sandbox_envd.models.process import ProcessResult, ProcessSpec
from sandbox_envd.transport.http import RpcTransport

logger = logging.getLogger(__name__)

PROCESS_SERVICE = "process.Process"
DEFAULT_SHELL = "/bin/bash"
DEFAULT_COMMAND_TIMEOUT_SECONDS = 300
TIMEOUT_GRACE_SECONDS = 30
SIGKILL = 9

OutputCallback = Callable[[bytes], None]


def split_command(command: str, *, shell: str = DEFAULT_SHELL) -> tuple[str, list[str]]:
    """Split a command line into an executable and its arguments.

    Lines containing a space are handed to ``shell -c`` unless they start with
    an absolute path, in which case they are split with shell-word rules.
    """
    line = command.strip()
    if not line:
        raise EnvdError(ErrorCode.INVALID_ARGS, "command must not be empty")
    if " " in line and not line.startswith("/"):
        return shell, ["-c", line]
    try:
        parts = shlex.split(line)
    except ValueError as exc:
        raise EnvdError(ErrorCode.INVALID_ARGS, f"cannot parse command: {exc}", details={"command": line}) from exc
    if not parts:
        raise EnvdError(ErrorCode.INVALID_ARGS, "command must not be empty")
    return parts[0], parts[1:]


class Commands:
    """Process operations bound to one sandbox's envd transport."""

    def __init__(
        self,
        transport: RpcTransport,
        *,
        shell: str = DEFAULT_SHELL,
        default_timeout: int = DEFAULT_COMMAND_TIMEOUT_SECONDS,
        timeout_grace: int = TIMEOUT_GRACE_SECONDS,
    ) -> None:
        self._transport = transport
        self._shell = shell
        self._default_timeout = default_timeout
        self._timeout_grace = timeout_grace

    def build_spec(
        self,
        command: str,
        *,
        cwd: str | None = None,
        envs: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> ProcessSpec:
        executable, args = split_command(command, shell=self._shell)
        return ProcessSpec(
            executable=executable,
            args=tuple(args),
            envs=envs or {},
            cwd=cwd,
            timeout_seconds=self._default_timeout if timeout is None else timeout,
        )

    def run(
        self,
        command: str,
        *,
        cwd: str | None = None,
        envs: dict[str, str] | None = None,
        timeout: int | None = None,
        on_stdout: OutputCallback | None = None,
        on_stderr: OutputCallback | None = None,
        on_event: EventSink | None = None,
        stream: bool | None = None,
    ) -> ProcessResult:
        """Run ``command`` to completion and return its result.

        Output is streamed to the callbacks as it arrives whenever any
        callback is given, unless ``stream=False``. In buffered mode the
        output callbacks fire once with the full output.
        """
        spec = self.build_spec(command, cwd=cwd, envs=envs, timeout=timeout)
        has_callbacks = any(cb is not None for cb in (on_stdout, on_stderr, on_event))
        streaming = has_callbacks if stream is None else stream
        rpc_timeout = float((spec.timeout_seconds or self._default_timeout) + self._timeout_grace)

        logger.info("running %s %s", spec.executable, " ".join(shlex.quote(arg) for arg in spec.args))
        sink = _fan_out(on_stdout, on_stderr, on_event) if streaming else None
        rpc = self._transport.call(PROCESS_SERVICE, "Start", spec.to_request(), timeout=rpc_timeout, on_event=sink)
        result = ProcessResult.from_rpc(rpc)

        if not streaming:
            if on_stdout is not None and result.stdout:
                on_stdout(result.stdout)
            if on_stderr is not None and result.stderr:
                on_stderr(result.stderr)
            if on_event is not None and (result.stdout or result.stderr):
                on_event(StreamUpdate(stdout=result.stdout or None, stderr=result.stderr or None, exit_code=result.exit_code))
        logger.info("process exited with %d (stdout=%d bytes, stderr=%d bytes)", result.exit_code, len(result.stdout), len(result.stderr))
        return result

    def kill(self, pid: int, *, signal: int = SIGKILL) -> bool:
        """Send ``signal`` to ``pid``. Returns True once the server accepts it."""
        self._transport.call(PROCESS_SERVICE, "SendSignal", {"process": {"pid": pid}, "signal": signal})
        return True

    def list(self) -> list[dict[str, Any]]:
        """Return the processes envd is currently tracking."""
        rpc = self._transport.call(PROCESS_SERVICE, "List", {})
        processes = rpc.first("processes")
        if not isinstance(processes, list):
            return []
        return [item for item in processes if isinstance(item, dict)]


def _fan_out(
    on_stdout: OutputCallback | None,
    on_stderr: OutputCallback | None,
    on_event: EventSink | None,
) -> EventSink:
    def _sink(update: StreamUpdate) -> None:
        if on_stdout is not None and update.stdout:
            on_stdout(update.stdout)
        if on_stderr is not None and update.stderr:
            on_stderr(update.stderr)
        if on_event is not None:
            on_event(update)

    return _sink

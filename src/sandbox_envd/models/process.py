"""Process request and result models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ProcessSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    executable: str
    args: tuple[str, ...] = ()
    envs: dict[str, str] = Field(default_factory=dict)
    cwd: str | None = None
    timeout_seconds: int | None = None

    def to_request(self) -> dict[str, Any]:
        """Render the `process.Process/Start` request body."""
        process: dict[str, Any] = {"cmd": self.executable, "args": list(self.args)}
        if self.envs:
            process["envs"] = {str(k): str(v) for k, v in self.envs.items()}
        if self.cwd:
            process["cwd"] = self.cwd
        body: dict[str, Any] = {"process": process}
        if self.timeout_seconds is not None:
            body["timeout"] = self.timeout_seconds * 1000
        return body


class RpcResult(BaseModel):
    """Accumulated state of one RPC response stream."""

    events: list[dict[str, Any]] = Field(default_factory=list)
    stdout: bytes = b""
    stderr: bytes = b""
    exit_code: int | None = None
    pid: int | None = None
    error: str | None = None

    def first(self, key: str) -> Any:
        for event in self.events:
            if key in event:
                return event[key]
        return None


class ProcessResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    stdout: bytes = b""
    stderr: bytes = b""
    exit_code: int = 0
    pid: int | None = None
    error: str | None = None

    @classmethod
    def from_rpc(cls, result: RpcResult) -> "ProcessResult":
        return cls(
            stdout=result.stdout,
            stderr=result.stderr,
            exit_code=0 if result.exit_code is None else result.exit_code,
            pid=result.pid,
            error=result.error,
        )

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and self.error is None

    @property
    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    @property
    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")

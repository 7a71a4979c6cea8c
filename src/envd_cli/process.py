"""Process commands: run, kill, ps."""

from __future__ import annotations

import typer

from envd_cli._common import build_typer, get_state, handle_error, parse_env_pairs, print_output
from sandbox_envd.client import EnvdClient
from sandbox_envd.exceptions import EnvdError

app = build_typer("Run and manage processes inside a sandbox.")


def _client(ctx: typer.Context, sandbox_id: str) -> EnvdClient:
    return EnvdClient(sandbox_id, config=get_state(ctx).config)


def _write_stdout(chunk: bytes) -> None:
    typer.echo(chunk, nl=False)


def _write_stderr(chunk: bytes) -> None:
    typer.echo(chunk, nl=False, err=True)


@app.command("run", help="Run a command in the sandbox and exit with its exit code.")
def run(
    ctx: typer.Context,
    sandbox_id: str = typer.Argument(..., help="Sandbox ID."),
    command: str = typer.Argument(..., help="Command line, e.g. 'ls -la /tmp'."),
    cwd: str | None = typer.Option(None, "--cwd", help="Working directory inside the sandbox."),
    env: list[str] = typer.Option([], "--env", "-e", help="Environment variable as KEY=VALUE (repeatable)."),
    timeout: int | None = typer.Option(None, "--timeout", min=1, help="Command timeout in seconds."),
    no_stream: bool = typer.Option(False, "--no-stream", help="Wait for completion before printing output."),
) -> None:
    state = get_state(ctx)
    json_output = state.json_requested
    envs = parse_env_pairs(env)
    try:
        client = _client(ctx, sandbox_id)
        if json_output:
            result = client.commands.run(command, cwd=cwd, envs=envs, timeout=timeout)
        else:
            result = client.commands.run(
                command,
                cwd=cwd,
                envs=envs,
                timeout=timeout,
                on_stdout=_write_stdout,
                on_stderr=_write_stderr,
                stream=not no_stream,
            )
    except EnvdError as exc:
        handle_error(exc, json_output=json_output)
        return

    if json_output:
        print_output(
            {
                "ok": result.success,
                "exit_code": result.exit_code,
                "pid": result.pid,
                "stdout": result.stdout_text,
                "stderr": result.stderr_text,
                "error": result.error,
            },
            json_output=True,
        )
    if result.exit_code != 0:
        raise typer.Exit(code=result.exit_code)


@app.command("kill", help="Send a signal to a sandbox process (SIGKILL by default).")
def kill(
    ctx: typer.Context,
    sandbox_id: str = typer.Argument(..., help="Sandbox ID."),
    pid: int = typer.Argument(..., min=1, help="Process ID inside the sandbox."),
    signal: int = typer.Option(9, "--signal", "-s", min=1, help="Signal number."),
) -> None:
    state = get_state(ctx)
    try:
        ok = _client(ctx, sandbox_id).commands.kill(pid, signal=signal)
        print_output({"pid": pid, "signal": signal, "ok": ok}, json_output=state.json_output, title="Signal")
    except EnvdError as exc:
        handle_error(exc, json_output=state.json_output)


@app.command("ps", help="List processes running in the sandbox.")
def ps(
    ctx: typer.Context,
    sandbox_id: str = typer.Argument(..., help="Sandbox ID."),
) -> None:
    state = get_state(ctx)
    try:
        processes = _client(ctx, sandbox_id).commands.list()
        rows = [_process_row(item) for item in processes]
        print_output(rows if not state.json_output else processes, json_output=state.json_output, title="Processes")
    except EnvdError as exc:
        handle_error(exc, json_output=state.json_output)


def _process_row(item: dict) -> dict[str, object]:
    config = item.get("config") if isinstance(item.get("config"), dict) else {}
    args = config.get("args") or []
    return {
        "pid": item.get("pid", ""),
        "tag": item.get("tag") or "",
        "cmd": " ".join([str(config.get("cmd") or "")] + [str(arg) for arg in args]).strip(),
        "cwd": config.get("cwd") or "",
    }

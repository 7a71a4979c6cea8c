"""Shared CLI context, rendering, and error helpers."""

from __future__ import annotations

from difflib import get_close_matches
import json
import logging
import sys
from dataclasses import dataclass
from typing import Any

import click
import typer
from typer.core import TyperGroup
from rich.console import Console
from rich.table import Table

from sandbox_envd.config import EnvdConfig, load_config
from sandbox_envd.exceptions import EnvdError, ErrorCode

HELP_CONTEXT_SETTINGS = {
    "help_option_names": ["-h", "--help"],
    "max_content_width": 110,
}

__all__ = [
    "CLIState",
    "build_typer",
    "configure_logging",
    "get_state",
    "handle_error",
    "load_config",
    "parse_env_pairs",
    "print_output",
    "resolve_json_mode",
]


@dataclass
class CLIState:
    config: EnvdConfig
    # rendering mode for tables and errors; JSON when --json or stdout is piped
    json_output: bool
    # --json as given; `run` streams raw process output unless this is set
    json_requested: bool = False


class SuggestionGroup(TyperGroup):
    """Click command group that appends close-match suggestions for unknown commands."""

    def resolve_command(
        self,
        ctx: click.Context,
        args: list[str],
    ) -> tuple[str | None, click.Command | None, list[str]]:
        try:
            return super().resolve_command(ctx, args)
        except click.UsageError as exc:
            if args:
                attempted = args[0]
                matches = get_close_matches(attempted, list(self.list_commands(ctx)), n=3, cutoff=0.45)
                if matches:
                    exc.message = f"{exc.message}\n\nDid you mean: {', '.join(matches)}"
            raise


def build_typer(help_text: str) -> typer.Typer:
    return typer.Typer(
        help=help_text,
        cls=SuggestionGroup,
        no_args_is_help=True,
        rich_markup_mode="markdown",
        context_settings=HELP_CONTEXT_SETTINGS,
    )


def resolve_json_mode(json_flag: bool) -> bool:
    """Tables switch to JSON when stdout is not a terminal."""
    return json_flag or not sys.stdout.isatty()


def configure_logging(cfg: EnvdConfig) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if cfg.logging.log_file is not None:
        cfg.logging.log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(cfg.logging.log_file))
    logging.basicConfig(
        level=getattr(logging, cfg.logging.level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        handlers=handlers,
    )


def get_state(ctx: typer.Context) -> CLIState:
    value = ctx.obj
    if not isinstance(value, CLIState):
        raise RuntimeError("CLI context not initialized")
    return value


def parse_env_pairs(values: list[str]) -> dict[str, str]:
    envs: dict[str, str] = {}
    for raw in values:
        key, sep, value = raw.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"expected KEY=VALUE, got {raw!r}")
        envs[key.strip()] = value
    return envs


def print_output(data: Any, *, json_output: bool, title: str | None = None) -> None:
    if json_output:
        print(json.dumps(data, default=str, separators=(",", ":")))
        return

    console = Console()

    if isinstance(data, list):
        if not data:
            console.print("(empty)")
            return
        if all(isinstance(item, dict) for item in data):
            keys: list[str] = []
            seen: set[str] = set()
            for item in data:
                for key in item.keys():
                    if key in seen:
                        continue
                    seen.add(key)
                    keys.append(key)
            table = Table(title=title)
            for key in keys:
                table.add_column(str(key))
            for item in data:
                table.add_row(*[str(item.get(k, "")) for k in keys])
            console.print(table)
            return

    if isinstance(data, dict) and all(not isinstance(v, (dict, list)) for v in data.values()):
        table = Table(title=title)
        table.add_column("Key")
        table.add_column("Value")
        for key, value in data.items():
            table.add_row(str(key), str(value))
        console.print(table)
        return

    console.print_json(json.dumps(data, default=str, indent=2))


def handle_error(exc: EnvdError, *, json_output: bool) -> None:
    suggestion = exc.suggestion or _default_suggestion(exc.code)
    error_payload = exc.to_error_payload()
    if suggestion and "suggestion" not in error_payload:
        error_payload["suggestion"] = suggestion
    payload = {"ok": False, "error": error_payload}
    if json_output:
        print(json.dumps(payload, default=str, separators=(",", ":")))
    else:
        console = Console(stderr=True)
        console.print(f"[red]{exc.code.value}[/red]: {exc.message}")
        if exc.details:
            console.print_json(json.dumps(exc.details, default=str, indent=2))
        if suggestion:
            console.print(f"Suggestion: {suggestion}")
    raise typer.Exit(code=exc.exit_code)


def _default_suggestion(code: ErrorCode) -> str | None:
    suggestions = {
        ErrorCode.AUTHENTICATION_FAILED: "Check ENVD_API_KEY and the sandbox access token.",
        ErrorCode.NOT_FOUND: "Verify the sandbox id and that the sandbox is still running.",
        ErrorCode.INVALID_ARGS: "Run `envd --help` or `<command> --help` for valid usage.",
        ErrorCode.TIMEOUT: "Retry with a larger `--timeout`.",
        ErrorCode.RATE_LIMITED: "Retry with lower request frequency.",
    }
    return suggestions.get(code)

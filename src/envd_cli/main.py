"""Root Typer app and command registration."""

from __future__ import annotations

from pathlib import Path

import typer

from envd_cli import process
from envd_cli._common import CLIState, build_typer, configure_logging, load_config, resolve_json_mode

app = build_typer(
    """Command-line client for the envd process service of a sandbox.

    Examples:
      envd run sbx_123 "ls -la /tmp"
      envd run sbx_123 "npm test" --cwd /app --env CI=1
      envd ps sbx_123
      envd kill sbx_123 42 --signal 15
    """
)

app.add_typer(process.app)


@app.callback()
def root(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Emit machine-readable JSON only.",
    ),
    config: str | None = typer.Option(
        None,
        "--config",
        help="Path to config.json (default: ~/.config/sandbox-envd/config.json).",
    ),
) -> None:
    config_path = None if config is None else Path(config)
    cfg = load_config(config_path)
    configure_logging(cfg)
    ctx.obj = CLIState(config=cfg, json_output=resolve_json_mode(json_output), json_requested=json_output)


def run() -> None:
    app()


if __name__ == "__main__":
    run()

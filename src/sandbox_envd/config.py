"""Client config loading from config.json plus env overrides."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

from sandbox_envd.exceptions import EnvdError, ErrorCode


def _env_path(name: str, fallback: Path) -> Path:
    raw = os.environ.get(name, "").strip()
    return Path(raw).expanduser() if raw else fallback.expanduser()


_USER_HOME = Path.home()
_XDG_CONFIG_HOME = _env_path("XDG_CONFIG_HOME", _USER_HOME / ".config")
DEFAULT_CONFIG_HOME = _XDG_CONFIG_HOME / "sandbox-envd"
DEFAULT_ENVD_CONFIG_JSON = _env_path("ENVD_CONFIG_JSON", DEFAULT_CONFIG_HOME / "config.json")

ENV_PREFIX = "ENVD_"
SECTIONS = {"sandbox", "transport", "commands", "logging"}
# Credentials and paths are passed through uncoerced.
RAW_SECTIONS = {"sandbox", "logging"}


def ssl_verify_from_env(raw: str | None) -> bool:
    """Only an explicit ``false`` (any case) turns certificate checks off."""
    if raw is None:
        return True
    return raw.strip().lower() != "false"


class SandboxConfig(BaseModel):
    domain: str = "e2b.app"
    envd_port: int = 49983
    api_key: str | None = None
    access_token: str | None = None


class TransportConfig(BaseModel):
    verify_ssl: bool = True
    connect_timeout_seconds: float = 30.0
    max_retries: int = Field(default=3, ge=0)
    backoff_base_seconds: float = Field(default=2.0, ge=0)


class CommandsConfig(BaseModel):
    shell: str = "/bin/bash"
    default_timeout_seconds: int = Field(default=300, gt=0)
    timeout_grace_seconds: int = Field(default=30, ge=0)


class LoggingConfig(BaseModel):
    level: str = "WARNING"
    log_file: Path | None = None

    @field_validator("level")
    @classmethod
    def _validate_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unsupported log level: {value}")
        return level


class EnvdConfig(BaseModel):
    sandbox: SandboxConfig = Field(default_factory=SandboxConfig)
    transport: TransportConfig = Field(default_factory=TransportConfig)
    commands: CommandsConfig = Field(default_factory=CommandsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def expanded(self) -> "EnvdConfig":
        clone = self.model_copy(deep=True)
        if clone.logging.log_file is not None:
            clone.logging.log_file = clone.logging.log_file.expanduser()
        return clone

    def require_api_key(self) -> str:
        api_key = (self.sandbox.api_key or "").strip()
        if not api_key:
            raise EnvdError(
                ErrorCode.INVALID_ARGS,
                "envd API key is required",
                suggestion="Set ENVD_API_KEY or sandbox.api_key in config.json.",
            )
        return api_key


def _coerce_env_value(value: str) -> Any:
    lower = value.lower()
    if lower in {"true", "false"}:
        return lower == "true"
    if "," in value:
        return [part.strip() for part in value.split(",") if part.strip()]
    try:
        if "." in value:
            return float(value)
        return int(value)
    except ValueError:
        return value


def _read_config_json(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}

    try:
        loaded = json.loads(path.read_text(encoding="utf-8"))
    except Exception:
        return {}

    if isinstance(loaded, dict):
        return loaded
    return {}


def _extract_sections(data: dict[str, Any]) -> dict[str, Any]:
    raw = data.get("envd")
    source = raw if isinstance(raw, dict) else data
    return {section: dict(value) for section, value in source.items() if section in SECTIONS and isinstance(value, dict)}


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    result = dict(data)
    for key, raw in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        tokens = key[len(ENV_PREFIX) :].lower().split("_")
        section = tokens[0]
        if section not in SECTIONS or len(tokens) == 1:
            continue
        field = "_".join(tokens[1:])
        section_obj = dict(result.get(section, {}))
        section_obj[field] = raw if section in RAW_SECTIONS else _coerce_env_value(raw)
        result[section] = section_obj

    sandbox = dict(result.get("sandbox", {}))
    for name, field in (("ENVD_API_KEY", "api_key"), ("ENVD_ACCESS_TOKEN", "access_token")):
        value = os.environ.get(name, "").strip()
        if value:
            sandbox[field] = value
    if sandbox:
        result["sandbox"] = sandbox

    if "ENVD_SSL_VERIFY" in os.environ:
        transport = dict(result.get("transport", {}))
        transport["verify_ssl"] = ssl_verify_from_env(os.environ["ENVD_SSL_VERIFY"])
        result["transport"] = transport
    return result


def load_config(path: Path | None = None) -> EnvdConfig:
    config_path = path.expanduser() if path is not None else DEFAULT_ENVD_CONFIG_JSON
    from_file = _extract_sections(_read_config_json(config_path))
    merged = _apply_env_overrides(from_file)
    return EnvdConfig.model_validate(merged).expanded()

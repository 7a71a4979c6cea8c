"""Sandbox-scoped envd client."""

from __future__ import annotations

import httpx

from sandbox_envd import __version__
from sandbox_envd.commands import Commands
from sandbox_envd.config import EnvdConfig, load_config
from sandbox_envd.transport.http import RpcTransport
from sandbox_envd.transport.retry import RetryPolicy, exponential_backoff


def envd_base_url(sandbox_id: str, *, domain: str, port: int) -> str:
    # envd is addressed as {port}-{sandbox id}.{domain}
    return f"https://{port}-{sandbox_id}.{domain}"


class EnvdClient:
    """Entry point for talking to the envd daemon of one sandbox.

    Credentials come from config; the client attaches them to every request
    but does not refresh or rotate them.
    """

    def __init__(
        self,
        sandbox_id: str,
        *,
        config: EnvdConfig | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        cfg = config or load_config()
        self._sandbox_id = sandbox_id
        self._config = cfg

        headers = {
            "X-API-Key": cfg.require_api_key(),
            "E2b-Sandbox-Id": sandbox_id,
            "E2b-Sandbox-Port": str(cfg.sandbox.envd_port),
            "User-Agent": f"sandbox-envd/{__version__}",
        }
        if cfg.sandbox.access_token:
            headers["X-Access-Token"] = cfg.sandbox.access_token

        self._rpc = RpcTransport(
            envd_base_url(sandbox_id, domain=cfg.sandbox.domain, port=cfg.sandbox.envd_port),
            headers=headers,
            verify_ssl=cfg.transport.verify_ssl,
            connect_timeout=cfg.transport.connect_timeout_seconds,
            retry_policy=RetryPolicy(
                max_retries=cfg.transport.max_retries,
                backoff=exponential_backoff(cfg.transport.backoff_base_seconds),
            ),
            transport=transport,
        )
        self.commands = Commands(
            self._rpc,
            shell=cfg.commands.shell,
            default_timeout=cfg.commands.default_timeout_seconds,
            timeout_grace=cfg.commands.timeout_grace_seconds,
        )

    @property
    def sandbox_id(self) -> str:
        return self._sandbox_id

    @property
    def base_url(self) -> str:
        return self._rpc.base_url

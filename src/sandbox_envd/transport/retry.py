"""Bounded exponential-backoff retry for transient network and TLS failures."""

from __future__ import annotations

import logging
import ssl
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

import httpx

from sandbox_envd.exceptions import EnvdError, ErrorCode

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_BASE_SECONDS = 2.0
EOF_ERROR_TOKENS = ("peer closed", "disconnected", "incomplete", "eof", "connection reset")


def _causes(exc: BaseException) -> list[BaseException]:
    chain: list[BaseException] = []
    current: BaseException | None = exc
    while current is not None and current not in chain:
        chain.append(current)
        current = current.__cause__ or current.__context__
    return chain


def is_transient(exc: BaseException) -> bool:
    """Whether ``exc`` belongs to the retryable failure set.

    Retryable: TLS handshake/record errors, connection resets, unexpected end
    of stream, connect timeouts and read timeouts. Certificate verification
    failures are excluded.
    """
    if isinstance(exc, (httpx.ConnectTimeout, httpx.ReadTimeout)):
        return True
    if isinstance(exc, httpx.RemoteProtocolError):
        lowered = str(exc).lower()
        return any(token in lowered for token in EOF_ERROR_TOKENS)
    for cause in _causes(exc):
        if isinstance(cause, ssl.SSLCertVerificationError):
            return False
        if isinstance(cause, (ssl.SSLError, ConnectionResetError, EOFError)):
            return True
    return False


def exponential_backoff(base: float) -> Callable[[int], float]:
    def _delay(attempt: int) -> float:
        return base**attempt

    return _delay


@dataclass
class RetryPolicy:
    max_retries: int = DEFAULT_MAX_RETRIES
    backoff: Callable[[int], float] = field(default_factory=lambda: exponential_backoff(DEFAULT_BACKOFF_BASE_SECONDS))
    retryable: Callable[[BaseException], bool] = is_transient
    sleep: Callable[[float], None] = time.sleep


def execute_with_retry(call: Callable[[], T], policy: RetryPolicy, *, operation: str) -> T:
    """Run ``call`` until it succeeds, fails permanently, or retries run out.

    Each attempt re-runs ``call`` from scratch. Non-retryable exceptions
    propagate unchanged; an exhausted budget raises ``CONNECTIVITY_FAILED``.
    """
    attempt = 0
    while True:
        try:
            return call()
        except Exception as exc:
            if isinstance(exc, EnvdError) or not policy.retryable(exc):
                raise
            attempt += 1
            if attempt > policy.max_retries:
                logger.error("%s failed after %d retries: %s", operation, policy.max_retries, exc)
                raise EnvdError(
                    ErrorCode.CONNECTIVITY_FAILED,
                    f"Connection failed after {policy.max_retries} retries: {exc}",
                    details={
                        "operation": operation,
                        "attempts": attempt,
                        "error_type": type(exc).__name__,
                    },
                    suggestion="Check network connectivity to the sandbox and retry.",
                ) from exc
            delay = policy.backoff(attempt)
            logger.warning(
                "%s transient failure (attempt %d/%d): %s; retrying in %.0fs",
                operation,
                attempt,
                policy.max_retries,
                exc,
                delay,
            )
            policy.sleep(delay)

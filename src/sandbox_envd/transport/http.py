"""Connect-over-HTTPS transport for envd RPC methods."""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager, suppress
from typing import Any, Iterator

import httpx

from sandbox_envd.accumulator import EventSink, StreamAccumulator
from sandbox_envd.exceptions import EnvdError, ErrorCode
from sandbox_envd.models.process import RpcResult
from sandbox_envd.protocol import CONTENT_TYPE, EnvelopeDecoder, encode_envelope, split_messages
from sandbox_envd.transport.retry import RetryPolicy, execute_with_retry

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 120.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 30.0


def extract_error_message(response: httpx.Response) -> str:
    raw = response.text.strip()
    if raw:
        with suppress(ValueError):
            parsed = json.loads(raw)
            if isinstance(parsed, dict):
                for key in ("message", "error"):
                    value = parsed.get(key)
                    if isinstance(value, dict):
                        value = value.get("message")
                    if value:
                        return str(value)
        return raw
    return f"HTTP {response.status_code} error"


def raise_for_status(response: httpx.Response, *, operation: str) -> None:
    """Translate a non-2xx response into an `EnvdError` of the matching kind."""
    if 200 <= response.status_code < 300:
        return
    response.read()
    message = extract_error_message(response)
    logger.warning("%s returned HTTP %d: %s", operation, response.status_code, message)
    raise EnvdError.from_status(
        response.status_code,
        message,
        headers=dict(response.headers),
        details={"operation": operation},
    )


class RpcTransport:
    """Issues Connect RPC calls against one envd base URL.

    Every attempt opens its own `httpx.Client`, so no connection outlives the
    attempt that created it. Retries re-issue the whole request.
    """

    def __init__(
        self,
        base_url: str,
        *,
        headers: dict[str, str] | None = None,
        verify_ssl: bool = True,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
        retry_policy: RetryPolicy | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._headers = dict(headers or {})
        self._verify_ssl = verify_ssl
        self._connect_timeout = connect_timeout
        self._retry = retry_policy or RetryPolicy()
        self._transport = transport

    @property
    def base_url(self) -> str:
        return self._base_url

    def call(
        self,
        service: str,
        method: str,
        body: dict[str, Any] | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        on_event: EventSink | None = None,
    ) -> RpcResult:
        """Invoke ``/{service}/{method}``.

        With ``on_event`` the response is decoded as it arrives and each
        message is forwarded to the sink; otherwise the full body is read
        before decoding. Both return the same accumulated result.

        A retried attempt replays the response from its first message, so a
        sink that already saw output from a failed attempt receives that
        output again. The returned result holds only the final attempt.
        """
        path = f"/{service}/{method}"
        envelope = encode_envelope(body or {})
        logger.debug("rpc %s%s (%d bytes, streaming=%s)", self._base_url, path, len(envelope), on_event is not None)
        if on_event is not None:
            return execute_with_retry(
                lambda: self._stream_once(path, envelope, timeout, on_event),
                self._retry,
                operation=path,
            )
        return execute_with_retry(
            lambda: self._call_once(path, envelope, timeout),
            self._retry,
            operation=path,
        )

    def _client(self, timeout: float) -> httpx.Client:
        return httpx.Client(
            base_url=self._base_url,
            headers={**self._headers, "Content-Type": CONTENT_TYPE},
            verify=self._verify_ssl,
            timeout=httpx.Timeout(timeout, connect=self._connect_timeout),
            transport=self._transport,
        )

    def _call_once(self, path: str, envelope: bytes, timeout: float) -> RpcResult:
        with _translate_errors(path, timeout, self._retry), self._client(timeout) as client:
            with client.stream("POST", path, content=envelope) as response:
                raise_for_status(response, operation=path)
                body = response.read()

        accumulator = StreamAccumulator()
        envelopes = split_messages(body)
        accumulator.feed_envelopes(envelopes)
        _require_messages(path, accumulator, pending=0)
        result = accumulator.result()
        logger.info(
            "%s completed: %d messages, stdout=%d bytes, stderr=%d bytes, exit_code=%s",
            path,
            len(envelopes),
            len(result.stdout),
            len(result.stderr),
            result.exit_code,
        )
        return result

    def _stream_once(self, path: str, envelope: bytes, timeout: float, sink: EventSink) -> RpcResult:
        accumulator = StreamAccumulator(sink)
        decoder = EnvelopeDecoder()
        with _translate_errors(path, timeout, self._retry), self._client(timeout) as client:
            with client.stream("POST", path, content=envelope) as response:
                raise_for_status(response, operation=path)
                for chunk in response.iter_bytes():
                    accumulator.feed_envelopes(decoder.feed(chunk))

        if decoder.pending:
            logger.warning("%s stream closed with %d bytes of a partial envelope", path, decoder.pending)
        _require_messages(path, accumulator, pending=decoder.pending)
        result = accumulator.result()
        logger.info(
            "%s stream completed: stdout=%d bytes, stderr=%d bytes, exit_code=%s",
            path,
            len(result.stdout),
            len(result.stderr),
            result.exit_code,
        )
        return result


def _require_messages(operation: str, accumulator: StreamAccumulator, *, pending: int) -> None:
    """Fail when the server sent bytes but not one of them formed a message."""
    if accumulator.messages or not (accumulator.skipped or pending):
        return
    raise EnvdError(
        ErrorCode.PROTOCOL_ERROR,
        f"{operation} returned no decodable messages",
        details={"operation": operation, "skipped_messages": accumulator.skipped, "pending_bytes": pending},
    )


@contextmanager
def _translate_errors(operation: str, timeout: float, policy: RetryPolicy) -> Iterator[None]:
    """Map httpx failures outside the retryable set onto `EnvdError`."""
    try:
        yield
    except httpx.TimeoutException as exc:
        if policy.retryable(exc):
            raise
        raise EnvdError(
            ErrorCode.TIMEOUT,
            f"{operation} timed out",
            details={"operation": operation, "timeout_seconds": timeout, "error": str(exc)},
            suggestion="Retry or raise the command timeout.",
        ) from exc
    except httpx.RequestError as exc:
        if policy.retryable(exc):
            raise
        raise EnvdError(
            ErrorCode.CONNECTIVITY_FAILED,
            f"{operation} failed: {exc}",
            details={"operation": operation, "error_type": type(exc).__name__},
            suggestion="Check network connectivity and sandbox availability.",
        ) from exc

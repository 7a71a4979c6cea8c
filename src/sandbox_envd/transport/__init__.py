"""HTTP transport and retry policy."""

from sandbox_envd.transport.http import RpcTransport, extract_error_message, raise_for_status
from sandbox_envd.transport.retry import RetryPolicy, execute_with_retry, exponential_backoff, is_transient

__all__ = [
    "RetryPolicy",
    "RpcTransport",
    "execute_with_retry",
    "exponential_backoff",
    "extract_error_message",
    "is_transient",
    "raise_for_status",
]

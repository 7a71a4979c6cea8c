"""Python client for the envd process service of a remote sandbox."""

__version__ = "0.1.0"

from sandbox_envd.client import EnvdClient  # noqa: E402
from sandbox_envd.commands import Commands  # noqa: E402
from sandbox_envd.exceptions import EnvdError, ErrorCode  # noqa: E402
from sandbox_envd.models import ProcessResult, StreamUpdate  # noqa: E402

__all__ = [
    "Commands",
    "EnvdClient",
    "EnvdError",
    "ErrorCode",
    "ProcessResult",
    "StreamUpdate",
    "__version__",
]

"""Exit-code normalization for the several encodings envd has shipped."""

from __future__ import annotations

import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_EXIT_STATUS_RE = re.compile(r"exit status (\d+)", re.IGNORECASE)
_DIGITS_RE = re.compile(r"\d+")

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1


def normalize_exit_code(value: Any) -> int:
    """Return a canonical int32 exit code.

    Accepts ``None`` (treated as success), integers, numeric strings and
    ``"exit status N"`` strings. Any other string is 0 when it contains a
    ``"0"`` character and 1 otherwise. Values outside the int32 range are
    reported as 1.
    """
    if value is None:
        return 0
    if isinstance(value, int):
        return _bounded(int(value))
    if isinstance(value, float) and value.is_integer():
        return _bounded(int(value))

    text = str(value)
    match = _EXIT_STATUS_RE.search(text)
    if match:
        return _bounded(int(match.group(1)))
    if _DIGITS_RE.fullmatch(text):
        return _bounded(int(text))
    # FIXME: free-form statuses such as "error 404" count as success here.
    return 0 if "0" in text else 1


def _bounded(code: int) -> int:
    if INT32_MIN <= code <= INT32_MAX:
        return code
    logger.warning("exit code %d is outside the int32 range, reporting failure", code)
    return 1

# src/engine/classify.py — v1
"""Map arbitrary exceptions raised during a job onto the error taxonomy.

Provider SDK exception types are matched by class name so that no SDK is
imported here.
"""

from __future__ import annotations

import asyncio
import socket

from genstage.core.errors import (
    AdaptorTimeout,
    AdaptorUnavailable,
    GenerationError,
    GenerationFailed,
    ProviderUnreachable,
)

_UNREACHABLE_NAMES = frozenset({"APIConnectionError", "ConnectError", "ServiceUnavailable"})
_TIMEOUT_NAMES = frozenset({"APITimeoutError", "ReadTimeout", "TimeoutException", "DeadlineExceeded"})


def classify_error(exc: BaseException) -> GenerationError:
    """Return a GenerationError describing ``exc``.

    Timeouts are checked before connection errors: the SDKs derive their
    timeout classes from their connection error classes.
    """
    if isinstance(exc, GenerationError):
        return exc

    names = {cls.__name__ for cls in type(exc).__mro__}
    message = str(exc) or type(exc).__name__

    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)) or names & _TIMEOUT_NAMES:
        return AdaptorTimeout(f"Adaptor call timed out: {message}")
    if isinstance(exc, (ConnectionError, socket.gaierror)) or names & _UNREACHABLE_NAMES:
        return ProviderUnreachable(f"Provider unreachable: {message}")
    if isinstance(exc, ImportError):
        return AdaptorUnavailable(f"Adaptor backend not installed: {message}")
    return GenerationFailed(message)

"""Bounded exponential-backoff retry for calls to external services."""

from __future__ import annotations

import asyncio
import logging
import socket
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

import aiohttp

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT_MARKERS = (
    "network",
    "timeout",
    "timed out",
    "econnrefused",
    "etimedout",
    "enotfound",
    "connection refused",
)


class TransientError(Exception):
    """Raised by collaborators for failures that are worth retrying."""


class ExternalRejection(Exception):
    """Raised when an external service explicitly refuses a request."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 4
    base_delay: float = 2.0
    call_timeout: float | None = 30.0

    def delay_for(self, attempt: int) -> float:
        """Return the pause after the zero-based ``attempt``."""
        return max(0.0, self.base_delay) * (2 ** attempt)


DEFAULT_POLICY = RetryPolicy()


def is_transient(exc: BaseException) -> bool:
    """Return ``True`` when ``exc`` looks like a temporary network condition."""

    if isinstance(exc, ExternalRejection):
        return False
    if isinstance(exc, (TransientError, asyncio.TimeoutError, socket.gaierror)):
        return True
    if isinstance(exc, (aiohttp.ServerTimeoutError, aiohttp.ClientConnectionError)):
        return True
    if isinstance(exc, ConnectionError):
        return True
    message = str(exc).lower()
    return any(marker in message for marker in _TRANSIENT_MARKERS)


async def run_with_retry(
    func: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy = DEFAULT_POLICY,
    label: str = "call",
) -> T:
    """Await ``func()`` until it succeeds, fails terminally or retries run out.

    Terminal errors propagate on the first occurrence. After the final
    attempt the last transient error is re-raised.
    """

    attempts = max(1, int(policy.attempts))
    for attempt in range(attempts):
        try:
            if policy.call_timeout:
                return await asyncio.wait_for(func(), timeout=policy.call_timeout)
            return await func()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if not is_transient(exc) or attempt == attempts - 1:
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                "%s attempt %s/%s failed: %s; retrying in %.1fs",
                label,
                attempt + 1,
                attempts,
                exc or type(exc).__name__,
                delay,
            )
            await asyncio.sleep(delay)
    raise RuntimeError("unreachable")  # pragma: no cover


def rejection_for_status(status: int, detail: Any = "") -> Exception:
    """Map an HTTP ``status`` onto the retry taxonomy."""

    if status == 429 or status >= 500:
        return TransientError(f"HTTP {status} (network): {detail}")
    return ExternalRejection(f"HTTP {status}: {detail}", status=status)


__all__ = [
    "DEFAULT_POLICY",
    "ExternalRejection",
    "RetryPolicy",
    "TransientError",
    "is_transient",
    "rejection_for_status",
    "run_with_retry",
]

from __future__ import annotations

import asyncio
import json
import logging
import os
import socket
import weakref
from typing import Any

import aiohttp

from .retry import TransientError, rejection_for_status

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    try:
        return float(raw) if raw not in {None, ""} else float(default)
    except ValueError:
        return float(default)


# Maintain a session per event loop to avoid cross-loop usage errors when
# the CLI runs several short-lived loops in the same process.
_SESSIONS: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, aiohttp.ClientSession]" = (
    weakref.WeakKeyDictionary()
)

CONNECTOR_LIMIT = int(os.getenv("HTTP_CONNECTOR_LIMIT", "0") or 0)
CONNECTOR_LIMIT_PER_HOST = int(os.getenv("HTTP_CONNECTOR_LIMIT_PER_HOST", "0") or 0)


async def get_session() -> aiohttp.ClientSession:
    """Return an aiohttp session bound to the current event loop."""
    loop = asyncio.get_running_loop()
    sess = _SESSIONS.get(loop)
    if sess is None or sess.closed:
        force_ipv4 = str(os.getenv("HTTP_FORCE_IPV4", "")).lower() in {"1", "true", "yes"}
        family = socket.AF_INET if force_ipv4 else socket.AF_UNSPEC
        connector = aiohttp.TCPConnector(
            limit=CONNECTOR_LIMIT,
            limit_per_host=CONNECTOR_LIMIT_PER_HOST,
            family=family,
        )
        # Default headers with a friendly User-Agent to avoid 403s on some APIs
        ua = os.getenv("HTTP_USER_AGENT", "Starfire/1.0 (+https://local)")
        timeout_total = _env_float("HTTP_TIMEOUT_SEC", 15.0)
        trust_env = str(os.getenv("HTTP_TRUST_ENV", "")).lower() in {"1", "true", "yes"}
        if trust_env:
            logger.info("HTTP session will honor proxy settings from the environment")
        sess = aiohttp.ClientSession(
            headers={"User-Agent": ua},
            timeout=aiohttp.ClientTimeout(total=timeout_total),
            trust_env=trust_env,
            connector=connector,
        )
        _SESSIONS[loop] = sess
    return sess


async def close_session() -> None:
    """Close all known aiohttp sessions."""
    to_close = list(_SESSIONS.values())
    _SESSIONS.clear()
    for sess in to_close:
        if not sess.closed:
            try:
                await sess.close()
            except Exception as exc:  # pragma: no cover - best effort on shutdown
                logger.debug("Error closing HTTP session: %s", exc)


def _detail(body: bytes) -> str:
    text = body.decode("utf-8", errors="replace").strip()
    try:
        data = json.loads(text)
    except ValueError:
        return text[:300]
    if isinstance(data, dict):
        for key in ("error", "message", "errors"):
            if data.get(key):
                return str(data[key])[:300]
    return text[:300]


async def request_bytes(
    method: str,
    url: str,
    *,
    session: aiohttp.ClientSession | None = None,
    **kwargs: Any,
) -> bytes:
    """Perform a request and return the raw body.

    Non-success statuses are mapped with :func:`rejection_for_status`; 4xx
    responses become ``ExternalRejection`` while 429 and 5xx are transient.
    """

    sess = session or await get_session()
    try:
        async with sess.request(method, url, **kwargs) as response:
            body = await response.read()
            if response.status >= 400:
                raise rejection_for_status(response.status, _detail(body))
            return body
    except aiohttp.ClientPayloadError as exc:
        raise TransientError(f"network: truncated response from {url}") from exc


async def request_json(method: str, url: str, **kwargs: Any) -> Any:
    body = await request_bytes(method, url, **kwargs)
    if not body:
        return None
    return json.loads(body)


__all__ = [
    "close_session",
    "get_session",
    "request_bytes",
    "request_json",
]

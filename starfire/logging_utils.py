from __future__ import annotations

import contextlib
import json
import logging
import os
import sys
import threading
import time
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterable

DEFAULT_LOG_FILE = Path("logs") / "starfire.log"
DEFAULT_MAX_BYTES = 5_000_000
DEFAULT_BACKUP_COUNT = 3
DEFAULT_FORMAT = "%(asctime)sZ [%(levelname)s] %(name)s:%(lineno)d | %(message)s"
DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S"

_NOISY_LOGGERS: tuple[str, ...] = ("asyncio", "aiohttp.access", "httpx", "solana")

_warn_once_lock = threading.Lock()
_warn_once_last_emit: dict[str, float] = {}

_HANDLER_SENTINEL = "_starfire_handler"


class _UTCFormatter(logging.Formatter):
    """Formatter that renders timestamps in UTC."""

    converter = time.gmtime


_LOG_RECORD_RESERVED = set(logging.LogRecord(None, 0, "", 0, "", (), None).__dict__.keys())


class JsonFormatter(logging.Formatter):
    """Structured logging formatter producing JSON payloads."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - short summary sufficient
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "line": record.lineno,
            "msg": record.getMessage(),
        }

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in payload or key.startswith("_") or key in _LOG_RECORD_RESERVED:
                continue
            payload[key] = value

        return json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str)


def _env_flag(name: str) -> bool | None:
    raw = os.getenv(name)
    if raw is None:
        return None
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _parse_log_level(value: str | int | None) -> int:
    if isinstance(value, int):
        return value
    if not value:
        return logging.INFO
    level = value.strip().upper()
    if level.isdigit():
        return int(level)
    return getattr(logging, level, logging.INFO)


def _drop_own_handlers(root: logging.Logger) -> None:
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_SENTINEL, False):
            root.removeHandler(handler)
            with contextlib.suppress(Exception):
                handler.close()


def configure_runtime_logging(
    *,
    level: str | int | None = None,
    console: bool | None = None,
    logfile: str | Path | None = None,
    json_logs: bool | None = None,
    max_bytes: int | None = None,
    backup_count: int | None = None,
    quiet: Iterable[str] = _NOISY_LOGGERS,
) -> Path | None:
    """Install the rotating file handler and a stdout handler on the root logger.

    Calling this again replaces the handlers it installed earlier, so it is
    safe to call from every CLI entry point. Passing ``logfile=""`` disables
    the file handler. Returns the log file path, if any.
    """

    resolved_level = _parse_log_level(level if level is not None else os.getenv("LOG_LEVEL"))
    if console is None:
        env_console = _env_flag("LOG_CONSOLE")
        console = True if env_console is None else env_console
    if json_logs is None:
        json_logs = bool(_env_flag("LOG_JSON"))

    formatter: logging.Formatter
    if json_logs:
        formatter = JsonFormatter()
    else:
        formatter = _UTCFormatter(
            os.getenv("LOG_FORMAT") or DEFAULT_FORMAT,
            datefmt=os.getenv("LOG_DATEFMT") or DEFAULT_DATEFMT,
        )

    root = logging.getLogger()
    _drop_own_handlers(root)
    root.setLevel(resolved_level)

    log_path: Path | None = None
    target = logfile if logfile is not None else os.getenv("LOG_FILE", str(DEFAULT_LOG_FILE))
    if target:
        log_path = Path(target).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=max_bytes or _env_int("LOG_MAX_BYTES", DEFAULT_MAX_BYTES),
            backupCount=backup_count or _env_int("LOG_BACKUP_COUNT", DEFAULT_BACKUP_COUNT),
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(resolved_level)
        setattr(file_handler, _HANDLER_SENTINEL, True)
        root.addHandler(file_handler)

    if console:
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setFormatter(formatter)
        stream_handler.setLevel(resolved_level)
        setattr(stream_handler, _HANDLER_SENTINEL, True)
        root.addHandler(stream_handler)

    for name in quiet:
        logging.getLogger(name).setLevel(max(resolved_level, logging.WARNING))

    root.debug("Logging initialised", extra={"log_file": str(log_path) if log_path else None})
    return log_path


def warn_once_per(
    minutes: float,
    key: str,
    message: str,
    *args: Any,
    logger: logging.Logger | None = None,
    **kwargs: Any,
) -> bool:
    """Emit ``logger.warning`` for *message* at most once per *minutes* interval."""

    interval = max(0.0, minutes) * 60.0
    now = time.monotonic()

    with _warn_once_lock:
        last = _warn_once_last_emit.get(key)
        if last is not None and interval > 0 and now - last < interval:
            return False
        _warn_once_last_emit[key] = now

    target = logger or logging.getLogger()
    target.warning(message, *args, **kwargs)
    return True


def reset_warn_once_cache() -> None:
    """Clear cached emission timestamps for :func:`warn_once_per`."""

    with _warn_once_lock:
        _warn_once_last_emit.clear()


def _normalize_for_log(value: Any, *, max_string: int) -> Any:
    if hasattr(value, "as_dict"):
        value = value.as_dict()
    if isinstance(value, dict):
        return {
            str(getattr(k, "value", k)): _normalize_for_log(v, max_string=max_string)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple, set)):
        return [_normalize_for_log(v, max_string=max_string) for v in value]
    if isinstance(value, (bytes, bytearray)):
        return f"<{len(value)} bytes>"
    if isinstance(value, str):
        if len(value) <= max_string:
            return value
        return f"{value[:max_string]}...({len(value)} chars)"
    if isinstance(value, (int, float, bool)) or value is None:
        return value
    return str(value)


def serialize_for_log(value: Any, *, max_string: int = 256) -> str:
    """Return a JSON-formatted string safe for logging."""
    try:
        normalized = _normalize_for_log(value, max_string=max_string)
        return json.dumps(normalized, ensure_ascii=True, sort_keys=True)
    except Exception:
        return repr(value)


__all__ = [
    "JsonFormatter",
    "configure_runtime_logging",
    "reset_warn_once_cache",
    "serialize_for_log",
    "warn_once_per",
]

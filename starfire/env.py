from __future__ import annotations

"""Utilities for loading environment variables from files."""

import logging
import os
import re
from pathlib import Path

logger = logging.getLogger(__name__)

__all__ = ["load_env_file"]


_PLACEHOLDER_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^\$\{[^}]+\}$"),
    re.compile(r"REDACTED", re.IGNORECASE),
    re.compile(r"^your[_-]", re.IGNORECASE),
)


def _is_placeholder(value: str) -> bool:
    text = value.strip()
    if not text:
        return True
    return any(pattern.search(text) for pattern in _PLACEHOLDER_PATTERNS)


def load_env_file(path: str | os.PathLike) -> list[str]:
    """Load ``KEY=VALUE`` pairs from *path* into ``os.environ``.

    Blank lines, ``#`` comments and an optional ``export`` prefix are
    handled. Existing environment variables are preserved and placeholder
    values are skipped. Returns the names that were set; a missing file is
    not an error.
    """

    env_path = Path(path)
    if not env_path.is_file():
        logger.debug("No environment file at %s", env_path)
        return []

    loaded: list[str] = []
    skipped: list[str] = []
    for raw_line in env_path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        if line.startswith("export "):
            line = line[len("export "):]
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip("'\"")
        if not key or key in os.environ:
            continue
        if _is_placeholder(value):
            skipped.append(key)
            continue
        os.environ[key] = value
        loaded.append(key)

    if skipped:
        logger.warning(
            "Environment file %s has placeholder values for: %s",
            env_path,
            ", ".join(sorted(skipped)),
        )
    logger.debug("Loaded %d variable(s) from %s", len(loaded), env_path)
    return loaded

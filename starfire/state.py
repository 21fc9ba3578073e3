"""Persist accumulated buckets, stranded assets and statistics between runs."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Dict

from .accumulator import Bucket, StrandedPosition
from .orchestrator import DistributionOrchestrator

logger = logging.getLogger(__name__)

STATE_VERSION = 1
_BUCKET_NAMES = frozenset(b.value for b in Bucket)


def dump_state(orchestrator: DistributionOrchestrator) -> Dict[str, Any]:
    acc = orchestrator.accumulator
    return {
        "version": STATE_VERSION,
        "saved_at": time.time(),
        "accumulated": acc.snapshot(),
        "stranded": acc.stranded_snapshot(),
        "stats": orchestrator.stats.as_dict(),
    }


def save_state(path: str | os.PathLike, orchestrator: DistributionOrchestrator) -> Path:
    """Write the orchestrator's ledger to ``path`` atomically."""

    target = Path(path).expanduser()
    target.parent.mkdir(parents=True, exist_ok=True)
    payload = json.dumps(dump_state(orchestrator), indent=2, sort_keys=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", dir=target.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(payload)
        os.replace(tmp_name, target)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    logger.debug("Saved engine state to %s", target)
    return target


def restore_state(orchestrator: DistributionOrchestrator, data: Dict[str, Any]) -> None:
    acc = orchestrator.accumulator
    accumulated = data.get("accumulated") or {}
    acc.restore({Bucket(k): int(v) for k, v in accumulated.items() if k in _BUCKET_NAMES})
    for name, positions in (data.get("stranded") or {}).items():
        if name not in _BUCKET_NAMES:
            continue
        for item in positions:
            acc.strand(Bucket(name), StrandedPosition.from_dict(item))
    orchestrator.stats.merge(data.get("stats") or {})


def load_state(path: str | os.PathLike, orchestrator: DistributionOrchestrator) -> bool:
    """Restore state from ``path`` if it exists; returns whether anything was loaded."""

    source = Path(path).expanduser()
    if not source.is_file():
        return False
    try:
        data = json.loads(source.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable state file %s: %s", source, exc)
        return False
    if not isinstance(data, dict):
        logger.warning("Ignoring malformed state file %s", source)
        return False
    try:
        restore_state(orchestrator, data)
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        logger.warning("Ignoring malformed state file %s: %s", source, exc)
        return False
    logger.info(
        "Restored state from %s (pending=%s lamports)",
        source,
        orchestrator.accumulator.total(),
    )
    return True


__all__ = ["dump_state", "load_state", "restore_state", "save_state"]

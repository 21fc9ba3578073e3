"""Carry-forward ledger for amounts that could not be applied this cycle."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Mapping

logger = logging.getLogger(__name__)


class Bucket(str, Enum):
    BURN = "burn"
    BUYBACK = "buyback"
    HOLDER_REWARD = "holder_reward"
    LP_POOL = "lp_pool"


class AssetKind(str, Enum):
    TOKEN = "token"
    POOL_SHARE = "pool_share"


@dataclass(frozen=True)
class StrandedPosition:
    """Intermediate asset left in the fee wallet after a half-finished action.

    ``amount`` is in raw units of the tracked asset (or of the pool-share
    token identified by ``ref``), never lamports.
    """

    kind: AssetKind
    amount: int
    ref: str | None = None

    def as_dict(self) -> dict:
        return {"kind": self.kind.value, "amount": self.amount, "ref": self.ref}

    @classmethod
    def from_dict(cls, data: Mapping) -> "StrandedPosition":
        return cls(AssetKind(data["kind"]), int(data["amount"]), data.get("ref"))


class BucketAccumulator:
    """Per-bucket lamport counters plus any stranded intermediate assets.

    ``effective(b, share)`` is the amount an action may spend this cycle.
    Counters only grow on failure or deferral and only shrink when the
    bucket's action succeeds.
    """

    def __init__(self) -> None:
        self._pending: Dict[Bucket, int] = {bucket: 0 for bucket in Bucket}
        self._stranded: Dict[Bucket, List[StrandedPosition]] = {
            bucket: [] for bucket in Bucket
        }

    def __getitem__(self, bucket: Bucket) -> int:
        return self._pending[Bucket(bucket)]

    def effective(self, bucket: Bucket, share: int) -> int:
        return int(share) + self._pending[Bucket(bucket)]

    def total(self) -> int:
        return sum(self._pending.values())

    def record_success(self, bucket: Bucket, carry: int = 0) -> None:
        """Clear ``bucket``; ``carry`` is funds the action chose not to spend."""

        self._pending[Bucket(bucket)] = max(0, int(carry))

    def record_failure(self, bucket: Bucket, share: int) -> int:
        """Add this cycle's ``share`` on top of whatever is already pending."""

        bucket = Bucket(bucket)
        if share < 0:
            raise ValueError("share must be non-negative")
        self._pending[bucket] += int(share)
        logger.info(
            "Accumulated %s lamports for %s (pending=%s)",
            share,
            bucket.value,
            self._pending[bucket],
        )
        return self._pending[bucket]

    record_deferral = record_failure

    def drain(self) -> Dict[Bucket, int]:
        """Zero every counter and return what was pending."""

        drained = dict(self._pending)
        for bucket in Bucket:
            self._pending[bucket] = 0
        return drained

    def restore(self, pending: Mapping[Bucket, int]) -> None:
        for bucket, amount in pending.items():
            self._pending[Bucket(bucket)] = max(0, int(amount))

    # stranded intermediate assets ------------------------------------

    def strand(self, bucket: Bucket, position: StrandedPosition) -> None:
        if position.amount <= 0:
            return
        self._stranded[Bucket(bucket)].append(position)
        logger.warning(
            "Stranded %s %s units in fee wallet for %s",
            position.amount,
            position.kind.value,
            Bucket(bucket).value,
        )

    def stranded(self, bucket: Bucket) -> List[StrandedPosition]:
        return list(self._stranded[Bucket(bucket)])

    def take_stranded(self, bucket: Bucket) -> List[StrandedPosition]:
        bucket = Bucket(bucket)
        positions = self._stranded[bucket]
        self._stranded[bucket] = []
        return positions

    def snapshot(self) -> Dict[str, int]:
        return {bucket.value: amount for bucket, amount in self._pending.items()}

    def stranded_snapshot(self) -> Dict[str, list]:
        return {
            bucket.value: [p.as_dict() for p in positions]
            for bucket, positions in self._stranded.items()
            if positions
        }


__all__ = ["AssetKind", "Bucket", "BucketAccumulator", "StrandedPosition"]

"""Tagged outcome types returned by allocation actions and the pipeline."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .accumulator import Bucket, StrandedPosition
from .split import FeeSplit


class ActionStatus(str, Enum):
    SKIPPED = "skipped"
    SUCCEEDED = "succeeded"
    DEFERRED = "deferred"
    FAILED = "failed"


class ErrorKind(str, Enum):
    TRANSIENT = "transient"
    REJECTED = "rejected"
    PARTIAL = "partial"


@dataclass(frozen=True)
class Skipped:
    reason: str = "no amount"
    status: ActionStatus = field(default=ActionStatus.SKIPPED, init=False)

    def as_dict(self) -> Dict[str, Any]:
        return {"status": self.status.value, "reason": self.reason}


@dataclass(frozen=True)
class Succeeded:
    """``spent`` lamports were applied; ``carry`` lamports stay pending."""

    spent: int
    payload: Dict[str, Any] = field(default_factory=dict)
    carry: int = 0
    status: ActionStatus = field(default=ActionStatus.SUCCEEDED, init=False)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "spent": self.spent,
            "carry": self.carry,
            **self.payload,
        }


@dataclass(frozen=True)
class Deferred:
    reason: str
    payload: Dict[str, Any] = field(default_factory=dict)
    status: ActionStatus = field(default=ActionStatus.DEFERRED, init=False)

    def as_dict(self) -> Dict[str, Any]:
        return {"status": self.status.value, "reason": self.reason, **self.payload}


@dataclass(frozen=True)
class Failed:
    """The action did not complete.

    For ``ErrorKind.PARTIAL`` the lamports were already converted, so the
    converted asset is reported in ``stranded`` and only ``carry`` lamports
    remain pending for the bucket.
    """

    kind: ErrorKind
    detail: str
    stranded: Optional[StrandedPosition] = None
    carry: int = 0
    status: ActionStatus = field(default=ActionStatus.FAILED, init=False)

    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "status": self.status.value,
            "kind": self.kind.value,
            "detail": self.detail,
        }
        if self.stranded is not None:
            data["stranded"] = self.stranded.as_dict()
            data["carry"] = self.carry
        return data


ActionOutcome = Union[Skipped, Succeeded, Deferred, Failed]


class DistributionStatus(str, Enum):
    DISTRIBUTED = "distributed"
    BELOW_THRESHOLD = "below_threshold"
    NOTHING_ACCUMULATED = "nothing_accumulated"


@dataclass
class DistributionReport:
    status: DistributionStatus
    total: int
    split: Optional[FeeSplit] = None
    outcomes: Dict[Bucket, ActionOutcome] = field(default_factory=dict)
    settled: Dict[Bucket, List[Dict[str, Any]]] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    @property
    def distributed(self) -> bool:
        return self.status is DistributionStatus.DISTRIBUTED

    def outcome(self, bucket: Bucket) -> ActionOutcome:
        return self.outcomes[Bucket(bucket)]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "total": self.total,
            "timestamp": self.timestamp,
            "split": self.split.as_dict() if self.split else None,
            "outcomes": {b.value: o.as_dict() for b, o in self.outcomes.items()},
            "settled": {b.value: list(items) for b, items in self.settled.items() if items},
        }


class CycleStatus(str, Enum):
    NO_FEES = "no_fees"
    CLAIM_FAILED = "claim_failed"
    BELOW_THRESHOLD_AFTER_RESERVE = "below_threshold_after_reserve"
    DISTRIBUTED = "distributed"


@dataclass
class CycleReport:
    status: CycleStatus
    claimed: int = 0
    distributable: int = 0
    reference: Optional[str] = None
    distribution: Optional[DistributionReport] = None
    error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "claimed": self.claimed,
            "distributable": self.distributable,
            "reference": self.reference,
            "distribution": self.distribution.as_dict() if self.distribution else None,
            "error": self.error,
        }


__all__ = [
    "ActionOutcome",
    "ActionStatus",
    "CycleReport",
    "CycleStatus",
    "Deferred",
    "DistributionReport",
    "DistributionStatus",
    "ErrorKind",
    "Failed",
    "Skipped",
    "Succeeded",
]

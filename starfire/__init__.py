"""Programmable creator-fee allocation engine."""

from __future__ import annotations

from .accumulator import AssetKind, Bucket, BucketAccumulator, StrandedPosition
from .engine import FeeEngine
from .momentum import MomentumAction, MomentumIndicator, MomentumSignal
from .orchestrator import DistributionOrchestrator, DistributionStats
from .pipeline import ClaimPipeline
from .results import (
    CycleReport,
    CycleStatus,
    Deferred,
    DistributionReport,
    DistributionStatus,
    ErrorKind,
    Failed,
    Skipped,
    Succeeded,
)
from .retry import ExternalRejection, RetryPolicy, TransientError, run_with_retry
from .scheduler import Scheduler
from .selection import HolderWeight, select_weighted
from .split import FeeSplit, SplitPercentages, calculate_split

__version__ = "0.1.0"

__all__ = [
    "AssetKind",
    "Bucket",
    "BucketAccumulator",
    "ClaimPipeline",
    "CycleReport",
    "CycleStatus",
    "Deferred",
    "DistributionOrchestrator",
    "DistributionReport",
    "DistributionStats",
    "DistributionStatus",
    "ErrorKind",
    "ExternalRejection",
    "Failed",
    "FeeEngine",
    "FeeSplit",
    "HolderWeight",
    "MomentumAction",
    "MomentumIndicator",
    "MomentumSignal",
    "RetryPolicy",
    "Scheduler",
    "Skipped",
    "SplitPercentages",
    "StrandedPosition",
    "Succeeded",
    "TransientError",
    "calculate_split",
    "run_with_retry",
    "select_weighted",
]

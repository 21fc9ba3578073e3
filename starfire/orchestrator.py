"""Split a fee amount and run the four allocation actions."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Iterable, List, Mapping

from .accumulator import Bucket, BucketAccumulator
from .actions import (
    AllocationAction,
    BurnAction,
    BuybackAction,
    HolderRewardAction,
    PoolLockAction,
    describe_error,
)
from .interfaces import HolderRegistry, LiquidityPool, SwapClient
from .momentum import MomentumIndicator
from .results import (
    ActionOutcome,
    Deferred,
    DistributionReport,
    DistributionStatus,
    ErrorKind,
    Failed,
    Succeeded,
)
from .retry import DEFAULT_POLICY, RetryPolicy
from .selection import DEFAULT_MIN_HOLDERS
from .split import DEFAULT_PERCENTAGES, SplitPercentages, calculate_split

logger = logging.getLogger(__name__)

LAMPORTS_PER_SOL = 1_000_000_000
DEFAULT_MIN_FEE_THRESHOLD = 100_000  # 0.0001 SOL


@dataclass
class DistributionStats:
    """Lifetime counters; lamports unless the name says tokens or shares."""

    total_claimed: int = 0
    total_distributed: int = 0
    total_burned: int = 0
    total_buyback: int = 0
    total_holder_rewards: int = 0
    total_lp_added: int = 0
    total_lp_burned: int = 0
    tokens_burned: int = 0
    tokens_bought: int = 0
    tokens_rewarded: int = 0
    claims: int = 0
    distributions: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)

    def merge(self, data: Mapping[str, Any]) -> None:
        """Raise counters to the values in ``data``; never lowers them."""
        for item in fields(self):
            value = data.get(item.name)
            if value is None:
                continue
            setattr(self, item.name, max(getattr(self, item.name), int(value)))


class DistributionOrchestrator:
    """Owns the accumulator and statistics for a single tracked asset."""

    def __init__(
        self,
        actions: Iterable[AllocationAction],
        *,
        percentages: SplitPercentages = DEFAULT_PERCENTAGES,
        min_fee_threshold: int = DEFAULT_MIN_FEE_THRESHOLD,
        concurrent: bool = True,
    ) -> None:
        self.actions: Dict[Bucket, AllocationAction] = {a.bucket: a for a in actions}
        missing = [b.value for b in Bucket if b not in self.actions]
        if missing:
            raise ValueError(f"missing actions for bucket(s): {', '.join(missing)}")
        self.percentages = percentages
        self.min_fee_threshold = int(min_fee_threshold)
        self.concurrent = concurrent
        self.accumulator = BucketAccumulator()
        self.stats = DistributionStats()
        self._lock = asyncio.Lock()

    @classmethod
    def build(
        cls,
        asset_id: str,
        *,
        swap: SwapClient,
        pool: LiquidityPool,
        registry: HolderRegistry,
        momentum: MomentumIndicator,
        percentages: SplitPercentages = DEFAULT_PERCENTAGES,
        min_holders: int = DEFAULT_MIN_HOLDERS,
        exclude_holders: Iterable[str] = (),
        min_fee_threshold: int = DEFAULT_MIN_FEE_THRESHOLD,
        policy: RetryPolicy = DEFAULT_POLICY,
        rng: random.Random | None = None,
        concurrent: bool = True,
    ) -> "DistributionOrchestrator":
        actions = [
            BurnAction(asset_id, swap, policy=policy),
            BuybackAction(asset_id, swap, momentum, policy=policy),
            HolderRewardAction(
                asset_id,
                swap,
                registry,
                min_holders=min_holders,
                exclude=exclude_holders,
                rng=rng,
                policy=policy,
            ),
            PoolLockAction(asset_id, swap, pool, policy=policy),
        ]
        return cls(
            actions,
            percentages=percentages,
            min_fee_threshold=min_fee_threshold,
            concurrent=concurrent,
        )

    def record_claim(self, amount: int) -> None:
        if amount <= 0:
            return
        self.stats.total_claimed += int(amount)
        self.stats.claims += 1

    async def distribute(self, total_fee: int) -> DistributionReport:
        """Split ``total_fee`` lamports and apply every bucket independently.

        Passes are serialised: a second call waits until the pass holding
        the accumulator has applied every outcome.
        """

        async with self._lock:
            return await self._distribute(total_fee)

    async def flush(self) -> DistributionReport:
        """Redistribute everything pending as a fresh total."""

        async with self._lock:
            pending = self.accumulator.drain()
            total = sum(pending.values())
            if total <= 0:
                return DistributionReport(DistributionStatus.NOTHING_ACCUMULATED, 0)
            logger.info("Flushing %.9f SOL of accumulated fees", total / LAMPORTS_PER_SOL)
            report = await self._distribute(total)
            if report.status is DistributionStatus.BELOW_THRESHOLD:
                self.accumulator.restore(pending)
            return report

    async def _distribute(self, total_fee: int) -> DistributionReport:
        total_fee = int(total_fee)
        if total_fee < self.min_fee_threshold:
            logger.info(
                "Below threshold (%s < %s lamports); skipping distribution",
                total_fee,
                self.min_fee_threshold,
            )
            return DistributionReport(DistributionStatus.BELOW_THRESHOLD, total_fee)

        split = calculate_split(total_fee, self.percentages)
        shares = {
            Bucket.BURN: split.burn,
            Bucket.BUYBACK: split.buyback,
            Bucket.HOLDER_REWARD: split.holder_reward,
            Bucket.LP_POOL: split.lp_pool,
        }
        logger.info(
            "Distributing %.9f SOL: %s",
            total_fee / LAMPORTS_PER_SOL,
            split.as_dict(),
        )

        report = DistributionReport(DistributionStatus.DISTRIBUTED, total_fee, split)
        if self.concurrent:
            results = await asyncio.gather(
                *(self._run_bucket(bucket, shares[bucket]) for bucket in Bucket)
            )
        else:
            results = [await self._run_bucket(bucket, shares[bucket]) for bucket in Bucket]

        for bucket, (outcome, settled) in zip(Bucket, results):
            report.outcomes[bucket] = outcome
            if settled:
                report.settled[bucket] = settled

        if any(isinstance(o, Succeeded) for o in report.outcomes.values()):
            self.stats.distributions += 1
        logger.info(
            "Distribution complete: %s",
            {b.value: o.status.value for b, o in report.outcomes.items()},
        )
        return report

    async def _run_bucket(
        self, bucket: Bucket, share: int
    ) -> tuple[ActionOutcome, List[Dict[str, Any]]]:
        action = self.actions[bucket]
        settled = await self._settle_stranded(bucket, action)
        amount = self.accumulator.effective(bucket, share)
        outcome = await action.execute(amount)
        self._apply(bucket, share, outcome)
        return outcome, settled

    async def _settle_stranded(
        self, bucket: Bucket, action: AllocationAction
    ) -> List[Dict[str, Any]]:
        settled: List[Dict[str, Any]] = []
        for position in self.accumulator.take_stranded(bucket):
            try:
                payload = await action.settle(position)
            except Exception as exc:
                logger.warning(
                    "Could not settle stranded %s for %s: %s",
                    position.kind.value,
                    bucket.value,
                    describe_error(exc),
                )
                self.accumulator.strand(bucket, position)
                continue
            settled.append(payload)
            self._count_assets(payload)
        return settled

    def _apply(self, bucket: Bucket, share: int, outcome: ActionOutcome) -> None:
        if isinstance(outcome, Succeeded):
            self.accumulator.record_success(bucket, carry=outcome.carry)
            self._count_success(bucket, outcome)
        elif isinstance(outcome, Failed) and outcome.kind is ErrorKind.PARTIAL:
            # lamports were converted; track the asset instead of the lamports
            self.accumulator.record_success(bucket, carry=outcome.carry)
            if outcome.stranded is not None:
                self.accumulator.strand(bucket, outcome.stranded)
        elif isinstance(outcome, (Failed, Deferred)):
            self.accumulator.record_failure(bucket, share)

    def _count_success(self, bucket: Bucket, outcome: Succeeded) -> None:
        stats = self.stats
        payload = outcome.payload
        stats.total_distributed += outcome.spent
        if bucket is Bucket.BURN:
            stats.total_burned += outcome.spent
        elif bucket is Bucket.BUYBACK:
            stats.total_buyback += outcome.spent
            stats.tokens_bought += int(payload.get("tokens_received", 0))
        elif bucket is Bucket.HOLDER_REWARD:
            stats.total_holder_rewards += outcome.spent
        elif payload.get("fallback"):
            stats.total_burned += outcome.spent
        else:
            stats.total_lp_added += outcome.spent
        self._count_assets(payload)

    def _count_assets(self, payload: Mapping[str, Any]) -> None:
        self.stats.tokens_burned += int(payload.get("tokens_burned", 0))
        self.stats.tokens_rewarded += int(payload.get("tokens_rewarded", 0))
        self.stats.total_lp_burned += int(payload.get("lp_shares_burned", 0))


__all__ = [
    "DEFAULT_MIN_FEE_THRESHOLD",
    "DistributionOrchestrator",
    "DistributionStats",
    "LAMPORTS_PER_SOL",
]

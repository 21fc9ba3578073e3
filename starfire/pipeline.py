"""Claim accrued fees and hand the distributable remainder to the orchestrator."""

from __future__ import annotations

import logging

from .actions import describe_error
from .interfaces import ClaimReceipt, FeeSource
from .momentum import MomentumIndicator
from .orchestrator import LAMPORTS_PER_SOL, DistributionOrchestrator
from .results import CycleReport, CycleStatus
from .retry import DEFAULT_POLICY, RetryPolicy, run_with_retry

logger = logging.getLogger(__name__)

DEFAULT_OPERATING_RESERVE = 5_000_000  # 0.005 SOL kept for transaction fees


class ClaimPipeline:
    """One claim-and-distribute cycle for a tracked asset."""

    def __init__(
        self,
        asset_id: str,
        fee_source: FeeSource,
        orchestrator: DistributionOrchestrator,
        momentum: MomentumIndicator,
        *,
        operating_reserve: int = DEFAULT_OPERATING_RESERVE,
        policy: RetryPolicy = DEFAULT_POLICY,
    ) -> None:
        self.asset_id = asset_id
        self.fee_source = fee_source
        self.orchestrator = orchestrator
        self.momentum = momentum
        self.operating_reserve = max(0, int(operating_reserve))
        self.policy = policy

    async def update_price(self, price: float | None = None) -> bool:
        """Feed one sample to the momentum indicator.

        Without an explicit ``price`` the fee source is asked for one; a
        failed lookup is logged and leaves the indicator untouched.
        """

        if price is None:
            try:
                price = await run_with_retry(
                    lambda: self.fee_source.get_price(self.asset_id),
                    policy=self.policy,
                    label="price",
                )
            except Exception as exc:
                logger.warning("Price fetch failed: %s", describe_error(exc))
                return False
            if price is None:
                return False
        return self.momentum.add_sample(price)

    async def cycle(self) -> CycleReport:
        try:
            receipt: ClaimReceipt = await run_with_retry(
                lambda: self.fee_source.claim(self.asset_id),
                policy=self.policy,
                label="claim",
            )
        except Exception as exc:
            logger.error("Claim failed: %s", describe_error(exc))
            return CycleReport(CycleStatus.CLAIM_FAILED, error=describe_error(exc))

        claimed = max(0, int(receipt.amount or 0))
        if claimed <= 0:
            logger.info("No fees claimed, nothing to distribute")
            return CycleReport(CycleStatus.NO_FEES, reference=receipt.reference)

        self.orchestrator.record_claim(claimed)
        logger.info(
            "Claimed %.9f SOL (ref=%s)", claimed / LAMPORTS_PER_SOL, receipt.reference
        )

        distributable = max(0, claimed - self.operating_reserve)
        if distributable < self.orchestrator.min_fee_threshold:
            logger.info("Claimed amount too small to distribute after reserve")
            return CycleReport(
                CycleStatus.BELOW_THRESHOLD_AFTER_RESERVE,
                claimed=claimed,
                distributable=distributable,
                reference=receipt.reference,
            )

        distribution = await self.orchestrator.distribute(distributable)
        return CycleReport(
            CycleStatus.DISTRIBUTED,
            claimed=claimed,
            distributable=distributable,
            reference=receipt.reference,
            distribution=distribution,
        )


__all__ = ["ClaimPipeline", "DEFAULT_OPERATING_RESERVE"]

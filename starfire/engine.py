"""Public facade tying the momentum indicator, orchestrator, pipeline and loop together."""

from __future__ import annotations

import logging
import random
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional

from .config import EngineConfig
from .interfaces import FeeSource, HolderRegistry, LiquidityPool, SwapClient
from .logging_utils import serialize_for_log
from .momentum import MomentumIndicator
from .orchestrator import DEFAULT_MIN_FEE_THRESHOLD, DistributionOrchestrator
from .pipeline import DEFAULT_OPERATING_RESERVE, ClaimPipeline
from .results import CycleReport, DistributionReport
from .retry import DEFAULT_POLICY, RetryPolicy
from .scheduler import Scheduler
from .selection import DEFAULT_MIN_HOLDERS
from .split import DEFAULT_PERCENTAGES, SplitPercentages
from .state import load_state, save_state

logger = logging.getLogger(__name__)


class FeeEngine:
    """One fee allocation engine for a single tracked asset.

    Collaborators are injected; the engine owns no network resources.
    When ``state_file`` is set the accumulator and statistics are saved
    after every operation that can change them.
    """

    def __init__(
        self,
        asset_id: str,
        *,
        fee_source: FeeSource,
        swap: SwapClient,
        pool: LiquidityPool,
        registry: HolderRegistry,
        percentages: SplitPercentages = DEFAULT_PERCENTAGES,
        momentum_period: int = 14,
        min_holders: int = DEFAULT_MIN_HOLDERS,
        exclude_holders: Iterable[str] = (),
        min_fee_threshold: int = DEFAULT_MIN_FEE_THRESHOLD,
        operating_reserve: int = DEFAULT_OPERATING_RESERVE,
        policy: RetryPolicy = DEFAULT_POLICY,
        rng: random.Random | None = None,
        concurrent: bool = True,
        state_file: str | Path | None = None,
    ) -> None:
        if not asset_id:
            raise ValueError("asset_id is required")
        self.asset_id = asset_id
        self.momentum = MomentumIndicator(momentum_period)
        self.orchestrator = DistributionOrchestrator.build(
            asset_id,
            swap=swap,
            pool=pool,
            registry=registry,
            momentum=self.momentum,
            percentages=percentages,
            min_holders=min_holders,
            exclude_holders=exclude_holders,
            min_fee_threshold=min_fee_threshold,
            policy=policy,
            rng=rng,
            concurrent=concurrent,
        )
        self.pipeline = ClaimPipeline(
            asset_id,
            fee_source,
            self.orchestrator,
            self.momentum,
            operating_reserve=operating_reserve,
            policy=policy,
        )
        self.state_file = Path(state_file) if state_file else None
        self._loop: Optional[Scheduler] = None
        self._price_loop: Optional[Scheduler] = None
        if self.state_file is not None:
            load_state(self.state_file, self.orchestrator)

    @classmethod
    def from_config(
        cls,
        cfg: EngineConfig,
        *,
        fee_source: FeeSource,
        swap: SwapClient,
        pool: LiquidityPool,
        registry: HolderRegistry,
        exclude_holders: Iterable[str] = (),
        rng: random.Random | None = None,
    ) -> "FeeEngine":
        if not cfg.token_mint:
            raise ValueError("token_mint is not configured")
        return cls(
            cfg.token_mint,
            fee_source=fee_source,
            swap=swap,
            pool=pool,
            registry=registry,
            percentages=cfg.percentages,
            momentum_period=cfg.momentum_period,
            min_holders=cfg.min_holders,
            exclude_holders=exclude_holders,
            min_fee_threshold=cfg.min_fee_threshold_lamports,
            operating_reserve=cfg.operating_reserve_lamports,
            policy=cfg.retry_policy,
            rng=rng,
            state_file=cfg.state_file,
        )

    @property
    def stats(self):
        return self.orchestrator.stats

    # operations --------------------------------------------------------

    async def update_price(self, price: float | None = None) -> bool:
        return await self.pipeline.update_price(price)

    async def distribute_fees(self, total_fee: int) -> DistributionReport:
        report = await self.orchestrator.distribute(total_fee)
        self._persist()
        return report

    async def claim_and_distribute(self) -> CycleReport:
        report = await self.pipeline.cycle()
        self._persist()
        logger.debug("Cycle result: %s", serialize_for_log(report))
        return report

    async def flush_accumulated(self) -> DistributionReport:
        report = await self.orchestrator.flush()
        self._persist()
        return report

    def get_status(self) -> Dict[str, Any]:
        reading = self.momentum.compute()
        signal = self.momentum.classify()
        acc = self.orchestrator.accumulator
        return {
            "asset": self.asset_id,
            "momentum": reading.as_dict(),
            "momentum_action": signal.as_dict(),
            "accumulated": acc.snapshot(),
            "stranded": acc.stranded_snapshot(),
            "stats": self.stats.as_dict(),
            "loop_running": self.loop_running,
        }

    # loops -------------------------------------------------------------

    @property
    def loop_running(self) -> bool:
        return self._loop is not None and self._loop.running

    async def _loop_cycle(self) -> CycleReport:
        # the price poller already samples on its own timer
        if self._price_loop is None or not self._price_loop.running:
            await self.update_price()
        return await self.claim_and_distribute()

    def start_loop(
        self,
        interval: float,
        *,
        on_result: Callable[[CycleReport], None] | None = None,
    ) -> Scheduler:
        """Claim and distribute now and then every ``interval`` seconds."""

        if self.loop_running:
            return self._loop  # type: ignore[return-value]
        self._loop = Scheduler(self._loop_cycle, interval, name="auto-claim", on_result=on_result)
        self._loop.start()
        return self._loop

    def start_price_polling(self, interval: float) -> Scheduler:
        if self._price_loop is None or not self._price_loop.running:
            self._price_loop = Scheduler(self.update_price, interval, name="price-poll")
            self._price_loop.start()
        return self._price_loop

    def stop_loop(self) -> None:
        """Stop scheduling new cycles; safe to call when nothing is running."""

        for loop in (self._loop, self._price_loop):
            if loop is not None:
                loop.stop()

    async def wait_idle(self) -> None:
        for loop in (self._loop, self._price_loop):
            if loop is not None:
                await loop.wait_idle()

    def _persist(self) -> None:
        if self.state_file is None:
            return
        try:
            save_state(self.state_file, self.orchestrator)
        except OSError as exc:
            logger.error("Could not save state to %s: %s", self.state_file, exc)


__all__ = ["FeeEngine"]

"""The four allocation actions applied to each bucket of a fee split.

Actions are stateless with respect to the ledger: they receive the effective
amount for their bucket, talk to collaborators through
:func:`~starfire.retry.run_with_retry` and describe what happened with a
tagged outcome. The orchestrator applies the outcome to the accumulator and
statistics.
"""

from __future__ import annotations

import logging
import math
import random
from abc import ABC, abstractmethod
from fractions import Fraction
from typing import Any, Awaitable, Callable, Dict, Iterable, TypeVar

from .accumulator import AssetKind, Bucket, StrandedPosition
from .interfaces import HolderRegistry, LiquidityPool, SwapClient, SwapDirection
from .momentum import MomentumIndicator
from .results import ActionOutcome, Deferred, ErrorKind, Failed, Skipped, Succeeded
from .retry import DEFAULT_POLICY, ExternalRejection, RetryPolicy, is_transient, run_with_retry
from .selection import DEFAULT_MIN_HOLDERS, eligible_holders, select_weighted

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PartialFailure(Exception):
    """The first step of a two-step action succeeded and the second did not."""

    def __init__(self, cause: BaseException, position: StrandedPosition, carry: int = 0) -> None:
        super().__init__(str(cause) or type(cause).__name__)
        self.cause = cause
        self.position = position
        self.carry = carry


class PreconditionNotMet(Exception):
    """Raised when stranded funds cannot be settled yet."""


def describe_error(exc: BaseException) -> str:
    text = str(exc)
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__


class AllocationAction(ABC):
    bucket: Bucket

    def __init__(
        self,
        asset_id: str,
        swap: SwapClient,
        *,
        policy: RetryPolicy = DEFAULT_POLICY,
    ) -> None:
        self.asset_id = asset_id
        self.swap = swap
        self.policy = policy

    async def _call(self, step: str, func: Callable[[], Awaitable[T]]) -> T:
        return await run_with_retry(func, policy=self.policy, label=f"{self.bucket.value}:{step}")

    async def _buy(self, lamports: int) -> int:
        received = await self._call(
            "convert",
            lambda: self.swap.convert(self.asset_id, lamports, SwapDirection.BUY),
        )
        received = int(received or 0)
        if received <= 0:
            raise ExternalRejection("swap returned no tokens")
        return received

    async def execute(self, amount: int) -> ActionOutcome:
        """Run the action for ``amount`` lamports; never raises."""

        if amount <= 0:
            return Skipped()
        logger.info("%s: applying %s lamports", self.bucket.value, amount)
        try:
            outcome = await self.run(amount)
        except PartialFailure as exc:
            logger.error(
                "%s: second step failed after conversion: %s",
                self.bucket.value,
                describe_error(exc.cause),
            )
            return Failed(ErrorKind.PARTIAL, describe_error(exc.cause), exc.position, exc.carry)
        except Exception as exc:
            kind = ErrorKind.TRANSIENT if is_transient(exc) else ErrorKind.REJECTED
            logger.error("%s failed (%s): %s", self.bucket.value, kind.value, describe_error(exc))
            return Failed(kind, describe_error(exc))
        logger.info("%s: %s", self.bucket.value, outcome.status.value)
        return outcome

    @abstractmethod
    async def run(self, amount: int) -> ActionOutcome:
        """Apply ``amount`` lamports; may raise."""

    async def settle(self, position: StrandedPosition) -> Dict[str, Any]:
        """Finish the second step for a previously stranded ``position``."""
        raise PreconditionNotMet(f"{self.bucket.value} cannot settle {position.kind.value}")


class BurnAction(AllocationAction):
    """Buy the tracked asset and destroy all of it."""

    bucket = Bucket.BURN

    async def run(self, amount: int) -> ActionOutcome:
        received = await self._buy(amount)
        try:
            signature = await self._burn(received)
        except Exception as exc:
            raise PartialFailure(exc, StrandedPosition(AssetKind.TOKEN, received)) from exc
        return Succeeded(amount, {"tokens_burned": received, "burn_signature": signature})

    async def _burn(self, tokens: int) -> str:
        return await self._call("burn", lambda: self.swap.burn_asset(self.asset_id, tokens))

    async def settle(self, position: StrandedPosition) -> Dict[str, Any]:
        if position.kind is not AssetKind.TOKEN:
            return await super().settle(position)
        signature = await self._burn(position.amount)
        return {"tokens_burned": position.amount, "burn_signature": signature}


class BuybackAction(AllocationAction):
    """Buy the tracked asset when the momentum indicator allows it.

    The multiplier scales the effective amount (this cycle plus anything
    accumulated), so a strong signal spends more than the bucket holds and a
    weak one spends less. Either way the bucket is cleared on success.
    """

    bucket = Bucket.BUYBACK

    def __init__(
        self,
        asset_id: str,
        swap: SwapClient,
        momentum: MomentumIndicator,
        *,
        policy: RetryPolicy = DEFAULT_POLICY,
    ) -> None:
        super().__init__(asset_id, swap, policy=policy)
        self.momentum = momentum

    async def run(self, amount: int) -> ActionOutcome:
        signal = self.momentum.classify()
        info = {"momentum": signal.value, "signal": signal.action.value}
        if not signal.should_buy:
            return Deferred(signal.reason, info)

        buy_amount = math.floor(Fraction(signal.multiplier) * amount)
        if buy_amount <= 0:
            return Deferred("amount too small", info)

        received = await self._buy(buy_amount)
        return Succeeded(
            buy_amount,
            {**info, "multiplier": signal.multiplier, "tokens_received": received},
        )


class HolderRewardAction(AllocationAction):
    """Buy the tracked asset and send it to one balance-weighted holder."""

    bucket = Bucket.HOLDER_REWARD

    def __init__(
        self,
        asset_id: str,
        swap: SwapClient,
        registry: HolderRegistry,
        *,
        min_holders: int = DEFAULT_MIN_HOLDERS,
        exclude: Iterable[str] = (),
        rng: random.Random | None = None,
        policy: RetryPolicy = DEFAULT_POLICY,
    ) -> None:
        super().__init__(asset_id, swap, policy=policy)
        self.registry = registry
        self.min_holders = int(min_holders)
        self.exclude = tuple(exclude)
        self.rng = rng

    async def _pick_winner(self):
        holders = await self._call("holders", lambda: self.registry.get_holders(self.asset_id))
        holders = eligible_holders(holders, exclude=self.exclude)
        if len(holders) < self.min_holders:
            logger.info(
                "Only %s eligible holders, need %s", len(holders), self.min_holders
            )
            return None, len(holders)
        return select_weighted(holders, self.rng), len(holders)

    async def _send(self, recipient: str, tokens: int) -> str:
        return await self._call(
            "transfer", lambda: self.registry.transfer(self.asset_id, recipient, tokens)
        )

    async def run(self, amount: int) -> ActionOutcome:
        winner, count = await self._pick_winner()
        if winner is None:
            return Deferred("insufficient holders", {"holders": count})
        logger.info("Selected %s (balance=%s) from %s holders", winner.address, winner.balance, count)

        received = await self._buy(amount)
        try:
            signature = await self._send(winner.address, received)
        except Exception as exc:
            raise PartialFailure(exc, StrandedPosition(AssetKind.TOKEN, received)) from exc
        return Succeeded(
            amount,
            {
                "winner": winner.address,
                "tokens_rewarded": received,
                "transfer_signature": signature,
            },
        )

    async def settle(self, position: StrandedPosition) -> Dict[str, Any]:
        if position.kind is not AssetKind.TOKEN:
            return await super().settle(position)
        winner, count = await self._pick_winner()
        if winner is None:
            raise PreconditionNotMet(f"insufficient holders ({count})")
        signature = await self._send(winner.address, position.amount)
        return {
            "winner": winner.address,
            "tokens_rewarded": position.amount,
            "transfer_signature": signature,
        }


class PoolLockAction(AllocationAction):
    """Deposit both sides into the pool and burn the pool-share tokens.

    Half the lamports are converted for the token side. When the deposit is
    unavailable the converted tokens are burned instead and the unused native
    half stays pending for the bucket.
    """

    bucket = Bucket.LP_POOL

    def __init__(
        self,
        asset_id: str,
        swap: SwapClient,
        pool: LiquidityPool,
        *,
        policy: RetryPolicy = DEFAULT_POLICY,
    ) -> None:
        super().__init__(asset_id, swap, policy=policy)
        self.pool = pool

    async def run(self, amount: int) -> ActionOutcome:
        native_side = amount // 2
        token_side = amount - native_side
        received = await self._buy(token_side)

        try:
            deposit = await self._call(
                "deposit", lambda: self.pool.deposit(self.asset_id, native_side, received)
            )
        except Exception as exc:
            logger.warning(
                "Pool deposit unavailable (%s); burning converted tokens instead",
                describe_error(exc),
            )
            return await self._fallback_burn(token_side, native_side, received)

        try:
            signature = await self._call(
                "burn_share", lambda: self.pool.burn_share(deposit.share_id, deposit.shares)
            )
        except Exception as exc:
            position = StrandedPosition(AssetKind.POOL_SHARE, deposit.shares, deposit.share_id)
            raise PartialFailure(exc, position) from exc
        return Succeeded(
            amount,
            {
                "native_added": native_side,
                "tokens_added": received,
                "lp_shares_burned": deposit.shares,
                "pool_share_id": deposit.share_id,
                "deposit_signature": deposit.reference,
                "burn_signature": signature,
            },
        )

    async def _fallback_burn(self, token_side: int, native_side: int, tokens: int) -> ActionOutcome:
        try:
            signature = await self._call("burn", lambda: self.swap.burn_asset(self.asset_id, tokens))
        except Exception as exc:
            position = StrandedPosition(AssetKind.TOKEN, tokens)
            raise PartialFailure(exc, position, carry=native_side) from exc
        return Succeeded(
            token_side,
            {"fallback": True, "tokens_burned": tokens, "burn_signature": signature},
            carry=native_side,
        )

    async def settle(self, position: StrandedPosition) -> Dict[str, Any]:
        if position.kind is AssetKind.POOL_SHARE and position.ref:
            signature = await self._call(
                "burn_share", lambda: self.pool.burn_share(position.ref, position.amount)
            )
            return {"lp_shares_burned": position.amount, "burn_signature": signature}
        if position.kind is AssetKind.TOKEN:
            signature = await self._call(
                "burn", lambda: self.swap.burn_asset(self.asset_id, position.amount)
            )
            return {"tokens_burned": position.amount, "burn_signature": signature}
        return await super().settle(position)


__all__ = [
    "AllocationAction",
    "BurnAction",
    "BuybackAction",
    "HolderRewardAction",
    "PartialFailure",
    "PoolLockAction",
    "PreconditionNotMet",
    "describe_error",
]

from __future__ import annotations

import random
from types import SimpleNamespace
from typing import Dict, List, Optional

import pytest

from starfire.interfaces import ClaimReceipt, PoolDeposit, SwapDirection
from starfire.logging_utils import reset_warn_once_cache
from starfire.momentum import MomentumIndicator
from starfire.retry import RetryPolicy
from starfire.selection import HolderWeight

MINT = "Mint111111111111111111111111111111111111111"
FAST_POLICY = RetryPolicy(attempts=3, base_delay=0.0, call_timeout=None)


class _Failures:
    """Per-operation failure injection.

    ``failures[op]`` may be a single exception (raised on every call) or a
    list consumed one call at a time (``None`` entries let the call pass).
    """

    def __init__(self) -> None:
        self.failures: Dict[str, object] = {}
        self.calls: List[tuple] = []

    def _call(self, op: str, *args) -> None:
        self.calls.append((op, *args))
        plan = self.failures.get(op)
        if plan is None:
            return
        if isinstance(plan, list):
            if plan:
                exc = plan.pop(0)
                if exc is not None:
                    raise exc
            return
        raise plan  # type: ignore[misc]

    def count(self, op: str) -> int:
        return sum(1 for call in self.calls if call[0] == op)


class FakeFeeSource(_Failures):
    def __init__(self, claims: Optional[List[int]] = None, prices: Optional[List[float]] = None):
        super().__init__()
        self.claims = list(claims or [])
        self.prices = list(prices or [])

    async def claim(self, asset_id: str) -> ClaimReceipt:
        self._call("claim", asset_id)
        amount = self.claims.pop(0) if self.claims else 0
        return ClaimReceipt(amount, reference=f"claim-{len(self.calls)}")

    async def get_price(self, asset_id: str):
        self._call("get_price", asset_id)
        return self.prices.pop(0) if self.prices else None


class FakeSwap(_Failures):
    def __init__(self, rate: int = 1000):
        super().__init__()
        self.rate = rate
        self.burned: List[int] = []

    async def convert(self, asset_id: str, amount: int, direction: SwapDirection) -> int:
        self._call("convert", asset_id, amount, SwapDirection(direction))
        return amount * self.rate

    async def burn_asset(self, asset_id: str, amount: int) -> str:
        self._call("burn_asset", asset_id, amount)
        self.burned.append(amount)
        return f"burn-{len(self.burned)}"


class FakePool(_Failures):
    def __init__(self, shares: int = 777, share_id: str = "LPMint"):
        super().__init__()
        self.shares = shares
        self.share_id = share_id

    async def deposit(self, asset_id: str, native_amount: int, asset_amount: int) -> PoolDeposit:
        self._call("deposit", asset_id, native_amount, asset_amount)
        return PoolDeposit(self.shares, self.share_id, reference="deposit-sig")

    async def burn_share(self, share_id: str, amount: int) -> str:
        self._call("burn_share", share_id, amount)
        return "lp-burn-sig"


class FakeRegistry(_Failures):
    def __init__(self, holders: Optional[List[HolderWeight]] = None):
        super().__init__()
        self.holders = list(holders if holders is not None else default_holders())
        self.transfers: List[tuple] = []

    async def get_holders(self, asset_id: str) -> List[HolderWeight]:
        self._call("get_holders", asset_id)
        return list(self.holders)

    async def transfer(self, asset_id: str, recipient: str, amount: int) -> str:
        self._call("transfer", asset_id, recipient, amount)
        self.transfers.append((recipient, amount))
        return f"transfer-{len(self.transfers)}"


def default_holders(count: int = 6) -> List[HolderWeight]:
    return [HolderWeight(f"Holder{i}", (i + 1) * 100) for i in range(count)]


def momentum_with(prices: List[float], period: int = 14) -> MomentumIndicator:
    indicator = MomentumIndicator(period)
    for price in prices:
        indicator.add_sample(price)
    return indicator


def falling_prices(n: int = 15) -> List[float]:
    """Strictly falling series: oscillator reads 0 (strong buy)."""
    return [100.0 - i for i in range(n)]


def rising_prices(n: int = 15) -> List[float]:
    """Strictly rising series: oscillator reads 100 (accumulate)."""
    return [100.0 + i for i in range(n)]


@pytest.fixture(autouse=True)
def _reset_warn_once():
    reset_warn_once_cache()
    yield
    reset_warn_once_cache()


@pytest.fixture
def kit():
    """Fake collaborators and price helpers shared by the engine tests."""
    return SimpleNamespace(
        MINT=MINT,
        FeeSource=FakeFeeSource,
        Swap=FakeSwap,
        Pool=FakePool,
        Registry=FakeRegistry,
        holders=default_holders,
        momentum=momentum_with,
        falling=falling_prices,
        rising=rising_prices,
    )


@pytest.fixture
def fast_policy() -> RetryPolicy:
    return FAST_POLICY


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)

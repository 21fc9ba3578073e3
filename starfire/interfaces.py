"""Capabilities the distribution engine consumes from its collaborators.

All amounts are integers: lamports on the native side and raw (undecimalised)
units for the tracked asset and pool-share tokens.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Protocol, runtime_checkable

from .selection import HolderWeight


class SwapDirection(str, Enum):
    BUY = "buy"
    SELL = "sell"


@dataclass(frozen=True)
class ClaimReceipt:
    amount: int
    reference: Optional[str] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class PoolDeposit:
    shares: int
    share_id: str
    reference: Optional[str] = None


@runtime_checkable
class FeeSource(Protocol):
    async def claim(self, asset_id: str) -> ClaimReceipt:
        """Claim accrued fees; a zero ``amount`` means nothing was available."""

    async def get_price(self, asset_id: str) -> Optional[float]:
        """Return the current price in native units, ``None`` if unknown."""


@runtime_checkable
class SwapClient(Protocol):
    async def convert(
        self, asset_id: str, amount: int, direction: SwapDirection
    ) -> int:
        """Swap ``amount`` and return the amount received."""

    async def burn_asset(self, asset_id: str, amount: int) -> str:
        """Destroy ``amount`` of the tracked asset held by the fee wallet."""


@runtime_checkable
class LiquidityPool(Protocol):
    async def deposit(
        self, asset_id: str, native_amount: int, asset_amount: int
    ) -> PoolDeposit: ...

    async def burn_share(self, share_id: str, amount: int) -> str: ...


@runtime_checkable
class HolderRegistry(Protocol):
    async def get_holders(self, asset_id: str) -> List[HolderWeight]:
        """Return a fresh snapshot of holders with positive balances."""

    async def transfer(self, asset_id: str, recipient: str, amount: int) -> str:
        """Send ``amount`` to ``recipient``'s associated account, creating it."""


__all__ = [
    "ClaimReceipt",
    "FeeSource",
    "HolderRegistry",
    "LiquidityPool",
    "PoolDeposit",
    "SwapClient",
    "SwapDirection",
]

"""Fee source and swap client backed by the PumpPortal and pump.fun HTTP APIs.

PumpPortal's ``trade-local`` endpoint returns an unsigned v0 transaction
which is signed with the fee wallet and submitted through our own RPC node.
Amounts received are measured as balance differences, so conversions are
serialised with a lock.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from solana.rpc.async_api import AsyncClient
from solders.keypair import Keypair

from .config import DEFAULT_PUMP_FUN_API, DEFAULT_PUMP_PORTAL_API
from .http import request_bytes, request_json
from .interfaces import ClaimReceipt, SwapDirection
from .orchestrator import LAMPORTS_PER_SOL
from .retry import ExternalRejection
from .token_ledger import SplTokenLedger
from .transactions import (
    DEFAULT_COMPUTE_UNIT_LIMIT,
    DEFAULT_TX_FEE,
    native_balance,
    send_transaction,
    sign_serialized,
    transaction_fee,
)

logger = logging.getLogger(__name__)

_NO_FEES_MARKERS = ("no fees", "nothing to claim")
_ALREADY_PROCESSED = "already been processed"


def lamports_to_sol(lamports: int) -> str:
    return f"{lamports / LAMPORTS_PER_SOL:.9f}"


def priority_fee_sol(microlamports: int, compute_units: int = DEFAULT_COMPUTE_UNIT_LIMIT) -> str:
    """Express a compute-unit price as the total SOL tip PumpPortal expects."""
    lamports = microlamports * compute_units // 1_000_000
    return lamports_to_sol(max(lamports, 0))


class PumpPortalClient:
    def __init__(
        self,
        client: AsyncClient,
        keypair: Keypair,
        ledger: SplTokenLedger,
        *,
        portal_api: str = DEFAULT_PUMP_PORTAL_API,
        pump_fun_api: str = DEFAULT_PUMP_FUN_API,
        slippage_bps: int = 500,
        priority_fee_microlamports: int = 0,
    ) -> None:
        self.client = client
        self.keypair = keypair
        self.ledger = ledger
        self.portal_api = portal_api.rstrip("/")
        self.pump_fun_api = pump_fun_api.rstrip("/")
        self.slippage_bps = int(slippage_bps)
        self.priority_fee_microlamports = int(priority_fee_microlamports)
        self._lock = asyncio.Lock()

    @property
    def public_key(self) -> str:
        return str(self.keypair.pubkey())

    async def _trade_local(self, form: Dict[str, str]) -> bytes:
        return await request_bytes(
            "POST",
            f"{self.portal_api}/trade-local",
            data={"publicKey": self.public_key, **form},
        )

    async def _submit(self, raw: bytes, action: str) -> str:
        tx = sign_serialized(raw, self.keypair)
        return await send_transaction(self.client, tx, action=action)

    # fee source --------------------------------------------------------

    async def claim(self, asset_id: str) -> ClaimReceipt:
        """Collect creator fees; the amount is the wallet's balance increase."""

        try:
            raw = await self._trade_local(
                {
                    "action": "collectCreatorFee",
                    "mint": asset_id,
                    "priorityFee": lamports_to_sol(DEFAULT_TX_FEE),
                }
            )
        except ExternalRejection as exc:
            if exc.status == 400 or any(m in str(exc).lower() for m in _NO_FEES_MARKERS):
                logger.info("No creator fees available: %s", exc)
                return ClaimReceipt(0, reason="no fees")
            raise
        if not raw:
            logger.info("Claim returned no transaction")
            return ClaimReceipt(0, reason="no transaction")

        owner = self.keypair.pubkey()
        async with self._lock:
            before = await native_balance(self.client, owner)
            try:
                signature = await self._submit(raw, "claim")
            except ExternalRejection as exc:
                if _ALREADY_PROCESSED in str(exc):
                    return ClaimReceipt(0, reason="already claimed")
                raise
            after = await native_balance(self.client, owner)

        fee = await transaction_fee(self.client, signature)
        claimed = after - before + (DEFAULT_TX_FEE if fee is None else fee)
        logger.info("Claim %s changed balance by %s lamports", signature, after - before)
        return ClaimReceipt(max(0, claimed), reference=signature)

    async def get_price(self, asset_id: str) -> Optional[float]:
        """Bonding-curve price in lamports per raw token unit."""

        try:
            data: Any = await request_json("GET", f"{self.pump_fun_api}/coins/{asset_id}")
        except ExternalRejection as exc:
            logger.debug("Price unavailable for %s: %s", asset_id, exc)
            return None
        if not isinstance(data, dict):
            return None
        try:
            sol_reserves = float(data.get("virtual_sol_reserves") or 0)
            token_reserves = float(data.get("virtual_token_reserves") or 0)
        except (TypeError, ValueError):
            return None
        if sol_reserves <= 0 or token_reserves <= 0:
            return None
        return sol_reserves / token_reserves

    # swap client -------------------------------------------------------

    async def convert(self, asset_id: str, amount: int, direction: SwapDirection) -> int:
        """Swap and report the amount received from the wallet's balance change.

        ``BUY`` spends ``amount`` lamports and returns raw tokens; ``SELL``
        spends raw tokens and returns lamports.
        """

        direction = SwapDirection(direction)
        if amount <= 0:
            raise ValueError("swap amount must be positive")
        buying = direction is SwapDirection.BUY
        form = {
            "action": direction.value,
            "mint": asset_id,
            "amount": lamports_to_sol(amount) if buying else str(int(amount)),
            "denominatedInSol": "true" if buying else "false",
            "slippage": str(self.slippage_bps / 100),
            "priorityFee": priority_fee_sol(self.priority_fee_microlamports),
            "pool": "auto",
        }
        async with self._lock:
            before = await self._received_balance(asset_id, buying)
            raw = await self._trade_local(form)
            if not raw:
                raise ExternalRejection(f"{direction.value}: no transaction returned")
            signature = await self._submit(raw, direction.value)
            after = await self._received_balance(asset_id, buying)

        received = max(0, after - before)
        logger.info("%s %s -> received %s (%s)", direction.value, amount, received, signature)
        return received

    async def _received_balance(self, asset_id: str, buying: bool) -> int:
        if buying:
            return await self.ledger.token_balance(asset_id)
        return await native_balance(self.client, self.keypair.pubkey())

    async def burn_asset(self, asset_id: str, amount: int) -> str:
        return await self.ledger.burn_asset(asset_id, amount)


__all__ = ["PumpPortalClient", "lamports_to_sol", "priority_fee_sol"]

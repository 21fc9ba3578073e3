"""Liquidity pool client for PumpSwap deposits made through PumpPortal."""

from __future__ import annotations

import base64
import binascii
import logging
from decimal import Decimal, InvalidOperation
from typing import Any

from solana.rpc.async_api import AsyncClient
from solders.keypair import Keypair

from .config import DEFAULT_PUMP_PORTAL_API
from .http import request_json
from .interfaces import PoolDeposit
from .pumpportal import priority_fee_sol
from .retry import ExternalRejection
from .token_ledger import SplTokenLedger
from .transactions import send_transaction, sign_serialized

logger = logging.getLogger(__name__)


def _as_units(value: Any) -> int:
    try:
        return int(Decimal(str(value)))
    except (InvalidOperation, ValueError) as exc:
        raise ExternalRejection(f"invalid pool share amount: {value!r}") from exc


class PumpSwapPool:
    """Deposit both sides of the pair and burn the resulting pool shares."""

    def __init__(
        self,
        client: AsyncClient,
        keypair: Keypair,
        ledger: SplTokenLedger,
        *,
        portal_api: str = DEFAULT_PUMP_PORTAL_API,
        priority_fee_microlamports: int = 0,
    ) -> None:
        self.client = client
        self.keypair = keypair
        self.ledger = ledger
        self.portal_api = portal_api.rstrip("/")
        self.priority_fee_microlamports = int(priority_fee_microlamports)

    async def deposit(self, asset_id: str, native_amount: int, asset_amount: int) -> PoolDeposit:
        data = await request_json(
            "POST",
            f"{self.portal_api}/liquidity/add",
            json={
                "publicKey": str(self.keypair.pubkey()),
                "mint": asset_id,
                "solAmount": int(native_amount),
                "tokenAmount": int(asset_amount),
                "priorityFee": priority_fee_sol(self.priority_fee_microlamports),
            },
        )
        if not isinstance(data, dict) or not data.get("transaction"):
            raise ExternalRejection("liquidity add: no transaction returned")
        share_id = data.get("lpMint")
        if not share_id:
            raise ExternalRejection("liquidity add: response has no lpMint")
        shares = _as_units(data.get("lpTokensReceived", 0))

        try:
            raw = base64.b64decode(data["transaction"], validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ExternalRejection("liquidity add: transaction is not base64") from exc
        tx = sign_serialized(raw, self.keypair)
        signature = await send_transaction(self.client, tx, action="liquidity add")
        logger.info(
            "Added %s lamports + %s tokens to pool, received %s shares of %s",
            native_amount,
            asset_amount,
            shares,
            share_id,
        )
        return PoolDeposit(shares=shares, share_id=str(share_id), reference=signature)

    async def burn_share(self, share_id: str, amount: int) -> str:
        return await self.ledger.burn_mint(share_id, amount)


__all__ = ["PumpSwapPool"]

"""SPL token operations for the fee wallet: burn, transfer and holder snapshots."""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.types import MemcmpOpts
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import (
    BurnParams,
    TransferParams,
    burn,
    create_associated_token_account,
    get_associated_token_address,
    transfer,
)

from .selection import HolderWeight
from .transactions import build_and_send, rpc_errors

logger = logging.getLogger(__name__)

TOKEN_ACCOUNT_SIZE = 165
_OWNER = slice(32, 64)
_AMOUNT = slice(64, 72)


def decode_token_account(data: bytes) -> Tuple[str, int]:
    """Return ``(owner, amount)`` from a raw SPL token account."""

    if len(data) < _AMOUNT.stop:
        raise ValueError(f"token account data too short: {len(data)} bytes")
    owner = Pubkey.from_bytes(bytes(data[_OWNER]))
    amount = int.from_bytes(bytes(data[_AMOUNT]), "little")
    return str(owner), amount


class SplTokenLedger:
    """Token-side collaborator built on Solana JSON-RPC.

    Implements the holder registry and the burn half of the swap client.
    All amounts are raw token units.
    """

    def __init__(
        self,
        client: AsyncClient,
        keypair: Keypair,
        *,
        priority_fee_microlamports: int = 0,
    ) -> None:
        self.client = client
        self.keypair = keypair
        self.priority_fee_microlamports = int(priority_fee_microlamports)

    @property
    def owner(self) -> Pubkey:
        return self.keypair.pubkey()

    def token_account(self, mint: str, owner: Optional[Pubkey] = None) -> Pubkey:
        return get_associated_token_address(owner or self.owner, Pubkey.from_string(mint))

    async def token_balance(self, mint: str, owner: Optional[Pubkey] = None) -> int:
        """Raw balance of ``owner``'s associated account; 0 when it does not exist."""

        account = self.token_account(mint, owner)
        async with rpc_errors("token balance"):
            resp = await self.client.get_account_info(account, commitment=Confirmed)
        if resp.value is None:
            return 0
        return decode_token_account(bytes(resp.value.data))[1]

    async def burn_asset(self, asset_id: str, amount: int) -> str:
        """Burn ``amount`` of ``asset_id`` from the fee wallet's account."""

        if amount <= 0:
            raise ValueError("burn amount must be positive")
        ix = burn(
            BurnParams(
                program_id=TOKEN_PROGRAM_ID,
                account=self.token_account(asset_id),
                mint=Pubkey.from_string(asset_id),
                owner=self.owner,
                amount=int(amount),
            )
        )
        signature = await build_and_send(
            self.client,
            self.keypair,
            [ix],
            priority_fee_microlamports=self.priority_fee_microlamports,
            action="burn",
        )
        logger.info("Burned %s units of %s", amount, asset_id)
        return signature

    burn_mint = burn_asset

    async def get_holders(self, asset_id: str) -> List[HolderWeight]:
        async with rpc_errors("holders"):
            resp = await self.client.get_program_accounts(
                TOKEN_PROGRAM_ID,
                commitment=Confirmed,
                encoding="base64",
                filters=[TOKEN_ACCOUNT_SIZE, MemcmpOpts(offset=0, bytes=asset_id)],
            )
        own = str(self.owner)
        balances: dict[str, int] = {}
        for keyed in resp.value:
            owner, amount = decode_token_account(bytes(keyed.account.data))
            if amount <= 0 or owner == own:
                continue
            balances[owner] = balances.get(owner, 0) + amount
        holders = [HolderWeight(address, balance) for address, balance in balances.items()]
        logger.debug("Found %d holders of %s", len(holders), asset_id)
        return holders

    async def transfer(self, asset_id: str, recipient: str, amount: int) -> str:
        """Send ``amount`` to ``recipient``'s associated account, creating it if absent."""

        if amount <= 0:
            raise ValueError("transfer amount must be positive")
        mint = Pubkey.from_string(asset_id)
        dest_owner = Pubkey.from_string(recipient)
        dest = get_associated_token_address(dest_owner, mint)

        instructions = []
        async with rpc_errors("recipient account"):
            info = await self.client.get_account_info(dest, commitment=Confirmed)
        if info.value is None:
            instructions.append(create_associated_token_account(self.owner, dest_owner, mint))
        instructions.append(
            transfer(
                TransferParams(
                    program_id=TOKEN_PROGRAM_ID,
                    source=self.token_account(asset_id),
                    dest=dest,
                    owner=self.owner,
                    amount=int(amount),
                )
            )
        )
        signature = await build_and_send(
            self.client,
            self.keypair,
            instructions,
            priority_fee_microlamports=self.priority_fee_microlamports,
            action="transfer",
        )
        logger.info("Transferred %s units of %s to %s", amount, asset_id, recipient)
        return signature


__all__ = ["SplTokenLedger", "TOKEN_ACCOUNT_SIZE", "decode_token_account"]

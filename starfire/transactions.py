"""Signing, sending and confirming Solana transactions for the fee wallet."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Sequence

from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.core import RPCException, UnconfirmedTxError
from solana.rpc.types import TxOpts
from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from .retry import ExternalRejection, TransientError

logger = logging.getLogger(__name__)

DEFAULT_TX_FEE = 5_000  # base fee per signature, lamports
DEFAULT_COMPUTE_UNIT_LIMIT = 200_000


@asynccontextmanager
async def rpc_errors(action: str) -> AsyncIterator[None]:
    """Translate solana-py errors into the retry taxonomy."""

    try:
        yield
    except (SolanaRpcException, UnconfirmedTxError) as exc:
        raise TransientError(f"{action}: network error: {exc}") from exc
    except RPCException as exc:
        raise ExternalRejection(f"{action}: {exc}") from exc


def sign_serialized(raw: bytes, keypair: Keypair) -> VersionedTransaction:
    """Sign a serialized v0 transaction prepared by a remote API."""

    tx = VersionedTransaction.from_bytes(raw)
    sig = keypair.sign_message(bytes(tx.message))
    return VersionedTransaction.populate(tx.message, [sig] + list(tx.signatures[1:]))


async def send_transaction(
    client: AsyncClient, tx: VersionedTransaction, *, action: str = "transaction"
) -> str:
    """Send ``tx`` and wait for confirmation; returns the signature string."""

    async with rpc_errors(action):
        resp = await client.send_raw_transaction(
            bytes(tx), opts=TxOpts(skip_preflight=False, preflight_commitment=Confirmed)
        )
        signature = resp.value
        await client.confirm_transaction(signature, commitment=Confirmed)
    logger.info("%s confirmed: %s", action, signature)
    return str(signature)


async def build_and_send(
    client: AsyncClient,
    payer: Keypair,
    instructions: Sequence[Instruction],
    *,
    priority_fee_microlamports: int = 0,
    compute_unit_limit: int = DEFAULT_COMPUTE_UNIT_LIMIT,
    action: str = "transaction",
) -> str:
    """Compile ``instructions`` into a v0 transaction paid by ``payer`` and send it."""

    budget: list[Instruction] = []
    if priority_fee_microlamports > 0:
        budget.append(set_compute_unit_limit(compute_unit_limit))
        budget.append(set_compute_unit_price(priority_fee_microlamports))
    async with rpc_errors(action):
        latest = await client.get_latest_blockhash(commitment=Confirmed)
    message = MessageV0.try_compile(
        payer.pubkey(), [*budget, *instructions], [], latest.value.blockhash
    )
    tx = VersionedTransaction(message, [payer])
    return await send_transaction(client, tx, action=action)


async def native_balance(client: AsyncClient, owner: Pubkey) -> int:
    async with rpc_errors("balance"):
        resp = await client.get_balance(owner, commitment=Confirmed)
    return int(resp.value)


async def transaction_fee(client: AsyncClient, signature: str) -> Optional[int]:
    """Return the network fee paid by ``signature``, ``None`` when unknown."""

    try:
        async with rpc_errors("transaction fee"):
            resp = await client.get_transaction(
                Signature.from_string(signature),
                commitment=Confirmed,
                max_supported_transaction_version=0,
            )
    except (TransientError, ExternalRejection) as exc:
        logger.debug("Could not read fee for %s: %s", signature, exc)
        return None
    if resp.value is None or resp.value.transaction.meta is None:
        return None
    return int(resp.value.transaction.meta.fee)


__all__ = [
    "DEFAULT_TX_FEE",
    "build_and_send",
    "native_balance",
    "rpc_errors",
    "send_transaction",
    "sign_serialized",
    "transaction_fee",
]

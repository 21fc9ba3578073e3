from __future__ import annotations

import asyncio
import json
import logging
import signal
import sys
from argparse import ArgumentParser, Namespace
from contextlib import asynccontextmanager
from decimal import Decimal, InvalidOperation
from typing import Any, AsyncIterator

from solana.rpc.async_api import AsyncClient
from solders.keypair import Keypair

from .config import (
    ConfigError,
    EngineConfig,
    apply_env_overrides,
    find_config_file,
    load_config,
    validate_config,
)
from .engine import FeeEngine
from .env import load_env_file
from .http import close_session
from .logging_utils import configure_runtime_logging
from .orchestrator import LAMPORTS_PER_SOL
from .pumpportal import PumpPortalClient
from .pumpswap import PumpSwapPool
from .token_ledger import SplTokenLedger
from .wallet import WalletError, load_fee_wallet

logger = logging.getLogger(__name__)


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(prog="starfire", description="Claim and allocate creator fees")
    parser.add_argument("--config", help="TOML or YAML configuration file")
    parser.add_argument("--keypair", help="Solana CLI JSON keypair for the fee wallet")
    parser.add_argument("--env-file", default=".env", help="KEY=VALUE file to load first")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_p = subparsers.add_parser("run", help="Claim and distribute on a fixed interval")
    run_p.add_argument("--interval-minutes", type=float, default=None)

    subparsers.add_parser("claim", help="Run one claim-and-distribute cycle")

    dist_p = subparsers.add_parser("distribute", help="Distribute an amount of SOL now")
    dist_p.add_argument("amount", help="Amount in SOL, e.g. 0.25")

    subparsers.add_parser(
        "flush",
        help="Redistribute all accumulated amounts (not while `run` uses the same state file)",
    )
    subparsers.add_parser("status", help="Print momentum, accumulators and stats")
    subparsers.add_parser("price", help="Fetch one price sample")
    return parser


def sol_to_lamports(amount: str) -> int:
    try:
        value = Decimal(amount)
    except InvalidOperation as exc:
        raise ValueError(f"invalid SOL amount: {amount!r}") from exc
    if not value.is_finite() or value < 0:
        raise ValueError(f"amount must be a non-negative number: {amount!r}")
    return int(value * LAMPORTS_PER_SOL)


@asynccontextmanager
async def open_engine(cfg: EngineConfig, keypair: Keypair) -> AsyncIterator[FeeEngine]:
    """Wire the on-chain collaborators and yield a ready engine."""

    client = AsyncClient(cfg.rpc_url)
    ledger = SplTokenLedger(
        client, keypair, priority_fee_microlamports=cfg.priority_fee_microlamports
    )
    portal = PumpPortalClient(
        client,
        keypair,
        ledger,
        portal_api=cfg.pump_portal_api,
        pump_fun_api=cfg.pump_fun_api,
        slippage_bps=cfg.slippage_bps,
        priority_fee_microlamports=cfg.priority_fee_microlamports,
    )
    pool = PumpSwapPool(
        client,
        keypair,
        ledger,
        portal_api=cfg.pump_portal_api,
        priority_fee_microlamports=cfg.priority_fee_microlamports,
    )
    try:
        yield FeeEngine.from_config(
            cfg,
            fee_source=portal,
            swap=portal,
            pool=pool,
            registry=ledger,
            exclude_holders=(str(keypair.pubkey()),),
        )
    finally:
        await client.close()
        await close_session()


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, sort_keys=True, default=str))


async def _run_forever(engine: FeeEngine, cfg: EngineConfig) -> int:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):  # pragma: no cover - platform specific
            logger.debug("Signal handlers unavailable for %s", sig)

    engine.start_price_polling(cfg.price_poll_seconds)
    scheduler = engine.start_loop(cfg.claim_interval_seconds)
    logger.info(
        "Auto-claim running for %s every %.1f minutes",
        engine.asset_id,
        cfg.claim_interval_minutes,
    )
    try:
        await stop.wait()
    finally:
        engine.stop_loop()
        await engine.wait_idle()

    print("Session statistics:")
    _print_json(
        {
            "stats": engine.stats.as_dict(),
            "cycles": {
                "completed": scheduler.completed,
                "failed": scheduler.failed,
                "skipped": scheduler.skipped,
            },
            "accumulated": engine.orchestrator.accumulator.snapshot(),
        }
    )
    return 0


async def _dispatch(args: Namespace, cfg: EngineConfig, keypair: Keypair) -> int:
    async with open_engine(cfg, keypair) as engine:
        if args.command == "run":
            return await _run_forever(engine, cfg)
        if args.command == "claim":
            await engine.update_price()
            report = await engine.claim_and_distribute()
            _print_json(report.as_dict())
        elif args.command == "distribute":
            report = await engine.distribute_fees(sol_to_lamports(args.amount))
            _print_json(report.as_dict())
        elif args.command == "flush":
            report = await engine.flush_accumulated()
            _print_json(report.as_dict())
        elif args.command == "status":
            _print_json(engine.get_status())
        elif args.command == "price":
            added = await engine.update_price()
            _print_json({"sample_added": added, "momentum": engine.momentum.compute().as_dict()})
    return 0


def load_settings(args: Namespace) -> EngineConfig:
    path = args.config or find_config_file()
    cfg = apply_env_overrides(load_config(path))
    if getattr(args, "interval_minutes", None) is not None:
        cfg = validate_config({**cfg.model_dump(), "claim_interval_minutes": args.interval_minutes})
    if not cfg.token_mint:
        raise ConfigError("token_mint is not set (config file or TOKEN_MINT)")
    return cfg


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    load_env_file(args.env_file)
    configure_runtime_logging(level=args.log_level)

    try:
        cfg = load_settings(args)
        keypair = load_fee_wallet(args.keypair)
        if args.command == "distribute":
            sol_to_lamports(args.amount)
    except (ConfigError, WalletError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    return asyncio.run(_dispatch(args, cfg, keypair))


if __name__ == "__main__":
    raise SystemExit(main())

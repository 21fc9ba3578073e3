import json
import os
from contextlib import asynccontextmanager

import pytest

from solders.keypair import Keypair

import starfire.main as cli
from starfire.engine import FeeEngine


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for name in ("TOKEN_MINT", "STARFIRE_CONFIG", "RPC_URL", "SOLANA_RPC_URL", "STARFIRE_STATE_FILE"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(cli, "configure_runtime_logging", lambda **kwargs: None)
    monkeypatch.setattr(cli, "load_fee_wallet", lambda path=None: Keypair())
    return tmp_path


@pytest.fixture
def fake_engine(kit, fast_policy, monkeypatch):
    engine = FeeEngine(
        kit.MINT,
        fee_source=kit.FeeSource(claims=[0], prices=[1.5]),
        swap=kit.Swap(),
        pool=kit.Pool(),
        registry=kit.Registry(),
        policy=fast_policy,
    )

    @asynccontextmanager
    async def fake_open_engine(cfg, keypair):
        yield engine

    monkeypatch.setattr(cli, "open_engine", fake_open_engine)
    return engine


def test_sol_to_lamports():
    assert cli.sol_to_lamports("0.25") == 250_000_000
    assert cli.sol_to_lamports("1") == 1_000_000_000
    assert cli.sol_to_lamports("0.0000000019") == 1
    for bad in ("abc", "-1", "nan", "inf"):
        with pytest.raises(ValueError):
            cli.sol_to_lamports(bad)


def test_parser_subcommands():
    parser = cli.build_parser()
    args = parser.parse_args(["run", "--interval-minutes", "2"])
    assert args.command == "run"
    assert args.interval_minutes == 2.0
    args = parser.parse_args(["--config", "x.toml", "distribute", "0.5"])
    assert (args.config, args.amount) == ("x.toml", "0.5")
    with pytest.raises(SystemExit):
        parser.parse_args([])


def test_missing_mint_exits_with_error(workspace, capsys):
    assert cli.main(["status"]) == 2
    assert "token_mint" in capsys.readouterr().err


def test_interval_override_is_validated(workspace, monkeypatch, capsys):
    monkeypatch.setenv("TOKEN_MINT", "MintFromEnv")
    assert cli.main(["run", "--interval-minutes", "0"]) == 2
    assert "error:" in capsys.readouterr().err

    args = cli.build_parser().parse_args(["run", "--interval-minutes", "1.5"])
    cfg = cli.load_settings(args)
    assert cfg.claim_interval_seconds == 90.0
    assert cfg.token_mint == "MintFromEnv"


def test_env_file_supplies_mint(workspace, fake_engine, monkeypatch, capsys):
    monkeypatch.setenv("TOKEN_MINT", "placeholder")
    monkeypatch.delenv("TOKEN_MINT")
    (workspace / ".env").write_text("TOKEN_MINT=MintFromDotEnv\n")
    assert cli.main(["status"]) == 0
    assert os.environ["TOKEN_MINT"] == "MintFromDotEnv"
    status = json.loads(capsys.readouterr().out)
    assert status["asset"] == fake_engine.asset_id


def test_distribute_command(workspace, fake_engine, monkeypatch, capsys):
    monkeypatch.setenv("TOKEN_MINT", "MintFromEnv")
    assert cli.main(["distribute", "0.0004"]) == 0
    report = json.loads(capsys.readouterr().out)
    assert report["status"] == "distributed"
    assert report["total"] == 400_000
    assert fake_engine.stats.total_distributed > 0


def test_bad_distribute_amount(workspace, fake_engine, monkeypatch, capsys):
    monkeypatch.setenv("TOKEN_MINT", "MintFromEnv")
    assert cli.main(["distribute", "lots"]) == 2
    assert "invalid SOL amount" in capsys.readouterr().err


def test_claim_and_price_commands(workspace, fake_engine, monkeypatch, capsys):
    monkeypatch.setenv("TOKEN_MINT", "MintFromEnv")
    assert cli.main(["claim"]) == 0
    report = json.loads(capsys.readouterr().out)
    assert report["status"] == "no_fees"
    assert fake_engine.momentum.samples == (1.5,)

    assert cli.main(["price"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["sample_added"] is False
    assert out["momentum"]["samples"] == 1


def test_config_file_is_discovered(workspace, fake_engine, capsys):
    (workspace / "config.yaml").write_text(f"token_mint: {fake_engine.asset_id}\n")
    assert cli.main(["flush"]) == 0
    report = json.loads(capsys.readouterr().out)
    assert report["status"] == "nothing_accumulated"

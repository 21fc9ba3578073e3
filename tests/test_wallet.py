import json

import pytest

pytest.importorskip("solders")

from solders.keypair import Keypair  # noqa: E402

from starfire.wallet import WalletError, keypair_from_base58, load_fee_wallet, load_keypair_file


@pytest.fixture(autouse=True)
def _clean_wallet_env(monkeypatch):
    monkeypatch.delenv("FEE_WALLET_PRIVATE_KEY", raising=False)
    monkeypatch.delenv("SOLANA_KEYPAIR", raising=False)


def _write_keypair(path, kp):
    path.write_text(json.dumps(list(bytes(kp))))
    return path


def test_keypair_file_round_trip(tmp_path):
    kp = Keypair()
    loaded = load_keypair_file(_write_keypair(tmp_path / "id.json", kp))
    assert loaded.pubkey() == kp.pubkey()


@pytest.mark.parametrize("content", ["not json", "[1, 2, 3]", '{"key": 1}'])
def test_bad_keypair_files(tmp_path, content):
    path = tmp_path / "id.json"
    path.write_text(content)
    with pytest.raises(WalletError):
        load_keypair_file(path)


def test_missing_keypair_file(tmp_path):
    with pytest.raises(WalletError):
        load_keypair_file(tmp_path / "nope.json")


def test_private_key_env_wins_over_keypair_path(tmp_path, monkeypatch):
    env_kp = Keypair()
    file_kp = Keypair()
    monkeypatch.setenv("FEE_WALLET_PRIVATE_KEY", str(env_kp))
    monkeypatch.setenv("SOLANA_KEYPAIR", str(_write_keypair(tmp_path / "id.json", file_kp)))
    assert load_fee_wallet().pubkey() == env_kp.pubkey()


def test_explicit_path_wins(tmp_path, monkeypatch):
    file_kp = Keypair()
    monkeypatch.setenv("FEE_WALLET_PRIVATE_KEY", str(Keypair()))
    path = _write_keypair(tmp_path / "id.json", file_kp)
    assert load_fee_wallet(path).pubkey() == file_kp.pubkey()


def test_keypair_path_env(tmp_path, monkeypatch):
    file_kp = Keypair()
    monkeypatch.setenv("SOLANA_KEYPAIR", str(_write_keypair(tmp_path / "id.json", file_kp)))
    assert load_fee_wallet().pubkey() == file_kp.pubkey()


def test_nothing_configured():
    with pytest.raises(WalletError, match="FEE_WALLET_PRIVATE_KEY"):
        load_fee_wallet()


def test_invalid_base58():
    with pytest.raises(WalletError):
        keypair_from_base58("0OIl-not-base58")

from __future__ import annotations

import json
import os
from dataclasses import replace
from pathlib import Path

import pytest

from mintledger.env import load_dotenv_if_present, reset_dotenv_state
from mintledger.ledger.errors import InvalidPermission, UnknownAccount
from mintledger.mint.types import MintConfigError
from mintledger.runtime.chain_config import (
    apply_chain_config_to_env,
    default_chain_config,
    load_chain_config,
    read_chain_config_file,
)
from mintledger.runtime.genesis_config import default_genesis, load_genesis, parse_genesis
from mintledger.runtime.sqlite_db import SqliteDB


def _write(p: Path, obj: object) -> str:
    p.write_text(json.dumps(obj), encoding="utf-8")
    return str(p)


def test_load_chain_config_defaults_without_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MINTLEDGER_CHAIN_CONFIG_PATH", raising=False)
    cfg = load_chain_config()
    assert cfg == default_chain_config()
    assert cfg.check_invariants is True


def test_load_chain_config_from_env_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = _write(
        tmp_path / "chain.json",
        {"chain_id": "okc-1", "mode": "DEV", "db_path": ":memory:", "api_port": "9090", "check_invariants": "off"},
    )
    monkeypatch.setenv("MINTLEDGER_CHAIN_CONFIG_PATH", path)
    cfg = load_chain_config()
    assert cfg.chain_id == "okc-1"
    assert cfg.mode == "dev"
    assert cfg.api_port == 9090
    assert cfg.check_invariants is False
    assert cfg.log_level == "INFO"


@pytest.mark.parametrize(
    "raw",
    [
        {"mode": "mainnet"},
        {"api_port": 70000},
        {"log_level": "chatty"},
        {"genesis_path": "/definitely/not/here.json"},
    ],
)
def test_chain_config_validation_fails_fast(tmp_path: Path, raw: dict) -> None:
    with pytest.raises(ValueError):
        read_chain_config_file(_write(tmp_path / "chain.json", raw))


def test_chain_config_must_be_an_object(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        read_chain_config_file(_write(tmp_path / "chain.json", [1, 2]))


def test_apply_chain_config_sets_sqlite_mode(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MINTLEDGER_MODE", "prod")
    for k in ("MINTLEDGER_SQLITE_SYNCHRONOUS", "MINTLEDGER_CHAIN_ID", "MINTLEDGER_DB_PATH", "MINTLEDGER_CHECK_INVARIANTS"):
        monkeypatch.delenv(k, raising=False)
    apply_chain_config_to_env(replace(default_chain_config(), mode="dev"))
    assert os.environ["MINTLEDGER_MODE"] == "dev"
    for k in ("MINTLEDGER_CHAIN_ID", "MINTLEDGER_DB_PATH", "MINTLEDGER_CHECK_INVARIANTS"):
        assert k not in os.environ

    db = SqliteDB(path=str(tmp_path / "ledger.db"))
    db.init_schema()
    with db.connection() as con:
        assert int(con.execute("PRAGMA synchronous;").fetchone()[0]) == 1


def test_dotenv_loader_does_not_override_existing(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    env = tmp_path / ".env"
    env.write_text("MINTLEDGER_TEST_A=from_file\nMINTLEDGER_TEST_B=from_file\n", encoding="utf-8")
    monkeypatch.setenv("MINTLEDGER_TEST_A", "from_env")
    monkeypatch.delenv("MINTLEDGER_TEST_B", raising=False)
    monkeypatch.setenv("MINTLEDGER_DOTENV_PATH", str(env))

    reset_dotenv_state()
    try:
        assert load_dotenv_if_present() is True
        assert os.environ["MINTLEDGER_TEST_A"] == "from_env"
        assert os.environ["MINTLEDGER_TEST_B"] == "from_file"
        # loads once per process
        assert load_dotenv_if_present() is False
    finally:
        monkeypatch.delenv("MINTLEDGER_TEST_B", raising=False)
        reset_dotenv_state()


def test_dotenv_missing_file_is_fine(tmp_path: Path) -> None:
    reset_dotenv_state()
    try:
        assert load_dotenv_if_present(str(tmp_path / "nope.env")) is False
    finally:
        reset_dotenv_state()


def test_default_genesis_registers_standard_modules() -> None:
    g = default_genesis("c1")
    reg = g.build_registry()
    assert [a.name for a in reg.accounts()] == [
        "bonded_tokens_pool",
        "fee_collector",
        "mint",
        "not_bonded_tokens_pool",
    ]
    assert reg.lookup("mint").to_json()["permissions"] == ["minter"]
    assert reg.lookup("bonded_tokens_pool").to_json()["permissions"] == ["burner", "staking"]
    assert not reg.has_any_permission("fee_collector")
    assert g.mint_params().mint_denom == "okt"


def test_genesis_rejects_unknown_keys() -> None:
    with pytest.raises(MintConfigError):
        parse_genesis({"chain_id": "c1", "surprise": True})
    with pytest.raises(MintConfigError):
        parse_genesis({"chain_id": "c1", "mint": {"params": {"blocks_per_year": 0}}})


def test_genesis_balance_needs_exactly_one_owner() -> None:
    coins = [{"denom": "okt", "amount": "1"}]
    with pytest.raises(MintConfigError):
        parse_genesis({"chain_id": "c1", "balances": [{"coins": coins}]})
    with pytest.raises(MintConfigError):
        parse_genesis({"chain_id": "c1", "balances": [{"module": "mint", "address": "00" * 20, "coins": coins}]})


def test_genesis_semantic_errors_surface_as_ledger_errors() -> None:
    g = parse_genesis({"chain_id": "c1", "module_accounts": [{"name": "x", "permissions": ["random"]}]})
    with pytest.raises(InvalidPermission):
        g.build_registry()

    g = parse_genesis({"chain_id": "c1", "balances": [{"module": "ghost", "coins": []}]})
    with pytest.raises(UnknownAccount):
        g.resolved_balances(g.build_registry())


def test_load_genesis_file(tmp_path: Path) -> None:
    path = _write(
        tmp_path / "genesis.json",
        {
            "chain_id": "c1",
            "balances": [{"address": "ab" * 20, "coins": [{"denom": "okt", "amount": 5}]}],
            "mint": {"params": {"deflation_rate": "0.25"}, "original_minted_per_block": "2"},
        },
    )
    g = load_genesis(path)
    [(addr, coins)] = g.resolved_balances(g.build_registry())
    assert addr == bytes.fromhex("ab" * 20)
    assert str(coins) == "5okt"
    m = g.initial_minter()
    assert str(m.minted_per_block) == "2okt"
    assert str(g.mint_params().deflation_rate) == "0.25"

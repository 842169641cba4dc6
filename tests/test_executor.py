from __future__ import annotations

import json
from decimal import Decimal
from pathlib import Path
from typing import List

import pytest

from mintledger.ledger import keys
from mintledger.ledger.coins import Coins
from mintledger.ledger.errors import InvalidPermission, LedgerPanic
from mintledger.runtime import metrics
from mintledger.runtime.chain_config import ChainConfig
from mintledger.runtime.events import Event
from mintledger.runtime.executor import ExecutorError, SupplyExecutor
from mintledger.runtime.genesis_config import GenesisDoc, parse_genesis
from mintledger.runtime.sqlite_db import SqliteDB, SqliteKVStore

CHAIN = "mintledger-test"


def _genesis(**overrides) -> GenesisDoc:
    raw = {
        "chain_id": CHAIN,
        "balances": [{"module": "bonded_tokens_pool", "coins": [{"denom": "okt", "amount": "10000"}]}],
        "mint": {
            "params": {"mint_denom": "okt", "deflation_rate": "0.5", "blocks_per_year": 30, "deflation_epoch": 3},
            "original_minted_per_block": "1",
        },
    }
    raw.update(overrides)
    return parse_genesis(raw)


def _executor(db_path: str = ":memory:") -> SupplyExecutor:
    ex = SupplyExecutor(db_path=db_path, chain_id=CHAIN)
    ex.init_chain(_genesis())
    return ex


def test_run_schedule_end_to_end() -> None:
    ex = _executor()
    issued = ex.run_blocks(89)
    assert ex.height == 89
    assert issued[0].amount == Coins.of("okt", "1")
    assert issued[30].amount == Coins.of("okt", "0.5")
    assert issued[-1].amount == Coins.of("okt", "0.25")

    supply = ex.supply_keeper()
    assert supply.get_supply_of("okt") == Decimal("10052.25")
    assert supply.get_module_balance("fee_collector") == Coins.of("okt", "52.25")
    assert supply.get_module_balance("mint").is_zero()


def test_heights_must_be_strictly_sequential() -> None:
    ex = _executor()
    with pytest.raises(ExecutorError):
        ex.begin_block(2)
    ex.begin_block(1)
    with pytest.raises(ExecutorError):
        ex.begin_block(1)
    with pytest.raises(ExecutorError):
        ex.begin_block(0)
    assert ex.height == 1


def test_begin_block_requires_init_chain() -> None:
    ex = SupplyExecutor(chain_id=CHAIN)
    assert not ex.initialized
    with pytest.raises(ExecutorError):
        ex.begin_block(1)


def test_init_chain_only_once() -> None:
    ex = _executor()
    with pytest.raises(ExecutorError):
        ex.init_chain(_genesis())


def test_genesis_chain_id_must_match() -> None:
    ex = SupplyExecutor(chain_id="other-chain")
    with pytest.raises(ExecutorError):
        ex.init_chain(_genesis())


def test_panicking_block_is_rolled_back() -> None:
    metrics.reset()
    ex = SupplyExecutor(chain_id=CHAIN)
    ex.init_chain(
        _genesis(
            module_accounts=[
                {"name": "mint", "permissions": ["minter"]},
                {"name": "bonded_tokens_pool", "permissions": ["burner", "staking"]},
            ]
        )
    )
    before = ex.snapshot()

    with pytest.raises(LedgerPanic) as ei:
        ex.begin_block(1)
    assert ei.value.code == "fee_forward_failed"

    # the mint that preceded the failed forward is gone too
    assert ex.height == 0
    assert ex.snapshot() == before
    assert ex.supply_keeper().get_supply_of("okt") == Decimal(10000)
    assert metrics.snapshot()["counters"].get("ledger_panics_total") == 1


def test_restart_resumes_without_double_mint(tmp_path: Path) -> None:
    db = str(tmp_path / "ledger.db")
    ex = _executor(db)
    ex.run_blocks(5)

    ex2 = SupplyExecutor(db_path=db, chain_id=CHAIN)
    assert ex2.initialized
    assert ex2.height == 5
    assert [a.name for a in ex2.registry.accounts()] == [a.name for a in ex.registry.accounts()]
    with pytest.raises(ExecutorError):
        ex2.begin_block(5)

    ex2.begin_block(6)
    assert ex2.supply_keeper().get_supply_of("okt") == Decimal(10006)
    ex2.supply_keeper().assert_invariants()


def test_restart_with_other_chain_id_is_refused(tmp_path: Path) -> None:
    db = str(tmp_path / "ledger.db")
    _executor(db)
    with pytest.raises(ExecutorError):
        SupplyExecutor(db_path=db, chain_id="someone-else")


def test_subscribers_see_events_after_commit() -> None:
    ex = _executor()
    seen: List[Event] = []
    ex.subscribe(seen.append)
    ex.run_blocks(3)
    assert [e.type for e in seen] == ["mint", "mint", "mint"]
    assert ex.last_events[0].attr("amount") == "1okt"


def test_block_metrics() -> None:
    metrics.reset()
    ex = _executor()
    ex.run_blocks(3)
    snap = metrics.snapshot()
    assert snap["counters"]["blocks_total"] == 3
    assert snap["counters"]["mint_events_total"] == 3
    assert snap["gauges"]["height"] == 3
    assert snap["gauges"]["minted_last_block_units"] == 1


def test_snapshot_shape() -> None:
    ex = _executor()
    ex.run_blocks(31)
    snap = ex.snapshot()
    assert snap["chain_id"] == CHAIN
    assert snap["height"] == 31
    assert snap["total_supply"] == [{"denom": "okt", "amount": "10030.5"}]
    assert snap["mint"]["inflation"] == "0.5"
    assert snap["mint"]["minter"]["next_block_to_update"] == 61
    names = [m["name"] for m in snap["module_accounts"]]
    assert names == ["bonded_tokens_pool", "fee_collector", "mint", "not_bonded_tokens_pool"]
    assert snap["last_events"] == [
        {"type": "mint", "attributes": [{"key": "inflation", "value": "0.5"}, {"key": "amount", "value": "0.5okt"}]}
    ]


def test_from_config_boots_from_genesis_file(tmp_path: Path) -> None:
    gpath = tmp_path / "genesis.json"
    gpath.write_text(
        json.dumps({"chain_id": CHAIN, "mint": {"params": {"mint_denom": "okt", "blocks_per_year": 10}}}),
        encoding="utf-8",
    )
    cfg = ChainConfig(
        chain_id=CHAIN,
        mode="dev",
        db_path=str(tmp_path / "data" / "ledger.db"),
        genesis_path=str(gpath),
        api_host="127.0.0.1",
        api_port=8080,
        log_level="INFO",
        check_invariants=True,
    )
    ex = SupplyExecutor.from_config(cfg)
    assert ex.initialized
    assert ex.mint_keeper().get_params().blocks_per_year == 10

    # second boot reuses the store instead of re-applying genesis
    ex.run_blocks(2)
    again = SupplyExecutor.from_config(cfg)
    assert again.height == 2


def test_restart_refuses_malformed_permission_record(tmp_path: Path) -> None:
    db = str(tmp_path / "ledger.db")
    _executor(db)
    store = SqliteKVStore(db=SqliteDB(path=db))
    rec = json.loads(store.get(keys.module_account_key("mint")).decode("utf-8"))
    rec["permissions"] = "minter"
    store.set(keys.module_account_key("mint"), json.dumps(rec).encode("utf-8"))

    with pytest.raises(InvalidPermission) as ei:
        SupplyExecutor(db_path=db, chain_id=CHAIN)
    assert ei.value.reason == "malformed_permission_record"

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from mintledger.ledger import keys
from mintledger.ledger.accounts import AccountRegistry, address_hex
from mintledger.ledger.coins import dec_str
from mintledger.ledger.errors import LedgerPanic, SupplyError
from mintledger.ledger.permissions import from_json as permissions_from_json
from mintledger.ledger.supply import SupplyKeeper
from mintledger.mint.abci import Issuance, begin_blocker
from mintledger.mint.keeper import MintKeeper
from mintledger.runtime.chain_config import ChainConfig, load_chain_config
from mintledger.runtime.events import Event, EventManager, EventSink
from mintledger.runtime.genesis_config import GenesisDoc, default_genesis, load_genesis
from mintledger.runtime.kvstore import CacheKVStore, KVStore, MemKVStore
from mintledger.runtime.ledger_logging import log_event
from mintledger.runtime.metrics import inc_counter, set_gauge
from mintledger.runtime.sqlite_db import SqliteDB, SqliteKVStore

Json = Dict[str, Any]

MEMORY_DB = ":memory:"

log = logging.getLogger("mintledger.executor")


def _ensure_parent(path: str) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)


def _safe_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


class ExecutorError(RuntimeError):
    pass


class SupplyExecutor:
    """Drives the ledger one height at a time.

    Each begin_block() runs on its own branch over the backing store. The
    branch, including the new height, is flushed in one batch only after the
    block finished cleanly; any error discards it and leaves the last
    committed height untouched.
    """

    def __init__(
        self,
        *,
        db_path: str = MEMORY_DB,
        chain_id: str,
        check_invariants: bool = True,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.chain_id = str(chain_id)
        self.db_path = str(db_path)
        self.check_invariants = bool(check_invariants)
        self._log = logger if logger is not None else log

        self._store: KVStore
        if self.db_path == MEMORY_DB:
            self._store = MemKVStore()
        else:
            _ensure_parent(self.db_path)
            self._store = SqliteKVStore(db=SqliteDB(path=self.db_path))

        # Fail-closed on chain_id mismatch once the store has been initialised.
        raw = self._store.get(keys.META_CHAIN_ID_KEY)
        st_chain_id = raw.decode("utf-8") if raw is not None else ""
        if st_chain_id and st_chain_id != self.chain_id:
            raise ExecutorError(
                f"chain_id mismatch: db={st_chain_id!r} executor={self.chain_id!r}. Refuse to start."
            )

        self._registry = self._load_registry()
        self._events = EventManager()
        self.last_events: List[Event] = []

    # ----------------------------
    # Boot
    # ----------------------------

    def _load_registry(self) -> AccountRegistry:
        """Rebuild the registry from persisted module account records."""
        reg = AccountRegistry()
        for k, v in self._store.iterate(keys.MODULE_ACCOUNT_PREFIX):
            rec = json.loads(v.decode("utf-8"))
            acct = reg.register(str(rec.get("name") or ""), permissions_from_json(rec.get("permissions")))
            if address_hex(acct.address) != str(rec.get("address") or ""):
                raise ExecutorError(f"module account address mismatch for {acct.name!r} at key {k!r}")
        return reg

    @property
    def initialized(self) -> bool:
        return self._store.get(keys.META_CHAIN_ID_KEY) is not None

    @property
    def height(self) -> int:
        raw = self._store.get(keys.META_HEIGHT_KEY)
        return _safe_int(raw.decode("ascii"), 0) if raw is not None else 0

    @property
    def registry(self) -> AccountRegistry:
        return self._registry

    @property
    def events(self) -> EventManager:
        return self._events

    def subscribe(self, sink: EventSink) -> None:
        """Receive every event of every committed block, after commit."""
        self._events.subscribe(sink)

    def init_chain(self, genesis: Optional[GenesisDoc] = None) -> None:
        if self.initialized:
            raise ExecutorError(f"chain {self.chain_id!r} already initialised at height {self.height}")
        doc = genesis if genesis is not None else default_genesis(self.chain_id)
        if doc.chain_id != self.chain_id:
            raise ExecutorError(f"genesis chain_id {doc.chain_id!r} does not match executor {self.chain_id!r}")

        registry = doc.build_registry()
        branch = CacheKVStore(self._store)
        supply = SupplyKeeper(store=branch, registry=registry)
        supply.persist_module_accounts()
        for addr, coins in doc.resolved_balances(registry):
            supply.set_genesis_balance(addr, coins)

        mint = MintKeeper(store=branch, supply_keeper=supply)
        params = doc.mint_params()
        minter = doc.initial_minter()
        mint.set_params(params)
        mint.set_minter(minter)
        supply.assert_invariants()

        branch.set(keys.META_CHAIN_ID_KEY, self.chain_id.encode("utf-8"))
        branch.set(keys.META_HEIGHT_KEY, b"0")
        branch.write()
        self._registry = registry

        set_gauge("height", 0)
        log_event(
            self._log,
            "chain_initialized",
            chain_id=self.chain_id,
            modules=[a.name for a in registry.accounts()],
            total_supply=str(supply.get_total_supply()),
            params=params.to_json(),
            minted_per_block=str(minter.minted_per_block),
        )

    # ----------------------------
    # Blocks
    # ----------------------------

    def begin_block(self, height: int) -> Issuance:
        if not self.initialized:
            raise ExecutorError("chain not initialised; call init_chain() first")
        h = int(height)
        last = self.height
        if h != last + 1:
            raise ExecutorError(f"height out of sequence: got {h}, expected {last + 1}")

        branch = CacheKVStore(self._store)
        supply = SupplyKeeper(store=branch, registry=self._registry)
        mint = MintKeeper(store=branch, supply_keeper=supply)
        block_events = EventManager()

        try:
            issuance = begin_blocker(h, mint, block_events)
            if self.check_invariants:
                supply.assert_invariants()
            denom = mint.get_params().mint_denom
        except LedgerPanic as e:
            branch.discard()
            inc_counter("ledger_panics_total")
            log_event(self._log, "block_panic", level=logging.ERROR, height=h, code=e.code, reason=e.reason)
            raise
        except SupplyError as e:
            branch.discard()
            inc_counter("supply_errors_total")
            log_event(self._log, "block_error", level=logging.ERROR, height=h, code=e.code, reason=e.reason)
            raise

        branch.set(keys.META_HEIGHT_KEY, str(h).encode("ascii"))
        branch.write()

        inc_counter("blocks_total")
        if issuance.amount.is_zero():
            inc_counter("mint_skipped_total")
        else:
            inc_counter("mint_events_total")
        set_gauge("height", h)
        set_gauge("minted_last_block_units", int(issuance.amount.amount_of(denom)))

        self.last_events = block_events.drain()
        for ev in self.last_events:
            self._events.emit(ev)

        log_event(self._log, "block_committed", level=logging.DEBUG, height=h, minted=str(issuance.amount))
        return issuance

    def run_blocks(self, count: int) -> List[Issuance]:
        out: List[Issuance] = []
        for _ in range(int(count)):
            out.append(self.begin_block(self.height + 1))
        return out

    # ----------------------------
    # Reads
    # ----------------------------

    def supply_keeper(self) -> SupplyKeeper:
        return SupplyKeeper(store=self._store, registry=self._registry)

    def mint_keeper(self) -> MintKeeper:
        return MintKeeper(store=self._store, supply_keeper=self.supply_keeper())

    def snapshot(self) -> Json:
        supply = self.supply_keeper()
        out: Json = {
            "chain_id": self.chain_id,
            "height": self.height,
            "total_supply": supply.get_total_supply().to_json(),
            "module_accounts": [
                dict(a.to_json(), balance=supply.get_module_balance(a.name).to_json())
                for a in self._registry.accounts()
            ],
            "last_events": [e.to_json() for e in self.last_events],
        }
        if self.initialized:
            mint = self.mint_keeper()
            minter = mint.get_minter()
            out["mint"] = {
                "params": mint.get_params().to_json(),
                "minter": minter.to_json(),
                "inflation": dec_str(minter.inflation),
                "annual_provisions": mint.annual_provisions().to_json(),
            }
        return out

    # ----------------------------
    # Orchestration hooks
    # ----------------------------

    @classmethod
    def from_config(cls, cfg: ChainConfig) -> "SupplyExecutor":
        ex = cls(db_path=cfg.db_path, chain_id=cfg.chain_id, check_invariants=cfg.check_invariants)
        if not ex.initialized:
            genesis = load_genesis(cfg.genesis_path) if cfg.genesis_path else default_genesis(cfg.chain_id)
            ex.init_chain(genesis)
        return ex

    @classmethod
    def from_env(cls) -> "SupplyExecutor":
        return cls.from_config(load_chain_config())


__all__ = ["ExecutorError", "MEMORY_DB", "SupplyExecutor"]

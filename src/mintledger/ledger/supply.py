from __future__ import annotations

"""Supply keeper: balances, total supply, and the capability-gated operations.

Every public mutation runs on its own CacheKVStore branch and only flushes once
all of its checks and writes succeeded, so callers never observe half a mint,
burn or transfer. Check order for every operation:

  1. resolve module accounts          -> UnknownAccount
  2. capability checks (mint/burn)    -> LedgerPanic
  3. amount shape                     -> InvalidAmount
  4. empty amount                     -> no-op
  5. source balance                   -> InsufficientFunds
"""

import logging
from contextlib import contextmanager
from decimal import Decimal, localcontext
from typing import Any, Dict, Iterator, Optional, Tuple, Union

from mintledger.ledger import keys
from mintledger.ledger.accounts import AccountRegistry, ModuleAccount, address_hex, parse_address
from mintledger.ledger.coins import EXACT, ZERO, Coins, dec_str, to_dec
from mintledger.ledger.errors import InsufficientFunds, InvalidAmount, LedgerPanic
from mintledger.ledger.invariants import total_supply_invariant
from mintledger.ledger.permissions import Permission
from mintledger.runtime.kvstore import CacheKVStore, KVStore
from mintledger.runtime.ledger_logging import log_event
from mintledger.runtime.sqlite_db import canon_json

Json = Dict[str, Any]
AddressLike = Union[bytes, str]

_log = logging.getLogger("mintledger.supply")


def _read_dec(store: KVStore, key: bytes) -> Decimal:
    raw = store.get(key)
    if raw is None:
        return ZERO
    d = to_dec(raw.decode("utf-8"))
    if d < 0:
        raise LedgerPanic("corrupt_store", "negative_amount_persisted", {"key": key.decode("utf-8", "replace")})
    return d


def _write_dec(store: KVStore, key: bytes, d: Decimal) -> None:
    if d < 0:
        raise LedgerPanic("negative_amount", "refusing_to_persist", {"key": key.decode("utf-8", "replace")})
    if d.is_zero():
        store.delete(key)
    else:
        store.set(key, dec_str(d).encode("utf-8"))


class SupplyKeeper:
    def __init__(
        self,
        *,
        store: KVStore,
        registry: AccountRegistry,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._log = logger if logger is not None else _log

    @property
    def registry(self) -> AccountRegistry:
        return self._registry

    @contextmanager
    def _branch(self) -> Iterator[CacheKVStore]:
        branch = CacheKVStore(self._store)
        yield branch
        branch.write()

    # ------------------------------------------------------------------
    # Module accounts
    # ------------------------------------------------------------------

    def get_module_account(self, name: str) -> ModuleAccount:
        return self._registry.lookup(name)

    def get_module_address(self, name: str) -> bytes:
        return self._registry.lookup(name).address

    def persist_module_accounts(self) -> None:
        """Write every registered module account record (genesis)."""
        with self._branch() as store:
            for acct in self._registry.accounts():
                store.set(keys.module_account_key(acct.name), canon_json(acct.to_json()).encode("utf-8"))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_balance(self, addr: AddressLike, denom: str) -> Decimal:
        return _read_dec(self._store, keys.balance_key(parse_address(addr), denom))

    def get_all_balances(self, addr: AddressLike) -> Coins:
        a = parse_address(addr)
        out: Dict[str, Decimal] = {}
        for k, v in self._store.iterate(keys.balances_prefix(a)):
            _, denom = keys.split_balance_key(k)
            out[denom] = to_dec(v.decode("utf-8"))
        return Coins(out)

    def get_module_balance(self, name: str) -> Coins:
        return self.get_all_balances(self.get_module_address(name))

    def iterate_balances(self) -> Iterator[Tuple[bytes, str, Decimal]]:
        for k, v in self._store.iterate(keys.BALANCES_PREFIX):
            addr, denom = keys.split_balance_key(k)
            yield addr, denom, to_dec(v.decode("utf-8"))

    def get_total_supply(self) -> Coins:
        out: Dict[str, Decimal] = {}
        for k, v in self._store.iterate(keys.SUPPLY_PREFIX):
            denom = k[len(keys.SUPPLY_PREFIX):].decode("utf-8")
            out[denom] = to_dec(v.decode("utf-8"))
        return Coins(out)

    def get_supply_of(self, denom: str) -> Decimal:
        return _read_dec(self._store, keys.supply_key(denom))

    def staking_token_supply(self, denom: str) -> Decimal:
        return self.get_supply_of(denom)

    # ------------------------------------------------------------------
    # Internal balance/supply mutation (always on a branch)
    # ------------------------------------------------------------------

    @staticmethod
    def _coins(amount: Any) -> Coins:
        coins = Coins.parse(amount)
        if coins.is_any_negative():
            raise InvalidAmount(reason="negative_amount", details={"amount": str(coins)})
        return coins

    @staticmethod
    def _sub_balance(store: KVStore, addr: bytes, coins: Coins) -> None:
        # check every denom before writing any of them
        current = {d: _read_dec(store, keys.balance_key(addr, d)) for d in coins}
        short = {d: {"have": dec_str(current[d]), "want": dec_str(a)} for d, a in coins.items() if current[d] < a}
        if short:
            raise InsufficientFunds(details={"address": address_hex(addr), "denoms": short})
        with localcontext(EXACT):
            for d, a in coins.items():
                _write_dec(store, keys.balance_key(addr, d), current[d] - a)

    @staticmethod
    def _add_balance(store: KVStore, addr: bytes, coins: Coins) -> None:
        with localcontext(EXACT):
            for d, a in coins.items():
                k = keys.balance_key(addr, d)
                _write_dec(store, k, _read_dec(store, k) + a)

    @staticmethod
    def _change_supply(store: KVStore, coins: Coins, sign: int) -> None:
        with localcontext(EXACT):
            for d, a in coins.items():
                k = keys.supply_key(d)
                nxt = _read_dec(store, k) + (a if sign > 0 else -a)
                if nxt < 0:
                    raise LedgerPanic("negative_supply", "burn_exceeds_supply", {"denom": d})
                _write_dec(store, k, nxt)

    def _send(self, store: KVStore, src: bytes, dst: bytes, coins: Coins) -> None:
        # debit source before crediting destination
        self._sub_balance(store, src, coins)
        self._add_balance(store, dst, coins)

    # ------------------------------------------------------------------
    # Capability-gated operations
    # ------------------------------------------------------------------

    def mint_coins(self, module_name: str, amount: Any) -> None:
        acct = self._registry.lookup(module_name)
        if not acct.has_permission(Permission.MINTER):
            raise LedgerPanic(
                "unauthorized",
                "module_lacks_minter_permission",
                {"module": module_name},
            )
        coins = self._coins(amount)
        if coins.is_zero():
            return

        with self._branch() as store:
            self._add_balance(store, acct.address, coins)
            self._change_supply(store, coins, +1)

        log_event(self._log, "mint_coins", level=logging.DEBUG, module=module_name, amount=str(coins))

    def burn_coins(self, module_name: str, amount: Any) -> None:
        acct = self._registry.lookup(module_name)
        if not acct.has_any_permission():
            raise LedgerPanic("unauthorized", "module_has_no_permissions", {"module": module_name})
        if not acct.has_permission(Permission.BURNER):
            raise LedgerPanic(
                "unauthorized",
                "module_lacks_burner_permission",
                {"module": module_name},
            )
        coins = self._coins(amount)
        if coins.is_zero():
            return

        with self._branch() as store:
            self._sub_balance(store, acct.address, coins)
            self._change_supply(store, coins, -1)

        log_event(self._log, "burn_coins", level=logging.DEBUG, module=module_name, amount=str(coins))

    def send_coins_from_module_to_account(self, from_module: str, to_address: AddressLike, amount: Any) -> None:
        src = self._registry.lookup(from_module)
        dst = parse_address(to_address)
        coins = self._coins(amount)
        if coins.is_zero():
            return
        with self._branch() as store:
            self._send(store, src.address, dst, coins)

    def send_coins_from_account_to_module(self, from_address: AddressLike, to_module: str, amount: Any) -> None:
        dst = self._registry.lookup(to_module)
        src = parse_address(from_address)
        coins = self._coins(amount)
        if coins.is_zero():
            return
        with self._branch() as store:
            self._send(store, src, dst.address, coins)

    def send_coins_from_module_to_module(self, from_module: str, to_module: str, amount: Any) -> None:
        src = self._registry.lookup(from_module)
        dst = self._registry.lookup(to_module)
        coins = self._coins(amount)
        if coins.is_zero():
            return
        with self._branch() as store:
            self._send(store, src.address, dst.address, coins)

    # ------------------------------------------------------------------
    # Genesis
    # ------------------------------------------------------------------

    def set_genesis_balance(self, addr: AddressLike, amount: Any) -> None:
        """Credit a genesis balance and grow total supply by the same amount."""
        a = parse_address(addr)
        coins = self._coins(amount)
        if coins.is_zero():
            return
        with self._branch() as store:
            self._add_balance(store, a, coins)
            self._change_supply(store, coins, +1)

    # ------------------------------------------------------------------
    # Invariants
    # ------------------------------------------------------------------

    def assert_invariants(self) -> None:
        msg, broken = total_supply_invariant(self)
        if broken:
            log_event(self._log, "invariant_broken", level=logging.ERROR, message=msg)
            raise LedgerPanic("invariant_broken", "total_supply", {"message": msg})


__all__ = ["SupplyKeeper"]

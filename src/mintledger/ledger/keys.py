from __future__ import annotations

"""Deterministic byte keys for every persisted record.

Layout:
  bank/balances/<address-hex>/<denom>  -> decimal string
  supply/total/<denom>                 -> decimal string
  auth/module/<name>                   -> canonical JSON
  mint/params, mint/minter             -> canonical JSON
  meta/chain_id, meta/height           -> utf-8 text
"""

from typing import Tuple

BALANCES_PREFIX = b"bank/balances/"
SUPPLY_PREFIX = b"supply/total/"
MODULE_ACCOUNT_PREFIX = b"auth/module/"

MINT_PARAMS_KEY = b"mint/params"
MINTER_KEY = b"mint/minter"

META_CHAIN_ID_KEY = b"meta/chain_id"
META_HEIGHT_KEY = b"meta/height"


def balances_prefix(addr: bytes) -> bytes:
    return BALANCES_PREFIX + bytes(addr).hex().encode("ascii") + b"/"


def balance_key(addr: bytes, denom: str) -> bytes:
    return balances_prefix(addr) + denom.encode("utf-8")


def split_balance_key(key: bytes) -> Tuple[bytes, str]:
    """Inverse of balance_key()."""
    if not key.startswith(BALANCES_PREFIX):
        raise ValueError(f"not a balance key: {key!r}")
    rest = key[len(BALANCES_PREFIX):]
    addr_hex, sep, denom = rest.partition(b"/")
    if not sep:
        raise ValueError(f"malformed balance key: {key!r}")
    return bytes.fromhex(addr_hex.decode("ascii")), denom.decode("utf-8")


def supply_key(denom: str) -> bytes:
    return SUPPLY_PREFIX + denom.encode("utf-8")


def module_account_key(name: str) -> bytes:
    return MODULE_ACCOUNT_PREFIX + name.encode("utf-8")

from __future__ import annotations

"""Exact-decimal coin bundles.

All ledger arithmetic runs in EXACT: unbounded precision with Inexact trapped,
so an operation that would round raises instead of drifting. Addition,
subtraction and multiplication of finite decimals are always exact; only
division can trip the trap, and the ledger never divides.
"""

import re
from decimal import (
    Clamped,
    Context,
    Decimal,
    DivisionByZero,
    Inexact,
    InvalidOperation,
    MAX_EMAX,
    MAX_PREC,
    MIN_EMIN,
    Overflow,
    Rounded,
    localcontext,
)
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from mintledger.ledger.constants import DENOM_PATTERN
from mintledger.ledger.errors import InvalidAmount

Json = Dict[str, Any]
AmountLike = Union[Decimal, int, str]

EXACT = Context(
    prec=MAX_PREC,
    Emax=MAX_EMAX,
    Emin=MIN_EMIN,
    traps=[InvalidOperation, DivisionByZero, Overflow, Inexact, Rounded, Clamped],
)

ZERO = Decimal(0)
ONE = Decimal(1)

_DENOM_RE = re.compile(DENOM_PATTERN)
# Amount may carry an exponent ("1e5okt"); the exponent needs digits, so "1eth" stays 1 eth.
_COIN_RE = re.compile(r"^([-+]?(?:[0-9]*\.)?[0-9]+(?:[eE][-+]?[0-9]+)?)\s*([A-Za-z].*)$")


def is_valid_denom(denom: Any) -> bool:
    return isinstance(denom, str) and bool(_DENOM_RE.match(denom))


def to_dec(v: AmountLike) -> Decimal:
    """Parse an amount without ever going through float."""
    if isinstance(v, bool):
        raise InvalidAmount(reason="bool_amount", details={"amount": v})
    if isinstance(v, Decimal):
        d = v
    elif isinstance(v, int):
        d = Decimal(v)
    elif isinstance(v, str):
        s = v.strip()
        if not s:
            raise InvalidAmount(reason="empty_amount", details={"amount": v})
        try:
            d = Decimal(s)
        except InvalidOperation:
            raise InvalidAmount(reason="unparseable_amount", details={"amount": v}) from None
    else:
        raise InvalidAmount(reason="unsupported_amount_type", details={"type": type(v).__name__})

    if not d.is_finite():
        raise InvalidAmount(reason="non_finite_amount", details={"amount": str(v)})
    return d


def dec_str(d: Decimal) -> str:
    """Canonical decimal string: no exponent, no trailing zeros, "0" for zero."""
    if d.is_zero():
        return "0"
    with localcontext(EXACT):
        n = d.normalize()
    return format(n, "f")


def dec_pow(base: Decimal, exp: int) -> Decimal:
    """base**exp by repeated multiplication, exact."""
    if int(exp) < 0:
        raise ValueError(f"negative exponent: {exp}")
    out = ONE
    with localcontext(EXACT):
        for _ in range(int(exp)):
            out = out * base
    return out


def dec_mul(a: Decimal, b: Decimal) -> Decimal:
    with localcontext(EXACT):
        return a * b


class Coins:
    """Immutable denom -> amount bundle.

    Zero amounts are dropped. Negative amounts are kept so callers can reject
    them explicitly instead of having them silently disappear.
    """

    __slots__ = ("_amounts",)

    def __init__(self, amounts: Optional[Mapping[str, AmountLike]] = None) -> None:
        clean: Dict[str, Decimal] = {}
        for denom, amt in (amounts or {}).items():
            if not is_valid_denom(denom):
                raise InvalidAmount(reason="invalid_denom", details={"denom": denom})
            d = to_dec(amt)
            if d.is_zero():
                continue
            clean[denom] = d
        self._amounts: Dict[str, Decimal] = dict(sorted(clean.items()))

    # ---- construction ----

    @classmethod
    def of(cls, denom: str, amount: AmountLike) -> "Coins":
        return cls({denom: amount})

    @classmethod
    def parse(cls, raw: Any) -> "Coins":
        """Accept a Coins, a mapping, a list of {denom, amount}, or "10X,5Y"."""
        if isinstance(raw, Coins):
            return raw
        if raw is None:
            return cls()
        if isinstance(raw, Mapping):
            return cls._merge(raw.items())
        if isinstance(raw, list):
            pairs: List[Tuple[Any, Any]] = []
            for rec in raw:
                if not isinstance(rec, Mapping):
                    raise InvalidAmount(reason="coin_not_object", details={"coin": rec})
                pairs.append((rec.get("denom"), rec.get("amount")))
            return cls._merge(pairs)
        if isinstance(raw, str):
            return cls._parse_str(raw)
        raise InvalidAmount(reason="unsupported_coins_type", details={"type": type(raw).__name__})

    @classmethod
    def _merge(cls, pairs: Iterable[Tuple[Any, Any]]) -> "Coins":
        out: Dict[str, Decimal] = {}
        for denom, amt in pairs:
            if not is_valid_denom(denom):
                raise InvalidAmount(reason="invalid_denom", details={"denom": denom})
            if denom in out:
                raise InvalidAmount(reason="duplicate_denom", details={"denom": denom})
            out[denom] = to_dec(amt)
        return cls(out)

    @classmethod
    def _parse_str(cls, raw: str) -> "Coins":
        pairs: List[Tuple[str, str]] = []
        for part in raw.split(","):
            p = part.strip()
            if not p:
                continue
            m = _COIN_RE.match(p)
            if m is None:
                raise InvalidAmount(reason="unparseable_coin", details={"coin": p})
            pairs.append((m.group(2), m.group(1)))
        return cls._merge(pairs)

    # ---- reads ----

    def amount_of(self, denom: str) -> Decimal:
        return self._amounts.get(denom, ZERO)

    def denoms(self) -> List[str]:
        return list(self._amounts.keys())

    def items(self) -> Iterator[Tuple[str, Decimal]]:
        return iter(self._amounts.items())

    def is_zero(self) -> bool:
        return not self._amounts

    def is_any_negative(self) -> bool:
        return any(a < 0 for a in self._amounts.values())

    def is_all_gte(self, other: "Coins") -> bool:
        """True if every denom in `other` is covered by self."""
        return all(self.amount_of(d) >= a for d, a in other.items())

    # ---- arithmetic ----

    def add(self, other: "Coins") -> "Coins":
        out = dict(self._amounts)
        with localcontext(EXACT):
            for d, a in other.items():
                out[d] = out.get(d, ZERO) + a
        return Coins(out)

    def sub(self, other: "Coins") -> "Coins":
        """Difference; may contain negative entries."""
        out = dict(self._amounts)
        with localcontext(EXACT):
            for d, a in other.items():
                out[d] = out.get(d, ZERO) - a
        return Coins(out)

    def mul_dec(self, factor: Decimal) -> "Coins":
        with localcontext(EXACT):
            return Coins({d: a * factor for d, a in self._amounts.items()})

    # ---- encoding ----

    def to_json(self) -> List[Json]:
        return [{"denom": d, "amount": dec_str(a)} for d, a in self._amounts.items()]

    def __str__(self) -> str:
        return ",".join(f"{dec_str(a)}{d}" for d, a in self._amounts.items())

    def __repr__(self) -> str:
        return f"Coins({str(self)!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Coins):
            return NotImplemented
        return self._amounts == other._amounts

    def __hash__(self) -> int:
        return hash(tuple(self._amounts.items()))

    def __bool__(self) -> bool:
        return not self.is_zero()

    def __iter__(self) -> Iterator[str]:
        return iter(self._amounts)

    def __len__(self) -> int:
        return len(self._amounts)


__all__ = [
    "EXACT",
    "ZERO",
    "ONE",
    "Coins",
    "dec_mul",
    "dec_pow",
    "dec_str",
    "is_valid_denom",
    "to_dec",
]

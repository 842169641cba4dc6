from __future__ import annotations

"""Conservation invariant: total supply equals the sum of all balances."""

from decimal import Decimal, localcontext
from typing import TYPE_CHECKING, Dict, List, Tuple

from mintledger.ledger.coins import EXACT, ZERO, Coins, dec_str

if TYPE_CHECKING:  # pragma: no cover
    from mintledger.ledger.supply import SupplyKeeper


def sum_balances(keeper: "SupplyKeeper") -> Coins:
    totals: Dict[str, Decimal] = {}
    with localcontext(EXACT):
        for _addr, denom, amt in keeper.iterate_balances():
            totals[denom] = totals.get(denom, ZERO) + amt
    return Coins(totals)


def total_supply_invariant(keeper: "SupplyKeeper") -> Tuple[str, bool]:
    """Return (message, broken)."""
    expected = sum_balances(keeper)
    supply = keeper.get_total_supply()
    if supply == expected:
        return "total supply matches sum of balances", False

    lines: List[str] = []
    for denom in sorted(set(supply.denoms()) | set(expected.denoms())):
        s = supply.amount_of(denom)
        b = expected.amount_of(denom)
        if s != b:
            lines.append(f"{denom}: supply={dec_str(s)} balances={dec_str(b)}")
    return "total supply mismatch: " + "; ".join(lines), True


__all__ = ["sum_balances", "total_supply_invariant"]

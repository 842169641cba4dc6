from __future__ import annotations

"""Epoch arithmetic for the deflating issuance schedule.

Pure functions over (Minter, MintParams, height). Nothing here reads or writes
the store, so any height can be evaluated without replaying history.

Epoch e covers heights e*blocks_per_year + 1 .. (e+1)*blocks_per_year and
issues original_minted_per_block * deflation_rate**e per block. From epoch
deflation_epoch onward issuance is zero for good.
"""

from decimal import Decimal

from mintledger.ledger.coins import ZERO, Coins, dec_mul, dec_pow
from mintledger.ledger.constants import NEVER_HEIGHT
from mintledger.mint.types import Minter, MintParams


def epoch_index(height: int, blocks_per_year: int) -> int:
    """Epoch a height falls into. Heights 0 and 1 are both epoch 0."""
    return max(int(height) - 1, 0) // int(blocks_per_year)


def epoch_start(epoch: int, blocks_per_year: int) -> int:
    return int(epoch) * int(blocks_per_year) + 1


def needs_refresh(minter: Minter, height: int) -> bool:
    return int(height) == 0 or int(height) >= int(minter.next_block_to_update)


def is_mining_disabled(minter: Minter) -> bool:
    return int(minter.next_block_to_update) >= NEVER_HEIGHT


def disable_mining(minter: Minter) -> Minter:
    """Terminal state: zero issuance, never refreshed again."""
    return minter.with_(inflation=ZERO, minted_per_block=Coins(), next_block_to_update=NEVER_HEIGHT)


def refresh_minter(minter: Minter, params: MintParams, height: int) -> Minter:
    """Recompute the per-block rate for `height`.

    Always derived from the genesis baseline, never from the current rate, so
    calling it twice at the same height yields the same Minter.
    """
    e = epoch_index(height, params.blocks_per_year)
    if e >= int(params.deflation_epoch):
        return disable_mining(minter)

    factor = dec_pow(params.deflation_rate, e)
    per_block = dec_mul(minter.original_minted_per_block, factor)
    return minter.with_(
        inflation=factor,
        minted_per_block=Coins.of(params.mint_denom, per_block),
        next_block_to_update=epoch_start(e + 1, params.blocks_per_year),
    )


def scheduled_issuance(params: MintParams, original_minted_per_block: Decimal, height: int) -> Decimal:
    """Closed form: amount issued at `height` (height >= 1)."""
    if int(height) <= 0:
        return ZERO
    e = epoch_index(height, params.blocks_per_year)
    if e >= int(params.deflation_epoch):
        return ZERO
    return dec_mul(original_minted_per_block, dec_pow(params.deflation_rate, e))


__all__ = [
    "disable_mining",
    "epoch_index",
    "epoch_start",
    "is_mining_disabled",
    "needs_refresh",
    "refresh_minter",
    "scheduled_issuance",
]

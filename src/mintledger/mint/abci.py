from __future__ import annotations

"""Per-height issuance driver.

begin_blocker() is called once per height, in strictly increasing order. It
does not branch the store itself: callers (the executor) run it on a block
branch and discard that branch if a LedgerPanic escapes, so a failed forward
never leaves a committed mint behind.
"""

import logging
from decimal import Decimal
from typing import NamedTuple, Optional

from mintledger.ledger.coins import Coins, dec_str
from mintledger.ledger.errors import LedgerPanic, SupplyError
from mintledger.mint.keeper import MintKeeper
from mintledger.mint.schedule import epoch_index, is_mining_disabled, needs_refresh
from mintledger.runtime.events import (
    ATTRIBUTE_KEY_AMOUNT,
    ATTRIBUTE_KEY_INFLATION,
    EVENT_TYPE_MINT,
    EventManager,
    new_event,
)
from mintledger.runtime.ledger_logging import log_event


class Issuance(NamedTuple):
    amount: Coins
    rate: Decimal


def begin_blocker(height: int, keeper: MintKeeper, events: Optional[EventManager] = None) -> Issuance:
    logger = keeper.logger
    h = int(height)

    params = keeper.get_params()
    minter = keeper.get_minter()
    if needs_refresh(minter, h):
        minter = keeper.update_minter(minter, params, h)
        log_event(
            logger,
            "minter_refreshed",
            height=h,
            epoch=epoch_index(h, params.blocks_per_year),
            inflation=dec_str(minter.inflation),
            minted_per_block=str(minter.minted_per_block),
            next_block_to_update=minter.next_block_to_update,
            mining_disabled=is_mining_disabled(minter),
        )

    minted = minter.minted_per_block
    if minted.amount_of(params.mint_denom) <= 0:
        log_event(logger, "mint_skipped", level=logging.DEBUG, height=h, reason=f"no more {params.mint_denom} to mint")
        return Issuance(Coins(), params.deflation_rate)

    if logger.isEnabledFor(logging.DEBUG):
        log_event(
            logger,
            "mint_begin_block",
            level=logging.DEBUG,
            height=h,
            total_supply=dec_str(keeper.staking_token_supply()),
            params=params.to_json(),
            minted_this_block=str(minted),
            next_block_to_update=minter.next_block_to_update,
        )

    try:
        keeper.mint_coins(minted)
    except SupplyError as e:
        raise LedgerPanic("mint_failed", e.reason, {"height": h, "error": str(e)}) from e

    try:
        keeper.add_collected_fees(minted)
    except SupplyError as e:
        raise LedgerPanic("fee_forward_failed", e.reason, {"height": h, "error": str(e)}) from e

    if events is not None:
        events.emit(
            new_event(
                EVENT_TYPE_MINT,
                **{
                    ATTRIBUTE_KEY_INFLATION: dec_str(params.deflation_rate),
                    ATTRIBUTE_KEY_AMOUNT: str(minted),
                },
            )
        )
    return Issuance(minted, params.deflation_rate)


__all__ = ["Issuance", "begin_blocker"]

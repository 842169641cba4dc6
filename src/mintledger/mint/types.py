from __future__ import annotations

"""Mint module records: Params (read-only per block) and the Minter singleton."""

import json
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Dict

from mintledger.ledger.coins import ONE, ZERO, Coins, dec_str, is_valid_denom, to_dec
from mintledger.ledger.constants import (
    DEFAULT_BLOCKS_PER_YEAR,
    DEFAULT_DEFLATION_EPOCH,
    DEFAULT_DEFLATION_RATE,
    DEFAULT_MINT_DENOM,
    DEFAULT_ORIGINAL_MINTED_PER_BLOCK,
    NEVER_HEIGHT,
)
from mintledger.ledger.errors import InvalidAmount, SupplyError

Json = Dict[str, Any]


class MintConfigError(SupplyError):
    """Invalid params or minter record."""

    def __init__(self, reason: str, details: Json | None = None) -> None:
        super().__init__("invalid_mint_config", reason, details or {})


def _as_int(v: Any, name: str) -> int:
    if isinstance(v, bool):
        raise MintConfigError(f"{name}_not_int", {name: v})
    try:
        return int(v)
    except (TypeError, ValueError):
        raise MintConfigError(f"{name}_not_int", {name: v}) from None


def _as_dec(v: Any, name: str) -> Decimal:
    try:
        return to_dec(v)
    except InvalidAmount:
        raise MintConfigError(f"{name}_not_decimal", {name: v}) from None


@dataclass(frozen=True, slots=True)
class MintParams:
    mint_denom: str = DEFAULT_MINT_DENOM
    deflation_rate: Decimal = Decimal(DEFAULT_DEFLATION_RATE)
    blocks_per_year: int = DEFAULT_BLOCKS_PER_YEAR
    deflation_epoch: int = DEFAULT_DEFLATION_EPOCH

    def validate(self) -> "MintParams":
        if not is_valid_denom(self.mint_denom):
            raise MintConfigError("invalid_mint_denom", {"mint_denom": self.mint_denom})
        if not isinstance(self.deflation_rate, Decimal) or not self.deflation_rate.is_finite():
            raise MintConfigError("deflation_rate_not_decimal", {"deflation_rate": str(self.deflation_rate)})
        if self.deflation_rate < ZERO or self.deflation_rate > ONE:
            raise MintConfigError("deflation_rate_out_of_range", {"deflation_rate": dec_str(self.deflation_rate)})
        if int(self.blocks_per_year) <= 0:
            raise MintConfigError("blocks_per_year_must_be_positive", {"blocks_per_year": self.blocks_per_year})
        if int(self.deflation_epoch) < 0:
            raise MintConfigError("deflation_epoch_negative", {"deflation_epoch": self.deflation_epoch})
        return self

    def to_json(self) -> Json:
        return {
            "mint_denom": self.mint_denom,
            "deflation_rate": dec_str(self.deflation_rate),
            "blocks_per_year": int(self.blocks_per_year),
            "deflation_epoch": int(self.deflation_epoch),
        }

    @classmethod
    def from_json(cls, raw: Any) -> "MintParams":
        if not isinstance(raw, dict):
            raise MintConfigError("params_not_object", {"type": type(raw).__name__})
        d = cls()
        return cls(
            mint_denom=str(raw.get("mint_denom") or d.mint_denom),
            deflation_rate=_as_dec(raw.get("deflation_rate", d.deflation_rate), "deflation_rate"),
            blocks_per_year=_as_int(raw.get("blocks_per_year", d.blocks_per_year), "blocks_per_year"),
            deflation_epoch=_as_int(raw.get("deflation_epoch", d.deflation_epoch), "deflation_epoch"),
        ).validate()

    def __str__(self) -> str:
        return json.dumps(self.to_json(), sort_keys=True, separators=(",", ":"))


@dataclass(frozen=True, slots=True)
class Minter:
    """Issuance state.

    inflation is the multiplier currently applied to the genesis baseline
    (deflation_rate ** epoch); 1 at genesis, 0 once mining is disabled.
    """

    inflation: Decimal
    minted_per_block: Coins
    next_block_to_update: int
    original_minted_per_block: Decimal

    def validate(self) -> "Minter":
        if self.inflation < ZERO:
            raise MintConfigError("inflation_negative", {"inflation": dec_str(self.inflation)})
        if self.original_minted_per_block < ZERO:
            raise MintConfigError(
                "original_minted_per_block_negative",
                {"original_minted_per_block": dec_str(self.original_minted_per_block)},
            )
        if self.minted_per_block.is_any_negative():
            raise MintConfigError("minted_per_block_negative", {"minted_per_block": str(self.minted_per_block)})
        if int(self.next_block_to_update) < 0:
            raise MintConfigError("next_block_negative", {"next_block_to_update": self.next_block_to_update})
        return self

    def with_(self, **changes: Any) -> "Minter":
        return replace(self, **changes)

    def to_json(self) -> Json:
        return {
            "inflation": dec_str(self.inflation),
            "minted_per_block": self.minted_per_block.to_json(),
            "next_block_to_update": int(self.next_block_to_update),
            "original_minted_per_block": dec_str(self.original_minted_per_block),
        }

    @classmethod
    def from_json(cls, raw: Any) -> "Minter":
        if not isinstance(raw, dict):
            raise MintConfigError("minter_not_object", {"type": type(raw).__name__})
        try:
            minted = Coins.parse(raw.get("minted_per_block") or [])
        except InvalidAmount as e:
            raise MintConfigError("minted_per_block_invalid", {"error": str(e)}) from None
        return cls(
            inflation=_as_dec(raw.get("inflation", "0"), "inflation"),
            minted_per_block=minted,
            next_block_to_update=_as_int(raw.get("next_block_to_update", 0), "next_block_to_update"),
            original_minted_per_block=_as_dec(raw.get("original_minted_per_block", "0"), "original_minted_per_block"),
        ).validate()


def initial_minter(params: MintParams, original_minted_per_block: Any = DEFAULT_ORIGINAL_MINTED_PER_BLOCK) -> Minter:
    """Genesis minter: baseline rate, first refresh at the end of epoch 0."""
    base = _as_dec(original_minted_per_block, "original_minted_per_block")
    if int(params.deflation_epoch) == 0:
        # no issuing epochs at all
        return Minter(
            inflation=ZERO,
            minted_per_block=Coins(),
            next_block_to_update=NEVER_HEIGHT,
            original_minted_per_block=base,
        ).validate()
    return Minter(
        inflation=ONE,
        minted_per_block=Coins.of(params.mint_denom, base),
        next_block_to_update=int(params.blocks_per_year),
        original_minted_per_block=base,
    ).validate()


__all__ = ["MintConfigError", "MintParams", "Minter", "initial_minter"]

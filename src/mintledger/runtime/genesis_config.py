from __future__ import annotations

"""Genesis document.

Shape validation happens here (pydantic, unknown keys rejected). Semantic
checks (permission names, denominations, amounts, duplicate modules) are left
to the ledger types so a bad genesis fails with the same SupplyError a bad
runtime call would.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from mintledger.ledger.accounts import AccountRegistry, parse_address
from mintledger.ledger.coins import Coins
from mintledger.ledger.constants import (
    BONDED_POOL_NAME,
    DEFAULT_BLOCKS_PER_YEAR,
    DEFAULT_DEFLATION_EPOCH,
    DEFAULT_DEFLATION_RATE,
    DEFAULT_MINT_DENOM,
    DEFAULT_ORIGINAL_MINTED_PER_BLOCK,
    FEE_COLLECTOR_NAME,
    MINT_MODULE_NAME,
    NOT_BONDED_POOL_NAME,
)
from mintledger.mint.types import MintConfigError, MintParams, initial_minter

Json = Dict[str, Any]
AmountLike = Union[str, int]


class _StrictModel(BaseModel):
    """Strict model: reject unknown keys."""

    model_config = ConfigDict(extra="forbid")


class GenesisCoin(_StrictModel):
    denom: str = Field(..., min_length=1)
    amount: AmountLike


class GenesisModuleAccount(_StrictModel):
    name: str = Field(..., min_length=1)
    permissions: List[str] = Field(default_factory=list)


class GenesisBalance(_StrictModel):
    address: Optional[str] = None
    module: Optional[str] = None
    coins: List[GenesisCoin] = Field(default_factory=list)

    @model_validator(mode="after")
    def _exactly_one_owner(self) -> "GenesisBalance":
        if (self.address is None) == (self.module is None):
            raise ValueError("balance needs exactly one of address or module")
        return self


class GenesisMintParams(_StrictModel):
    mint_denom: str = DEFAULT_MINT_DENOM
    deflation_rate: AmountLike = DEFAULT_DEFLATION_RATE
    blocks_per_year: int = Field(default=DEFAULT_BLOCKS_PER_YEAR, gt=0)
    deflation_epoch: int = Field(default=DEFAULT_DEFLATION_EPOCH, ge=0)


class GenesisMint(_StrictModel):
    params: GenesisMintParams = Field(default_factory=GenesisMintParams)
    original_minted_per_block: AmountLike = DEFAULT_ORIGINAL_MINTED_PER_BLOCK


def default_module_accounts() -> List[GenesisModuleAccount]:
    return [
        GenesisModuleAccount(name=FEE_COLLECTOR_NAME, permissions=[]),
        GenesisModuleAccount(name=MINT_MODULE_NAME, permissions=["minter"]),
        GenesisModuleAccount(name=BONDED_POOL_NAME, permissions=["burner", "staking"]),
        GenesisModuleAccount(name=NOT_BONDED_POOL_NAME, permissions=["burner", "staking"]),
    ]


class GenesisDoc(_StrictModel):
    chain_id: str = Field(..., min_length=1)
    module_accounts: List[GenesisModuleAccount] = Field(default_factory=default_module_accounts)
    balances: List[GenesisBalance] = Field(default_factory=list)
    mint: GenesisMint = Field(default_factory=GenesisMint)

    def mint_params(self) -> MintParams:
        p = self.mint.params
        return MintParams.from_json(
            {
                "mint_denom": p.mint_denom,
                "deflation_rate": str(p.deflation_rate),
                "blocks_per_year": p.blocks_per_year,
                "deflation_epoch": p.deflation_epoch,
            }
        )

    def build_registry(self) -> AccountRegistry:
        reg = AccountRegistry()
        for m in self.module_accounts:
            reg.register(m.name, m.permissions)
        return reg

    def initial_minter(self):
        return initial_minter(self.mint_params(), str(self.mint.original_minted_per_block))

    def resolved_balances(self, registry: AccountRegistry) -> List[Tuple[bytes, Coins]]:
        """Genesis balances as (address, coins), module names resolved."""
        out: List[Tuple[bytes, Coins]] = []
        for b in self.balances:
            addr = registry.lookup(b.module).address if b.module is not None else parse_address(b.address or "")
            coins = Coins.parse([{"denom": c.denom, "amount": str(c.amount)} for c in b.coins])
            out.append((addr, coins))
        return out


def default_genesis(chain_id: str) -> GenesisDoc:
    return GenesisDoc(chain_id=chain_id)


def parse_genesis(raw: Any) -> GenesisDoc:
    if not isinstance(raw, dict):
        raise MintConfigError("genesis_not_object", {"type": type(raw).__name__})
    try:
        return GenesisDoc.model_validate(raw)
    except ValidationError as e:
        raise MintConfigError("genesis_invalid", {"errors": e.error_count(), "error": str(e)}) from None


def load_genesis(path: str) -> GenesisDoc:
    p = Path(path)
    raw = json.loads(p.read_text(encoding="utf-8"))
    return parse_genesis(raw)


__all__ = [
    "GenesisBalance",
    "GenesisCoin",
    "GenesisDoc",
    "GenesisMint",
    "GenesisMintParams",
    "GenesisModuleAccount",
    "default_genesis",
    "default_module_accounts",
    "load_genesis",
    "parse_genesis",
]

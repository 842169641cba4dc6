from __future__ import annotations

import json
import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from mintledger.ledger import keys
from mintledger.ledger.coins import Coins
from mintledger.ledger.constants import FEE_COLLECTOR_NAME, MINT_MODULE_NAME
from mintledger.ledger.supply import SupplyKeeper
from mintledger.mint.schedule import refresh_minter
from mintledger.mint.types import MintConfigError, Minter, MintParams
from mintledger.runtime.kvstore import KVStore
from mintledger.runtime.sqlite_db import canon_json

Json = Dict[str, Any]

_log = logging.getLogger("mintledger.mint")


class MintKeeper:
    """Persisted mint params + minter, and issuance through the supply keeper."""

    def __init__(
        self,
        *,
        store: KVStore,
        supply_keeper: SupplyKeeper,
        module_name: str = MINT_MODULE_NAME,
        fee_collector_name: str = FEE_COLLECTOR_NAME,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._store = store
        self._supply = supply_keeper
        self.module_name = str(module_name)
        self.fee_collector_name = str(fee_collector_name)
        self.logger = logger if logger is not None else _log

    @property
    def supply_keeper(self) -> SupplyKeeper:
        return self._supply

    def _read_json(self, key: bytes, what: str) -> Json:
        raw = self._store.get(key)
        if raw is None:
            raise MintConfigError(f"{what}_missing", {"key": key.decode("ascii")})
        obj = json.loads(raw.decode("utf-8"))
        if not isinstance(obj, dict):
            raise MintConfigError(f"{what}_not_object", {"key": key.decode("ascii")})
        return obj

    # ---- params ----

    def get_params(self) -> MintParams:
        return MintParams.from_json(self._read_json(keys.MINT_PARAMS_KEY, "params"))

    def set_params(self, params: MintParams) -> None:
        params.validate()
        self._store.set(keys.MINT_PARAMS_KEY, canon_json(params.to_json()).encode("utf-8"))

    # ---- minter ----

    def get_minter(self) -> Minter:
        return Minter.from_json(self._read_json(keys.MINTER_KEY, "minter"))

    def set_minter(self, minter: Minter) -> None:
        minter.validate()
        self._store.set(keys.MINTER_KEY, canon_json(minter.to_json()).encode("utf-8"))

    def update_minter(self, minter: Minter, params: MintParams, height: int) -> Minter:
        """Refresh the rate for `height` and persist it."""
        updated = refresh_minter(minter, params, height)
        self.set_minter(updated)
        return updated

    def original_minted_per_block(self) -> Decimal:
        return self.get_minter().original_minted_per_block

    # ---- issuance ----

    def mint_coins(self, coins: Coins) -> None:
        self._supply.mint_coins(self.module_name, coins)

    def add_collected_fees(self, coins: Coins) -> None:
        """Forward freshly minted coins to the fee collector."""
        self._supply.send_coins_from_module_to_module(self.module_name, self.fee_collector_name, coins)

    def staking_token_supply(self) -> Decimal:
        return self._supply.staking_token_supply(self.get_params().mint_denom)

    # ---- queries ----

    def inflation(self) -> Decimal:
        return self.get_minter().inflation

    def annual_provisions(self) -> Coins:
        params = self.get_params()
        return self.get_minter().minted_per_block.mul_dec(Decimal(int(params.blocks_per_year)))


__all__ = ["MintKeeper"]

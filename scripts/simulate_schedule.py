#!/usr/bin/env python3
"""
Issuance schedule simulator.

Boots an executor on a fresh store (in-memory unless --db is given), runs
--blocks heights and prints one JSON line every time the per-block issuance
changes, followed by a summary line with the final total supply.

Usage:
  python3 scripts/simulate_schedule.py --blocks 100 --rate 1 --deflation 0.5 \
      --blocks-per-year 30 --epochs 3
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("--blocks", type=int, required=True, help="Number of heights to run")
    ap.add_argument("--rate", default="1", help="Genesis minted-per-block amount")
    ap.add_argument("--deflation", default="0.5", help="Per-epoch deflation factor in [0, 1]")
    ap.add_argument("--blocks-per-year", type=int, default=30, help="Epoch length in blocks")
    ap.add_argument("--epochs", type=int, default=3, help="Number of issuing epochs")
    ap.add_argument("--denom", default="okt")
    ap.add_argument("--chain-id", default="mintledger-sim")
    ap.add_argument("--db", default=":memory:", help="SQLite path; default keeps everything in memory")
    args = ap.parse_args(argv)

    # Dev convenience: allow running without `pip install -e .`
    sys.path.insert(0, str(REPO_ROOT / "src"))

    # Lazy imports (after sys.path tweak) to satisfy ruff E402.
    from mintledger.ledger.coins import dec_str  # type: ignore
    from mintledger.runtime.executor import SupplyExecutor  # type: ignore
    from mintledger.runtime.genesis_config import parse_genesis  # type: ignore

    genesis = parse_genesis(
        {
            "chain_id": args.chain_id,
            "mint": {
                "params": {
                    "mint_denom": args.denom,
                    "deflation_rate": args.deflation,
                    "blocks_per_year": args.blocks_per_year,
                    "deflation_epoch": args.epochs,
                },
                "original_minted_per_block": args.rate,
            },
        }
    )

    ex = SupplyExecutor(db_path=args.db, chain_id=args.chain_id)
    if not ex.initialized:
        ex.init_chain(genesis)

    last = None
    for _ in range(int(args.blocks)):
        h = ex.height + 1
        issuance = ex.begin_block(h)
        amount = issuance.amount.amount_of(args.denom)
        if amount != last:
            minter = ex.mint_keeper().get_minter()
            print(
                json.dumps(
                    {
                        "height": h,
                        "minted_per_block": dec_str(amount),
                        "inflation": dec_str(minter.inflation),
                        "next_block_to_update": minter.next_block_to_update,
                    },
                    sort_keys=True,
                )
            )
            last = amount

    supply = ex.supply_keeper()
    print(
        json.dumps(
            {
                "height": ex.height,
                "total_supply": supply.get_total_supply().to_json(),
                "fee_collector": supply.get_module_balance("fee_collector").to_json(),
            },
            sort_keys=True,
        )
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

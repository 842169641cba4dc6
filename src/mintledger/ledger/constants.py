# src/mintledger/ledger/constants.py
from __future__ import annotations

"""Ledger-wide names and defaults.

Module account names are part of consensus: their addresses are derived from
them, so renaming one moves every balance it holds.
"""

# Module account names
FEE_COLLECTOR_NAME: str = "fee_collector"
MINT_MODULE_NAME: str = "mint"
BONDED_POOL_NAME: str = "bonded_tokens_pool"
NOT_BONDED_POOL_NAME: str = "not_bonded_tokens_pool"

# Address derivation
ADDRESS_LEN: int = 20
MODULE_ADDRESS_DOMAIN: bytes = b"mintledger/module/"

# Denominations
DEFAULT_MINT_DENOM: str = "okt"
DENOM_PATTERN: str = r"^[A-Za-z][A-Za-z0-9/:._-]{0,127}$"

# Mint schedule defaults (~1 year of 3 second blocks)
DEFAULT_BLOCKS_PER_YEAR: int = 10_519_200
DEFAULT_DEFLATION_RATE: str = "0.5"
DEFAULT_DEFLATION_EPOCH: int = 3
DEFAULT_ORIGINAL_MINTED_PER_BLOCK: str = "1"

# Never-reached boundary once mining is disabled (uint64 max)
NEVER_HEIGHT: int = 2**64 - 1

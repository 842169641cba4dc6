from __future__ import annotations

"""Ledger error types.

Two shapes, never mixed:

  - SupplyError and its subclasses are caller errors. They are raised before
    any write reaches the store, so the ledger is unchanged when one escapes.
  - LedgerPanic is an invariant violation (missing capability, broken
    conservation, failed issuance). It aborts the enclosing state transition.
    It is deliberately not a SupplyError so `except SupplyError` never hides it.
"""

from dataclasses import dataclass, field
from typing import Any, Dict

Json = Dict[str, Any]


@dataclass
class SupplyError(Exception):
    """Recoverable, transition-local error returned to the caller."""

    code: str
    reason: str
    details: Json = field(default_factory=dict)

    def __str__(self) -> str:
        if not self.details:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


@dataclass
class UnknownAccount(SupplyError):
    code: str = "unknown_account"
    reason: str = "module_account_not_found"
    details: Json = field(default_factory=dict)


@dataclass
class DuplicateAccount(SupplyError):
    code: str = "duplicate_account"
    reason: str = "module_account_exists"
    details: Json = field(default_factory=dict)


@dataclass
class InvalidAmount(SupplyError):
    code: str = "invalid_amount"
    reason: str = "bad_coins"
    details: Json = field(default_factory=dict)


@dataclass
class InsufficientFunds(SupplyError):
    code: str = "insufficient_funds"
    reason: str = "balance_too_low"
    details: Json = field(default_factory=dict)


@dataclass
class InvalidPermission(SupplyError):
    code: str = "invalid_permission"
    reason: str = "unknown_permission"
    details: Json = field(default_factory=dict)


@dataclass
class LedgerPanic(RuntimeError):
    """Fatal invariant violation. Never caught inside the ledger."""

    code: str
    reason: str
    details: Json = field(default_factory=dict)

    def __str__(self) -> str:
        if not self.details:
            return f"panic:{self.code}:{self.reason}"
        return f"panic:{self.code}:{self.reason}:{self.details}"


__all__ = [
    "SupplyError",
    "UnknownAccount",
    "DuplicateAccount",
    "InvalidAmount",
    "InsufficientFunds",
    "InvalidPermission",
    "LedgerPanic",
]

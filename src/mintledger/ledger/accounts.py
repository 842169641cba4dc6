from __future__ import annotations

"""Module account registry.

A module account is identified by name; its address is a one-way function of
that name and its capabilities are fixed at registration. The registry is a
write-once catalog: nothing is ever updated or removed.
"""

import hashlib
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Union

from mintledger.ledger.constants import ADDRESS_LEN, MODULE_ADDRESS_DOMAIN
from mintledger.ledger.errors import DuplicateAccount, UnknownAccount
from mintledger.ledger.permissions import (
    Permission,
    PermissionLike,
    has_permission,
    permission_names,
    permission_set,
)

Json = Dict[str, Any]


def module_address(name: str) -> bytes:
    """Deterministic address for a module name."""
    n = str(name)
    return hashlib.sha256(MODULE_ADDRESS_DOMAIN + n.encode("utf-8")).digest()[:ADDRESS_LEN]


def address_hex(addr: bytes) -> str:
    return bytes(addr).hex()


def parse_address(raw: Union[str, bytes]) -> bytes:
    if isinstance(raw, (bytes, bytearray)):
        b = bytes(raw)
    else:
        s = str(raw or "").strip().lower()
        if s.startswith("0x"):
            s = s[2:]
        try:
            b = bytes.fromhex(s)
        except ValueError:
            raise UnknownAccount(reason="malformed_address", details={"address": raw}) from None
    if len(b) != ADDRESS_LEN:
        raise UnknownAccount(reason="bad_address_length", details={"address": address_hex(b), "len": len(b)})
    return b


@dataclass(frozen=True, slots=True)
class ModuleAccount:
    name: str
    address: bytes
    permissions: Permission = Permission.NONE

    def has_permission(self, required: Permission) -> bool:
        return has_permission(self.permissions, required)

    def has_any_permission(self) -> bool:
        return self.permissions != Permission.NONE

    def to_json(self) -> Json:
        return {
            "name": self.name,
            "address": address_hex(self.address),
            "permissions": permission_names(self.permissions),
        }


class AccountRegistry:
    def __init__(self) -> None:
        self._by_name: Dict[str, ModuleAccount] = {}
        self._by_address: Dict[bytes, str] = {}

    def register(
        self, name: str, permissions: Union[PermissionLike, Iterable[PermissionLike], None] = None
    ) -> ModuleAccount:
        n = str(name or "").strip()
        if not n or n != name:
            raise UnknownAccount(reason="invalid_module_name", details={"module": name})
        if n in self._by_name:
            raise DuplicateAccount(details={"module": n})

        addr = module_address(n)
        if addr in self._by_address:
            raise DuplicateAccount(
                reason="address_collision",
                details={"module": n, "existing": self._by_address[addr]},
            )

        acct = ModuleAccount(name=n, address=addr, permissions=permission_set(permissions))
        self._by_name[n] = acct
        self._by_address[addr] = n
        return acct

    def lookup(self, name: str) -> ModuleAccount:
        if not name:
            raise UnknownAccount(reason="empty_module_name", details={"module": name})
        acct = self._by_name.get(name)
        if acct is None:
            raise UnknownAccount(details={"module": name})
        return acct

    def get(self, name: str) -> Optional[ModuleAccount]:
        return self._by_name.get(name) if name else None

    def by_address(self, addr: bytes) -> Optional[ModuleAccount]:
        n = self._by_address.get(bytes(addr))
        return self._by_name.get(n) if n is not None else None

    def has_permission(self, name: str, required: Permission) -> bool:
        acct = self.get(name)
        return acct is not None and acct.has_permission(required)

    def has_any_permission(self, name: str) -> bool:
        acct = self.get(name)
        return acct is not None and acct.has_any_permission()

    def accounts(self) -> List[ModuleAccount]:
        return [self._by_name[n] for n in sorted(self._by_name)]

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __len__(self) -> int:
        return len(self._by_name)


__all__ = ["AccountRegistry", "ModuleAccount", "address_hex", "module_address", "parse_address"]

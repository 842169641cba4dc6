from __future__ import annotations

"""Module account capabilities as a flag set.

Permission.NONE is the empty set: an account registered with it may hold and
move funds but can never mint or burn.
"""

import enum
from typing import Any, Iterable, List, Union

from mintledger.ledger.errors import InvalidPermission


class Permission(enum.Flag):
    NONE = 0
    MINTER = enum.auto()
    BURNER = enum.auto()
    STAKING = enum.auto()


_BY_NAME = {
    "minter": Permission.MINTER,
    "mint": Permission.MINTER,
    "burner": Permission.BURNER,
    "burn": Permission.BURNER,
    "staking": Permission.STAKING,
    "stake": Permission.STAKING,
}

_CANONICAL = (
    (Permission.MINTER, "minter"),
    (Permission.BURNER, "burner"),
    (Permission.STAKING, "staking"),
)

PermissionLike = Union[Permission, str]


def parse_permission(p: PermissionLike) -> Permission:
    if isinstance(p, Permission):
        return p
    key = str(p or "").strip().lower()
    perm = _BY_NAME.get(key)
    if perm is None:
        raise InvalidPermission(details={"permission": p})
    return perm


def permission_set(perms: Union[PermissionLike, Iterable[PermissionLike], None]) -> Permission:
    """Fold names or flags into a single Permission value."""
    if perms is None:
        return Permission.NONE
    if isinstance(perms, (Permission, str)):
        return parse_permission(perms)
    out = Permission.NONE
    for p in perms:
        out |= parse_permission(p)
    return out


def permission_names(perms: Permission) -> List[str]:
    return [name for flag, name in _CANONICAL if flag in perms]


def has_permission(perms: Permission, required: Permission) -> bool:
    if required == Permission.NONE:
        return False
    return (perms & required) == required


def from_json(raw: Any) -> Permission:
    if not isinstance(raw, list):
        raise InvalidPermission(reason="malformed_permission_record", details={"type": type(raw).__name__})
    return permission_set(raw)


__all__ = [
    "Permission",
    "has_permission",
    "parse_permission",
    "permission_names",
    "permission_set",
    "from_json",
]

from __future__ import annotations

import pytest

from mintledger.ledger.accounts import AccountRegistry, address_hex, module_address, parse_address
from mintledger.ledger.errors import DuplicateAccount, InvalidPermission, UnknownAccount
from mintledger.ledger.permissions import Permission, from_json, has_permission, permission_names, permission_set


def test_permission_set_folds_names_and_aliases() -> None:
    p = permission_set(["burner", "stake", Permission.MINTER])
    assert p == Permission.MINTER | Permission.BURNER | Permission.STAKING
    assert permission_names(p) == ["minter", "burner", "staking"]
    assert permission_set(None) == Permission.NONE
    assert permission_set("mint") == Permission.MINTER


def test_unknown_permission_name_is_rejected() -> None:
    with pytest.raises(InvalidPermission):
        permission_set(["random"])


def test_permission_record_must_be_a_list() -> None:
    assert from_json(["minter", "burner"]) == Permission.MINTER | Permission.BURNER
    assert from_json([]) == Permission.NONE
    for bad in ("minter", None, {"minter": True}):
        with pytest.raises(InvalidPermission):
            from_json(bad)


def test_has_permission_semantics() -> None:
    multi = Permission.MINTER | Permission.BURNER
    assert has_permission(multi, Permission.BURNER)
    assert not has_permission(Permission.BURNER, Permission.MINTER)
    assert not has_permission(multi, Permission.NONE)


def test_register_and_lookup() -> None:
    reg = AccountRegistry()
    acct = reg.register("mint", ["minter"])
    assert acct.address == module_address("mint")
    assert len(acct.address) == 20
    assert reg.lookup("mint") is acct
    assert reg.by_address(acct.address) is acct
    assert "mint" in reg and len(reg) == 1
    assert reg.has_permission("mint", Permission.MINTER)
    assert reg.has_any_permission("mint")


def test_registry_is_write_once() -> None:
    reg = AccountRegistry()
    reg.register("fee_collector")
    with pytest.raises(DuplicateAccount):
        reg.register("fee_collector", ["minter"])
    assert not reg.has_any_permission("fee_collector")


@pytest.mark.parametrize("name", ["", "  ", " mint"])
def test_register_rejects_blank_names(name: str) -> None:
    with pytest.raises(UnknownAccount):
        AccountRegistry().register(name)


def test_lookup_unknown_and_empty_names() -> None:
    reg = AccountRegistry()
    with pytest.raises(UnknownAccount):
        reg.lookup("")
    with pytest.raises(UnknownAccount):
        reg.lookup("nope")
    assert reg.get("nope") is None
    assert not reg.has_permission("nope", Permission.MINTER)
    assert not reg.has_any_permission("nope")


def test_addresses_are_distinct_and_stable() -> None:
    names = ["mint", "fee_collector", "bonded_tokens_pool", "not_bonded_tokens_pool"]
    addrs = {module_address(n) for n in names}
    assert len(addrs) == len(names)
    assert module_address("mint") == module_address("mint")


def test_parse_address_round_trip_and_errors() -> None:
    a = module_address("mint")
    assert parse_address(address_hex(a)) == a
    assert parse_address("0x" + address_hex(a).upper()) == a
    assert parse_address(a) == a
    with pytest.raises(UnknownAccount):
        parse_address("zz")
    with pytest.raises(UnknownAccount):
        parse_address("abcd")


def test_accounts_listed_by_name() -> None:
    reg = AccountRegistry()
    for n in ["mint", "bonded_tokens_pool", "fee_collector"]:
        reg.register(n)
    assert [a.name for a in reg.accounts()] == ["bonded_tokens_pool", "fee_collector", "mint"]
    assert reg.lookup("mint").to_json()["permissions"] == []

from __future__ import annotations

"""Read-only query routes.

Every handler reads committed state through the executor attached to
app.state; nothing here mutates the ledger.
"""

from typing import Any, Dict

from fastapi import APIRouter, Request, Response

from mintledger.api.errors import ApiError
from mintledger.ledger.accounts import address_hex, parse_address
from mintledger.ledger.coins import dec_str, is_valid_denom
from mintledger.runtime.metrics import format_prometheus, metrics_enabled

Json = Dict[str, Any]

router = APIRouter()


def _executor(request: Request):
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        raise ApiError.internal("not_ready", "executor not attached to app.state", {})
    return ex


def _initialized_executor(request: Request):
    ex = _executor(request)
    if not ex.initialized:
        raise ApiError.internal("not_ready", "chain not initialised", {"chain_id": ex.chain_id})
    return ex


@router.get("/health")
def health(request: Request) -> Json:
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        return {"ok": True, "ready": False, "chain_id": None, "height": None}
    return {"ok": True, "ready": bool(ex.initialized), "chain_id": ex.chain_id, "height": int(ex.height)}


# ---- supply ----


@router.get("/supply")
def total_supply(request: Request) -> Json:
    ex = _executor(request)
    supply = ex.supply_keeper().get_total_supply()
    return {"ok": True, "height": int(ex.height), "supply": supply.to_json()}


@router.get("/supply/{denom}")
def supply_of(denom: str, request: Request) -> Json:
    if not is_valid_denom(denom):
        raise ApiError.bad_request("invalid_denom", "denomination is malformed", {"denom": denom})
    ex = _executor(request)
    amount = ex.supply_keeper().get_supply_of(denom)
    return {"ok": True, "height": int(ex.height), "denom": denom, "amount": dec_str(amount)}


# ---- mint ----


@router.get("/mint/params")
def mint_params(request: Request) -> Json:
    ex = _initialized_executor(request)
    return {"ok": True, "params": ex.mint_keeper().get_params().to_json()}


@router.get("/mint/minter")
def mint_minter(request: Request) -> Json:
    ex = _initialized_executor(request)
    return {"ok": True, "height": int(ex.height), "minter": ex.mint_keeper().get_minter().to_json()}


@router.get("/mint/inflation")
def mint_inflation(request: Request) -> Json:
    ex = _initialized_executor(request)
    return {"ok": True, "inflation": dec_str(ex.mint_keeper().inflation())}


@router.get("/mint/annual-provisions")
def mint_annual_provisions(request: Request) -> Json:
    ex = _initialized_executor(request)
    return {"ok": True, "annual_provisions": ex.mint_keeper().annual_provisions().to_json()}


# ---- accounts ----


@router.get("/accounts/modules")
def module_accounts(request: Request) -> Json:
    ex = _executor(request)
    supply = ex.supply_keeper()
    items = [dict(a.to_json(), balance=supply.get_module_balance(a.name).to_json()) for a in ex.registry.accounts()]
    return {"ok": True, "items": items}


@router.get("/accounts/modules/{name}")
def module_account(name: str, request: Request) -> Json:
    ex = _executor(request)
    supply = ex.supply_keeper()
    acct = supply.get_module_account(name)
    return {"ok": True, "account": dict(acct.to_json(), balance=supply.get_module_balance(name).to_json())}


@router.get("/accounts/{address}/balances")
def account_balances(address: str, request: Request) -> Json:
    ex = _executor(request)
    addr = parse_address(address)
    module = ex.registry.by_address(addr)
    return {
        "ok": True,
        "address": address_hex(addr),
        "module": module.name if module is not None else None,
        "balances": ex.supply_keeper().get_all_balances(addr).to_json(),
    }


# ---- ops ----


@router.get("/metrics")
def metrics() -> Response:
    """Prometheus-style metrics.

    Disabled by default. Enable with:
      MINTLEDGER_METRICS_ENABLED=1
    """
    if not metrics_enabled():
        return Response(status_code=404, content="not_found\n", media_type="text/plain")
    return Response(content=format_prometheus(), media_type="text/plain")

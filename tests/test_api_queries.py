from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from mintledger.api import app as api_app
from mintledger.ledger.accounts import address_hex, module_address
from mintledger.runtime import metrics
from mintledger.runtime.executor import SupplyExecutor
from mintledger.runtime.genesis_config import parse_genesis

CHAIN = "mintledger-api-test"


def _executor() -> SupplyExecutor:
    ex = SupplyExecutor(chain_id=CHAIN)
    ex.init_chain(
        parse_genesis(
            {
                "chain_id": CHAIN,
                "balances": [{"module": "bonded_tokens_pool", "coins": [{"denom": "okt", "amount": "10000"}]}],
                "mint": {"params": {"mint_denom": "okt", "blocks_per_year": 30, "deflation_epoch": 3}},
            }
        )
    )
    ex.run_blocks(31)
    return ex


@pytest.fixture()
def client(monkeypatch: pytest.MonkeyPatch) -> TestClient:
    ex = _executor()
    monkeypatch.setattr(api_app, "build_executor", lambda cfg=None: ex)
    app = api_app.create_app(boot_runtime=True)
    with TestClient(app) as c:
        yield c


def test_create_app_without_runtime() -> None:
    app = api_app.create_app(boot_runtime=False)
    assert app.state.executor is None
    with TestClient(app) as c:
        r = c.get("/v1/health")
        assert r.status_code == 200
        assert r.json()["ready"] is False
        r = c.get("/v1/supply")
        assert r.status_code == 500
        assert r.json()["error"]["code"] == "not_ready"


def test_health(client: TestClient) -> None:
    body = client.get("/v1/health").json()
    assert body == {"ok": True, "ready": True, "chain_id": CHAIN, "height": 31}


def test_supply_routes(client: TestClient) -> None:
    body = client.get("/v1/supply").json()
    assert body["supply"] == [{"denom": "okt", "amount": "10030.5"}]
    assert client.get("/v1/supply/okt").json()["amount"] == "10030.5"
    assert client.get("/v1/supply/atom").json()["amount"] == "0"

    r = client.get("/v1/supply/9bad")
    assert r.status_code == 400
    assert r.json() == {
        "ok": False,
        "error": {"code": "invalid_denom", "message": "denomination is malformed", "details": {"denom": "9bad"}},
    }


def test_mint_routes(client: TestClient) -> None:
    assert client.get("/v1/mint/params").json()["params"]["blocks_per_year"] == 30
    minter = client.get("/v1/mint/minter").json()["minter"]
    assert minter["minted_per_block"] == [{"denom": "okt", "amount": "0.5"}]
    assert minter["next_block_to_update"] == 61
    assert client.get("/v1/mint/inflation").json()["inflation"] == "0.5"
    assert client.get("/v1/mint/annual-provisions").json()["annual_provisions"] == [
        {"denom": "okt", "amount": "15"}
    ]


def test_module_account_routes(client: TestClient) -> None:
    items = client.get("/v1/accounts/modules").json()["items"]
    assert [i["name"] for i in items] == ["bonded_tokens_pool", "fee_collector", "mint", "not_bonded_tokens_pool"]

    fee = client.get("/v1/accounts/modules/fee_collector").json()["account"]
    assert fee["address"] == address_hex(module_address("fee_collector"))
    assert fee["permissions"] == []
    assert fee["balance"] == [{"denom": "okt", "amount": "30.5"}]

    r = client.get("/v1/accounts/modules/ghost")
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "unknown_account"


def test_address_balances(client: TestClient) -> None:
    addr = address_hex(module_address("bonded_tokens_pool"))
    body = client.get(f"/v1/accounts/{addr}/balances").json()
    assert body["module"] == "bonded_tokens_pool"
    assert body["balances"] == [{"denom": "okt", "amount": "10000"}]

    other = "11" * 20
    body = client.get(f"/v1/accounts/{other}/balances").json()
    assert body["module"] is None
    assert body["balances"] == []

    assert client.get("/v1/accounts/xyz/balances").status_code == 404


def test_metrics_route_is_gated(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MINTLEDGER_METRICS_ENABLED", raising=False)
    assert client.get("/v1/metrics").status_code == 404

    monkeypatch.setenv("MINTLEDGER_METRICS_ENABLED", "1")
    metrics.inc_counter("blocks_total", 0)
    r = client.get("/v1/metrics")
    assert r.status_code == 200
    assert "# TYPE mintledger_blocks_total counter" in r.text
    assert "mintledger_height" in r.text


def test_requests_are_logged_with_ledger_height(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="mintledger.http"):
        r = client.get("/v1/supply/okt", headers={"x-request-id": "req-123"})
    assert r.headers["x-request-id"] == "req-123"
    assert r.headers["x-ledger-height"] == "31"
    lines = [json.loads(rec.getMessage()) for rec in caplog.records if rec.name == "mintledger.http"]
    hits = [l for l in lines if l["event"] == "http_request" and l["path"] == "/v1/supply/okt"]
    assert len(hits) == 1
    assert hits[0]["status"] == 200
    assert hits[0]["chain_id"] == CHAIN
    assert hits[0]["height"] == 31
    assert hits[0]["request_id"] == "req-123"


def test_request_log_can_be_disabled(monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture) -> None:
    monkeypatch.setenv("MINTLEDGER_LOG_REQUESTS", "0")
    ex = _executor()
    monkeypatch.setattr(api_app, "build_executor", lambda cfg=None: ex)
    with TestClient(api_app.create_app(boot_runtime=True)) as c:
        with caplog.at_level(logging.INFO, logger="mintledger.http"):
            r = c.get("/v1/health")
    assert r.status_code == 200
    assert r.headers["x-ledger-height"] == "31"
    assert not [rec for rec in caplog.records if rec.name == "mintledger.http"]


def test_build_executor_from_config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    cfg_path = tmp_path / "chain.json"
    cfg_path.write_text(
        json.dumps({"chain_id": "cfg-chain", "mode": "dev", "db_path": str(tmp_path / "ledger.db")}),
        encoding="utf-8",
    )
    monkeypatch.setenv("MINTLEDGER_CHAIN_CONFIG_PATH", str(cfg_path))
    ex = api_app.build_executor()
    assert ex.chain_id == "cfg-chain"
    assert ex.initialized and ex.height == 0


def test_configure_structured_logging_is_idempotent(monkeypatch: pytest.MonkeyPatch) -> None:
    from mintledger.api.structured_logging import configure_structured_logging

    root = logging.getLogger()
    saved = (list(root.handlers), root.level, getattr(root, "_mintledger_configured", None))
    monkeypatch.setenv("MINTLEDGER_LOG_LEVEL", "warning")
    try:
        if hasattr(root, "_mintledger_configured"):
            delattr(root, "_mintledger_configured")
        configure_structured_logging()
        assert root.level == logging.WARNING
        handlers = list(root.handlers)
        configure_structured_logging("DEBUG")
        assert root.level == logging.DEBUG
        assert root.handlers == handlers
    finally:
        root.handlers = saved[0]
        root.setLevel(saved[1])
        if saved[2] is None and hasattr(root, "_mintledger_configured"):
            delattr(root, "_mintledger_configured")

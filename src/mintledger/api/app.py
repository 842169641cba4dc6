from __future__ import annotations

import os
from typing import Optional

from fastapi import FastAPI

from mintledger.api.errors import install_error_handlers
from mintledger.api.routes import router as query_router
from mintledger.api.structured_logging import RequestLogMiddleware
from mintledger.runtime.chain_config import ChainConfig, load_chain_config
from mintledger.runtime.executor import SupplyExecutor


def build_executor(cfg: Optional[ChainConfig] = None) -> SupplyExecutor:
    """Build a SupplyExecutor for API runtime.

    This wrapper exists so tests can monkeypatch `mintledger.api.app.build_executor`
    without reaching into runtime modules.
    """
    return SupplyExecutor.from_config(cfg if cfg is not None else load_chain_config())


def create_app(*, boot_runtime: bool = True, cfg: Optional[ChainConfig] = None) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): load chain config + attach executor
      - False: keep lightweight for unit tests / import-time validation
    """
    mode = (cfg.mode if cfg is not None else os.environ.get("MINTLEDGER_MODE", "prod")).strip().lower()

    # Disable docs in production.
    if mode == "prod":
        app = FastAPI(title="Mintledger Query API", docs_url=None, redoc_url=None, openapi_url=None)
    else:
        app = FastAPI(title="Mintledger Query API")

    if boot_runtime:
        app.state.executor = build_executor(cfg)
    else:
        app.state.executor = None

    app.add_middleware(RequestLogMiddleware)
    install_error_handlers(app)

    app.include_router(query_router, prefix="/v1")
    return app

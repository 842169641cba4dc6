# src/mintledger/api/structured_logging.py
from __future__ import annotations

import logging
import os
import time
import uuid
from typing import Any, Dict, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from mintledger.runtime.ledger_logging import log_event

Json = Dict[str, Any]

LEDGER_HEIGHT_HEADER = "x-ledger-height"


def _level(level_name: Optional[str]) -> int:
    name = (level_name or os.environ.get("MINTLEDGER_LOG_LEVEL") or "INFO").strip().upper()
    return getattr(logging, name, logging.INFO)


def configure_structured_logging(level_name: Optional[str] = None) -> None:
    """Route every mintledger.* JSONL line to stdout, one record per line.

    The level comes from the argument (the chain config's log_level), else
    MINTLEDGER_LOG_LEVEL. Calling again only moves the level.
    """
    level = _level(level_name)
    root = logging.getLogger()
    if not getattr(root, "_mintledger_configured", False):  # type: ignore[attr-defined]
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        root.handlers = [handler]
        setattr(root, "_mintledger_configured", True)  # type: ignore[attr-defined]
    root.setLevel(level)


def _ledger_view(request: Request) -> Json:
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        return {"chain_id": None, "height": None}
    return {"chain_id": ex.chain_id, "height": int(ex.height)}


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One http_request line per query, tagged with the ledger state it read.

    Every response carries x-ledger-height, the committed height the query
    ran against. MINTLEDGER_LOG_REQUESTS=0 turns the log line off; the
    header is always set.
    """

    def __init__(self, app) -> None:
        super().__init__(app)
        raw = (os.environ.get("MINTLEDGER_LOG_REQUESTS") or "1").strip().lower()
        self._enabled = raw not in {"0", "false", "no", "off"}
        self._logger = logging.getLogger("mintledger.http")

    async def dispatch(self, request: Request, call_next):
        started = time.monotonic()
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id
        ledger = _ledger_view(request)

        status = 500
        err: Optional[str] = None
        try:
            response = await call_next(request)
            status = int(response.status_code)
            response.headers.setdefault("x-request-id", request_id)
            if ledger["height"] is not None:
                response.headers[LEDGER_HEIGHT_HEADER] = str(ledger["height"])
            return response
        except Exception as e:
            err = str(e)
            raise
        finally:
            if self._enabled:
                log_event(
                    self._logger,
                    "http_request",
                    level=logging.INFO if status < 500 else logging.ERROR,
                    request_id=request_id,
                    method=request.method,
                    path=str(request.url.path or ""),
                    status=status,
                    duration_ms=int((time.monotonic() - started) * 1000),
                    chain_id=ledger["chain_id"],
                    height=ledger["height"],
                    error=err,
                )

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from mintledger.ledger.errors import SupplyError, UnknownAccount
from mintledger.runtime.ledger_logging import log_event
from mintledger.runtime.metrics import inc_counter

log = logging.getLogger("mintledger.http")


@dataclass
class ApiError(Exception):
    status_code: int
    code: str
    message: str
    details: Dict[str, Any]

    @staticmethod
    def bad_request(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(400, code, message, details or {})

    @staticmethod
    def not_found(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(404, code, message, details or {})

    @staticmethod
    def internal(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(500, code, message, details or {})

    @staticmethod
    def from_supply_error(e: SupplyError) -> "ApiError":
        status = 404 if isinstance(e, UnknownAccount) else 400
        return ApiError(status, e.code, e.reason, dict(e.details))

    def to_json(self) -> Dict[str, Any]:
        return {"ok": False, "error": {"code": self.code, "message": self.message, "details": self.details}}


async def _api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_json())


async def _supply_error_handler(request: Request, exc: SupplyError) -> JSONResponse:
    inc_counter("supply_errors_total")
    log_event(log, "query_rejected", level=logging.DEBUG, path=str(request.url.path), code=exc.code, reason=exc.reason)
    err = ApiError.from_supply_error(exc)
    return JSONResponse(status_code=err.status_code, content=err.to_json())


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, _api_error_handler)
    app.add_exception_handler(SupplyError, _supply_error_handler)

"""Webhook front end for the paper ledger.

`create_app(settings, ledger)` returns a FastAPI application that:
- answers liveness at GET /
- places orders from TradingView-style alerts at POST /paper and POST /paper-tv
- exposes the ledger snapshot at GET /paper/state
- resets the ledger at POST /paper/reset

Usage
-----
    python -m paperledger.main
"""
from __future__ import annotations

import logging
import secrets
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse

from ..config.loader import Settings, load_settings
from ..exec.errors import OrderRejection
from ..ledger import Ledger

logger = logging.getLogger(__name__)


def _error(status: int, reason: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"ok": False, "reason": reason, "error": message})


def _matches(expected: Optional[str], got: Any) -> bool:
    if not expected:
        return True
    if not isinstance(got, str):
        return False
    return secrets.compare_digest(expected.encode(), got.encode())


def create_app(settings: Optional[Settings] = None, ledger: Optional[Ledger] = None) -> FastAPI:
    settings = settings or load_settings()
    ledger = ledger or Ledger.from_settings(settings)

    app = FastAPI(title="paperledger webhook")
    app.state.settings = settings
    app.state.ledger = ledger

    @app.exception_handler(RequestValidationError)
    async def _bad_request(_request: Request, exc: RequestValidationError):
        return _error(400, "invalid_request", str(exc.errors()))

    def _place(payload: Dict[str, Any], route: str):
        try:
            result = ledger.place_order(payload)
        except OrderRejection as rej:
            logger.warning(f"[{route}] order rejected ({rej.reason}): {rej.message}")
            return _error(400, rej.reason, rej.message)
        return result.model_dump(by_alias=True)

    @app.get("/", response_class=PlainTextResponse)
    def liveness():
        return "OK"

    @app.post("/paper")
    def paper(payload: Dict[str, Any] = Body(...), x_webhook_secret: Optional[str] = Header(default=None)):
        if not _matches(settings.webhook_secret, x_webhook_secret):
            return _error(401, "unauthorized", "bad webhook secret")
        if not _matches(settings.passphrase, payload.get("passphrase")):
            return _error(401, "unauthorized", "bad passphrase")
        return _place(payload, "/paper")

    @app.post("/paper-tv")
    def paper_tv(payload: Dict[str, Any] = Body(...)):
        # TradingView cannot send custom headers; passphrase only
        if not _matches(settings.passphrase, payload.get("passphrase")):
            return _error(401, "unauthorized", "bad passphrase")
        return _place(payload, "/paper-tv")

    @app.get("/paper/state")
    def paper_state():
        return ledger.get_state().model_dump(by_alias=True)

    @app.post("/paper/reset")
    def paper_reset(x_webhook_secret: Optional[str] = Header(default=None)):
        if not _matches(settings.webhook_secret, x_webhook_secret):
            return _error(401, "unauthorized", "bad webhook secret")
        ledger.reset()
        return {"ok": True}

    return app

from __future__ import annotations

import json
import os
from typing import Any, Dict, List, Optional
import logging
import time

from ..metrics.ledger import _safe_counter


def _get_append_counters():
    app = _safe_counter("order_journal_appends_total", "Order records appended", ["market"])
    err = _safe_counter("order_journal_errors_total", "Order journal errors", ["reason", "market"])
    return app, err


REQUIRED_KEYS = {
    "ts", "market", "side", "outcome", "qty", "price", "leverage", "reason",
}


def validate_record(rec: Dict[str, Any]) -> List[str]:
    return [k for k in REQUIRED_KEYS if k not in rec]


def append_jsonl(path: str, rec: Dict[str, Any]) -> bool:
    """Append one order record to a JSONL audit journal.

    The journal is write-only; the ledger never reads it back.
    """
    market = str(rec.get("market", "unknown"))
    app, err = _get_append_counters()
    missing = validate_record(rec)
    if missing:
        err.labels("missing_fields", market).inc()
        return False
    try:
        dirname = os.path.dirname(path)
        if dirname:
            os.makedirs(dirname, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(rec, ensure_ascii=False) + "\n")
        app.labels(market).inc()
        return True
    except OSError:
        err.labels("io_error", market).inc()
        return False


def log_order_event(
    event_type: str,
    market: str,
    side: Optional[str] = None,
    qty: Optional[float] = None,
    price: Optional[float] = None,
    ts: Optional[int] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """Emit a structured JSON log line for an order outcome.

    Keys: event, market, side, qty, price, ts, severity, component, schema_version
    """
    try:
        logger = logging.getLogger("paperledger.orders")
        payload: Dict[str, Any] = {
            "event": str(event_type),
            "market": str(market),
            "side": str(side) if side is not None else None,
            "qty": float(qty) if qty is not None else None,
            "price": float(price) if price is not None else None,
            "ts": int(ts if ts is not None else int(time.time() * 1000)),
            "severity": "WARNING" if event_type == "order_rejected" else "INFO",
            "component": "ledger",
            "schema_version": "v1",
        }
        if extra:
            payload["extra"] = extra
        logger.info(json.dumps(payload, separators=(",", ":"), default=str))
    except Exception:
        # Logging must never throw
        pass

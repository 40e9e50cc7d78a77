from __future__ import annotations

from typing import Optional, Set
import os
import threading
from prometheus_client import Counter, Gauge, REGISTRY

# Markets come from webhook input; only the first N distinct ones get their own label
MAX_MARKET_LABELS = int(os.getenv("METRICS_MAX_MARKETS", "100"))
OVERFLOW_LABEL = "other"

_market_labels: Set[str] = set()
_market_labels_lock = threading.Lock()

_orders_submitted: Optional[Counter] = None
_orders_rejected: Optional[Counter] = None
_fills_total: Optional[Counter] = None
_notional_traded: Optional[Counter] = None
_realized_pnl_total: Optional[Counter] = None
_position_base_qty: Optional[Gauge] = None
_account_equity_usd: Optional[Gauge] = None
_ledger_resets: Optional[Counter] = None
_events_total: Optional[Counter] = None


class _NoOp:
    def labels(self, *args, **kwargs):
        return self
    def inc(self, *args, **kwargs):
        return None
    def set(self, *args, **kwargs):
        return None


def _existing_collector(name: str):
    try:
        coll = getattr(REGISTRY, "_names_to_collectors", {}).get(name)
        if coll is not None:
            return coll
        for coll in list(getattr(REGISTRY, "_collector_to_names", {}).keys()):  # type: ignore[attr-defined]
            if getattr(coll, "_name", None) == name:
                return coll
    except Exception:
        pass
    return None


def _safe_counter(name: str, doc: str, labelnames):
    if os.getenv("DISABLE_PROMETHEUS", "0") == "1":
        return _NoOp()
    try:
        return Counter(name, doc, labelnames)
    except ValueError:
        # Already registered (module reloads in tests); reuse the live collector
        return _existing_collector(name) or _NoOp()


def _safe_gauge(name: str, doc: str, labelnames):
    if os.getenv("DISABLE_PROMETHEUS", "0") == "1":
        return _NoOp()
    try:
        return Gauge(name, doc, labelnames)
    except ValueError:
        coll = _existing_collector(name)
        if isinstance(coll, Gauge):
            return coll
        return _NoOp()


def get_orders_submitted_total():
    global _orders_submitted
    if _orders_submitted is None:
        _orders_submitted = _safe_counter("orders_submitted_total", "Orders received by the ledger", ["market", "side"])
    return _orders_submitted


def get_orders_rejected_total():
    global _orders_rejected
    if _orders_rejected is None:
        _orders_rejected = _safe_counter("orders_rejected_total", "Orders rejected during validation", ["reason", "market"])
    return _orders_rejected


def get_fills_total():
    global _fills_total
    if _fills_total is None:
        _fills_total = _safe_counter("fills_total", "Fills applied to the ledger", ["market", "side"])
    return _fills_total


def get_notional_traded_total():
    """Counter: cash notional of all fills, labeled by market."""
    global _notional_traded
    if _notional_traded is None:
        _notional_traded = _safe_counter("notional_traded_usd_total", "Notional traded in cash terms", ["market"])
    return _notional_traded


def get_realized_pnl_total():
    global _realized_pnl_total
    if _realized_pnl_total is None:
        _realized_pnl_total = _safe_counter("realized_pnl_total", "Realized PnL (gains only)", ["market"])
    return _realized_pnl_total


def get_position_base_qty():
    """Gauge: signed base quantity of the open position per market."""
    global _position_base_qty
    if _position_base_qty is None:
        _position_base_qty = _safe_gauge("position_base_qty", "Signed position size in base units", ["market"])
    return _position_base_qty


def get_account_equity_usd():
    """Gauge: cash + realized + unrealized PnL, labeled by account."""
    global _account_equity_usd
    if _account_equity_usd is None:
        _account_equity_usd = _safe_gauge("account_equity_usd", "Account equity in USD", ["account"])
    return _account_equity_usd


def get_ledger_resets_total():
    global _ledger_resets
    if _ledger_resets is None:
        _ledger_resets = _safe_counter("ledger_resets_total", "Ledger resets", [])
    return _ledger_resets


def get_events_total():
    global _events_total
    if _events_total is None:
        _events_total = _safe_counter("events_total", "Ledger events published", ["type"])
    return _events_total


def set_equity_gauge(equity: float, account: str = "paper") -> None:
    try:
        get_account_equity_usd().labels(account=account).set(float(equity))  # type: ignore[attr-defined]
    except Exception:
        # Metrics are optional in constrained environments
        pass


def market_label(market: str) -> str:
    """Return the label value for `market`, bounded to MAX_MARKET_LABELS names."""
    with _market_labels_lock:
        if market in _market_labels:
            return market
        if len(_market_labels) < MAX_MARKET_LABELS:
            _market_labels.add(market)
            return market
    return OVERFLOW_LABEL

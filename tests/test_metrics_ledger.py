from prometheus_client import REGISTRY

from paperledger.ledger import Ledger
from paperledger.exec.errors import OrderRejection
from paperledger.metrics import ledger as ledger_metrics
from paperledger.metrics.ledger import OVERFLOW_LABEL, get_events_total, market_label, set_equity_gauge


def _sample(metric: str, labels: dict) -> float:
    val = REGISTRY.get_sample_value(metric, labels)
    return 0.0 if val is None else float(val)


def test_fill_metrics_increment():
    led = Ledger(publisher=lambda env: None)
    fills_before = _sample("fills_total", {"market": "MET_A", "side": "buy"})
    notional_before = _sample("notional_traded_usd_total", {"market": "MET_A"})
    led.place_order({"market": "MET_A", "side": "buy", "size": 2, "price": 50.0})
    assert _sample("fills_total", {"market": "MET_A", "side": "buy"}) - fills_before == 1.0
    assert _sample("notional_traded_usd_total", {"market": "MET_A"}) - notional_before == 100.0
    assert _sample("position_base_qty", {"market": "MET_A"}) == 2.0


def test_realized_gains_counted_losses_not():
    led = Ledger(publisher=lambda env: None)
    labels = {"market": "MET_B"}
    before = _sample("realized_pnl_total", labels)
    led.place_order({"market": "MET_B", "side": "buy", "size": 1, "price": 100.0})
    led.place_order({"market": "MET_B", "side": "sell", "size": 1, "price": 104.0})
    assert _sample("realized_pnl_total", labels) - before == 4.0
    led.place_order({"market": "MET_B", "side": "buy", "size": 1, "price": 100.0})
    led.place_order({"market": "MET_B", "side": "sell", "size": 1, "price": 90.0})
    assert _sample("realized_pnl_total", labels) - before == 4.0


def test_rejections_counted_by_reason():
    led = Ledger(publisher=lambda env: None)
    labels = {"reason": "no_price", "market": "MET_C"}
    before = _sample("orders_rejected_total", labels)
    try:
        led.place_order({"market": "MET_C", "side": "sell", "size": 1})
    except OrderRejection:
        pass
    assert _sample("orders_rejected_total", labels) - before == 1.0


def test_reset_counter_and_equity_gauge():
    led = Ledger(starting_cash=1234.0, publisher=lambda env: None)
    before = _sample("ledger_resets_total", {})
    led.reset()
    assert _sample("ledger_resets_total", {}) - before == 1.0
    assert _sample("account_equity_usd", {"account": "paper"}) == 1234.0
    set_equity_gauge(99.5)
    assert _sample("account_equity_usd", {"account": "paper"}) == 99.5


def test_events_total_counter_is_shared():
    assert get_events_total() is get_events_total()


def test_market_labels_are_capped(monkeypatch):
    monkeypatch.setattr(ledger_metrics, "MAX_MARKET_LABELS", 1)
    monkeypatch.setattr(ledger_metrics, "_market_labels", set())
    assert market_label("CAP_A") == "CAP_A"
    assert market_label("CAP_B") == OVERFLOW_LABEL
    assert market_label("CAP_A") == "CAP_A"


def test_overflow_markets_share_one_series(monkeypatch):
    monkeypatch.setattr(ledger_metrics, "MAX_MARKET_LABELS", 0)
    monkeypatch.setattr(ledger_metrics, "_market_labels", set())
    led = Ledger(publisher=lambda env: None)
    before = _sample("fills_total", {"market": OVERFLOW_LABEL, "side": "buy"})
    for i in range(3):
        led.place_order({"market": f"JUNK_{i}", "side": "buy", "size": 1, "price": 10.0})
    assert _sample("fills_total", {"market": OVERFLOW_LABEL, "side": "buy"}) - before == 3.0
    assert REGISTRY.get_sample_value("fills_total", {"market": "JUNK_0", "side": "buy"}) is None
    assert REGISTRY.get_sample_value("position_base_qty", {"market": "JUNK_0"}) is None

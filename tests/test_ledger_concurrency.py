import threading

import pytest
from prometheus_client import REGISTRY

from paperledger.ledger import Ledger


def test_concurrent_orders_are_serialized():
    led = Ledger(starting_cash=1_000_000.0, publisher=lambda env: None)
    n_threads, per_thread = 8, 50

    def worker(side):
        for _ in range(per_thread):
            led.place_order({"market": "BTC_USD", "side": side, "size": 1, "price": 100.0})

    sides = ["buy"] * (n_threads // 2) + ["sell"] * (n_threads // 2)
    threads = [threading.Thread(target=worker, args=(s,)) for s in sides]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    state = led.get_state()
    assert len(state.trades) == n_threads * per_thread
    pos = state.positions["BTC_USD"]
    assert pos.base_qty == 0
    assert pos.side == "flat"
    assert pos.realized_pnl == pytest.approx(0.0)


def test_gauges_match_state_after_concurrent_orders():
    led = Ledger(starting_cash=1_000_000.0, publisher=lambda env: None)

    def worker(side, size):
        for _ in range(40):
            led.place_order({"market": "GAUGE_MKT", "side": side, "size": size, "price": 100.0})

    threads = [threading.Thread(target=worker, args=args)
               for args in [("buy", 3), ("sell", 1), ("buy", 1), ("sell", 2)]]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    state = led.get_state()
    assert state.positions["GAUGE_MKT"].base_qty == pytest.approx(40.0)
    assert REGISTRY.get_sample_value("position_base_qty", {"market": "GAUGE_MKT"}) == pytest.approx(40.0)
    assert REGISTRY.get_sample_value("account_equity_usd", {"account": "paper"}) == pytest.approx(state.equity)

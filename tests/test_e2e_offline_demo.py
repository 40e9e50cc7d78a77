import logging
import os

from paperledger import main as main_mod


def test_offline_demo_places_orders_and_exports(monkeypatch, caplog, tmp_path):
    monkeypatch.setenv("OFFLINE_DEMO", "1")
    monkeypatch.setenv("DEMO_OUTPUT_DIR", str(tmp_path))
    monkeypatch.setenv("REDIS_URL", "")
    monkeypatch.setenv("PAPER_BASE_USDC", "10000")
    # Port may be blocked; failure is tolerated in code
    monkeypatch.setenv("PROMETHEUS_PORT", "0")
    caplog.set_level(logging.INFO)
    main_mod.main()
    out = "\n".join([r.message for r in caplog.records])
    assert "order filled: {" in out
    assert "order rejected: no_price" in out
    assert "order rejected: notional_limit" in out
    assert "offline demo complete" in out
    assert os.path.exists(tmp_path / "trades.parquet")
    assert os.path.exists(tmp_path / "positions.parquet")

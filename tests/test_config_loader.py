import pytest
from pydantic import ValidationError

from paperledger.config.loader import Settings, load_settings
from paperledger.ledger import Ledger


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("PAPER_BASE_USDC", "PAPER_DEFAULT_LEVERAGE", "PAPER_CASH_ASSET", "WEBHOOK_SECRET",
                 "TRADINGVIEW_PASSPHRASE", "PROMETHEUS_PORT", "ORDER_JOURNAL_PATH", "HTTP_HOST", "HTTP_PORT"):
        monkeypatch.delenv(name, raising=False)


def test_defaults_without_config_file(tmp_path):
    s = load_settings(str(tmp_path / "missing.yaml"))
    assert s.starting_cash == 10_000.0
    assert s.default_leverage == 2.0
    assert s.webhook_secret is None
    assert s.passphrase is None


def test_yaml_values_and_env_overrides(tmp_path, monkeypatch):
    cfg = tmp_path / "config.yaml"
    cfg.write_text("paper:\n  starting_cash: 5000\n  default_leverage: 5\n  cash_asset: USDT\n")
    s = load_settings(str(cfg))
    assert (s.starting_cash, s.default_leverage, s.cash_asset) == (5000.0, 5.0, "USDT")

    monkeypatch.setenv("PAPER_BASE_USDC", "2500")
    monkeypatch.setenv("PAPER_DEFAULT_LEVERAGE", "3")
    monkeypatch.setenv("WEBHOOK_SECRET", "s3cret")
    s = load_settings(str(cfg))
    assert s.starting_cash == 2500.0
    assert s.default_leverage == 3.0
    assert s.webhook_secret == "s3cret"


def test_empty_secret_means_disabled(monkeypatch, tmp_path):
    monkeypatch.setenv("WEBHOOK_SECRET", "")
    assert load_settings(str(tmp_path / "none.yaml")).webhook_secret is None
    assert Settings(passphrase="").passphrase is None


@pytest.mark.parametrize("kw", [{"starting_cash": -1}, {"default_leverage": 0}, {"default_leverage": -2}])
def test_invalid_settings_rejected(kw):
    with pytest.raises(ValidationError):
        Settings(**kw)


def test_ledger_from_settings():
    s = Settings(starting_cash=750, default_leverage=4, cash_asset="USDT", recent_trades=2)
    led = Ledger.from_settings(s, publisher=lambda env: None)
    assert led.balances() == {"USDT": 750.0}
    assert led.default_leverage == 4.0
    assert led.recent_limit == 2

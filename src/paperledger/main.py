"""
Main entrypoint for paperledger.

What it does:
- Loads runtime settings from `config/config.yaml` and environment variables
  (`PAPER_BASE_USDC`, `PAPER_DEFAULT_LEVERAGE`, `WEBHOOK_SECRET`, ...).
- Starts the Prometheus metrics endpoint.
- Builds the single process-wide Ledger and serves the webhook app with uvicorn.

With `OFFLINE_DEMO=1` it instead replays a short scripted order sequence
against the ledger, logs each result, writes Parquet exports and exits.

Where it is used:
- Invoked by `python -m paperledger.main` or the `paperledger` console script.
"""
import logging
import os
import time

import uvicorn

from paperledger.api.app import create_app
from paperledger.config.loader import Settings, load_settings
from paperledger.exec.errors import OrderRejection
from paperledger.ledger import Ledger
from paperledger.metrics.core import start_server_safe

DEMO_ORDERS = [
    {"market": "BTC_USD", "side": "buy", "sizeUsd": 1000, "price": 100.0},
    {"market": "BTC_USD", "side": "buy", "size": 10, "price": 120.0},
    {"market": "BTC_USD", "side": "sell", "size": 8, "price": 130.0},
    {"market": "BTC_USD", "side": "sell", "size": 20, "price": 110.0},
    {"market": "ETH_USD", "side": "buy", "size": 1},
    {"market": "ETH_USD", "side": "buy", "sizeUsd": 50_000, "price": 2000.0},
    {"market": "ETH_USD", "side": "sell", "sizeUsd": 4000, "price": 2000.0, "leverage": 3},
]


def run_offline_demo(settings: Settings, ledger: Ledger, out_dir: str = "data") -> None:
    for raw in DEMO_ORDERS:
        try:
            result = ledger.place_order(raw)
            logging.info(f"order filled: {result.position.model_dump()}")
        except OrderRejection as rej:
            logging.info(f"order rejected: {rej.reason} ({rej.message})")
    state = ledger.get_state()
    logging.info(f"equity: {state.equity:.2f} {settings.cash_asset}, trades: {len(state.trades)}")
    ledger.write_parquet(out_dir)
    logging.info("offline demo complete")


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    settings = load_settings()
    logging.info(
        f"starting paper ledger with {settings.cash_asset}={settings.starting_cash}, "
        f"default leverage={settings.default_leverage}"
    )
    start_server_safe(settings.prometheus_port)
    ledger = Ledger.from_settings(settings)

    if os.getenv("OFFLINE_DEMO", "0") == "1":
        run_offline_demo(settings, ledger, os.getenv("DEMO_OUTPUT_DIR", "data"))
        # Optional: keep the metrics server alive for inspection
        hold = int(os.getenv("HOLD_METRICS_SECONDS", "0"))
        if hold > 0:
            logging.info(f"holding metrics server for {hold}s before exit")
            time.sleep(hold)
        return

    app = create_app(settings, ledger)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()

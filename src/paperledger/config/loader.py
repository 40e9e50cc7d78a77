"""
Configuration loader for paperledger.

What it does:
- Reads static settings from `config/config.yaml` (optional; defaults apply
  when the file is missing).
- Lets environment variables override the YAML values:
  `PAPER_BASE_USDC`, `PAPER_DEFAULT_LEVERAGE`, `WEBHOOK_SECRET`,
  `TRADINGVIEW_PASSPHRASE`, `PROMETHEUS_PORT`, `ORDER_JOURNAL_PATH`.
- Validates the resulting configuration using Pydantic models.

Where it is used:
- Called by `paperledger.main` to build the `Settings` the ledger and the
  webhook app are constructed from.
"""

import os
import yaml
from typing import Any, Dict, Optional
from pydantic import BaseModel, field_validator
import pathlib

DEFAULT_CONFIG_PATH = "config/config.yaml"

# env var -> Settings field
ENV_OVERRIDES = {
    "PAPER_BASE_USDC": "starting_cash",
    "PAPER_DEFAULT_LEVERAGE": "default_leverage",
    "PAPER_CASH_ASSET": "cash_asset",
    "WEBHOOK_SECRET": "webhook_secret",
    "TRADINGVIEW_PASSPHRASE": "passphrase",
    "PROMETHEUS_PORT": "prometheus_port",
    "ORDER_JOURNAL_PATH": "journal_path",
    "HTTP_HOST": "host",
    "HTTP_PORT": "port",
}


class Settings(BaseModel):
    """Runtime settings assembled from YAML + environment variables."""
    starting_cash: float = 10_000.0
    default_leverage: float = 2.0
    cash_asset: str = "USDC"
    recent_trades: int = 5
    webhook_secret: Optional[str] = None
    passphrase: Optional[str] = None
    journal_path: Optional[str] = None
    prometheus_port: int = 8000
    host: str = "0.0.0.0"
    port: int = 3000

    @field_validator("starting_cash")
    @classmethod
    def non_negative(cls, v, info):
        if v < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return v

    @field_validator("default_leverage")
    @classmethod
    def positive(cls, v, info):
        if not v > 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return v

    @field_validator("webhook_secret", "passphrase", "journal_path")
    @classmethod
    def empty_as_none(cls, v):
        return v or None


def load_settings(path: str = DEFAULT_CONFIG_PATH) -> Settings:
    """Load YAML config, apply env-var overrides, and return Settings."""
    config: Dict[str, Any] = {}
    p = pathlib.Path(path)
    if p.exists():
        with open(p, "r") as f:
            config = yaml.safe_load(f) or {}
    paper = dict(config.get("paper", {}) or {})
    for env_name, field in ENV_OVERRIDES.items():
        val = os.getenv(env_name)
        if val is not None and val != "":
            paper[field] = val
    return Settings(**paper)

from __future__ import annotations

from typing import Literal, Optional
from pydantic import BaseModel


# ---- Base + envelope ----

class BaseEvent(BaseModel):
    event_type: str
    ts: int
    account: str = "paper"
    market: str
    side: Optional[str] = None  # buy|sell or long|short|flat


class EventEnvelope(BaseModel):
    schema_version: str = "v1"
    correlation_id: str
    sequence: int = 0
    event: BaseEvent


# ---- Event types ----

class OrderFilled(BaseEvent):
    event_type: Literal["order_filled"] = "order_filled"
    qty: float
    price: float
    notional: float
    leverage: float
    realized_pnl: float = 0.0
    position_side: str
    position_base_qty: float
    entry_price: float


class OrderRejected(BaseEvent):
    event_type: Literal["order_rejected"] = "order_rejected"
    reason: str
    detail: str = ""


class PositionFlipped(BaseEvent):
    event_type: Literal["position_flipped"] = "position_flipped"
    from_side: str
    to_side: str
    entry_price: float


class LedgerReset(BaseEvent):
    event_type: Literal["ledger_reset"] = "ledger_reset"
    cash_balance: float

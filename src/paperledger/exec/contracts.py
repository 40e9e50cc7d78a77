from __future__ import annotations

from typing import Dict, List, Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .model import Fill, Notional, QuantitySpec, RawSize, SideOrder, SidePosition


class OrderRequest(BaseModel):
    """Normalized order instruction as received from a webhook.

    Sizes, prices and leverage may arrive as numbers or numeric strings.
    `sizeUsd` (cash notional) wins over `size` (asset units) when both are set.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    market: str
    side: SideOrder = Field(validation_alias=AliasChoices("side", "order"))
    size_usd: Optional[float] = Field(default=None, validation_alias=AliasChoices("sizeUsd", "size_usd"))
    size: Optional[float] = None
    price: Optional[float] = None
    leverage: Optional[float] = None

    @field_validator("market")
    @classmethod
    def market_not_empty(cls, v: str):
        v = v.strip()
        if not v:
            raise ValueError("market required")
        return v

    @field_validator("side", mode="before")
    @classmethod
    def normalize_side(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    def quantity_spec(self) -> QuantitySpec:
        if self.size_usd is not None:
            return Notional(self.size_usd)
        if self.size is not None:
            return RawSize(self.size)
        return RawSize(0.0)


class PositionSnapshot(BaseModel):
    """Position view; serialized with the webhook's camelCase keys."""
    market: str
    side: SidePosition
    base_qty: float = Field(serialization_alias="base")
    entry_price: float = Field(serialization_alias="entry")
    leverage: float
    realized_pnl: float = Field(serialization_alias="realizedPnl")
    unrealized_pnl: float = Field(serialization_alias="unrealizedPnl")


class OrderResult(BaseModel):
    ok: bool = True
    market: str
    side: SideOrder
    qty: float
    price: float
    notional: float
    leverage: float
    position: PositionSnapshot
    balances: Dict[str, float]
    trades: List[Fill]


class LedgerSnapshot(BaseModel):
    balances: Dict[str, float]
    equity: float
    positions: Dict[str, PositionSnapshot]
    last_price: Dict[str, float] = Field(serialization_alias="lastPrice")
    trades: List[Fill]

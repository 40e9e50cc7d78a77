from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Union

SideOrder = Literal["buy", "sell"]
SidePosition = Literal["long", "short", "flat"]


@dataclass(frozen=True)
class Notional:
    """Order size expressed as a cash amount."""
    amount: float


@dataclass(frozen=True)
class RawSize:
    """Order size expressed in units of the underlying asset."""
    amount: float


QuantitySpec = Union[Notional, RawSize]


@dataclass(frozen=True)
class Fill:
    ts: int
    market: str
    side: SideOrder
    qty: float
    price: float
    notional: float
    leverage: float


@dataclass
class Position:
    market: str
    base_qty: float = 0.0
    entry_price: float = 0.0
    leverage: float = 0.0
    realized_pnl: float = 0.0

    @property
    def side(self) -> SidePosition:
        if self.base_qty > 0:
            return "long"
        if self.base_qty < 0:
            return "short"
        return "flat"

    def unrealized_pnl(self, mark: float | None) -> float:
        if self.base_qty == 0 or mark is None:
            return 0.0
        if self.base_qty > 0:
            return abs(self.base_qty) * (mark - self.entry_price)
        return abs(self.base_qty) * (self.entry_price - mark)

from __future__ import annotations

from dataclasses import asdict
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union
import logging
import math
import os
import threading
import time

import pandas as pd
from pydantic import ValidationError

from ..exec.model import Fill, Notional, Position, SideOrder
from ..exec.contracts import LedgerSnapshot, OrderRequest, OrderResult, PositionSnapshot
from ..exec.errors import (
    InvalidQuantity,
    InvalidRequest,
    NoPriceAvailable,
    NotionalLimitExceeded,
    OrderRejection,
)
from ..events.schema import EventEnvelope, LedgerReset, OrderFilled, OrderRejected, PositionFlipped
from ..events.bus import publish as publish_event
from ..logs.order_log import append_jsonl, log_order_event
from ..metrics.ledger import (
    OVERFLOW_LABEL,
    get_fills_total,
    get_ledger_resets_total,
    get_notional_traded_total,
    get_orders_rejected_total,
    get_orders_submitted_total,
    get_position_base_qty,
    get_realized_pnl_total,
    market_label,
    set_equity_gauge,
)

logger = logging.getLogger(__name__)

Publisher = Callable[[EventEnvelope], None]

SIZE_FIELDS = {"size", "sizeUsd", "size_usd"}


def format_validation(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(x) for x in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts)


def parse_request(raw: Mapping[str, Any]) -> OrderRequest:
    """Build an OrderRequest, turning validation errors into rejections.

    Non-numeric sizes become InvalidQuantity; any other malformed field
    becomes InvalidRequest.
    """
    try:
        return OrderRequest.model_validate(raw)
    except ValidationError as e:
        market = raw.get("market") if isinstance(raw, Mapping) else None
        if not isinstance(market, str) or not market.strip():
            market = "unknown"
        market = market.strip()
        errors = e.errors()
        fields = [(err.get("loc") or ("",))[0] for err in errors]
        if fields and all(f in SIZE_FIELDS for f in fields):
            raise InvalidQuantity(market, errors[0].get("input")) from e
        raise InvalidRequest(market, format_validation(e)) from e


def _usable_price(price: Optional[float]) -> bool:
    # zero and non-finite prices are treated as "not supplied"
    return price is not None and math.isfinite(price) and price > 0


def _now_ms() -> int:
    return int(time.time() * 1000)


class Ledger:
    """Single-account paper-trading ledger.

    Holds the cash balance, the last mark price per market, one position per
    market and the append-only fill history. All public operations take one
    ledger-wide lock, so an order is applied as a single transaction:
    read price, validate, mutate the position, append the fill. Validation
    finishes before anything is written, so a rejected order leaves the
    ledger untouched (including its mark prices).

    The cash balance is a static sizing cap: it bounds `qty * price` to
    `cash_balance * leverage` but is never debited on open nor credited with
    realized PnL. Equity (cash + realized + unrealized) is reported alongside.
    """

    def __init__(
        self,
        starting_cash: float = 10_000.0,
        default_leverage: float = 2.0,
        cash_asset: str = "USDC",
        recent_limit: int = 5,
        publisher: Optional[Publisher] = None,
        clock: Optional[Callable[[], int]] = None,
        journal_path: Optional[str] = None,
    ):
        self.starting_cash = float(starting_cash)
        self.default_leverage = float(default_leverage)
        self.cash_asset = cash_asset
        self.recent_limit = int(recent_limit)
        self.journal_path = journal_path
        self.cash_balance = self.starting_cash
        self.last_price: Dict[str, float] = {}
        self.positions: Dict[str, Position] = {}
        self.trades: List[Fill] = []
        self._lock = threading.RLock()
        self._publish = publisher if publisher is not None else publish_event
        self._clock = clock or _now_ms
        # Metrics
        self._orders_submitted = get_orders_submitted_total()
        self._orders_rejected = get_orders_rejected_total()
        self._fills_total = get_fills_total()
        self._notional_traded = get_notional_traded_total()
        self._realized_counter = get_realized_pnl_total()
        self._position_gauge = get_position_base_qty()
        self._resets_total = get_ledger_resets_total()

    @classmethod
    def from_settings(cls, settings: Any, **kwargs) -> "Ledger":
        return cls(
            starting_cash=settings.starting_cash,
            default_leverage=settings.default_leverage,
            cash_asset=settings.cash_asset,
            recent_limit=settings.recent_trades,
            journal_path=settings.journal_path,
            **kwargs,
        )

    # ---- reads ----

    def mark(self, market: str, price: Optional[float] = None) -> Optional[float]:
        """Record `price` as the mark for `market` if usable; return the mark."""
        with self._lock:
            if _usable_price(price):
                self.last_price[market] = float(price)  # type: ignore[arg-type]
            return self.last_price.get(market)

    def unrealized_pnl(self, market: str) -> float:
        with self._lock:
            pos = self.positions.get(market)
            if pos is None:
                return 0.0
            return pos.unrealized_pnl(self.last_price.get(market))

    def balances(self) -> Dict[str, float]:
        return {self.cash_asset: self.cash_balance}

    def equity(self) -> float:
        with self._lock:
            total = self.cash_balance
            for market, pos in self.positions.items():
                total += pos.realized_pnl + pos.unrealized_pnl(self.last_price.get(market))
            return total

    def recent_trades(self, limit: Optional[int] = None) -> List[Fill]:
        n = self.recent_limit if limit is None else int(limit)
        with self._lock:
            if n <= 0:
                return []
            return list(self.trades[-n:])

    def position_snapshot(self, market: str) -> PositionSnapshot:
        with self._lock:
            pos = self.positions.get(market) or Position(market=market, leverage=self.default_leverage)
            return PositionSnapshot(
                market=market,
                side=pos.side,
                base_qty=pos.base_qty,
                entry_price=pos.entry_price,
                leverage=pos.leverage,
                realized_pnl=pos.realized_pnl,
                unrealized_pnl=pos.unrealized_pnl(self.last_price.get(market)),
            )

    def get_state(self) -> LedgerSnapshot:
        with self._lock:
            return LedgerSnapshot(
                balances=self.balances(),
                equity=self.equity(),
                positions={m: self.position_snapshot(m) for m in self.positions},
                last_price=dict(self.last_price),
                trades=list(self.trades),
            )

    # ---- writes ----

    def place_order(self, request: Union[OrderRequest, Mapping[str, Any]]) -> OrderResult:
        """Validate and apply one order; raise an OrderRejection on failure."""
        if not isinstance(request, OrderRequest):
            try:
                request = parse_request(request)
            except OrderRejection as rej:
                raw_side = request.get("side", request.get("order")) if isinstance(request, Mapping) else None
                self._on_rejected(rej, side=raw_side if isinstance(raw_side, str) else None)
                raise
        self._orders_submitted.labels(market_label(request.market), request.side).inc()
        try:
            with self._lock:
                result, events = self._place_locked(request)
        except OrderRejection as rej:
            self._on_rejected(rej, request.side, request.price, request.leverage)
            raise

        fill = result.trades[-1]
        label = market_label(fill.market)
        self._fills_total.labels(label, fill.side).inc()
        self._notional_traded.labels(label).inc(fill.notional)
        realized = next((e.event.realized_pnl for e in events if isinstance(e.event, OrderFilled)), 0.0)
        # Counters cannot be decremented; only accumulate positive realized PnL
        if realized > 0:
            self._realized_counter.labels(label).inc(realized)
        for env in events:
            self._emit(env)
        log_order_event(
            "order_filled", fill.market, fill.side, fill.qty, fill.price, fill.ts,
            extra={"leverage": fill.leverage, "position": result.position.side, "realized_pnl": realized},
        )
        self._journal(fill.ts, fill.market, fill.side, "filled", fill.qty, fill.price, fill.leverage, "")
        return result

    def reset(self) -> None:
        """Restore the starting cash balance and clear prices, positions and trades."""
        with self._lock:
            markets = list(self.positions)
            self.cash_balance = self.starting_cash
            self.last_price = {}
            self.positions = {}
            self.trades = []
            ts = self._clock()
            for market in markets:
                self._set_position_gauge(market, 0.0)
            set_equity_gauge(self.starting_cash)
        self._resets_total.inc()
        logger.info(f"ledger reset: {self.cash_asset}={self.starting_cash}")
        self._emit(EventEnvelope(
            correlation_id=f"reset:{ts}",
            event=LedgerReset(ts=ts, market="*", cash_balance=self.starting_cash),
        ))

    def write_parquet(self, base_dir: str = "data") -> None:
        """Export fills and positions to Parquet for offline analysis."""
        state = self.get_state()
        os.makedirs(base_dir, exist_ok=True)
        trades_df = pd.DataFrame([asdict(t) for t in state.trades])
        positions_df = pd.DataFrame([p.model_dump() for p in state.positions.values()])
        trades_df.to_parquet(os.path.join(base_dir, "trades.parquet"))
        positions_df.to_parquet(os.path.join(base_dir, "positions.parquet"))

    # ---- internals ----

    def _validate(self, request: OrderRequest) -> Tuple[float, float, float, float]:
        market = request.market
        if _usable_price(request.price):
            price = float(request.price)  # type: ignore[arg-type]
        else:
            price = self.last_price.get(market)  # type: ignore[assignment]
        if price is None:
            raise NoPriceAvailable(market)

        spec = request.quantity_spec()
        qty = spec.amount / price if isinstance(spec, Notional) else spec.amount
        if not math.isfinite(qty) or qty <= 0:
            raise InvalidQuantity(market, qty)

        leverage = self.default_leverage if request.leverage is None else float(request.leverage)
        notional = qty * price
        max_notional = self.cash_balance * leverage
        if not math.isfinite(leverage) or leverage <= 0 or notional > max_notional:
            raise NotionalLimitExceeded(market, notional, max_notional)
        return qty, price, notional, leverage

    def _place_locked(self, request: OrderRequest) -> Tuple[OrderResult, List[EventEnvelope]]:
        qty, price, notional, leverage = self._validate(request)
        market, side = request.market, request.side
        ts = self._clock()

        self.last_price[market] = price
        prev_side = self.positions[market].side if market in self.positions else "flat"
        realized, flipped = self._apply_fill(market, side, qty, price, leverage)
        fill = Fill(ts=ts, market=market, side=side, qty=qty, price=price, notional=notional, leverage=leverage)
        self.trades.append(fill)

        position = self.position_snapshot(market)
        corr = f"{market}:{len(self.trades)}"
        events = [EventEnvelope(correlation_id=corr, event=OrderFilled(
            ts=ts, market=market, side=side, qty=qty, price=price, notional=notional,
            leverage=leverage, realized_pnl=realized, position_side=position.side,
            position_base_qty=position.base_qty, entry_price=position.entry_price,
        ))]
        if flipped:
            events.append(EventEnvelope(correlation_id=corr, sequence=1, event=PositionFlipped(
                ts=ts, market=market, side=side, from_side=prev_side, to_side=position.side,
                entry_price=position.entry_price,
            )))
        result = OrderResult(
            market=market,
            side=side,
            qty=qty,
            price=price,
            notional=notional,
            leverage=leverage,
            position=position,
            balances=self.balances(),
            trades=self.recent_trades(),
        )
        # gauges mirror state, so they are written while the lock is held
        self._set_position_gauge(market, position.base_qty)
        set_equity_gauge(self.equity())
        return result, events

    def _apply_fill(self, market: str, side: SideOrder, qty: float, price: float, leverage: float) -> Tuple[float, bool]:
        """Apply a validated fill; return (realized PnL booked, flipped)."""
        pos = self.positions.get(market)
        if pos is None:
            pos = Position(market=market, leverage=self.default_leverage)
            self.positions[market] = pos
        delta = qty if side == "buy" else -qty

        if pos.base_qty == 0 or (pos.base_qty > 0) == (delta > 0):
            # Opening or adding in the same direction: notional-weighted entry
            new_base = pos.base_qty + delta
            if new_base != 0:
                pos.entry_price = (abs(pos.base_qty) * pos.entry_price + abs(delta) * price) / abs(new_base)
            else:
                pos.entry_price = 0.0
            pos.base_qty = new_base
            pos.leverage = leverage
            return 0.0, False

        # Reducing, closing or flipping
        was_long = pos.base_qty > 0
        reduced = min(abs(pos.base_qty), abs(delta))
        pnl_per_unit = (price - pos.entry_price) if was_long else (pos.entry_price - price)
        realized = pnl_per_unit * reduced
        pos.realized_pnl += realized
        pos.base_qty += delta
        if pos.base_qty == 0:
            pos.entry_price = 0.0
            return realized, False
        if (pos.base_qty > 0) != was_long:
            pos.entry_price = price
            pos.leverage = leverage
            return realized, True
        return realized, False

    def _set_position_gauge(self, market: str, base_qty: float) -> None:
        label = market_label(market)
        if label != OVERFLOW_LABEL:
            self._position_gauge.labels(label).set(base_qty)  # type: ignore[attr-defined]

    def _on_rejected(
        self,
        rej: OrderRejection,
        side: Optional[str] = None,
        price: Optional[float] = None,
        leverage: Optional[float] = None,
    ) -> None:
        ts = self._clock()
        market = rej.market
        self._orders_rejected.labels(rej.reason, market_label(market)).inc()
        logger.warning(f"order rejected [{rej.reason}]: {rej.message}")
        self._emit(EventEnvelope(
            correlation_id=f"{market}:rejected:{ts}",
            event=OrderRejected(ts=ts, market=market, side=side, reason=rej.reason, detail=rej.message),
        ))
        log_order_event(
            "order_rejected", market, side, None, price, ts,
            extra={"reason": rej.reason, "detail": rej.message},
        )
        self._journal(ts, market, side, "rejected", None, price, leverage, rej.reason)

    def _emit(self, env: EventEnvelope) -> None:
        try:
            self._publish(env)
        except Exception:
            logger.exception(f"failed to publish {env.event.event_type} event")

    def _journal(self, ts, market, side, outcome, qty, price, leverage, reason) -> None:
        if not self.journal_path:
            return
        append_jsonl(self.journal_path, {
            "ts": ts, "market": market, "side": side, "outcome": outcome,
            "qty": qty, "price": price, "leverage": leverage, "reason": reason,
        })

"""Order rejections raised by the ledger.

Every rejection is raised during validation, before the ledger mutates any
state, so callers can surface it and carry on.
"""
from __future__ import annotations


class OrderRejection(Exception):
    reason = "rejected"

    def __init__(self, market: str, message: str):
        super().__init__(message)
        self.market = market
        self.message = message


class NoPriceAvailable(OrderRejection):
    reason = "no_price"

    def __init__(self, market: str):
        super().__init__(market, f"no price available for {market} (pass \"price\" with the order)")


class InvalidQuantity(OrderRejection):
    reason = "invalid_quantity"

    def __init__(self, market: str, qty: float):
        super().__init__(market, f"invalid quantity for {market}: {qty!r}")
        self.qty = qty


class NotionalLimitExceeded(OrderRejection):
    reason = "notional_limit"

    def __init__(self, market: str, notional: float, max_notional: float):
        super().__init__(market, f"exceeds notional limit: {notional:.2f} > {max_notional:.2f}")
        self.notional = notional
        self.max_notional = max_notional


class InvalidRequest(OrderRejection):
    reason = "invalid_request"

    def __init__(self, market: str, detail: str):
        super().__init__(market, f"invalid order request: {detail}")
        self.detail = detail

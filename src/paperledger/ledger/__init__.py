"""Ledger package.

Public API:
- Ledger: paper-trading account state, order placement, PnL accounting, reset.
"""

from .ledger import Ledger  # re-export

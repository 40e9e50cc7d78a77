"""Paper-trading ledger with a webhook front end."""

__version__ = "0.1.0"

"""Core metrics helpers for paperledger.

Starts the Prometheus HTTP endpoint while tolerating bind failures, so the
webhook service keeps running when the metrics port is taken.
"""

import logging
from typing import Optional

from prometheus_client import start_http_server


def start_server_safe(port: int) -> Optional[int]:
    """Start Prometheus metrics server; return port or None if failed."""
    if port <= 0:
        logging.info("Prometheus metrics server disabled")
        return None
    try:
        start_http_server(port)
        logging.info(f"Prometheus metrics server started on :{port}")
        return port
    except OSError as e:
        logging.warning(f"Failed to start Prometheus server on :{port}: {e}")
        return None

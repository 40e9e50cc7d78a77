from __future__ import annotations

import json
import os
import logging
import threading
import time

import redis

from .schema import EventEnvelope
from ..metrics.ledger import get_events_total


STREAM_EVENTS = os.getenv("EVENTS_STREAM", "paperledger.events")
STREAM_DLQ = os.getenv("EVENTS_DLQ", "paperledger.dlq")
# After a connection failure, skip redis for this long instead of paying the connect timeout per event
RETRY_SECONDS = float(os.getenv("EVENTS_REDIS_RETRY_SECONDS", "30"))

log = logging.getLogger("paperledger.events")

_client = None
_client_url = ""
_client_lock = threading.Lock()
_retry_after = 0.0


def _redis_url() -> str:
    return os.getenv("REDIS_URL", "redis://localhost:6379/0")


def _get_redis():
    """Return the shared client for REDIS_URL, rebuilding it only when the URL changes."""
    global _client, _client_url
    url = _redis_url()
    with _client_lock:
        if _client is None or _client_url != url:
            _client = redis.Redis.from_url(url, decode_responses=True, socket_connect_timeout=0.5)
            _client_url = url
        return _client


def encode(env: EventEnvelope) -> str:
    return json.dumps({
        "schema_version": env.schema_version,
        "correlation_id": env.correlation_id,
        "sequence": env.sequence,
        "event": env.event.model_dump(),
    }, separators=(",", ":"))


def publish(env: EventEnvelope) -> None:
    """Publish an event to Redis Streams and log a single-line JSON.

    Never raises: an unreachable Redis must not break order handling.
    Set REDIS_URL to an empty string to skip Redis and only log.
    """
    global _retry_after
    try:
        get_events_total().labels(env.event.event_type).inc()
    except Exception:
        pass

    line = encode(env)
    if _redis_url() and time.monotonic() >= _retry_after:
        try:
            r = _get_redis()
            r.xadd(STREAM_EVENTS, {"json": line})
        except (redis.ConnectionError, redis.TimeoutError):
            _retry_after = time.monotonic() + RETRY_SECONDS
            log.debug(f"redis unreachable; skipping streams for {RETRY_SECONDS:.0f}s")
        except redis.RedisError:
            try:
                # best-effort DLQ
                _get_redis().xadd(STREAM_DLQ, {"json": line})
            except redis.RedisError:
                log.debug("redis DLQ write failed; event kept in log only")
    log.info(line)

"""
Prometheus metrics for the chatlink clients.

Metrics
-------

* ``chatlink_http_requests_total{method,status}`` – HTTP exchanges by
  outcome.  Transport failures are recorded with ``status="error"``.
* ``chatlink_token_refresh_total{outcome}`` – refresh network calls,
  ``outcome`` is ``success`` or ``failure``.
* ``chatlink_request_replays_total`` – requests replayed after a 401.
* ``chatlink_realtime_frames_total{direction}`` – websocket frames sent
  (``out``) and delivered to the subscriber (``in``).
* ``chatlink_realtime_connected`` – 1 while a messaging connection is
  open, 0 otherwise.
"""

from __future__ import annotations

import logging

from prometheus_client import Counter, Gauge, start_http_server

logger = logging.getLogger(__name__)

http_requests = Counter(
    "chatlink_http_requests_total",
    "HTTP requests issued by the authenticated client",
    labelnames=["method", "status"],
)
token_refreshes = Counter(
    "chatlink_token_refresh_total",
    "Token refresh network calls",
    labelnames=["outcome"],
)
request_replays = Counter(
    "chatlink_request_replays_total",
    "Requests replayed after an expired access token",
)
realtime_frames = Counter(
    "chatlink_realtime_frames_total",
    "Realtime messaging frames",
    labelnames=["direction"],
)
realtime_connected = Gauge(
    "chatlink_realtime_connected",
    "Realtime messaging connection status (1=open,0=closed)",
)


def start_metrics_server(port: int) -> None:
    """Expose metrics over HTTP on ``port``."""
    try:
        start_http_server(port)
    except Exception as exc:
        # Likely already started in this process
        logger.warning("Failed to start Prometheus server on port %d: %s", port, exc)
        return
    logger.info("Prometheus metrics exposed on port %d", port)

"""
Prometheus metrics — exposed by the /metrics ASGI app mounted in app.main.
"""
from prometheus_client import Counter, Gauge

SESSIONS_SCORED = Counter(
    "behavior_risk_sessions_scored_total",
    "Sessions processed by batch passes",
    ["outcome"],  # scored | failed
)

BATCH_PASSES = Counter(
    "behavior_risk_batch_passes_total",
    "Batch passes by terminal status",
    ["status"],
)

LIVE_EVENTS = Counter(
    "behavior_risk_live_events_total",
    "Live feed events by outcome",
    ["outcome"],  # applied | dropped | invalid
)

BACKEND_AVAILABLE = Gauge(
    "behavior_risk_scoring_backend_available",
    "1 if the last connectivity observation found the scoring backend reachable",
)

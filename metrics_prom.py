import os
from prometheus_client import Counter, Histogram, Gauge

APP_NAME = os.getenv("APP_NAME", "mathparenting").replace("-", "_")

REQ_COUNT = Counter(
    f"{APP_NAME}_requests_total",
    "Total chat requests",
    ["route", "status"],    # route: greeting/.../model/cache
)

REQ_LATENCY_MS = Histogram(
    f"{APP_NAME}_request_latency_ms",
    "Request latency in milliseconds",
    ["route"],
    buckets=(5, 20, 50, 100, 200, 400, 800, 1500, 3000, 5000, 8000, 12000, 20000, 40000),
)

MODEL_CALLS = Counter(
    f"{APP_NAME}_model_calls_total",
    "Completion calls",
    ["outcome"],    # ok/upstream_error/malformed
)

CACHE_LOOKUPS = Counter(
    f"{APP_NAME}_cache_lookups_total",
    "Idempotency cache lookups",
    ["result"],     # hit/miss
)

QUEUE_WAIT_MS = Histogram(
    f"{APP_NAME}_queue_wait_ms",
    "Wait for a model slot in milliseconds",
    buckets=(0, 50, 100, 200, 400, 800, 1500, 3000, 5000, 8000, 12000),
)

INFLIGHT = Gauge(
    f"{APP_NAME}_model_inflight",
    "In-flight model calls",
)

TOKENS = Counter(
    f"{APP_NAME}_tokens_total",
    "Token counts",
    ["kind"],    # kind: input/output/total
)

COST_USD = Counter(
    f"{APP_NAME}_cost_usd_total",
    "Estimated cost in USD",
)

def record_usage(usage: dict, cost_usd: float) -> None:
    for kind in ("input", "output", "total"):
        TOKENS.labels(kind=kind).inc(int(usage.get(f"{kind}_tokens", 0) or 0))
    if cost_usd:
        COST_USD.inc(cost_usd)

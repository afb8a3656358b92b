from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi.responses import Response

# Recompute dispatcher metrics
recompute_total = Counter(
    "qa_recompute_total",
    "Answer quality recomputes",
    ["trigger", "status"],  # status: success | failed | timeout
)

recompute_duration = Histogram(
    "qa_recompute_duration_seconds",
    "Time to recompute and persist one answer's AQS",
    ["trigger"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

# Signal mutation metrics
reactions_total = Counter(
    "qa_reactions_total",
    "Reaction toggles applied",
    ["type", "action"],  # action: added | changed | removed
)

flags_total = Counter(
    "qa_flags_total",
    "Flag mutations applied",
    ["reason", "action"],  # action: created | updated | removed
)

mutation_retries = Counter(
    "qa_mutation_retries_total",
    "Signal mutations retried after a row conflict",
    ["operation"],
)

badges_granted = Counter(
    "qa_badges_granted_total",
    "Badges granted to users",
    ["source"],
)

# HTTP request metrics (from middleware)
http_requests = Counter(
    "qa_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status_code"],
)

http_request_duration = Histogram(
    "qa_http_request_duration_seconds",
    "HTTP request duration",
    ["method", "path"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)


async def metrics_endpoint():
    """FastAPI endpoint handler that returns Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

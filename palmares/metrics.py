"""Prometheus metrics for Palmares.

All custom metrics use the 'palmares_' prefix to avoid conflicts
with other applications in a shared observability stack.
"""

from prometheus_client import Counter, Gauge, Histogram, Info

# Application info
APP_INFO = Info(
    "palmares_app",
    "Palmares application info"
)
APP_INFO.info({"version": "1.0.0", "name": "palmares"})

# Provider fetches
PROVIDER_FETCH_TOTAL = Counter(
    "palmares_provider_fetches_total",
    "Remote page fetches by provider and outcome",
    ["provider", "status"],  # status: ok, failed
)

PROVIDER_FETCH_DURATION_SECONDS = Histogram(
    "palmares_provider_fetch_duration_seconds",
    "Duration of remote page fetches in seconds",
    ["provider"],
    buckets=[0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30],
)

# Extraction
PROVIDER_ERRORS_TOTAL = Counter(
    "palmares_provider_errors_total",
    "Failed provider operations by error type",
    ["provider", "error_type"],  # network, parse, not_found
)

COMPETITIONS_FOUND = Gauge(
    "palmares_competitions_found",
    "Number of competitions found in the last listing",
    ["provider"],
)

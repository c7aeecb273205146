# core/metrics.py

import logging
from prometheus_client import Counter, Histogram

logger = logging.getLogger(__name__)

# ----------------------------
# Request Counters
# ----------------------------

GATEWAY_REQUESTS = Counter(
    "gateway_requests_total",
    "Total generation requests handled by the gateway",
    ["provider", "status"]  # status: success, fatal, exhausted, no_credentials
)

# Attempt failures by classified reason
ATTEMPT_FAILURES = Counter(
    "gateway_attempt_failures_total",
    "Provider attempts that failed, by reason",
    ["provider", "reason"]  # timeout, quota_or_server_error, empty_response, ...
)

CREDENTIAL_ROTATIONS = Counter(
    "gateway_credential_rotations_total",
    "Times a provider's rotation cursor was advanced",
    ["provider"]
)

# ----------------------------
# Latency Histograms
# ----------------------------

GATEWAY_LATENCY = Histogram(
    "gateway_request_latency_seconds",
    "End-to-end generate() latency across all attempts"
)

ATTEMPT_LATENCY = Histogram(
    "gateway_attempt_latency_seconds",
    "Latency of a single provider attempt",
    ["provider"]
)

# Number of provider invocations used per generate() call
GATEWAY_ATTEMPTS = Histogram(
    "gateway_attempts_per_request",
    "Number of provider attempts used per generation request",
    buckets=(1, 2, 3, 4, 5, 8, 13, 21)
)


# ----------------------------
# Helper Functions
# ----------------------------

def record_request(provider: str, status: str, attempts: int, duration_sec: float) -> None:
    """Record the terminal outcome of one generate() call."""
    GATEWAY_REQUESTS.labels(provider=provider, status=status).inc()
    GATEWAY_ATTEMPTS.observe(attempts)
    GATEWAY_LATENCY.observe(duration_sec)


def record_attempt(provider: str, duration_sec: float, reason: str | None = None) -> None:
    """Record one provider attempt; `reason` is set for failures only."""
    ATTEMPT_LATENCY.labels(provider=provider).observe(duration_sec)
    if reason is not None:
        ATTEMPT_FAILURES.labels(provider=provider, reason=reason).inc()


def record_rotation(provider: str) -> None:
    CREDENTIAL_ROTATIONS.labels(provider=provider).inc()

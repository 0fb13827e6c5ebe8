"""Prometheus metrics for the provisioning pipeline."""

from prometheus_client import Counter, Gauge

jobs_submitted_counter = Counter(
    "sandboxer_jobs_submitted_total",
    "Total number of accepted provisioning requests",
    ["image"],
)

jobs_completed_counter = Counter(
    "sandboxer_jobs_completed_total",
    "Total number of provisioning jobs that reached a terminal state",
    ["image", "state"],
)

jobs_in_flight_gauge = Gauge(
    "sandboxer_jobs_in_flight",
    "Number of provisioning jobs still initializing",
)

rollback_failures_counter = Counter(
    "sandboxer_rollback_failures_total",
    "Total number of compensating actions that failed",
    ["action"],
)

records_evicted_counter = Counter(
    "sandboxer_records_evicted_total",
    "Total number of status records removed by the reconciler",
    ["reason"],
)

"""Prometheus metrics for endpoint selection, circuit health and dispute settlement"""

from prometheus_client import Counter, Histogram

# Selection metrics
selection_counter = Counter(
    "payops_selection_total",
    "Endpoint selection requests by result",
    ["result"],  # selected | NO_ACTIVE_CANDIDATES | ALL_CIRCUITS_OPEN | NO_MATCH | CAPACITY_EXHAUSTED
)

selection_attempts_histogram = Histogram(
    "payops_selection_attempts",
    "Reservation attempts per selection",
    buckets=[1, 2, 3, 5],
)

capacity_violation_counter = Counter(
    "payops_capacity_violations_total",
    "Reservations lost to a concurrent selection",
)

# Circuit metrics
circuit_state_counter = Counter(
    "payops_circuit_evaluations_total",
    "Circuit evaluations by resulting state",
    ["state"],  # closed | open | half_open
)

# Dispute metrics
routing_counter = Counter(
    "payops_dispute_routing_total",
    "Dispute routing outcomes by source",
    ["source"],  # pre_assigned | standing_mapping | ... | unroutable
)

resolution_counter = Counter(
    "payops_dispute_resolutions_total",
    "Adjudicator decisions by dispute type",
    ["type", "decision"],
)

balance_adjustment_counter = Counter(
    "payops_balance_adjustments_total",
    "Provider balance changes applied by settlement",
    ["delta_type"],  # credit | debit
)

# Notifier metrics
notification_failure_counter = Counter(
    "payops_notification_failures_total",
    "Failed dispute webhook deliveries",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_selection(result: str, attempts: int) -> None:
    selection_counter.labels(result=result).inc()
    if attempts:
        selection_attempts_histogram.observe(attempts)


def record_circuit_states(states) -> None:
    for state in states:
        circuit_state_counter.labels(state=state).inc()

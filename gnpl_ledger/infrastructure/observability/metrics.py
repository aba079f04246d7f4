"""Prometheus metrics for GNPL approvals, repayments, write contention and notifications"""

from prometheus_client import Counter, Histogram

# Ledger transitions
account_transition_counter = Counter(
    "gnpl_account_transitions_total",
    "GNPL account state transitions",
    ["transition"],  # opened | approved | rejected
)

payment_transition_counter = Counter(
    "gnpl_payment_transitions_total",
    "GNPL payment state transitions",
    ["transition"],  # submitted | approved | rejected
)

settled_accounts_counter = Counter(
    "gnpl_accounts_settled_total",
    "GNPL accounts whose balance reached zero on payment approval",
)

# Write path health
conflict_retry_counter = Counter(
    "gnpl_concurrency_conflicts_total",
    "Optimistic update conflicts that forced a retry",
    ["operation"],
)

persistence_failure_counter = Counter(
    "gnpl_persistence_failures_total",
    "Database errors seen by the ledger service",
    ["operation"],
)

# Notification metrics
notification_latency_histogram = Histogram(
    "telegram_send_latency_seconds",
    "Telegram Bot API response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

notification_failure_counter = Counter(
    "telegram_send_failures_total",
    "Failed Telegram message deliveries",
)

reminders_sent_counter = Counter(
    "gnpl_reminders_sent_total",
    "Repayment reminders delivered",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_account_transition(transition: str) -> None:
    account_transition_counter.labels(transition=transition).inc()


def record_payment_transition(transition: str, settled: bool = False) -> None:
    """Count payment decisions; `settled` marks the approval that cleared the balance"""
    payment_transition_counter.labels(transition=transition).inc()
    if settled:
        settled_accounts_counter.inc()

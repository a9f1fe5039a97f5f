"""Prometheus metrics for score movements, applications and external calls"""

from prometheus_client import Counter, Histogram

# Score metrics
score_event_counter = Counter(
    "lending_score_events_total",
    "Trust-loop loan events applied",
    ["event_type"],  # REPAID_ON_TIME | REPAID_EARLY | REPAID_LATE | DEFAULTED | FUNDED
)

cold_start_counter = Counter(
    "lending_cold_starts_total",
    "Initial scores calculated from financial statements",
)

score_conflict_counter = Counter(
    "lending_score_update_conflicts_total",
    "Optimistic version conflicts on score updates",
)

loan_limit_bucket_counter = Counter(
    "lending_loan_limit_bucket",
    "Loan limits assigned by bucket",
    ["bucket"],  # $0-$100, $100-$400, $400-$800, $800+
)

# Application metrics
application_counter = Counter(
    "lending_applications_total",
    "Loan applications processed",
    ["outcome"],  # submitted | rejected
)

# Statement analyzer metrics
statement_analyzer_failures_counter = Counter(
    "statement_analyzer_failures_total",
    "Failed statement analyzer calls",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_score(event_type: str, max_loan_amount_cents: int) -> None:
    """Record score metrics for monitoring event mix and limit distribution"""
    if event_type == "cold_start":
        cold_start_counter.inc()
    else:
        score_event_counter.labels(event_type=event_type).inc()

    # Bucket loan limits for distribution analysis
    if max_loan_amount_cents <= 10_000:
        bucket = "$0-$100"
    elif max_loan_amount_cents <= 40_000:
        bucket = "$100-$400"
    elif max_loan_amount_cents <= 80_000:
        bucket = "$400-$800"
    else:
        bucket = "$800+"

    loan_limit_bucket_counter.labels(bucket=bucket).inc()

"""
Prometheus metrics for KPay payment monitoring.

Tracks:
- Gateway API calls by operation and outcome
- Gateway call duration
- Webhook acknowledgements by response code
- Lifecycle transitions (applied, noop, rejected)
- Reconciliation signals
"""
from prometheus_client import Counter, Histogram

gateway_requests_total = Counter(
    "kpay_gateway_requests_total",
    "Total KPay gateway API requests",
    ["operation", "outcome"],  # outcome: success, rejected, transport
)

gateway_request_duration_seconds = Histogram(
    "kpay_gateway_request_duration_seconds",
    "KPay gateway API call duration in seconds",
    ["operation"],
    buckets=(0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 10.0, 30.0),
)

webhook_requests_total = Counter(
    "kpay_webhook_requests_total",
    "Total webhook deliveries by acknowledgement code",
    ["code"],
)

transitions_total = Counter(
    "kpay_transitions_total",
    "Lifecycle transitions by event and result",
    ["event", "result"],  # result: applied, noop, rejected
)

references_generated_total = Counter(
    "kpay_references_generated_total",
    "Payment references generated at the gateway",
    ["stored"],  # true, false (reconciliation required)
)

reconciliation_signals_total = Counter(
    "kpay_reconciliation_signals_total",
    "Reconciliation signals raised",
    ["kind"],  # missing_local_record, unknown_paid_reference, expired
)


class MetricsCollector:
    """Convenience wrapper so call sites don't deal with label plumbing."""

    def record_gateway_call(self, operation: str, outcome: str, duration: float) -> None:
        gateway_requests_total.labels(operation=operation, outcome=outcome).inc()
        gateway_request_duration_seconds.labels(operation=operation).observe(duration)

    def record_webhook(self, code: int) -> None:
        webhook_requests_total.labels(code=str(code)).inc()

    def record_transition(self, event: str, result: str) -> None:
        transitions_total.labels(event=event, result=result).inc()

    def record_reference_generated(self, stored: bool) -> None:
        references_generated_total.labels(stored=str(stored).lower()).inc()

    def record_reconciliation_signal(self, kind: str) -> None:
        reconciliation_signals_total.labels(kind=kind).inc()


metrics = MetricsCollector()

"""
Prometheus metrics for the membership gate.

Served in text format on GET /metrics. Every series is prefixed with
``membership_gate_``.
"""

from prometheus_client import Counter, Gauge, Histogram, Info

from app.config import settings

PREFIX = "membership_gate"

# Chain reads dominate request latency; RPC round trips sit in the 50ms-2s range.
CHAIN_BUCKETS = (0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
HTTP_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)

HTTP_LABELS = ("endpoint", "method")


class GateMetrics:
    """Holds every collector; one instance per process (see ``metrics``)."""

    def __init__(self) -> None:
        self.service_info = Info(f"{PREFIX}_service", "Deployment the gate serves")
        self.service_info.info(
            {
                "version": settings.api_version,
                "service_name": settings.service_name,
                "network_id": str(settings.network_id),
                "lock_address": settings.lock_address,
            }
        )

        # HTTP
        self.http_requests_total = Counter(
            f"{PREFIX}_http_requests_total",
            "Requests served, by route template and status code",
            [*HTTP_LABELS, "status_code"],
        )
        self.http_request_duration_seconds = Histogram(
            f"{PREFIX}_http_request_duration_seconds",
            "Time from request receipt to response",
            list(HTTP_LABELS),
            buckets=HTTP_BUCKETS,
        )
        self.http_requests_in_progress = Gauge(
            f"{PREFIX}_http_requests_in_progress",
            "Requests currently inside the middleware",
            ["method"],
        )

        # Membership and signing
        self.membership_checks_total = Counter(
            f"{PREFIX}_membership_checks_total",
            "Completed verifications, by the status they resolved to",
            ["membership_status"],
        )
        self.membership_check_duration_seconds = Histogram(
            f"{PREFIX}_membership_check_duration_seconds",
            "Wall time of one verification across all candidate wallets",
            buckets=CHAIN_BUCKETS,
        )
        self.signed_urls_total = Counter(
            f"{PREFIX}_signed_urls_total",
            "Signed URL issuance attempts",
            ["success"],
        )

        # Client-side entitlement transactions (CLI and embedded use)
        self.transactions_total = Counter(
            f"{PREFIX}_transactions_total",
            "Purchase and renewal submissions, by outcome",
            ["action", "outcome"],
        )

        self.errors_total = Counter(
            f"{PREFIX}_errors_total",
            "Failures surfaced to a caller, by exception type",
            ["error_type", "operation"],
        )

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        self.http_requests_total.labels(endpoint, method, str(status_code)).inc()
        self.http_request_duration_seconds.labels(endpoint, method).observe(duration)

    def record_membership_check(self, status: str, duration: float) -> None:
        self.membership_checks_total.labels(status).inc()
        self.membership_check_duration_seconds.observe(duration)

    def record_signed_url(self, success: bool) -> None:
        self.signed_urls_total.labels(str(success)).inc()

    def record_transaction(self, action: str, outcome: str) -> None:
        """outcome is one of submitted, reverted, failed."""
        self.transactions_total.labels(action, outcome).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        self.errors_total.labels(error_type, operation).inc()


metrics = GateMetrics()

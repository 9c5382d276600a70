"""
Metrics Collection with Prometheus.

Exposes business and system metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from marketplace.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    SOURCE = "source"
    OUTCOME = "outcome"
    CHANNEL = "channel"
    ENTRY_TYPE = "entry_type"


class MarketplaceMetrics:
    """
    Centralized metrics for the marketplace API.

    Covers:
    - HTTP requests (rate, duration, in-flight)
    - Fulfillments by trigger source and outcome
    - Webhook deliveries and payment poll sweeps
    - Notifications by channel
    - Expiry sweeps and wallet ledger writes
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "marketplace_service",
            "Service information",
        )
        self.service_info.info(
            {
                "version": settings.api_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "marketplace_http_requests_total",
            "Total HTTP requests",
            [
                MetricLabels.ENDPOINT.value,
                MetricLabels.METHOD.value,
                MetricLabels.STATUS_CODE.value,
            ],
        )

        self.http_request_duration_seconds = Histogram(
            "marketplace_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT.value, MetricLabels.METHOD.value],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "marketplace_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT.value, MetricLabels.METHOD.value],
        )

        # ====================================================================
        # Fulfillment Metrics
        # ====================================================================
        self.fulfillments_total = Counter(
            "marketplace_fulfillments_total",
            "Order fulfillment attempts",
            [MetricLabels.SOURCE.value, MetricLabels.OUTCOME.value],
        )

        self.fulfillment_duration_seconds = Histogram(
            "marketplace_fulfillment_duration_seconds",
            "Order fulfillment duration in seconds",
            buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
        )

        self.order_amount_minor = Histogram(
            "marketplace_order_amount_minor",
            "Paid order amounts in minor units (centavos)",
            buckets=(100, 500, 1000, 2500, 5000, 10000, 25000, 50000, 100000),
        )

        # ====================================================================
        # Payment Metrics
        # ====================================================================
        self.webhooks_total = Counter(
            "marketplace_webhooks_total",
            "Payment webhooks received",
            ["provider", MetricLabels.OUTCOME.value],
        )

        self.payment_polls_total = Counter(
            "marketplace_payment_polls_total",
            "Gateway status checks made by the payment poll sweep",
            [MetricLabels.OUTCOME.value],
        )

        # ====================================================================
        # Notification Metrics
        # ====================================================================
        self.notifications_total = Counter(
            "marketplace_notifications_total",
            "Customer and reseller notifications",
            [MetricLabels.CHANNEL.value, "success"],
        )

        # ====================================================================
        # Housekeeping and Wallet Metrics
        # ====================================================================
        self.expired_orders_deleted_total = Counter(
            "marketplace_expired_orders_deleted_total",
            "Pending orders deleted by the expiry sweep",
        )

        self.ledger_entries_total = Counter(
            "marketplace_ledger_entries_total",
            "Wallet ledger entries written",
            [MetricLabels.ENTRY_TYPE.value],
        )

        self.errors_total = Counter(
            "marketplace_errors_total",
            "Total errors by type",
            ["error_type", "operation"],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_fulfillment(
        self, source: str, outcome: str, duration: float, amount_minor: int | None = None
    ) -> None:
        """Record a fulfillment attempt."""
        self.fulfillments_total.labels(source=source, outcome=outcome).inc()
        self.fulfillment_duration_seconds.observe(duration)
        if amount_minor is not None:
            self.order_amount_minor.observe(amount_minor)

    def record_webhook(self, provider: str, outcome: str) -> None:
        """Record a received payment webhook."""
        self.webhooks_total.labels(provider=provider, outcome=outcome).inc()

    def record_payment_poll(self, outcome: str) -> None:
        """Record one gateway status check."""
        self.payment_polls_total.labels(outcome=outcome).inc()

    def record_notification(self, channel: str, success: bool) -> None:
        """Record a notification attempt."""
        self.notifications_total.labels(channel=channel, success=str(success)).inc()

    def record_ledger_entry(self, entry_type: str) -> None:
        """Record a wallet ledger write."""
        self.ledger_entries_total.labels(entry_type=entry_type).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = MarketplaceMetrics()

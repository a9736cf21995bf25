"""
Prometheus metrics for monitoring the alert engine.

Defines and exposes metrics for:
- Alert creation, suppression and auto-resolution
- Per-resource evaluation failures
- Sweep duration and skipped (overlapping) sweeps
- Notification delivery outcomes

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from src.config.settings import get_settings

logger = logging.getLogger(__name__)

# Sweeps touch many resources, so buckets reach further than request latency
SWEEP_BUCKETS = (0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0)


class MetricsCollector:
    """
    Prometheus metrics collector for the spend-alerts engine.

    Usage:
        metrics = get_metrics()
        metrics.start_server()

        metrics.record_alert_created("BUDGET_CRITICAL", "CRITICAL")
        metrics.observe_sweep("evaluation", 1.25)
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        self.alerts_created = Counter(
            "spend_alerts_alerts_created_total",
            "Total alerts persisted",
            ["alert_type", "severity"],
        )

        self.alerts_suppressed = Counter(
            "spend_alerts_alerts_suppressed_total",
            "Candidate alerts dropped by the dedup window",
            ["alert_type"],
        )

        self.alerts_auto_resolved = Counter(
            "spend_alerts_alerts_auto_resolved_total",
            "Alerts resolved by the stale-alert cleanup",
        )

        self.evaluation_errors = Counter(
            "spend_alerts_evaluation_errors_total",
            "Per-resource failures caught by a sweep",
            ["cadence", "error_type"],
        )

        self.sweep_duration = Histogram(
            "spend_alerts_sweep_duration_seconds",
            "Wall time of one sweep",
            ["cadence"],
            buckets=SWEEP_BUCKETS,
        )

        self.sweeps_skipped = Counter(
            "spend_alerts_sweeps_skipped_total",
            "Sweeps skipped because the same cadence was still running",
            ["cadence"],
        )

        self.sweep_resources = Gauge(
            "spend_alerts_sweep_resources",
            "Resources processed by the last sweep",
            ["cadence"],
        )

        self.notifications = Counter(
            "spend_alerts_notifications_total",
            "Notification delivery attempts",
            ["status"],  # sent, failed
        )

        self.notification_queue_depth = Gauge(
            "spend_alerts_notification_queue_depth",
            "Unsent alerts selected by the last drain",
        )

        self._server_started = False

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to listen on (defaults to settings.metrics_port)
        """
        if self._server_started:
            return

        port = port or get_settings().metrics_port
        try:
            start_http_server(port, registry=REGISTRY)
            self._server_started = True
            logger.info(f"Metrics server started on port {port}")
        except OSError as e:
            logger.warning(f"Could not start metrics server: {e}")

    def record_alert_created(self, alert_type: str, severity: str) -> None:
        """
        Record a persisted alert.

        Args:
            alert_type: AlertType value
            severity: Severity value
        """
        self.alerts_created.labels(alert_type=alert_type, severity=severity).inc()

    def record_alert_suppressed(self, alert_type: str) -> None:
        """Record a candidate dropped by the deduplicator."""
        self.alerts_suppressed.labels(alert_type=alert_type).inc()

    def record_auto_resolved(self, count: int = 1) -> None:
        self.alerts_auto_resolved.inc(count)

    def record_evaluation_error(self, cadence: str, error_type: str) -> None:
        """
        Record a failure isolated to one unit of work.

        Args:
            cadence: Sweep cadence (evaluation, cleanup, notification, on_demand)
            error_type: Exception class name
        """
        self.evaluation_errors.labels(cadence=cadence, error_type=error_type).inc()

    def observe_sweep(self, cadence: str, duration: float, resources: int = 0) -> None:
        """
        Record a completed sweep.

        Args:
            cadence: Sweep cadence
            duration: Wall time in seconds
            resources: Units of work processed
        """
        self.sweep_duration.labels(cadence=cadence).observe(duration)
        self.sweep_resources.labels(cadence=cadence).set(resources)

    def record_sweep_skipped(self, cadence: str) -> None:
        self.sweeps_skipped.labels(cadence=cadence).inc()

    def record_notification(self, success: bool) -> None:
        self.notifications.labels(status="sent" if success else "failed").inc()

    def set_notification_queue_depth(self, depth: int) -> None:
        self.notification_queue_depth.set(depth)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics

"""Stateless trigger functions for alert detection.

Each function checks a single condition for one resource and returns a
candidate Alert if the condition is met, or None otherwise. No I/O, no
state. Dedup, persistence and notification live in AlertService and
NotificationDispatcher, so these are safe to call concurrently.

Candidates carry ``created_at`` of the moment they were built; the
creation pipeline restamps it with the sweep time before persisting.
"""

from src.alerts.config import AlertConfig
from src.alerts.schemas import (
    Alert,
    AlertType,
    BudgetStatus,
    ResourceMetrics,
    Severity,
    Threshold,
)


def calculate_spike(current: int, previous: int) -> float:
    """Day-over-day change in percent.

    A previous count of zero reads as a 100% spike when there is any
    current traffic, and as no change otherwise.
    """
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return (current - previous) / previous * 100.0


def classify_budget(threshold: Threshold, utilization_percent: float) -> BudgetStatus:
    """Classify live utilization against a threshold (critical wins)."""
    if threshold.should_trigger_critical(utilization_percent):
        return BudgetStatus.CRITICAL
    if threshold.should_trigger_warning(utilization_percent):
        return BudgetStatus.WARNING
    return BudgetStatus.SAFE


def check_budget(
    threshold: Threshold,
    metrics: ResourceMetrics,
    config: AlertConfig,
) -> Alert | None:
    """Check budget utilization against the warning/critical percents.

    At most one budget alert per evaluation: critical takes priority
    over warning. Utilization is compared uncapped.

    Args:
        threshold: Resource threshold.
        metrics: Current resource snapshot.
        config: Alert configuration (unused; kept for a uniform signature).

    Returns:
        Alert or None.
    """
    utilization = metrics.utilization_percent
    status = classify_budget(threshold, utilization)

    if status is BudgetStatus.CRITICAL:
        return Alert(
            user_id=threshold.user_id,
            resource_id=threshold.resource_id,
            alert_type=AlertType.BUDGET_CRITICAL,
            severity=Severity.CRITICAL,
            message=(
                f"Critical budget alert: {utilization:.1f}% of budget used "
                f"(threshold: {threshold.critical_percent:.1f}%)"
            ),
            threshold_value=threshold.critical_percent,
            actual_value=utilization,
        )

    if status is BudgetStatus.WARNING:
        return Alert(
            user_id=threshold.user_id,
            resource_id=threshold.resource_id,
            alert_type=AlertType.BUDGET_WARNING,
            severity=Severity.HIGH,
            message=(
                f"Budget warning: {utilization:.1f}% of budget used "
                f"(threshold: {threshold.warning_percent:.1f}%)"
            ),
            threshold_value=threshold.warning_percent,
            actual_value=utilization,
        )

    return None


def check_usage_spike(
    threshold: Threshold,
    metrics: ResourceMetrics,
    config: AlertConfig,
) -> Alert | None:
    """Check for a day-over-day change in request volume.

    Needs both yesterday's and the day before's counts. Fires on
    abs(change) >= threshold.spike_percent in either direction; HIGH when
    the change exceeds ``config.spike_high_percent``, MEDIUM otherwise.

    Returns:
        Alert or None.
    """
    if metrics.current_requests is None or metrics.previous_requests is None:
        return None

    spike = calculate_spike(metrics.current_requests, metrics.previous_requests)
    if not threshold.should_trigger_spike(spike):
        return None

    magnitude = abs(spike)
    direction = "increase" if spike > 0 else "decrease"
    severity = Severity.HIGH if magnitude > config.spike_high_percent else Severity.MEDIUM

    return Alert(
        user_id=threshold.user_id,
        resource_id=threshold.resource_id,
        alert_type=AlertType.USAGE_SPIKE,
        severity=severity,
        message=(
            f"Usage spike detected: {magnitude:.1f}% {direction} in API calls "
            f"({metrics.previous_requests} → {metrics.current_requests} requests)"
        ),
        threshold_value=threshold.spike_percent,
        actual_value=magnitude,
    )


def check_error_rate(
    threshold: Threshold,
    metrics: ResourceMetrics,
    config: AlertConfig,
) -> Alert | None:
    """Check yesterday's error fraction.

    CRITICAL above ``config.error_rate_critical``, HIGH above
    ``config.error_rate_high``, MEDIUM otherwise.

    Returns:
        Alert or None.
    """
    if metrics.error_rate is None:
        return None

    rate = metrics.error_rate
    if not threshold.should_trigger_error(rate):
        return None

    if rate > config.error_rate_critical:
        severity = Severity.CRITICAL
    elif rate > config.error_rate_high:
        severity = Severity.HIGH
    else:
        severity = Severity.MEDIUM

    return Alert(
        user_id=threshold.user_id,
        resource_id=threshold.resource_id,
        alert_type=AlertType.HIGH_ERROR_RATE,
        severity=severity,
        message=(
            f"High error rate detected: {rate * 100:.1f}% error rate over "
            f"{metrics.total_requests or 0} requests "
            f"(threshold: {threshold.error_fraction * 100:.1f}%)"
        ),
        threshold_value=threshold.error_fraction,
        actual_value=rate,
    )


def check_cost_anomaly(
    threshold: Threshold,
    metrics: ResourceMetrics,
    config: AlertConfig,
) -> Alert | None:
    """Compare actual cost with a caller-supplied expected baseline.

    Only runs when both costs are present and the baseline is positive.
    ``threshold_value`` carries the expected cost and ``actual_value``
    the observed cost.

    Returns:
        Alert or None.
    """
    if not threshold.enabled:
        return None
    if metrics.actual_cost is None or not metrics.expected_cost:
        return None

    expected = metrics.expected_cost
    actual = metrics.actual_cost
    deviation = (actual - expected) / expected * 100.0
    magnitude = abs(deviation)

    if magnitude < config.cost_anomaly_percent:
        return None

    direction = "higher" if deviation > 0 else "lower"
    severity = (
        Severity.HIGH if magnitude > config.cost_anomaly_high_percent else Severity.MEDIUM
    )

    return Alert(
        user_id=threshold.user_id,
        resource_id=threshold.resource_id,
        alert_type=AlertType.COST_ANOMALY,
        severity=severity,
        message=(
            f"Cost anomaly detected: {magnitude:.1f}% {direction} than expected "
            f"(${actual:.2f} vs ${expected:.2f} expected)"
        ),
        threshold_value=expected,
        actual_value=actual,
    )


def evaluate(
    threshold: Threshold,
    metrics: ResourceMetrics,
    config: AlertConfig,
) -> list[Alert]:
    """Run every trigger for a single resource.

    Rules are independent, so one resource may yield several candidates
    (e.g. a budget alert and a spike). Disabled thresholds yield nothing.

    Args:
        threshold: Resource threshold.
        metrics: Current resource snapshot.
        config: Alert configuration.

    Returns:
        List of candidate alerts (may be empty).
    """
    if not threshold.enabled:
        return []

    candidates: list[Alert] = []
    for check in (check_budget, check_usage_spike, check_error_rate, check_cost_anomaly):
        alert = check(threshold, metrics, config)
        if alert is not None:
            candidates.append(alert)
    return candidates

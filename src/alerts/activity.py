"""Pure helpers for alert activity summaries.

Trend classification, insights and action items for the recent-alerts
view, plus per-type descriptions and per-severity colours attached to each recent alert by
``present_alert``. No I/O; AlertService gathers the counts and calls these.
"""

from datetime import date, datetime
from typing import Any

from src.alerts.schemas import Alert, AlertType, DailyAlertCount, Severity

TREND_CHANGE_PERCENT = 20.0
TREND_WEEK_DAYS = 7

ALERT_TYPE_DESCRIPTIONS: dict[AlertType, str] = {
    AlertType.BUDGET_WARNING: "Budget utilization approaching limit",
    AlertType.BUDGET_CRITICAL: "Budget utilization exceeded critical threshold",
    AlertType.USAGE_SPIKE: "Unusual change in API usage volume",
    AlertType.HIGH_ERROR_RATE: "API error rate above acceptable threshold",
    AlertType.SERVICE_DOWN: "API service appears to be unavailable",
    AlertType.COST_ANOMALY: "Unexpected cost deviation detected",
}

ACTIONS_REQUIRED: dict[AlertType, str] = {
    AlertType.BUDGET_WARNING: "Monitor usage closely and consider optimizing API calls",
    AlertType.BUDGET_CRITICAL: "Immediate action required: optimize usage or increase budget",
    AlertType.USAGE_SPIKE: "Investigate cause of usage spike and validate legitimacy",
    AlertType.HIGH_ERROR_RATE: "Check API service status and implement error handling",
    AlertType.SERVICE_DOWN: "Contact API service provider and implement fallback",
    AlertType.COST_ANOMALY: "Review recent usage patterns and validate charges",
}

SEVERITY_COLORS: dict[Severity, str] = {
    Severity.LOW: "#28a745",
    Severity.MEDIUM: "#ffc107",
    Severity.HIGH: "#fd7e14",
    Severity.CRITICAL: "#dc3545",
}

# Every closed variant must be covered
assert set(ALERT_TYPE_DESCRIPTIONS) == set(AlertType)
assert set(ACTIONS_REQUIRED) == set(AlertType)
assert set(SEVERITY_COLORS) == set(Severity)


def describe_alert_type(alert_type: AlertType) -> str:
    return ALERT_TYPE_DESCRIPTIONS[alert_type]


def action_required(alert_type: AlertType) -> str:
    return ACTIONS_REQUIRED[alert_type]


def severity_color(severity: Severity) -> str:
    return SEVERITY_COLORS[severity]


def present_alert(alert: Alert, resource_name: str | None, now: datetime) -> dict[str, Any]:
    """Alert as shown in the recent-alerts view, with display fields added."""
    data = alert.to_dict()
    data.update(
        resource_name=resource_name,
        formatted_message=alert.formatted_message(resource_name),
        alert_type_description=describe_alert_type(alert.alert_type),
        severity_color=severity_color(alert.severity),
        action_required=action_required(alert.alert_type),
        minutes_since_created=alert.minutes_since_created(now),
    )
    return data


def daily_trend_from_counts(counts: dict[date, int]) -> list[DailyAlertCount]:
    """Per-day counts in date order. Only days that had alerts appear."""
    return [DailyAlertCount(date=day, count=counts[day]) for day in sorted(counts)]


def analyze_trend(daily_trend: list[DailyAlertCount]) -> str:
    """Compare the first and last week of daily alert counts.

    Returns ``increasing`` when the last-week average is more than 20%
    above the first-week average, ``decreasing`` when more than 20%
    below, ``stable`` otherwise, and ``insufficient_data`` with fewer
    than seven days.
    """
    if len(daily_trend) < TREND_WEEK_DAYS:
        return "insufficient_data"

    ordered = sorted(daily_trend, key=lambda d: d.date)
    first_week = ordered[:TREND_WEEK_DAYS]
    last_week = ordered[-TREND_WEEK_DAYS:]

    first_avg = sum(d.count for d in first_week) / len(first_week)
    last_avg = sum(d.count for d in last_week) / len(last_week)

    change = (last_avg - first_avg) / max(1.0, first_avg) * 100.0

    if change > TREND_CHANGE_PERCENT:
        return "increasing"
    if change < -TREND_CHANGE_PERCENT:
        return "decreasing"
    return "stable"


def generate_insights(
    recent_alerts: list[Alert],
    alerts_by_type: dict[AlertType, int],
) -> list[str]:
    """Short observations about a user's recent alerts."""
    if not recent_alerts:
        return ["No recent alerts - your API usage is well within configured thresholds"]

    insights: list[str] = []

    if alerts_by_type:
        most_common, count = max(alerts_by_type.items(), key=lambda item: item[1])
        label = most_common.value.replace("_", " ").lower()
        insights.append(f"Most frequent alert type: {label} ({count} occurrences)")

    critical = sum(1 for a in recent_alerts if a.severity is Severity.CRITICAL)
    if critical:
        insights.append(f"{critical} critical alerts require immediate attention")

    unresolved = sum(1 for a in recent_alerts if not a.resolved)
    if unresolved > 5:
        insights.append(
            f"{unresolved} unresolved alerts - consider reviewing and resolving old alerts"
        )

    return insights


def generate_action_items(
    unresolved_by_severity: dict[Severity, int],
    alerts_by_type: dict[AlertType, int],
) -> list[str]:
    """Recommended next steps, most urgent first."""
    items: list[str] = []

    critical = unresolved_by_severity.get(Severity.CRITICAL, 0)
    high = unresolved_by_severity.get(Severity.HIGH, 0)

    if critical:
        items.append(f"Resolve {critical} critical alerts immediately")
    if high:
        items.append(f"Review and address {high} high-priority alerts")

    if alerts_by_type.get(AlertType.BUDGET_CRITICAL, 0) > 0:
        items.append(
            "Consider increasing budgets or optimizing API usage for cost-critical services"
        )
    if alerts_by_type.get(AlertType.HIGH_ERROR_RATE, 0) > 0:
        items.append(
            "Investigate API reliability issues and implement better error handling"
        )
    if alerts_by_type.get(AlertType.USAGE_SPIKE, 0) > 2:
        items.append("Review usage patterns and consider implementing rate limiting")

    if not items:
        items.append("Continue monitoring - no immediate actions required")

    return items

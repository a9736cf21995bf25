"""Plain-text email templates for alert notifications.

Pure string builders; the dispatcher decides who receives them.
"""

from dataclasses import dataclass
from datetime import date

from src.alerts.schemas import Alert, AlertType, Severity

SUBJECT_PREFIXES: dict[Severity, str] = {
    Severity.CRITICAL: "🚨 CRITICAL",
    Severity.HIGH: "⚠️ HIGH",
    Severity.MEDIUM: "⚡ MEDIUM",
    Severity.LOW: "ℹ️ LOW",
}

RECOMMENDED_ACTIONS: dict[AlertType, str] = {
    AlertType.BUDGET_WARNING: (
        "Monitor your API usage closely and consider optimizing calls to stay within budget."
    ),
    AlertType.BUDGET_CRITICAL: (
        "Immediate action required: optimize API usage or increase your budget "
        "to avoid service interruption."
    ),
    AlertType.USAGE_SPIKE: (
        "Investigate the cause of this usage spike to ensure it's legitimate and expected."
    ),
    AlertType.HIGH_ERROR_RATE: (
        "Check your API service status and implement better error handling "
        "in your application."
    ),
    AlertType.SERVICE_DOWN: (
        "Contact your API service provider and implement fallback mechanisms."
    ),
    AlertType.COST_ANOMALY: (
        "Review your recent usage patterns and validate any unexpected charges."
    ),
}

assert set(SUBJECT_PREFIXES) == set(Severity)
assert set(RECOMMENDED_ACTIONS) == set(AlertType)

SYSTEM_RESOURCE_NAME = "System"
SUMMARY_DETAIL_LIMIT = 5


@dataclass(frozen=True)
class EmailMessage:
    """A rendered email ready for an EmailSender."""

    to: str
    subject: str
    body: str


def build_subject(alert: Alert, resource_name: str | None, product_name: str) -> str:
    """e.g. ``🚨 CRITICAL Alert - OpenAI | API Spend Shield``."""
    name = resource_name or SYSTEM_RESOURCE_NAME
    return f"{SUBJECT_PREFIXES[alert.severity]} Alert - {name} | {product_name}"


def build_body(
    alert: Alert,
    resource_name: str | None,
    product_name: str,
    dashboard_url: str,
) -> str:
    """Full notification body: details, values, recommended action, links."""
    dashboard_url = dashboard_url.rstrip("/")
    lines = [
        "Hello,",
        "",
        f"An alert has been triggered in your {product_name} dashboard.",
        "",
        "ALERT DETAILS:",
        "=============",
        f"API Service: {resource_name or SYSTEM_RESOURCE_NAME}",
        f"Alert Type: {alert.alert_type.value.replace('_', ' ')}",
        f"Severity: {alert.severity.value}",
        f"Message: {alert.message}",
        f"Time: {alert.created_at.strftime('%b %d, %Y %H:%M')}",
    ]

    if alert.threshold_value is not None and alert.actual_value is not None:
        lines.append(f"Threshold: {alert.threshold_value}")
        lines.append(f"Actual Value: {alert.actual_value}")

    lines += [
        "",
        "RECOMMENDED ACTION:",
        "==================",
        RECOMMENDED_ACTIONS[alert.alert_type],
        "",
        f"You can view and manage this alert in your dashboard at: {dashboard_url}/alerts",
        "",
        "Best regards,",
        f"{product_name} Team",
        "",
        "---",
        f"To modify your alert settings, visit: {dashboard_url}/settings/alerts",
    ]
    return "\n".join(lines)


def build_test_message(to: str, product_name: str) -> EmailMessage:
    return EmailMessage(
        to=to,
        subject=f"{product_name} - Test Notification",
        body=(
            f"This is a test notification from {product_name}. "
            "Your alert notifications are configured correctly!"
        ),
    )


def build_daily_summary(
    to: str,
    alerts: list[Alert],
    day: date,
    product_name: str,
    dashboard_url: str,
) -> EmailMessage:
    """Digest of one day's alerts: counts per severity plus the urgent ones.

    Only HIGH and CRITICAL alerts are listed individually, at most
    ``SUMMARY_DETAIL_LIMIT`` of them.
    """
    counts = {s: sum(1 for a in alerts if a.severity is s) for s in Severity}
    labels = [
        (Severity.CRITICAL, "🚨 Critical"),
        (Severity.HIGH, "⚠️ High"),
        (Severity.MEDIUM, "⚡ Medium"),
        (Severity.LOW, "ℹ️ Low"),
    ]

    lines = [
        "Hello,",
        "",
        f"Here's your daily alert summary for {day.strftime('%b %d, %Y')}:",
        "",
        "ALERT SUMMARY:",
        "==============",
    ]
    lines += [f"{label}: {counts[sev]}" for sev, label in labels if counts[sev]]
    lines += [f"Total: {len(alerts)} alerts", ""]

    important = [a for a in alerts if a.is_critical][:SUMMARY_DETAIL_LIMIT]
    if important:
        lines += ["IMPORTANT ALERTS:", "================="]
        lines += [f"• {a.message}" for a in important]
        lines.append("")

    lines += [
        f"View all alerts in your dashboard: {dashboard_url.rstrip('/')}/alerts",
        "",
        "Best regards,",
        f"{product_name} Team",
    ]

    return EmailMessage(
        to=to,
        subject=f"{product_name} - Daily Alert Summary ({len(alerts)} alerts)",
        body="\n".join(lines),
    )

"""Tests for activity summary helpers: trend, insights, action items."""

from datetime import date, datetime, timedelta, timezone

from src.alerts.activity import (
    ACTIONS_REQUIRED,
    ALERT_TYPE_DESCRIPTIONS,
    SEVERITY_COLORS,
    action_required,
    analyze_trend,
    daily_trend_from_counts,
    describe_alert_type,
    generate_action_items,
    generate_insights,
    present_alert,
    severity_color,
)
from src.alerts.schemas import Alert, AlertType, DailyAlertCount, Severity

START = date(2026, 2, 1)
NOW = datetime(2026, 3, 10, tzinfo=timezone.utc)


def _days(counts: list[int]) -> list[DailyAlertCount]:
    return [DailyAlertCount(date=START + timedelta(days=i), count=c) for i, c in enumerate(counts)]


def _alert(severity: Severity = Severity.MEDIUM, resolved: bool = False) -> Alert:
    return Alert(
        user_id="user-1",
        resource_id="svc-1",
        alert_type=AlertType.USAGE_SPIKE,
        severity=severity,
        message="spike",
        resolved=resolved,
        resolved_at=NOW if resolved else None,
        created_at=NOW,
    )


# ── Lookup tables ────────────────────────────────────────


class TestLookupTables:
    def test_every_type_described(self):
        assert set(ALERT_TYPE_DESCRIPTIONS) == set(AlertType)
        assert set(ACTIONS_REQUIRED) == set(AlertType)
        assert set(SEVERITY_COLORS) == set(Severity)

    def test_lookups(self):
        assert describe_alert_type(AlertType.SERVICE_DOWN) == "API service appears to be unavailable"
        assert action_required(AlertType.BUDGET_CRITICAL).startswith("Immediate action required")
        assert severity_color(Severity.CRITICAL) == "#dc3545"

    def test_present_alert_adds_display_fields(self):
        alert = Alert(
            user_id="user-1",
            resource_id="svc-openai",
            alert_type=AlertType.BUDGET_CRITICAL,
            severity=Severity.CRITICAL,
            message="Critical budget alert",
            created_at=NOW - timedelta(minutes=90),
        )

        data = present_alert(alert, "OpenAI", NOW)

        assert data["alert_id"] == alert.alert_id
        assert data["resource_name"] == "OpenAI"
        assert data["formatted_message"] == "[OpenAI] Critical budget alert"
        assert data["alert_type_description"] == describe_alert_type(AlertType.BUDGET_CRITICAL)
        assert data["severity_color"] == "#dc3545"
        assert data["action_required"] == action_required(AlertType.BUDGET_CRITICAL)
        assert data["minutes_since_created"] == 90


# ── Trend ────────────────────────────────────────────────


class TestAnalyzeTrend:
    def test_insufficient_data(self):
        assert analyze_trend(_days([1, 2, 3, 4, 5, 6])) == "insufficient_data"
        assert analyze_trend([]) == "insufficient_data"

    def test_stable_with_exactly_seven_days(self):
        # First and last week are the same seven days
        assert analyze_trend(_days([5, 1, 9, 2, 2, 3, 4])) == "stable"

    def test_increasing(self):
        assert analyze_trend(_days([1] * 7 + [3] * 7)) == "increasing"

    def test_decreasing(self):
        assert analyze_trend(_days([10] * 7 + [2] * 7)) == "decreasing"

    def test_twenty_percent_is_still_stable(self):
        assert analyze_trend(_days([5] * 7 + [6] * 7)) == "stable"

    def test_unsorted_input(self):
        days = list(reversed(_days([1] * 7 + [4] * 7)))
        assert analyze_trend(days) == "increasing"

    def test_small_first_week_uses_floor_of_one(self):
        # first avg 0 -> divide by 1: change = 100 * last avg
        assert analyze_trend(_days([0] * 7 + [1] * 7)) == "increasing"


def test_daily_trend_from_counts_is_sorted_and_sparse():
    counts = {date(2026, 3, 3): 2, date(2026, 3, 1): 5}
    trend = daily_trend_from_counts(counts)
    assert [d.date for d in trend] == [date(2026, 3, 1), date(2026, 3, 3)]
    assert [d.count for d in trend] == [5, 2]


# ── Insights ─────────────────────────────────────────────


class TestGenerateInsights:
    def test_no_alerts(self):
        insights = generate_insights([], {})
        assert insights == [
            "No recent alerts - your API usage is well within configured thresholds"
        ]

    def test_most_common_type(self):
        insights = generate_insights(
            [_alert()],
            {AlertType.USAGE_SPIKE: 4, AlertType.BUDGET_WARNING: 1},
        )
        assert insights[0] == "Most frequent alert type: usage spike (4 occurrences)"

    def test_critical_and_unresolved(self):
        alerts = [_alert(Severity.CRITICAL)] * 2 + [_alert()] * 4
        insights = generate_insights(alerts, {AlertType.USAGE_SPIKE: 6})
        assert "2 critical alerts require immediate attention" in insights
        assert (
            "6 unresolved alerts - consider reviewing and resolving old alerts" in insights
        )

    def test_five_unresolved_not_flagged(self):
        alerts = [_alert()] * 5
        insights = generate_insights(alerts, {AlertType.USAGE_SPIKE: 5})
        assert not any("unresolved" in i for i in insights)


# ── Action items ─────────────────────────────────────────


class TestGenerateActionItems:
    def test_nothing_to_do(self):
        assert generate_action_items({}, {}) == [
            "Continue monitoring - no immediate actions required"
        ]

    def test_ordering(self):
        items = generate_action_items(
            {Severity.CRITICAL: 2, Severity.HIGH: 1},
            {
                AlertType.BUDGET_CRITICAL: 1,
                AlertType.HIGH_ERROR_RATE: 1,
                AlertType.USAGE_SPIKE: 3,
            },
        )
        assert items == [
            "Resolve 2 critical alerts immediately",
            "Review and address 1 high-priority alerts",
            "Consider increasing budgets or optimizing API usage for cost-critical services",
            "Investigate API reliability issues and implement better error handling",
            "Review usage patterns and consider implementing rate limiting",
        ]

    def test_two_spikes_not_enough_for_rate_limiting(self):
        items = generate_action_items({}, {AlertType.USAGE_SPIKE: 2})
        assert items == ["Continue monitoring - no immediate actions required"]

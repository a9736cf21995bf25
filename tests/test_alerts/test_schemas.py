"""Tests for alert and threshold dataclasses."""

from datetime import date, datetime, timedelta, timezone

import pytest

from src.alerts.exceptions import AlreadyResolvedError, ThresholdValidationError
from src.alerts.schemas import (
    Alert,
    AlertActivity,
    AlertType,
    BudgetStatus,
    DailyAlertCount,
    DailyUsage,
    ResourceMetrics,
    Severity,
    Threshold,
    ThresholdSettings,
    ThresholdView,
)

NOW = datetime(2026, 3, 10, 9, 30, tzinfo=timezone.utc)


def _threshold(**overrides) -> Threshold:
    values = dict(
        resource_id="svc-1",
        user_id="user-1",
        warning_percent=75.0,
        critical_percent=90.0,
        spike_percent=50.0,
        error_fraction=0.1,
    )
    values.update(overrides)
    return Threshold(**values)


# ── Threshold validation ─────────────────────────────────


class TestThresholdValidation:
    """Threshold values must be internally consistent."""

    def test_valid_threshold(self):
        t = _threshold()
        assert t.enabled is True
        assert t.threshold_id

    def test_warning_equal_to_critical_rejected(self):
        with pytest.raises(ThresholdValidationError, match="less than critical"):
            _threshold(warning_percent=90.0, critical_percent=90.0)

    def test_warning_above_critical_rejected(self):
        with pytest.raises(ThresholdValidationError):
            _threshold(warning_percent=95.0, critical_percent=90.0)

    def test_negative_rejected(self):
        with pytest.raises(ThresholdValidationError, match="negative"):
            _threshold(spike_percent=-1.0)

    def test_critical_above_100_rejected(self):
        with pytest.raises(ThresholdValidationError, match="exceed 100"):
            _threshold(critical_percent=101.0)

    def test_error_fraction_above_one_rejected(self):
        with pytest.raises(ThresholdValidationError, match="1.0"):
            _threshold(error_fraction=1.5)

    def test_spike_upper_bound(self):
        _threshold(spike_percent=1000.0)
        with pytest.raises(ThresholdValidationError):
            _threshold(spike_percent=1000.1)

    def test_validation_error_is_value_error(self):
        with pytest.raises(ValueError):
            _threshold(warning_percent=-5.0)


class TestThresholdPredicates:
    def test_warning_and_critical_inclusive(self):
        t = _threshold()
        assert t.should_trigger_warning(75.0)
        assert not t.should_trigger_warning(74.99)
        assert t.should_trigger_critical(90.0)

    def test_spike_uses_magnitude(self):
        t = _threshold()
        assert t.should_trigger_spike(-60.0)
        assert not t.should_trigger_spike(-40.0)

    def test_disabled_never_triggers(self):
        t = _threshold(enabled=False)
        assert not t.should_trigger_critical(150.0)
        assert not t.should_trigger_error(0.9)

    def test_apply_keeps_identity(self):
        t = _threshold()
        later = NOW + timedelta(days=1)
        updated = t.apply(ThresholdSettings(warning_percent=60.0, critical_percent=80.0), later)
        assert updated.threshold_id == t.threshold_id
        assert updated.created_at == t.created_at
        assert updated.updated_at == later
        assert updated.warning_percent == 60.0

    def test_apply_validates(self):
        t = _threshold()
        with pytest.raises(ThresholdValidationError):
            t.apply(ThresholdSettings(warning_percent=95.0, critical_percent=90.0))


# ── Alert ────────────────────────────────────────────────


class TestAlert:
    def _alert(self, **overrides) -> Alert:
        values = dict(
            user_id="user-1",
            resource_id="svc-1",
            alert_type=AlertType.BUDGET_CRITICAL,
            severity=Severity.CRITICAL,
            message="Critical budget alert",
            threshold_value=90.0,
            actual_value=95.0,
            created_at=NOW,
        )
        values.update(overrides)
        return Alert(**values)

    def test_string_enums_coerced(self):
        alert = self._alert(alert_type="USAGE_SPIKE", severity="MEDIUM")
        assert alert.alert_type is AlertType.USAGE_SPIKE
        assert alert.severity is Severity.MEDIUM

    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError):
            self._alert(alert_type="DISK_FULL")

    def test_resolve_sets_timestamp(self):
        alert = self._alert()
        resolved_at = NOW + timedelta(hours=1)
        alert.resolve(resolved_at)
        assert alert.resolved is True
        assert alert.resolved_at == resolved_at

    def test_resolve_twice_raises_and_keeps_timestamp(self):
        alert = self._alert()
        first = NOW + timedelta(hours=1)
        alert.resolve(first)
        with pytest.raises(AlreadyResolvedError):
            alert.resolve(NOW + timedelta(hours=2))
        assert alert.resolved_at == first

    def test_is_critical(self):
        assert self._alert(severity=Severity.HIGH).is_critical
        assert not self._alert(severity=Severity.MEDIUM).is_critical

    def test_formatted_message(self):
        alert = self._alert()
        assert alert.formatted_message("OpenAI") == "[OpenAI] Critical budget alert"
        assert alert.formatted_message(None) == "Critical budget alert"

    def test_minutes_since_created(self):
        alert = self._alert()
        assert alert.minutes_since_created(NOW + timedelta(minutes=42, seconds=30)) == 42

    def test_dict_roundtrip(self):
        alert = self._alert()
        alert.resolve(NOW + timedelta(minutes=5))
        restored = Alert.from_dict(alert.to_dict())
        assert restored == alert

    def test_system_alert_has_no_resource(self):
        alert = self._alert(resource_id=None, alert_type=AlertType.SERVICE_DOWN)
        assert alert.to_dict()["resource_id"] is None


# ── Metrics inputs ───────────────────────────────────────


class TestDailyUsage:
    def test_error_rate_rounded(self):
        assert DailyUsage(requests=3, error_count=1).error_rate == 0.3333

    def test_error_rate_without_traffic(self):
        assert DailyUsage(requests=0, error_count=0).error_rate == 0.0


class TestResourceMetrics:
    def test_from_usage(self):
        m = ResourceMetrics.from_usage(
            80.0,
            DailyUsage(requests=200, success_count=180, error_count=20),
            DailyUsage(requests=100),
        )
        assert m.current_requests == 200
        assert m.previous_requests == 100
        assert m.error_rate == 0.1
        assert m.total_requests == 200
        assert m.actual_cost is None

    def test_from_usage_without_days(self):
        m = ResourceMetrics.from_usage(10.0, None, None)
        assert m.current_requests is None
        assert m.error_rate is None


# ── Views ────────────────────────────────────────────────


def test_threshold_view_to_dict():
    view = ThresholdView(
        threshold=_threshold(),
        resource_name="OpenAI",
        current_utilization=82.35,
        current_status=BudgetStatus.WARNING,
        has_recent_alerts=True,
    )
    d = view.to_dict()
    assert d["resource_name"] == "OpenAI"
    assert d["current_status"] == "warning"
    assert d["has_recent_alerts"] is True


def test_daily_alert_count_day_of_week():
    assert DailyAlertCount(date=date(2026, 3, 9), count=2).day_of_week == "Monday"


def test_activity_to_dict_uses_enum_values():
    activity = AlertActivity(
        recent_alerts=[],
        total_unresolved=3,
        unresolved_by_severity={Severity.CRITICAL: 1, Severity.LOW: 2},
        alerts_by_type={AlertType.USAGE_SPIKE: 3},
        daily_trend=[DailyAlertCount(date=date(2026, 3, 9), count=3)],
        overall_trend="insufficient_data",
    )
    d = activity.to_dict()
    assert d["unresolved_by_severity"] == {"CRITICAL": 1, "LOW": 2}
    assert d["alerts_by_type"] == {"USAGE_SPIKE": 3}
    assert d["daily_trend"][0]["day_of_week"] == "Monday"

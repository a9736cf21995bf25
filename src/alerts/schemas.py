"""Schema definitions for thresholds, alerts and evaluation inputs.

``Threshold`` maps 1:1 to the ``alert_thresholds`` table (one row per
monitored resource) and ``Alert`` to the append-only ``alerts`` table.
``ResourceMetrics`` is the point-in-time snapshot handed to the trigger
functions; it is assembled from the metric source and never persisted.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from src.alerts.exceptions import AlreadyResolvedError, ThresholdValidationError


class AlertType(str, Enum):
    """Conditions the engine can alert on."""

    BUDGET_WARNING = "BUDGET_WARNING"
    BUDGET_CRITICAL = "BUDGET_CRITICAL"
    USAGE_SPIKE = "USAGE_SPIKE"
    HIGH_ERROR_RATE = "HIGH_ERROR_RATE"
    SERVICE_DOWN = "SERVICE_DOWN"
    COST_ANOMALY = "COST_ANOMALY"


class Severity(str, Enum):
    """Urgency of an alert, derived from its type and magnitude."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class BudgetStatus(str, Enum):
    """Live budget classification shown next to a threshold."""

    SAFE = "safe"
    WARNING = "warning"
    CRITICAL = "critical"


MAX_SPIKE_PERCENT = 1000.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ThresholdSettings:
    """Write model for creating or replacing a resource's threshold."""

    warning_percent: float = 75.0
    critical_percent: float = 90.0
    spike_percent: float = 50.0
    error_fraction: float = 0.1
    enabled: bool = True


def validate_threshold_values(
    warning_percent: float,
    critical_percent: float,
    spike_percent: float,
    error_fraction: float,
) -> None:
    """Reject internally inconsistent threshold values.

    Raises:
        ThresholdValidationError: On the first violated rule.
    """
    if min(warning_percent, critical_percent, spike_percent, error_fraction) < 0:
        raise ThresholdValidationError("Threshold values cannot be negative")
    if warning_percent > 100 or critical_percent > 100:
        raise ThresholdValidationError(
            "Budget threshold percentages cannot exceed 100"
        )
    if warning_percent >= critical_percent:
        raise ThresholdValidationError(
            "Warning threshold must be less than critical threshold"
        )
    if error_fraction > 1.0:
        raise ThresholdValidationError("Error threshold cannot exceed 1.0 (100%)")
    if spike_percent > MAX_SPIKE_PERCENT:
        raise ThresholdValidationError(
            f"Spike threshold cannot exceed {MAX_SPIKE_PERCENT:.0f}%"
        )


@dataclass
class Threshold:
    """Alert trigger points for one monitored resource.

    Attributes:
        resource_id: Monitored resource (unique across thresholds).
        user_id: Owner of the resource, resolved once at write time.
        warning_percent: Budget utilization that raises a warning.
        critical_percent: Budget utilization that raises a critical alert.
        spike_percent: Day-over-day change in requests counted as a spike.
        error_fraction: Error rate (0..1) counted as high.
        enabled: Disabled thresholds are skipped by every sweep.
    """

    resource_id: str
    user_id: str
    warning_percent: float
    critical_percent: float
    spike_percent: float
    error_fraction: float
    enabled: bool = True
    threshold_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        validate_threshold_values(
            self.warning_percent,
            self.critical_percent,
            self.spike_percent,
            self.error_fraction,
        )

    def should_trigger_warning(self, utilization_percent: float) -> bool:
        return self.enabled and utilization_percent >= self.warning_percent

    def should_trigger_critical(self, utilization_percent: float) -> bool:
        return self.enabled and utilization_percent >= self.critical_percent

    def should_trigger_spike(self, spike_percent: float) -> bool:
        return self.enabled and abs(spike_percent) >= self.spike_percent

    def should_trigger_error(self, error_rate: float) -> bool:
        return self.enabled and error_rate >= self.error_fraction

    def apply(self, settings: ThresholdSettings, now: datetime | None = None) -> "Threshold":
        """Return a copy carrying ``settings``, validated, with a fresh ``updated_at``."""
        return Threshold(
            threshold_id=self.threshold_id,
            resource_id=self.resource_id,
            user_id=self.user_id,
            warning_percent=settings.warning_percent,
            critical_percent=settings.critical_percent,
            spike_percent=settings.spike_percent,
            error_fraction=settings.error_fraction,
            enabled=settings.enabled,
            created_at=self.created_at,
            updated_at=now or _utcnow(),
        )


@dataclass
class ThresholdView:
    """Threshold plus its live budget classification."""

    threshold: Threshold
    resource_name: str
    current_utilization: float
    current_status: BudgetStatus
    has_recent_alerts: bool

    def to_dict(self) -> dict[str, Any]:
        t = self.threshold
        return {
            "threshold_id": t.threshold_id,
            "resource_id": t.resource_id,
            "resource_name": self.resource_name,
            "warning_percent": t.warning_percent,
            "critical_percent": t.critical_percent,
            "spike_percent": t.spike_percent,
            "error_fraction": t.error_fraction,
            "enabled": t.enabled,
            "created_at": t.created_at.isoformat(),
            "updated_at": t.updated_at.isoformat(),
            "current_utilization": self.current_utilization,
            "current_status": self.current_status.value,
            "has_recent_alerts": self.has_recent_alerts,
        }


@dataclass
class Alert:
    """A persisted (or candidate) alert record from the alerts table.

    Candidates produced by the trigger functions carry the same shape;
    they become records once the creation pipeline persists them.

    Attributes:
        alert_id: UUID4 identifier.
        user_id: Owner of the alert.
        resource_id: Monitored resource, None for system-wide alerts.
        alert_type: What condition was detected.
        severity: Urgency, derived from type and magnitude.
        message: Human-readable description.
        threshold_value: The configured value that was crossed.
        actual_value: The observed value that crossed it.
        resolved: Whether the alert has been resolved.
        resolved_at: When it was resolved.
        notification_sent: Whether the owner has been notified.
        created_at: Anchor for ordering and the dedup window.
    """

    user_id: str
    resource_id: str | None
    alert_type: AlertType
    severity: Severity
    message: str
    threshold_value: float | None = None
    actual_value: float | None = None
    alert_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    resolved: bool = False
    resolved_at: datetime | None = None
    notification_sent: bool = False
    created_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        # Accept raw strings from the database or the API layer
        self.alert_type = AlertType(self.alert_type)
        self.severity = Severity(self.severity)

    @property
    def is_critical(self) -> bool:
        return self.severity in (Severity.CRITICAL, Severity.HIGH)

    def resolve(self, now: datetime | None = None) -> None:
        """Mark resolved.

        Raises:
            AlreadyResolvedError: If the alert is already resolved;
                ``resolved_at`` is left untouched.
        """
        if self.resolved:
            raise AlreadyResolvedError(f"Alert {self.alert_id} is already resolved")
        self.resolved = True
        self.resolved_at = now or _utcnow()

    def mark_notification_sent(self) -> None:
        self.notification_sent = True

    def formatted_message(self, resource_name: str | None = None) -> str:
        if resource_name:
            return f"[{resource_name}] {self.message}"
        return self.message

    def minutes_since_created(self, now: datetime | None = None) -> int:
        return int(((now or _utcnow()) - self.created_at).total_seconds() // 60)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "alert_id": self.alert_id,
            "user_id": self.user_id,
            "resource_id": self.resource_id,
            "alert_type": self.alert_type.value,
            "severity": self.severity.value,
            "message": self.message,
            "threshold_value": self.threshold_value,
            "actual_value": self.actual_value,
            "resolved": self.resolved,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "notification_sent": self.notification_sent,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Alert":
        """Create an Alert from a dictionary produced by ``to_dict``."""
        created_at = data.get("created_at")
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        elif created_at is None:
            created_at = _utcnow()

        resolved_at = data.get("resolved_at")
        if isinstance(resolved_at, str):
            resolved_at = datetime.fromisoformat(resolved_at)

        return cls(
            alert_id=data.get("alert_id", str(uuid.uuid4())),
            user_id=data["user_id"],
            resource_id=data.get("resource_id"),
            alert_type=data["alert_type"],
            severity=data["severity"],
            message=data["message"],
            threshold_value=data.get("threshold_value"),
            actual_value=data.get("actual_value"),
            resolved=data.get("resolved", False),
            resolved_at=resolved_at,
            notification_sent=data.get("notification_sent", False),
            created_at=created_at,
        )


@dataclass(frozen=True)
class DailyUsage:
    """One day of request counts for a resource."""

    requests: int
    success_count: int = 0
    error_count: int = 0

    @property
    def error_rate(self) -> float:
        """Error fraction in [0, 1], rounded to 4 places (0 with no traffic)."""
        if self.requests <= 0:
            return 0.0
        return round(self.error_count / self.requests, 4)


@dataclass(frozen=True)
class ResourceMetrics:
    """Snapshot of everything the trigger functions look at for one resource.

    ``utilization_percent`` is uncapped: a resource at 150% must still
    breach. Day counts are yesterday (current) and the day before
    (previous); cost fields are only set when a baseline is available.
    """

    utilization_percent: float
    current_requests: int | None = None
    previous_requests: int | None = None
    error_rate: float | None = None
    total_requests: int | None = None
    actual_cost: float | None = None
    expected_cost: float | None = None

    @classmethod
    def from_usage(
        cls,
        utilization_percent: float,
        yesterday: DailyUsage | None,
        day_before: DailyUsage | None,
        actual_cost: float | None = None,
        expected_cost: float | None = None,
    ) -> "ResourceMetrics":
        return cls(
            utilization_percent=utilization_percent,
            current_requests=yesterday.requests if yesterday else None,
            previous_requests=day_before.requests if day_before else None,
            error_rate=yesterday.error_rate if yesterday else None,
            total_requests=yesterday.requests if yesterday else None,
            actual_cost=actual_cost,
            expected_cost=expected_cost,
        )


@dataclass
class DailyAlertCount:
    date: date
    count: int

    @property
    def day_of_week(self) -> str:
        return self.date.strftime("%A")


@dataclass
class AlertActivity:
    """Recent alerts for a user with aggregates and a trend label."""

    recent_alerts: list[Alert]
    total_unresolved: int
    unresolved_by_severity: dict[Severity, int]
    alerts_by_type: dict[AlertType, int]
    daily_trend: list[DailyAlertCount]
    overall_trend: str
    insights: list[str] = field(default_factory=list)
    action_items: list[str] = field(default_factory=list)
    # Display form of recent_alerts, in the same order
    recent_alert_details: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "recent_alerts": (
                self.recent_alert_details or [a.to_dict() for a in self.recent_alerts]
            ),
            "total_unresolved": self.total_unresolved,
            "unresolved_by_severity": {
                s.value: c for s, c in self.unresolved_by_severity.items()
            },
            "alerts_by_type": {t.value: c for t, c in self.alerts_by_type.items()},
            "daily_trend": [
                {
                    "date": d.date.isoformat(),
                    "count": d.count,
                    "day_of_week": d.day_of_week,
                }
                for d in self.daily_trend
            ],
            "overall_trend": self.overall_trend,
            "insights": self.insights,
            "action_items": self.action_items,
        }

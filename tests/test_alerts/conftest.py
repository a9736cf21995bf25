"""In-memory stand-ins for the stores and collaborators.

The fakes implement the same async methods as the asyncpg repositories
so the creation pipeline, resolver, dispatcher and scheduler can be
exercised end to end without a database.
"""

from datetime import date, datetime

import pytest

from src.alerts.config import AlertConfig
from src.alerts.schemas import Alert, AlertType, DailyUsage, Severity, Threshold
from src.alerts.service import AlertService
from src.alerts.sources import CostBaseline, MetricSource, ResourceDirectory


class FakeThresholdRepository:
    def __init__(self) -> None:
        self.rows: dict[str, Threshold] = {}

    async def create_table(self) -> None:
        return None

    async def upsert(self, threshold: Threshold) -> Threshold:
        threshold.validate()
        self.rows[threshold.resource_id] = threshold
        return threshold

    async def get_by_id(self, threshold_id: str) -> Threshold | None:
        return next((t for t in self.rows.values() if t.threshold_id == threshold_id), None)

    async def get_by_resource(self, resource_id: str) -> Threshold | None:
        return self.rows.get(resource_id)

    async def list_for_user(self, user_id: str) -> list[Threshold]:
        return [t for t in self.rows.values() if t.user_id == user_id]

    async def list_enabled(self, user_id: str | None = None) -> list[Threshold]:
        return sorted(
            (
                t for t in self.rows.values()
                if t.enabled and (user_id is None or t.user_id == user_id)
            ),
            key=lambda t: t.resource_id,
        )

    async def delete(self, threshold_id: str, user_id: str) -> bool:
        for resource_id, t in list(self.rows.items()):
            if t.threshold_id == threshold_id and t.user_id == user_id:
                del self.rows[resource_id]
                return True
        return False

    async def delete_for_resource(self, resource_id: str) -> bool:
        threshold = self.rows.pop(resource_id, None)
        return threshold is not None


class FakeAlertRepository:
    def __init__(self) -> None:
        self.rows: dict[str, Alert] = {}
        self.fail_on_create = False

    async def create_table(self) -> None:
        return None

    async def create(self, alert: Alert) -> Alert:
        if self.fail_on_create:
            raise RuntimeError("insert failed")
        self.rows[alert.alert_id] = alert
        return alert

    async def get_by_id(self, alert_id: str) -> Alert | None:
        return self.rows.get(alert_id)

    async def exists_since(self, resource_id, alert_type: AlertType, since: datetime) -> bool:
        return any(
            a.resource_id == resource_id and a.alert_type is alert_type and a.created_at >= since
            for a in self.rows.values()
        )

    async def list_recent(
        self,
        user_id: str,
        *,
        since: datetime | None = None,
        resource_id=None,
        alert_type=None,
        severity=None,
        resolved=None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Alert]:
        alerts = [
            a for a in self.rows.values()
            if a.user_id == user_id and (since is None or a.created_at >= since)
        ]
        alerts.sort(key=lambda a: a.created_at, reverse=True)
        return alerts[offset:offset + limit]

    async def list_unresolved_before(self, resource_id: str, before: datetime) -> list[Alert]:
        return sorted(
            (
                a for a in self.rows.values()
                if a.resource_id == resource_id and not a.resolved and a.created_at < before
            ),
            key=lambda a: a.created_at,
        )

    async def list_stale_resources(self, before: datetime) -> list[str]:
        return sorted({
            a.resource_id for a in self.rows.values()
            if not a.resolved and a.created_at < before and a.resource_id is not None
        })

    async def resolve(self, alert_id: str, resolved_at: datetime) -> bool:
        alert = self.rows.get(alert_id)
        if alert is None or alert.resolved:
            return False
        alert.resolved = True
        alert.resolved_at = resolved_at
        return True

    async def mark_notification_sent(self, alert_id: str) -> bool:
        alert = self.rows.get(alert_id)
        if alert is None or alert.notification_sent:
            return False
        alert.notification_sent = True
        return True

    async def list_unsent(self, since: datetime) -> list[Alert]:
        return sorted(
            (a for a in self.rows.values() if not a.notification_sent and a.created_at >= since),
            key=lambda a: a.created_at,
        )

    async def count_unresolved_by_severity(self, user_id: str) -> dict[Severity, int]:
        counts: dict[Severity, int] = {}
        for a in self.rows.values():
            if a.user_id == user_id and not a.resolved:
                counts[a.severity] = counts.get(a.severity, 0) + 1
        return counts

    async def count_by_type(self, user_id: str, since: datetime) -> dict[AlertType, int]:
        counts: dict[AlertType, int] = {}
        for a in self.rows.values():
            if a.user_id == user_id and a.created_at >= since:
                counts[a.alert_type] = counts.get(a.alert_type, 0) + 1
        return counts

    async def daily_counts(self, user_id: str, since: datetime) -> dict[date, int]:
        counts: dict[date, int] = {}
        for a in self.rows.values():
            if a.user_id == user_id and a.created_at >= since:
                day = a.created_at.date()
                counts[day] = counts.get(day, 0) + 1
        return counts

    async def has_recent_for_resource(self, resource_id: str, since: datetime) -> bool:
        return any(
            a.resource_id == resource_id and a.created_at >= since for a in self.rows.values()
        )


class FakeMetricSource(MetricSource):
    def __init__(self) -> None:
        self.utilization: dict[str, float] = {}
        self.usage: dict[tuple[str, date], DailyUsage] = {}
        self.baselines: dict[tuple[str, date], CostBaseline] = {}
        self.failing: set[str] = set()

    async def get_utilization_percent(self, resource_id: str) -> float:
        if resource_id in self.failing:
            raise RuntimeError(f"metrics unavailable for {resource_id}")
        return self.utilization.get(resource_id, 0.0)

    async def get_daily_usage(self, resource_id: str, day: date) -> DailyUsage | None:
        return self.usage.get((resource_id, day))

    async def get_cost_baseline(self, resource_id: str, day: date) -> CostBaseline | None:
        return self.baselines.get((resource_id, day))


class FakeDirectory(ResourceDirectory):
    def __init__(self) -> None:
        self.owners: dict[str, str] = {}
        self.names: dict[str, str] = {}
        self.emails: dict[str, str] = {}

    async def list_users(self) -> list[str]:
        return sorted(set(self.owners.values()) | set(self.emails))

    async def get_owner_user(self, resource_id: str) -> str | None:
        return self.owners.get(resource_id)

    async def get_resource_name(self, resource_id: str) -> str | None:
        return self.names.get(resource_id)

    async def get_user_email(self, user_id: str) -> str | None:
        return self.emails.get(user_id)


# ── Fixtures ────────────────────────────────────────────


@pytest.fixture
def config():
    return AlertConfig()


@pytest.fixture
def threshold_repo():
    return FakeThresholdRepository()


@pytest.fixture
def alert_repo():
    return FakeAlertRepository()


@pytest.fixture
def metric_source():
    return FakeMetricSource()


@pytest.fixture
def directory():
    d = FakeDirectory()
    d.owners["svc-openai"] = "user-1"
    d.names["svc-openai"] = "OpenAI"
    d.emails["user-1"] = "owner@example.com"
    return d


@pytest.fixture
def service(config, threshold_repo, alert_repo, metric_source, directory):
    return AlertService(
        config=config,
        threshold_repo=threshold_repo,
        alert_repo=alert_repo,
        metric_source=metric_source,
        directory=directory,
    )


def make_threshold(resource_id: str = "svc-openai", user_id: str = "user-1", **overrides) -> Threshold:
    values = {
        "warning_percent": 75.0,
        "critical_percent": 90.0,
        "spike_percent": 50.0,
        "error_fraction": 0.1,
    }
    values.update(overrides)
    return Threshold(resource_id=resource_id, user_id=user_id, **values)


def make_alert(
    created_at: datetime,
    alert_type: AlertType = AlertType.BUDGET_WARNING,
    severity: Severity = Severity.HIGH,
    resource_id: str | None = "svc-openai",
    user_id: str = "user-1",
    **overrides,
) -> Alert:
    return Alert(
        user_id=user_id,
        resource_id=resource_id,
        alert_type=alert_type,
        severity=severity,
        message=overrides.pop("message", "Budget warning: 80.0% of budget used (threshold: 75.0%)"),
        threshold_value=overrides.pop("threshold_value", 75.0),
        actual_value=overrides.pop("actual_value", 80.0),
        created_at=created_at,
        **overrides,
    )

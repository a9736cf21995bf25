"""End-to-end pipeline scenario over in-memory stores.

Threshold, sweep, dedup window, notification, and cleanup all run
against the same fake stores so their interplay is exercised.
"""

from datetime import timedelta

import pytest

from src.alerts.channels import LoggingEmailSender
from src.alerts.dispatcher import NotificationDispatcher
from src.alerts.scheduler import AlertScheduler
from src.alerts.schemas import AlertType, Severity, ThresholdSettings


@pytest.fixture
def sender():
    return LoggingEmailSender(from_address="noreply@example.com")


@pytest.fixture
def dispatcher(sender, alert_repo, directory):
    return NotificationDispatcher(
        sender=sender,
        alert_repo=alert_repo,
        directory=directory,
        product_name="API Spend Shield",
        dashboard_url="https://app.example.com",
    )


@pytest.fixture
def scheduler(service, dispatcher, threshold_repo, alert_repo, directory, config):
    return AlertScheduler(service, dispatcher, threshold_repo, alert_repo, directory, config)


@pytest.mark.asyncio
async def test_budget_breach_lifecycle(
    service, scheduler, metric_source, alert_repo, sender, now,
):
    await service.upsert_threshold(
        "svc-openai",
        "user-1",
        ThresholdSettings(warning_percent=75, critical_percent=90),
        now,
    )
    metric_source.utilization["svc-openai"] = 95.0

    # First sweep creates one critical alert
    report = await scheduler.run_evaluation_sweep(now)
    assert report.alerts == 1
    [alert] = alert_repo.rows.values()
    assert alert.alert_type is AlertType.BUDGET_CRITICAL
    assert alert.severity is Severity.CRITICAL
    assert alert.threshold_value == 90.0
    assert alert.actual_value == 95.0
    assert alert.created_at == now

    # Rerun five minutes later is idempotent
    report = await scheduler.run_evaluation_sweep(now + timedelta(minutes=5))
    assert report.alerts == 0
    assert len(alert_repo.rows) == 1

    # Notification drain sends it exactly once
    result = await scheduler.run_notification_sweep(now + timedelta(minutes=10))
    assert (result.resources, result.alerts, result.errors) == (1, 1, 0)
    assert alert_repo.rows[alert.alert_id].notification_sent is True
    assert sender.sent[0].subject == "🚨 CRITICAL Alert - OpenAI | API Spend Shield"
    assert sender.sent[0].to == "owner@example.com"

    result = await scheduler.run_notification_sweep(now + timedelta(minutes=11))
    assert result.resources == 0

    # After the 24h window a new alert is allowed
    report = await scheduler.run_evaluation_sweep(now + timedelta(hours=25))
    assert report.alerts == 1
    assert len(alert_repo.rows) == 2

    # Nine days later both alerts are stale and get resolved
    report = await scheduler.run_cleanup_sweep(now + timedelta(days=9))
    assert report.alerts == 2
    assert all(a.resolved for a in alert_repo.rows.values())


@pytest.mark.asyncio
async def test_disabled_threshold_never_alerts(service, scheduler, metric_source, alert_repo, now):
    await service.upsert_threshold(
        "svc-openai", "user-1", ThresholdSettings(enabled=False), now,
    )
    metric_source.utilization["svc-openai"] = 150.0

    report = await scheduler.run_evaluation_sweep(now)

    assert report.resources == 0
    assert alert_repo.rows == {}


@pytest.mark.asyncio
async def test_manual_resolve_does_not_reopen_window(
    service, scheduler, metric_source, alert_repo, now,
):
    await service.upsert_threshold("svc-openai", "user-1", ThresholdSettings(), now)
    metric_source.utilization["svc-openai"] = 80.0

    await scheduler.run_evaluation_sweep(now)
    [alert] = alert_repo.rows.values()
    await service.resolve_alert(alert.alert_id, "user-1", now + timedelta(hours=1))

    report = await scheduler.run_evaluation_sweep(now + timedelta(hours=2))
    assert report.alerts == 0

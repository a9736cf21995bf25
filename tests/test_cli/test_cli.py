"""Tests for the spend-alerts CLI commands."""

import json
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from src.alerts.exceptions import NotificationError
from src.alerts.scheduler import SweepReport
from src.cli import Engine, main

STARTED = datetime(2026, 3, 10, 9, 0, 0, tzinfo=timezone.utc)


# ── Fixtures ──────────────────────────────────────────────


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def engine():
    return Engine(
        service=AsyncMock(),
        dispatcher=AsyncMock(),
        scheduler=AsyncMock(),
        threshold_repo=AsyncMock(),
        alert_repo=AsyncMock(),
    )


@pytest.fixture
def patched(engine):
    @asynccontextmanager
    async def fake_open_engine():
        yield engine

    with patch("src.cli.open_engine", fake_open_engine):
        yield engine


# ── Sweeps ────────────────────────────────────────────────


class TestSweepCommands:
    def test_sweep_prints_report(self, runner, patched):
        patched.scheduler.run_evaluation_sweep.return_value = SweepReport(
            cadence="evaluation", started_at=STARTED, resources=4, alerts=2, errors=0,
        )

        result = runner.invoke(main, ["sweep"])

        assert result.exit_code == 0, result.output
        assert "evaluation sweep: 4 resources, 2 alerts, 0 errors" in result.output

    def test_cleanup(self, runner, patched):
        patched.scheduler.run_cleanup_sweep.return_value = SweepReport(
            cadence="cleanup", started_at=STARTED, resources=1, alerts=3,
        )
        result = runner.invoke(main, ["cleanup"])
        assert "cleanup sweep: 1 resources, 3 alerts" in result.output

    def test_notify_skipped(self, runner, patched):
        patched.scheduler.run_notification_sweep.return_value = SweepReport(
            cadence="notification", started_at=STARTED, skipped=True,
        )
        result = runner.invoke(main, ["notify"])
        assert "notification sweep skipped" in result.output


# ── User commands ─────────────────────────────────────────


class TestUserCommands:
    def test_check_now(self, runner, patched):
        alert = MagicMock()
        alert.severity.value = "CRITICAL"
        alert.alert_type.value = "BUDGET_CRITICAL"
        alert.message = "Critical budget alert: 95.0% of budget used (threshold: 90.0%)"
        patched.service.trigger_evaluation_now.return_value = [alert]

        result = runner.invoke(main, ["check-now", "user-1"])

        assert result.exit_code == 0, result.output
        patched.service.trigger_evaluation_now.assert_awaited_once_with("user-1")
        assert "Created 1 alerts for user user-1" in result.output
        assert "[CRITICAL] BUDGET_CRITICAL" in result.output

    def test_activity_json(self, runner, patched):
        summary = MagicMock()
        summary.to_dict.return_value = {"total_alerts": 3, "trend": "stable"}
        patched.service.get_alert_activity.return_value = summary

        result = runner.invoke(main, ["activity", "user-1", "--days", "7"])

        assert result.exit_code == 0, result.output
        patched.service.get_alert_activity.assert_awaited_once_with("user-1", window_days=7)
        assert json.loads(result.output) == {"total_alerts": 3, "trend": "stable"}

    def test_daily_summary_nothing_sent(self, runner, patched):
        patched.dispatcher.send_daily_summary.return_value = False
        result = runner.invoke(main, ["daily-summary", "user-1"])
        assert "No summary sent" in result.output

    def test_forget_resource(self, runner, patched):
        patched.service.forget_resource.return_value = True

        result = runner.invoke(main, ["forget-resource", "svc-1"])

        assert result.exit_code == 0, result.output
        patched.service.forget_resource.assert_awaited_once_with("svc-1")
        assert "Threshold for svc-1 removed" in result.output


# ── Test notification ─────────────────────────────────────


class TestTestNotification:
    def test_success(self, runner, patched):
        result = runner.invoke(main, ["test-notification", "owner@example.com"])
        assert result.exit_code == 0, result.output
        assert "Test notification sent to owner@example.com" in result.output

    def test_failure_exits_nonzero(self, runner, patched):
        patched.dispatcher.send_test_notification.side_effect = NotificationError(
            "Failed to send test notification to owner@example.com"
        )
        result = runner.invoke(main, ["test-notification", "owner@example.com"])
        assert result.exit_code == 1
        assert "Failed to send" in result.output


def test_init_db_creates_both_tables(runner, patched):
    result = runner.invoke(main, ["init-db"])

    assert result.exit_code == 0, result.output
    patched.threshold_repo.create_table.assert_awaited_once()
    patched.alert_repo.create_table.assert_awaited_once()
    assert "initialized" in result.output


def test_health_reports_postgres(runner):
    mock_db = AsyncMock()
    mock_db.health_check.return_value = True

    with patch("src.storage.database.Database", return_value=mock_db):
        result = runner.invoke(main, ["health"])

    assert result.exit_code == 0, result.output
    assert "postgres: True" in result.output
    mock_db.close.assert_awaited_once()


def test_health_fails_when_postgres_down(runner):
    mock_db = AsyncMock()
    mock_db.connect.side_effect = OSError("connection refused")

    with patch("src.storage.database.Database", return_value=mock_db):
        result = runner.invoke(main, ["health"])

    assert result.exit_code == 1
    assert "postgres: False" in result.output

"""
Command-line interface for spend-alerts.

Provides commands to run the alert scheduler, trigger single sweeps,
initialize the database, and run diagnostic checks.

Usage:
    spend-alerts scheduler               # Run all cadences until stopped
    spend-alerts sweep                   # One evaluation sweep
    spend-alerts cleanup                 # One stale-alert cleanup sweep
    spend-alerts notify                  # Drain the notification queue once
    spend-alerts check-now USER_ID       # Evaluate one user's resources now
    spend-alerts activity USER_ID        # Print a user's alert activity
    spend-alerts daily-summary USER_ID   # Email a user's last-24h digest
    spend-alerts forget-resource ID      # Drop a deleted resource's threshold
    spend-alerts test-notification EMAIL # Send a test email
    spend-alerts init-db                 # Create alert tables
    spend-alerts health                  # Check service health
"""

import asyncio
import json
import signal
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING

import click

from src.config.settings import get_settings
from src.observability.logging import setup_logging
from src.observability.metrics import get_metrics

if TYPE_CHECKING:
    from src.alerts.dispatcher import NotificationDispatcher
    from src.alerts.repository import AlertRepository
    from src.alerts.scheduler import AlertScheduler
    from src.alerts.service import AlertService
    from src.alerts.thresholds import ThresholdRepository


@dataclass
class Engine:
    """Wired components for one CLI invocation."""

    service: "AlertService"
    dispatcher: "NotificationDispatcher"
    scheduler: "AlertScheduler"
    threshold_repo: "ThresholdRepository"
    alert_repo: "AlertRepository"


@asynccontextmanager
async def open_engine() -> AsyncIterator[Engine]:
    """Connect to PostgreSQL (and Redis for locks) and wire the engine."""
    from src.alerts.config import AlertConfig
    from src.alerts.dispatcher import NotificationDispatcher, build_sender
    from src.alerts.locks import InProcessResourceLocks, RedisResourceLocks
    from src.alerts.repository import AlertRepository
    from src.alerts.scheduler import AlertScheduler
    from src.alerts.service import AlertService
    from src.alerts.sources import PostgresMetricSource, PostgresResourceDirectory
    from src.alerts.thresholds import ThresholdRepository
    from src.storage.database import Database

    settings = get_settings()
    config = AlertConfig()

    db = Database()
    await db.connect()

    redis_client = None
    if settings.redis_locks_enabled:
        import redis.asyncio as redis

        redis_client = redis.from_url(
            str(settings.redis_url),
            encoding="utf-8",
            decode_responses=True,
        )
        locks = RedisResourceLocks(redis_client, ttl_seconds=config.resource_lock_ttl_seconds)
    else:
        locks = InProcessResourceLocks()

    try:
        threshold_repo = ThresholdRepository(db)
        alert_repo = AlertRepository(db)
        directory = PostgresResourceDirectory(db)
        service = AlertService(
            config=config,
            threshold_repo=threshold_repo,
            alert_repo=alert_repo,
            metric_source=PostgresMetricSource(db),
            directory=directory,
            locks=locks,
        )
        dispatcher = NotificationDispatcher(
            sender=build_sender(settings),
            alert_repo=alert_repo,
            directory=directory,
        )
        scheduler = AlertScheduler(
            service=service,
            dispatcher=dispatcher,
            threshold_repo=threshold_repo,
            alert_repo=alert_repo,
            directory=directory,
            config=config,
        )
        yield Engine(
            service=service,
            dispatcher=dispatcher,
            scheduler=scheduler,
            threshold_repo=threshold_repo,
            alert_repo=alert_repo,
        )
    finally:
        if redis_client is not None:
            await redis_client.close()
        await db.close()


def _echo_report(report) -> None:
    if report.skipped:
        click.echo(click.style(f"{report.cadence} sweep skipped (already running)", fg="yellow"))
        return
    color = "green" if report.errors == 0 else "yellow"
    click.echo(click.style(
        f"{report.cadence} sweep: {report.resources} resources, "
        f"{report.alerts} alerts, {report.errors} errors",
        fg=color,
    ))


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """Spend Alerts - budget, spike and error-rate alerting for API spend."""
    if debug:
        import os
        os.environ["LOG_LEVEL"] = "DEBUG"
        get_settings.cache_clear()

    setup_logging()


@main.command()
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def scheduler(metrics: bool, metrics_port: int | None) -> None:
    """Run evaluation, cleanup and notification sweeps on their cadences."""

    async def run():
        async with open_engine() as engine:
            if metrics:
                get_metrics().start_server(port=metrics_port)

            # Handle shutdown signals
            loop = asyncio.get_event_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(
                    sig, lambda: asyncio.create_task(engine.scheduler.stop()),
                )

            await engine.scheduler.run_forever()

    asyncio.run(run())


@main.command()
def sweep() -> None:
    """Run one evaluation sweep over every user's enabled thresholds."""

    async def run():
        async with open_engine() as engine:
            _echo_report(await engine.scheduler.run_evaluation_sweep())

    asyncio.run(run())


@main.command()
def cleanup() -> None:
    """Auto-resolve stale unresolved alerts."""

    async def run():
        async with open_engine() as engine:
            _echo_report(await engine.scheduler.run_cleanup_sweep())

    asyncio.run(run())


@main.command()
def notify() -> None:
    """Drain the notification queue once."""

    async def run():
        async with open_engine() as engine:
            _echo_report(await engine.scheduler.run_notification_sweep())

    asyncio.run(run())


@main.command("check-now")
@click.argument("user_id")
def check_now(user_id: str) -> None:
    """Evaluate every enabled threshold of USER_ID immediately."""

    async def run():
        async with open_engine() as engine:
            alerts = await engine.service.trigger_evaluation_now(user_id)

        click.echo(f"Created {len(alerts)} alerts for user {user_id}")
        for alert in alerts:
            click.echo(f"  [{alert.severity.value}] {alert.alert_type.value}: {alert.message}")

    asyncio.run(run())


@main.command()
@click.argument("user_id")
@click.option("--days", default=None, type=int, help="Window in days (default from config)")
def activity(user_id: str, days: int | None) -> None:
    """Print USER_ID's alert activity summary as JSON."""

    async def run():
        async with open_engine() as engine:
            summary = await engine.service.get_alert_activity(user_id, window_days=days)
        click.echo(json.dumps(summary.to_dict(), indent=2))

    asyncio.run(run())


@main.command("daily-summary")
@click.argument("user_id")
def daily_summary(user_id: str) -> None:
    """Email USER_ID a digest of their alerts from the last 24 hours."""

    async def run():
        async with open_engine() as engine:
            sent = await engine.dispatcher.send_daily_summary(user_id)
        if sent:
            click.echo(click.style("Daily summary sent", fg="green"))
        else:
            click.echo("No summary sent (no alerts, no recipient, or send failed)")

    asyncio.run(run())


@main.command("forget-resource")
@click.argument("resource_id")
def forget_resource(resource_id: str) -> None:
    """Remove the threshold of deleted resource RESOURCE_ID."""

    async def run():
        async with open_engine() as engine:
            removed = await engine.service.forget_resource(resource_id)
        if removed:
            click.echo(f"Threshold for {resource_id} removed")
        else:
            click.echo(f"No threshold configured for {resource_id}")

    asyncio.run(run())


@main.command("test-notification")
@click.argument("email")
def test_notification(email: str) -> None:
    """Send a test email to EMAIL."""
    from src.alerts.exceptions import NotificationError

    async def run():
        async with open_engine() as engine:
            await engine.dispatcher.send_test_notification(email)

    try:
        asyncio.run(run())
    except NotificationError as e:
        click.echo(click.style(f"✗ {e}", fg="red"))
        sys.exit(1)

    click.echo(click.style(f"✓ Test notification sent to {email}", fg="green"))


@main.command("init-db")
def init_db() -> None:
    """Initialize the alert tables."""

    async def run():
        async with open_engine() as engine:
            await engine.threshold_repo.create_table()
            await engine.alert_repo.create_table()

        click.echo("Database initialized successfully")

    asyncio.run(run())


@main.command()
def health() -> None:
    """Check health of all dependencies."""
    import structlog
    logger = structlog.get_logger()

    async def check():
        results: dict[str, bool] = {}
        settings = get_settings()

        # Check PostgreSQL
        try:
            from src.storage.database import Database
            db = Database()
            await db.connect()
            results["postgres"] = await db.health_check()
            await db.close()
        except Exception as e:
            results["postgres"] = False
            logger.error("Postgres health check failed", error=str(e))

        # Check Redis (only required for shared locks)
        if settings.redis_locks_enabled:
            try:
                import redis.asyncio as redis
                client = redis.from_url(str(settings.redis_url))
                results["redis"] = bool(await client.ping())
                await client.close()
            except Exception as e:
                results["redis"] = False
                logger.error("Redis health check failed", error=str(e))

        results["email_relay_configured"] = settings.email_relay_configured

        # Print results
        click.echo("\nHealth Check Results:")
        click.echo("-" * 40)

        all_healthy = True
        for name, status in results.items():
            icon = "✓" if status else "✗"
            color = "green" if status else "red"
            click.echo(click.style(f"  {icon} {name}: {status}", fg=color))
            if name in ("redis", "postgres") and not status:
                all_healthy = False

        click.echo("-" * 40)

        if all_healthy:
            click.echo(click.style("All core services healthy!", fg="green"))
            sys.exit(0)
        else:
            click.echo(click.style("Some services unhealthy!", fg="red"))
            sys.exit(1)

    asyncio.run(check())


if __name__ == "__main__":
    main()

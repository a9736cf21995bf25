"""Notification dispatcher draining the queue of unsent alerts.

The queue is the ``alerts`` table itself: rows with
``notification_sent = FALSE`` created inside the lookback window. Each
alert is sent independently; a failure leaves it queued for the next
drain until it ages out of the window.

Pattern: Orchestrator (like AlertService), delegates to stateless senders.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import structlog
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.alerts.channels import (
    CircuitBreaker,
    EmailSender,
    HttpEmailSender,
    LoggingEmailSender,
)
from src.alerts.exceptions import NotificationError
from src.alerts.formatters import (
    EmailMessage,
    build_body,
    build_daily_summary,
    build_subject,
    build_test_message,
)
from src.alerts.repository import AlertRepository
from src.alerts.schemas import Alert
from src.alerts.sources import ResourceDirectory
from src.config.settings import Settings, get_settings
from src.observability.metrics import get_metrics

logger = structlog.get_logger(__name__)


class NotificationConfig(BaseSettings):
    """Configuration for notification dispatch."""

    model_config = SettingsConfigDict(
        env_prefix="NOTIFICATIONS_",
        case_sensitive=False,
        extra="ignore",
    )

    lookback_minutes: int = Field(
        default=30,
        ge=1,
        le=1440,
        description="Unsent alerts older than this are no longer delivered",
    )
    send_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        le=120.0,
        description="Upper bound on a single send",
    )
    circuit_breaker_threshold: int = Field(
        default=5,
        ge=1,
        description="Consecutive failures before circuit opens",
    )
    circuit_breaker_recovery_seconds: float = Field(
        default=60.0,
        ge=5.0,
        description="Seconds before circuit breaker probes recovery",
    )


@dataclass
class DrainResult:
    """Outcome of one pass over the notification queue."""

    selected: int = 0
    sent: int = 0
    failed: int = 0


def build_sender(settings: Settings | None = None) -> EmailSender:
    """HTTP relay sender when one is configured, log-only sender otherwise."""
    settings = settings or get_settings()
    if settings.email_relay_configured:
        return HttpEmailSender(
            url=settings.email_relay_url,
            from_address=settings.email_from,
            token=settings.email_relay_token,
        )
    return LoggingEmailSender(from_address=settings.email_from)


class NotificationDispatcher:
    """Delivers queued alerts through a circuit-breaker-wrapped sender."""

    def __init__(
        self,
        sender: EmailSender,
        alert_repo: AlertRepository,
        directory: ResourceDirectory,
        config: NotificationConfig | None = None,
        product_name: str | None = None,
        dashboard_url: str | None = None,
    ) -> None:
        self._config = config or NotificationConfig()
        self._alert_repo = alert_repo
        self._directory = directory

        settings = get_settings()
        self._product_name = product_name or settings.product_name
        self._dashboard_url = dashboard_url or settings.dashboard_url

        if isinstance(sender, CircuitBreaker):
            self._sender = sender
        else:
            self._sender = CircuitBreaker(
                sender=sender,
                failure_threshold=self._config.circuit_breaker_threshold,
                recovery_timeout=self._config.circuit_breaker_recovery_seconds,
            )

    @property
    def sender(self) -> CircuitBreaker:
        """Access the wrapped sender (for inspection/testing)."""
        return self._sender

    async def _send(self, message: EmailMessage) -> bool:
        """Send with the configured timeout; a timeout counts as failure."""
        try:
            return await asyncio.wait_for(
                self._sender.send(message),
                timeout=self._config.send_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Email send timed out",
                to=message.to,
                timeout=self._config.send_timeout_seconds,
            )
            return False

    async def render(self, alert: Alert) -> EmailMessage | None:
        """Build the email for an alert, or None if the owner has no address."""
        recipient = await self._directory.get_user_email(alert.user_id)
        if not recipient:
            return None

        resource_name = None
        if alert.resource_id is not None:
            resource_name = await self._directory.get_resource_name(alert.resource_id)

        return EmailMessage(
            to=recipient,
            subject=build_subject(alert, resource_name, self._product_name),
            body=build_body(alert, resource_name, self._product_name, self._dashboard_url),
        )

    async def deliver(self, alert: Alert) -> bool:
        """Send one alert and mark it sent on success."""
        message = await self.render(alert)
        if message is None:
            logger.warning("No recipient for alert", alert_id=alert.alert_id, user_id=alert.user_id)
            return False

        if not await self._send(message):
            return False

        await self._alert_repo.mark_notification_sent(alert.alert_id)
        alert.mark_notification_sent()
        logger.info(
            "Alert notification sent",
            alert_id=alert.alert_id,
            alert_type=alert.alert_type.value,
            to=message.to,
        )
        return True

    async def drain_queue(self, now: datetime | None = None) -> DrainResult:
        """Send every unsent alert inside the lookback window, oldest first.

        Each alert is isolated: an exception on one is logged and counted
        as a failure, and the rest are still attempted.
        """
        now = now or datetime.now(timezone.utc)
        since = now - timedelta(minutes=self._config.lookback_minutes)
        pending = await self._alert_repo.list_unsent(since)

        metrics = get_metrics()
        metrics.set_notification_queue_depth(len(pending))
        result = DrainResult(selected=len(pending))

        for alert in pending:
            try:
                success = await self.deliver(alert)
            except Exception as e:
                logger.error(
                    "Unexpected error delivering alert",
                    alert_id=alert.alert_id,
                    error=str(e),
                    exc_info=True,
                )
                success = False

            metrics.record_notification(success)
            if success:
                result.sent += 1
            else:
                result.failed += 1

        if pending:
            logger.info(
                "Notification queue drained",
                selected=result.selected,
                sent=result.sent,
                failed=result.failed,
            )
        return result

    async def send_test_notification(self, email: str) -> None:
        """Send a fixed test email, bypassing the alert store.

        Raises:
            NotificationError: If the send fails or times out.
        """
        message = build_test_message(email, self._product_name)
        try:
            ok = await self._send(message)
        except Exception as e:
            raise NotificationError(f"Failed to send test notification to {email}") from e
        if not ok:
            raise NotificationError(f"Failed to send test notification to {email}")
        logger.info("Test notification sent", to=email)

    async def send_daily_summary(self, user_id: str, now: datetime | None = None) -> bool:
        """Email a user the digest of their alerts from the last 24 hours.

        Returns:
            True if a summary was sent; False when there was nothing to
            summarise, no recipient, or the send failed. Lookup and send
            errors are logged, never raised.
        """
        now = now or datetime.now(timezone.utc)
        try:
            alerts = await self._alert_repo.list_recent(
                user_id, since=now - timedelta(days=1), limit=500,
            )
            if not alerts:
                return False

            recipient = await self._directory.get_user_email(user_id)
            if not recipient:
                return False

            message = build_daily_summary(
                recipient, alerts, now.date(), self._product_name, self._dashboard_url,
            )
            sent = await self._send(message)
        except Exception as e:
            logger.error(
                "Daily summary failed", user_id=user_id, error=str(e), exc_info=True,
            )
            return False

        if sent:
            logger.info("Daily summary sent", user_id=user_id, alerts=len(alerts))
        else:
            logger.warning("Daily summary failed", user_id=user_id)
        return sent

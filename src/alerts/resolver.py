"""Auto-resolution of stale alerts.

Resolution is purely time-based: an unresolved alert older than the
configured age is closed without re-checking its condition.
"""

from datetime import datetime, timedelta

import structlog

from src.alerts.config import AlertConfig
from src.alerts.repository import AlertRepository
from src.alerts.schemas import Alert
from src.observability.metrics import get_metrics

logger = structlog.get_logger(__name__)


class Resolver:
    """Closes unresolved alerts that have outlived ``stale_alert_days``."""

    def __init__(self, config: AlertConfig, alert_repo: AlertRepository) -> None:
        self._config = config
        self._alert_repo = alert_repo

    async def auto_resolve_stale(
        self,
        resource_id: str,
        now: datetime,
        max_age: timedelta | None = None,
    ) -> list[Alert]:
        """Resolve every unresolved alert of ``resource_id`` created before ``now - max_age``.

        Failures on a single alert are logged and skipped; the rest of the
        resource's alerts are still processed.

        Args:
            resource_id: Resource whose alerts are checked.
            now: Reference time; also recorded as ``resolved_at``.
            max_age: Override for ``config.stale_alert_age``.

        Returns:
            The alerts that were resolved.
        """
        cutoff = now - (max_age or self._config.stale_alert_age)
        stale = await self._alert_repo.list_unresolved_before(resource_id, cutoff)

        resolved: list[Alert] = []
        for alert in stale:
            try:
                if not await self._alert_repo.resolve(alert.alert_id, now):
                    # Resolved concurrently by a user or another sweep
                    continue
                if not alert.resolved:
                    alert.resolve(now)
                resolved.append(alert)
            except Exception as e:
                logger.error(
                    "Failed to auto-resolve alert",
                    alert_id=alert.alert_id,
                    resource_id=resource_id,
                    error=str(e),
                    exc_info=True,
                )

        if resolved:
            get_metrics().record_auto_resolved(len(resolved))
            logger.info(
                "Stale alerts auto-resolved",
                resource_id=resource_id,
                count=len(resolved),
            )
        return resolved

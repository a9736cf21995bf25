"""Time-window suppression of repeat alerts.

A candidate is suppressed when the store already holds an alert with the
same ``(resource_id, alert_type)`` created inside that type's window.
Suppression is not an error: it is logged at debug and counted.
"""

from datetime import datetime

import structlog

from src.alerts.config import AlertConfig
from src.alerts.repository import AlertRepository
from src.alerts.schemas import AlertType
from src.observability.metrics import get_metrics

logger = structlog.get_logger(__name__)


class Deduplicator:
    """Checks candidates against the Alert Store's recent history."""

    def __init__(self, config: AlertConfig, alert_repo: AlertRepository) -> None:
        self._config = config
        self._alert_repo = alert_repo

    async def should_suppress(
        self,
        resource_id: str | None,
        alert_type: AlertType,
        now: datetime,
    ) -> bool:
        """True if an alert of this type exists for the resource since ``now - window``."""
        since = now - self._config.dedup_window(alert_type)
        suppressed = await self._alert_repo.exists_since(resource_id, alert_type, since)
        if suppressed:
            logger.debug(
                "Alert suppressed",
                resource_id=resource_id,
                alert_type=alert_type.value,
                since=since.isoformat(),
            )
            get_metrics().record_alert_suppressed(alert_type.value)
        return suppressed

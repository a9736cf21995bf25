"""Threshold repository: one alert configuration per monitored resource.

Follows the AlertRepository pattern with asyncpg. Every write goes
through ``Threshold.validate()`` before reaching the database, and the
table carries the same invariants as CHECK constraints.
"""

import logging
from typing import Any

from src.alerts.schemas import Threshold
from src.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS alert_thresholds (
    threshold_id     TEXT PRIMARY KEY,
    resource_id      TEXT NOT NULL UNIQUE,
    user_id          TEXT NOT NULL,
    warning_percent  DOUBLE PRECISION NOT NULL,
    critical_percent DOUBLE PRECISION NOT NULL,
    spike_percent    DOUBLE PRECISION NOT NULL,
    error_fraction   DOUBLE PRECISION NOT NULL,
    enabled          BOOLEAN NOT NULL DEFAULT TRUE,
    created_at       TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at       TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CHECK (warning_percent >= 0 AND warning_percent < critical_percent),
    CHECK (critical_percent <= 100),
    CHECK (spike_percent >= 0),
    CHECK (error_fraction >= 0 AND error_fraction <= 1)
);

CREATE INDEX IF NOT EXISTS idx_alert_thresholds_user
    ON alert_thresholds(user_id);
CREATE INDEX IF NOT EXISTS idx_alert_thresholds_enabled
    ON alert_thresholds(user_id) WHERE enabled = TRUE;
"""

_UPSERT_SQL = """
INSERT INTO alert_thresholds (
    threshold_id, resource_id, user_id, warning_percent, critical_percent,
    spike_percent, error_fraction, enabled, created_at, updated_at
) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
ON CONFLICT (resource_id) DO UPDATE SET
    user_id = EXCLUDED.user_id,
    warning_percent = EXCLUDED.warning_percent,
    critical_percent = EXCLUDED.critical_percent,
    spike_percent = EXCLUDED.spike_percent,
    error_fraction = EXCLUDED.error_fraction,
    enabled = EXCLUDED.enabled,
    updated_at = EXCLUDED.updated_at
RETURNING *
"""


class ThresholdRepository:
    """Repository for threshold persistence and sweep queries."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the alert_thresholds table and indexes (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("alert_thresholds table ensured")

    async def upsert(self, threshold: Threshold) -> Threshold:
        """Insert or replace the threshold for ``threshold.resource_id``.

        Raises:
            ThresholdValidationError: If the values are inconsistent.
        """
        threshold.validate()
        row = await self._db.fetchrow(
            _UPSERT_SQL,
            threshold.threshold_id,
            threshold.resource_id,
            threshold.user_id,
            threshold.warning_percent,
            threshold.critical_percent,
            threshold.spike_percent,
            threshold.error_fraction,
            threshold.enabled,
            threshold.created_at,
            threshold.updated_at,
        )
        return _row_to_threshold(row)

    async def get_by_id(self, threshold_id: str) -> Threshold | None:
        row = await self._db.fetchrow(
            "SELECT * FROM alert_thresholds WHERE threshold_id = $1", threshold_id,
        )
        return _row_to_threshold(row) if row else None

    async def get_by_resource(self, resource_id: str) -> Threshold | None:
        row = await self._db.fetchrow(
            "SELECT * FROM alert_thresholds WHERE resource_id = $1", resource_id,
        )
        return _row_to_threshold(row) if row else None

    async def list_for_user(self, user_id: str) -> list[Threshold]:
        rows = await self._db.fetch(
            "SELECT * FROM alert_thresholds WHERE user_id = $1 ORDER BY created_at",
            user_id,
        )
        return [_row_to_threshold(r) for r in rows]

    async def list_enabled(self, user_id: str | None = None) -> list[Threshold]:
        """Enabled thresholds, optionally scoped to one user.

        Args:
            user_id: Restrict to this owner; None lists every user's.

        Returns:
            Thresholds ordered by resource_id for stable sweep order.
        """
        if user_id is None:
            rows = await self._db.fetch(
                "SELECT * FROM alert_thresholds WHERE enabled = TRUE ORDER BY resource_id",
            )
        else:
            rows = await self._db.fetch(
                """
                SELECT * FROM alert_thresholds
                WHERE enabled = TRUE AND user_id = $1
                ORDER BY resource_id
                """,
                user_id,
            )
        return [_row_to_threshold(r) for r in rows]

    async def delete(self, threshold_id: str, user_id: str) -> bool:
        """Delete a threshold owned by ``user_id``.

        Returns:
            True if a row was deleted, False if absent or not owned.
        """
        deleted = await self._db.fetchval(
            """
            DELETE FROM alert_thresholds
            WHERE threshold_id = $1 AND user_id = $2
            RETURNING threshold_id
            """,
            threshold_id,
            user_id,
        )
        return deleted is not None

    async def delete_for_resource(self, resource_id: str) -> bool:
        """Cascade hook for when the owning resource is deleted."""
        deleted = await self._db.fetchval(
            "DELETE FROM alert_thresholds WHERE resource_id = $1 RETURNING threshold_id",
            resource_id,
        )
        return deleted is not None


def _row_to_threshold(row: Any) -> Threshold:
    """Convert an asyncpg Record to a Threshold."""
    return Threshold(
        threshold_id=row["threshold_id"],
        resource_id=row["resource_id"],
        user_id=row["user_id"],
        warning_percent=row["warning_percent"],
        critical_percent=row["critical_percent"],
        spike_percent=row["spike_percent"],
        error_fraction=row["error_fraction"],
        enabled=row["enabled"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )

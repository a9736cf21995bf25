"""Alert repository for persistence, dedup lookups and summary counts.

Follows the ThresholdRepository pattern with asyncpg. The ``alerts``
table is written only by the engine; the resolution and notification
flags are flipped with guarded updates so concurrent sweeps cannot
double-apply them.
"""

import logging
from datetime import date, datetime
from typing import Any

from src.alerts.schemas import Alert, AlertType, Severity
from src.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS alerts (
    alert_id          TEXT PRIMARY KEY,
    user_id           TEXT NOT NULL,
    resource_id       TEXT,
    alert_type        TEXT NOT NULL,
    severity          TEXT NOT NULL,
    message           TEXT NOT NULL,
    threshold_value   DOUBLE PRECISION,
    actual_value      DOUBLE PRECISION,
    resolved          BOOLEAN NOT NULL DEFAULT FALSE,
    resolved_at       TIMESTAMPTZ,
    notification_sent BOOLEAN NOT NULL DEFAULT FALSE,
    created_at        TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CHECK (resolved = (resolved_at IS NOT NULL))
);

CREATE INDEX IF NOT EXISTS idx_alerts_resource_type_created
    ON alerts(resource_id, alert_type, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_alerts_user_created
    ON alerts(user_id, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_alerts_unsent
    ON alerts(created_at) WHERE notification_sent = FALSE;
"""


class AlertRepository:
    """Repository for alert persistence and querying.

    Provides create, read, dedup, resolve, notification and counting
    operations for Alert records stored in the ``alerts`` table.
    """

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the alerts table and indexes (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("alerts table ensured")

    async def create(self, alert: Alert) -> Alert:
        """Insert a new alert.

        Args:
            alert: Alert to persist.

        Returns:
            The created Alert as stored.
        """
        sql = """
            INSERT INTO alerts (
                alert_id, user_id, resource_id, alert_type, severity, message,
                threshold_value, actual_value, resolved, resolved_at,
                notification_sent, created_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
            RETURNING *
        """
        row = await self._db.fetchrow(
            sql,
            alert.alert_id,
            alert.user_id,
            alert.resource_id,
            alert.alert_type.value,
            alert.severity.value,
            alert.message,
            alert.threshold_value,
            alert.actual_value,
            alert.resolved,
            alert.resolved_at,
            alert.notification_sent,
            alert.created_at,
        )
        return _row_to_alert(row)

    async def get_by_id(self, alert_id: str) -> Alert | None:
        """Get an alert by ID.

        Args:
            alert_id: Alert identifier.

        Returns:
            Alert or None if not found.
        """
        row = await self._db.fetchrow("SELECT * FROM alerts WHERE alert_id = $1", alert_id)
        if row is None:
            return None
        return _row_to_alert(row)

    async def exists_since(
        self,
        resource_id: str | None,
        alert_type: AlertType,
        since: datetime,
    ) -> bool:
        """Whether any alert of this (resource, type) was created at or after ``since``.

        Resolved alerts count too: resolving an alert does not reopen
        the dedup window.
        """
        sql = """
            SELECT EXISTS (
                SELECT 1 FROM alerts
                WHERE resource_id IS NOT DISTINCT FROM $1
                  AND alert_type = $2
                  AND created_at >= $3
            )
        """
        return bool(await self._db.fetchval(sql, resource_id, alert_type.value, since))

    async def list_recent(
        self,
        user_id: str,
        *,
        since: datetime | None = None,
        resource_id: str | None = None,
        alert_type: AlertType | None = None,
        severity: Severity | None = None,
        resolved: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Alert]:
        """Get a user's alerts, newest first, with optional filtering.

        Uses dynamic SQL builder with incremental param_idx.

        Returns:
            List of alerts ordered by created_at descending.
        """
        conditions: list[str] = ["user_id = $1"]
        params: list[Any] = [user_id]
        param_idx = 2

        if since is not None:
            conditions.append(f"created_at >= ${param_idx}")
            params.append(since)
            param_idx += 1

        if resource_id is not None:
            conditions.append(f"resource_id = ${param_idx}")
            params.append(resource_id)
            param_idx += 1

        if alert_type is not None:
            conditions.append(f"alert_type = ${param_idx}")
            params.append(alert_type.value)
            param_idx += 1

        if severity is not None:
            conditions.append(f"severity = ${param_idx}")
            params.append(severity.value)
            param_idx += 1

        if resolved is not None:
            conditions.append(f"resolved = ${param_idx}")
            params.append(resolved)
            param_idx += 1

        sql = f"""
            SELECT * FROM alerts
            WHERE {" AND ".join(conditions)}
            ORDER BY created_at DESC
            LIMIT ${param_idx} OFFSET ${param_idx + 1}
        """
        params.extend([limit, offset])

        rows = await self._db.fetch(sql, *params)
        return [_row_to_alert(row) for row in rows]

    async def list_unresolved_before(self, resource_id: str, before: datetime) -> list[Alert]:
        """Unresolved alerts for a resource created strictly before ``before``."""
        rows = await self._db.fetch(
            """
            SELECT * FROM alerts
            WHERE resource_id = $1 AND resolved = FALSE AND created_at < $2
            ORDER BY created_at
            """,
            resource_id,
            before,
        )
        return [_row_to_alert(row) for row in rows]

    async def list_stale_resources(self, before: datetime) -> list[str]:
        """Resources holding at least one unresolved alert older than ``before``."""
        rows = await self._db.fetch(
            """
            SELECT DISTINCT resource_id FROM alerts
            WHERE resolved = FALSE AND created_at < $1 AND resource_id IS NOT NULL
            ORDER BY resource_id
            """,
            before,
        )
        return [row["resource_id"] for row in rows]

    async def resolve(self, alert_id: str, resolved_at: datetime) -> bool:
        """Mark an alert resolved.

        Returns:
            True if updated, False if not found or already resolved.
        """
        sql = """
            UPDATE alerts SET resolved = TRUE, resolved_at = $2
            WHERE alert_id = $1 AND resolved = FALSE
            RETURNING alert_id
        """
        result = await self._db.fetchval(sql, alert_id, resolved_at)
        return result is not None

    async def mark_notification_sent(self, alert_id: str) -> bool:
        """Flip notification_sent; returns False if it was already set."""
        sql = """
            UPDATE alerts SET notification_sent = TRUE
            WHERE alert_id = $1 AND notification_sent = FALSE
            RETURNING alert_id
        """
        result = await self._db.fetchval(sql, alert_id)
        return result is not None

    async def list_unsent(self, since: datetime) -> list[Alert]:
        """Alerts awaiting notification created at or after ``since``, oldest first."""
        rows = await self._db.fetch(
            """
            SELECT * FROM alerts
            WHERE notification_sent = FALSE AND created_at >= $1
            ORDER BY created_at
            """,
            since,
        )
        return [_row_to_alert(row) for row in rows]

    async def count_unresolved_by_severity(self, user_id: str) -> dict[Severity, int]:
        rows = await self._db.fetch(
            """
            SELECT severity, COUNT(*) AS n FROM alerts
            WHERE user_id = $1 AND resolved = FALSE
            GROUP BY severity
            """,
            user_id,
        )
        return {Severity(row["severity"]): row["n"] for row in rows}

    async def count_by_type(self, user_id: str, since: datetime) -> dict[AlertType, int]:
        rows = await self._db.fetch(
            """
            SELECT alert_type, COUNT(*) AS n FROM alerts
            WHERE user_id = $1 AND created_at >= $2
            GROUP BY alert_type
            """,
            user_id,
            since,
        )
        return {AlertType(row["alert_type"]): row["n"] for row in rows}

    async def daily_counts(self, user_id: str, since: datetime) -> dict[date, int]:
        """Alerts per UTC calendar day since ``since``; quiet days are absent."""
        rows = await self._db.fetch(
            """
            SELECT (created_at AT TIME ZONE 'UTC')::date AS day, COUNT(*) AS n
            FROM alerts
            WHERE user_id = $1 AND created_at >= $2
            GROUP BY day
            """,
            user_id,
            since,
        )
        return {row["day"]: row["n"] for row in rows}

    async def has_recent_for_resource(self, resource_id: str, since: datetime) -> bool:
        sql = """
            SELECT EXISTS (
                SELECT 1 FROM alerts WHERE resource_id = $1 AND created_at >= $2
            )
        """
        return bool(await self._db.fetchval(sql, resource_id, since))


def _row_to_alert(row: Any) -> Alert:
    """Convert an asyncpg Record to an Alert."""
    return Alert(
        alert_id=row["alert_id"],
        user_id=row["user_id"],
        resource_id=row["resource_id"],
        alert_type=row["alert_type"],
        severity=row["severity"],
        message=row["message"],
        threshold_value=row["threshold_value"],
        actual_value=row["actual_value"],
        resolved=row["resolved"],
        resolved_at=row["resolved_at"],
        notification_sent=row["notification_sent"],
        created_at=row["created_at"],
    )

"""Contracts for the collaborators that own resources, usage and users.

The engine never writes these tables. ``MetricSource`` supplies the
numbers the triggers look at; ``ResourceDirectory`` resolves owners,
display names and recipients explicitly instead of traversing ORM
relations. PostgreSQL read-through implementations are provided for the
CRUD subsystem's ``api_services``, ``usage_logs`` and ``users`` tables.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, timedelta

from src.alerts.schemas import DailyUsage
from src.storage.database import Database


@dataclass(frozen=True)
class CostBaseline:
    """Observed cost for a day and the cost it was expected to be."""

    actual_cost: float
    expected_cost: float


class MetricSource(ABC):
    """Point-in-time utilization and daily usage for a monitored resource."""

    @abstractmethod
    async def get_utilization_percent(self, resource_id: str) -> float:
        """Current budget utilization in percent, uncapped."""

    @abstractmethod
    async def get_daily_usage(self, resource_id: str, day: date) -> DailyUsage | None:
        """Request counts for ``day``, or None if nothing was logged."""

    async def get_cost_baseline(self, resource_id: str, day: date) -> CostBaseline | None:
        """Actual vs expected cost for ``day``; None disables the anomaly check."""
        return None


class ResourceDirectory(ABC):
    """Lookups into the user and resource records owned elsewhere."""

    @abstractmethod
    async def list_users(self) -> list[str]:
        """All user ids, for sweeps that are not scoped to one user."""

    @abstractmethod
    async def get_owner_user(self, resource_id: str) -> str | None:
        """Owner of a resource, or None if the resource does not exist."""

    @abstractmethod
    async def get_resource_name(self, resource_id: str) -> str | None:
        """Display name of a resource."""

    @abstractmethod
    async def get_user_email(self, user_id: str) -> str | None:
        """Notification address of a user."""


class PostgresMetricSource(MetricSource):
    """Reads utilization and usage from ``api_services`` / ``usage_logs``.

    The cost baseline is the trailing average daily cost over
    ``baseline_days`` before the day being checked; it needs at least
    ``min_baseline_days`` logged days to be meaningful.
    """

    def __init__(
        self,
        database: Database,
        baseline_days: int = 7,
        min_baseline_days: int = 3,
    ) -> None:
        self._db = database
        self._baseline_days = baseline_days
        self._min_baseline_days = min_baseline_days

    async def get_utilization_percent(self, resource_id: str) -> float:
        row = await self._db.fetchrow(
            "SELECT budget, usage_count, cost_per_unit FROM api_services WHERE id::text = $1",
            resource_id,
        )
        if row is None or not row["budget"]:
            return 0.0
        total_cost = float(row["usage_count"]) * float(row["cost_per_unit"])
        return total_cost / float(row["budget"]) * 100.0

    async def get_daily_usage(self, resource_id: str, day: date) -> DailyUsage | None:
        row = await self._db.fetchrow(
            """
            SELECT requests_made, success_count, error_count
            FROM usage_logs
            WHERE api_service_id::text = $1 AND log_date = $2
            """,
            resource_id,
            day,
        )
        if row is None:
            return None
        return DailyUsage(
            requests=row["requests_made"],
            success_count=row["success_count"],
            error_count=row["error_count"],
        )

    async def get_cost_baseline(self, resource_id: str, day: date) -> CostBaseline | None:
        rows = await self._db.fetch(
            """
            SELECT u.log_date, u.requests_made * s.cost_per_unit AS cost
            FROM usage_logs u
            JOIN api_services s ON s.id = u.api_service_id
            WHERE u.api_service_id::text = $1 AND u.log_date BETWEEN $2 AND $3
            """,
            resource_id,
            day - timedelta(days=self._baseline_days),
            day,
        )
        costs = {r["log_date"]: float(r["cost"]) for r in rows}
        if day not in costs:
            return None

        history = [cost for d, cost in costs.items() if d != day]
        if len(history) < self._min_baseline_days:
            return None

        expected = sum(history) / len(history)
        if expected <= 0:
            return None
        return CostBaseline(actual_cost=costs[day], expected_cost=expected)


class PostgresResourceDirectory(ResourceDirectory):
    """Reads owners, names and emails from ``api_services`` / ``users``."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def list_users(self) -> list[str]:
        rows = await self._db.fetch("SELECT id FROM users ORDER BY id")
        return [str(r["id"]) for r in rows]

    async def get_owner_user(self, resource_id: str) -> str | None:
        owner = await self._db.fetchval(
            "SELECT user_id FROM api_services WHERE id::text = $1", resource_id,
        )
        return str(owner) if owner is not None else None

    async def get_resource_name(self, resource_id: str) -> str | None:
        return await self._db.fetchval(
            "SELECT name FROM api_services WHERE id::text = $1", resource_id,
        )

    async def get_user_email(self, user_id: str) -> str | None:
        return await self._db.fetchval(
            "SELECT email FROM users WHERE id::text = $1", user_id,
        )

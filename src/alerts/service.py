"""Alert service orchestrating evaluation, dedup, persistence and management.

The async component with side effects: it reads metrics through the
``MetricSource``, consults the Deduplicator, and writes through the
threshold and alert repositories. Trigger logic is delegated to stateless
functions in ``triggers.py`` and summary logic to ``activity.py``.
"""

import dataclasses
from datetime import datetime, timedelta, timezone

import structlog

from src.alerts.activity import (
    analyze_trend,
    daily_trend_from_counts,
    generate_action_items,
    generate_insights,
    present_alert,
)
from src.alerts.config import AlertConfig
from src.alerts.deduplicator import Deduplicator
from src.alerts.exceptions import AlreadyResolvedError, NotFoundError
from src.alerts.locks import InProcessResourceLocks, ResourceLocks
from src.alerts.repository import AlertRepository
from src.alerts.resolver import Resolver
from src.alerts.schemas import (
    Alert,
    AlertActivity,
    ResourceMetrics,
    Threshold,
    ThresholdSettings,
    ThresholdView,
)
from src.alerts.sources import MetricSource, ResourceDirectory
from src.alerts.thresholds import ThresholdRepository
from src.alerts.triggers import classify_budget, evaluate
from src.observability.metrics import get_metrics

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AlertService:
    """Orchestrator for alert generation and the user-facing operations.

    Every write that touches a resource's alerts runs under that
    resource's advisory lock, so the scheduler and on-demand checks can
    share one instance (or one Redis) without double-creating alerts.
    """

    def __init__(
        self,
        config: AlertConfig,
        threshold_repo: ThresholdRepository,
        alert_repo: AlertRepository,
        metric_source: MetricSource,
        directory: ResourceDirectory,
        locks: ResourceLocks | None = None,
    ) -> None:
        self._config = config
        self._threshold_repo = threshold_repo
        self._alert_repo = alert_repo
        self._metric_source = metric_source
        self._directory = directory
        self._locks = locks or InProcessResourceLocks()
        self._deduplicator = Deduplicator(config, alert_repo)
        self._resolver = Resolver(config, alert_repo)

    @property
    def config(self) -> AlertConfig:
        return self._config

    # ── Creation pipeline ─────────────────────────────────

    async def gather_metrics(self, threshold: Threshold, now: datetime) -> ResourceMetrics:
        """Assemble the evaluation snapshot for a resource.

        Day counts are yesterday and the day before, relative to ``now``'s
        UTC calendar date. The cost baseline is checked for yesterday.
        """
        today = now.astimezone(timezone.utc).date()
        yesterday = today - timedelta(days=1)
        day_before = today - timedelta(days=2)

        resource_id = threshold.resource_id
        utilization = await self._metric_source.get_utilization_percent(resource_id)
        usage_yesterday = await self._metric_source.get_daily_usage(resource_id, yesterday)
        usage_day_before = await self._metric_source.get_daily_usage(resource_id, day_before)
        baseline = await self._metric_source.get_cost_baseline(resource_id, yesterday)

        return ResourceMetrics.from_usage(
            utilization,
            usage_yesterday,
            usage_day_before,
            actual_cost=baseline.actual_cost if baseline else None,
            expected_cost=baseline.expected_cost if baseline else None,
        )

    async def evaluate_threshold(self, threshold: Threshold, now: datetime) -> list[Alert]:
        """Evaluate one resource, drop duplicates and persist survivors.

        Runs under the resource lock; if another worker holds it the
        resource is skipped and an empty list is returned. A persistence
        failure for one candidate is logged and the others still proceed.

        Args:
            threshold: Enabled threshold of the resource.
            now: Evaluation time, stamped on every persisted alert.

        Returns:
            Alerts persisted by this call.
        """
        if not threshold.enabled:
            return []

        async with self._locks.hold(threshold.resource_id) as acquired:
            if not acquired:
                logger.info("Resource locked, skipping", resource_id=threshold.resource_id)
                return []

            metrics = await self.gather_metrics(threshold, now)
            candidates = evaluate(threshold, metrics, self._config)

            persisted: list[Alert] = []
            for candidate in candidates:
                if await self._deduplicator.should_suppress(
                    candidate.resource_id, candidate.alert_type, now,
                ):
                    continue

                alert = dataclasses.replace(candidate, created_at=now)
                try:
                    persisted.append(await self._alert_repo.create(alert))
                except Exception as e:
                    logger.error(
                        "Failed to persist alert",
                        resource_id=threshold.resource_id,
                        alert_type=alert.alert_type.value,
                        error=str(e),
                        exc_info=True,
                    )
                    continue
                get_metrics().record_alert_created(alert.alert_type.value, alert.severity.value)

        if candidates:
            logger.info(
                "Resource evaluated",
                resource_id=threshold.resource_id,
                candidates=len(candidates),
                persisted=len(persisted),
            )
        return persisted

    async def evaluate_user(
        self,
        user_id: str,
        now: datetime,
        cadence: str = "on_demand",
    ) -> list[Alert]:
        """Evaluate every enabled threshold of a user.

        A failure on one resource is logged and counted; the remaining
        resources are still evaluated.
        """
        created: list[Alert] = []
        for threshold in await self._threshold_repo.list_enabled(user_id):
            try:
                created.extend(await self.evaluate_threshold(threshold, now))
            except Exception as e:
                logger.error(
                    "Resource evaluation failed",
                    user_id=user_id,
                    resource_id=threshold.resource_id,
                    error=str(e),
                    exc_info=True,
                )
                get_metrics().record_evaluation_error(cadence, type(e).__name__)
        return created

    async def cleanup_resource(self, resource_id: str, now: datetime) -> list[Alert]:
        """Auto-resolve a resource's stale alerts under its lock."""
        async with self._locks.hold(resource_id) as acquired:
            if not acquired:
                logger.info("Resource locked, skipping cleanup", resource_id=resource_id)
                return []
            return await self._resolver.auto_resolve_stale(resource_id, now)

    # ── Management operations ─────────────────────────────

    async def upsert_threshold(
        self,
        resource_id: str,
        user_id: str,
        settings: ThresholdSettings,
        now: datetime | None = None,
    ) -> Threshold:
        """Create or replace the threshold of a resource owned by ``user_id``.

        Raises:
            NotFoundError: If the resource does not exist or belongs to
                someone else.
            ThresholdValidationError: If the settings are inconsistent.
        """
        now = now or _utcnow()
        owner = await self._directory.get_owner_user(resource_id)
        if owner is None or owner != user_id:
            raise NotFoundError("Resource", resource_id)

        existing = await self._threshold_repo.get_by_resource(resource_id)
        if existing is not None:
            threshold = existing.apply(settings, now)
        else:
            threshold = Threshold(
                resource_id=resource_id,
                user_id=user_id,
                warning_percent=settings.warning_percent,
                critical_percent=settings.critical_percent,
                spike_percent=settings.spike_percent,
                error_fraction=settings.error_fraction,
                enabled=settings.enabled,
                created_at=now,
                updated_at=now,
            )

        saved = await self._threshold_repo.upsert(threshold)
        logger.info(
            "Threshold saved",
            threshold_id=saved.threshold_id,
            resource_id=resource_id,
            created=existing is None,
        )
        return saved

    async def list_thresholds(
        self,
        user_id: str,
        now: datetime | None = None,
    ) -> list[ThresholdView]:
        """A user's thresholds with live utilization and budget status."""
        now = now or _utcnow()
        recent_since = now - timedelta(hours=self._config.recent_alert_hours)

        views: list[ThresholdView] = []
        for threshold in await self._threshold_repo.list_for_user(user_id):
            utilization = await self._metric_source.get_utilization_percent(
                threshold.resource_id,
            )
            name = await self._directory.get_resource_name(threshold.resource_id)
            views.append(
                ThresholdView(
                    threshold=threshold,
                    resource_name=name or threshold.resource_id,
                    current_utilization=round(utilization, 2),
                    current_status=classify_budget(threshold, utilization),
                    has_recent_alerts=await self._alert_repo.has_recent_for_resource(
                        threshold.resource_id, recent_since,
                    ),
                )
            )
        return views

    async def delete_threshold(self, threshold_id: str, user_id: str) -> None:
        """Delete a threshold. Raises NotFoundError if absent or not owned."""
        if not await self._threshold_repo.delete(threshold_id, user_id):
            raise NotFoundError("Threshold", threshold_id)
        logger.info("Threshold deleted", threshold_id=threshold_id, user_id=user_id)

    async def forget_resource(self, resource_id: str) -> bool:
        """Drop the threshold of a resource the CRUD side has deleted.

        Existing alerts stay in the store; they age out through cleanup.
        Returns False when the resource had no threshold.
        """
        deleted = await self._threshold_repo.delete_for_resource(resource_id)
        if deleted:
            logger.info("Threshold removed with resource", resource_id=resource_id)
        return deleted

    async def resolve_alert(
        self,
        alert_id: str,
        user_id: str,
        now: datetime | None = None,
    ) -> Alert:
        """Manually resolve one of the user's alerts.

        Raises:
            NotFoundError: If the alert does not exist or is not the user's.
            AlreadyResolvedError: If it was resolved before this call.
        """
        now = now or _utcnow()
        alert = await self._alert_repo.get_by_id(alert_id)
        if alert is None or alert.user_id != user_id:
            raise NotFoundError("Alert", alert_id)

        if alert.resolved or not await self._alert_repo.resolve(alert_id, now):
            raise AlreadyResolvedError(f"Alert {alert_id} is already resolved")
        if not alert.resolved:
            alert.resolve(now)

        logger.info("Alert resolved", alert_id=alert_id, user_id=user_id)
        return alert

    async def get_alert_activity(
        self,
        user_id: str,
        now: datetime | None = None,
        window_days: int | None = None,
    ) -> AlertActivity:
        """Recent alerts for a user with counts, daily trend and advice."""
        now = now or _utcnow()
        since = now - timedelta(days=window_days or self._config.activity_window_days)

        recent = await self._alert_repo.list_recent(
            user_id, since=since, limit=self._config.activity_recent_limit,
        )
        unresolved_by_severity = await self._alert_repo.count_unresolved_by_severity(user_id)
        alerts_by_type = await self._alert_repo.count_by_type(user_id, since)
        daily_trend = daily_trend_from_counts(
            await self._alert_repo.daily_counts(user_id, since),
        )

        names: dict[str, str | None] = {}
        for resource_id in {a.resource_id for a in recent if a.resource_id is not None}:
            names[resource_id] = await self._directory.get_resource_name(resource_id)

        return AlertActivity(
            recent_alerts=recent,
            total_unresolved=sum(unresolved_by_severity.values()),
            unresolved_by_severity=unresolved_by_severity,
            alerts_by_type=alerts_by_type,
            daily_trend=daily_trend,
            overall_trend=analyze_trend(daily_trend),
            insights=generate_insights(recent, alerts_by_type),
            action_items=generate_action_items(unresolved_by_severity, alerts_by_type),
            recent_alert_details=[
                present_alert(a, names.get(a.resource_id), now)
                for a in recent
            ],
        )

    async def trigger_evaluation_now(
        self,
        user_id: str,
        now: datetime | None = None,
    ) -> list[Alert]:
        """Run the creation pipeline for one user immediately."""
        now = now or _utcnow()
        logger.info("On-demand evaluation", user_id=user_id)
        return await self.evaluate_user(user_id, now, cadence="on_demand")

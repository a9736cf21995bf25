"""
Sweep driver - runs evaluation, cleanup and notification on cadences.

Each cadence is an independent sweep:
1. evaluation: every user's enabled thresholds through the creation
   pipeline, on a bounded pool with one resource per unit of work
2. cleanup: auto-resolve stale alerts, one resource per unit of work
3. notification: drain the queue of unsent alerts

A sweep triggered while the same cadence is still running is skipped.
Per-resource failures are logged and counted; sweep entry points never
raise. Run state lives in an injected ``SchedulerState`` rather than a
module global.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import structlog

from src.alerts.config import AlertConfig
from src.alerts.dispatcher import NotificationDispatcher
from src.alerts.repository import AlertRepository
from src.alerts.schemas import Threshold
from src.alerts.service import AlertService
from src.alerts.sources import ResourceDirectory
from src.alerts.thresholds import ThresholdRepository
from src.observability.logging import sweep_context
from src.observability.metrics import get_metrics

logger = structlog.get_logger(__name__)

EVALUATION = "evaluation"
CLEANUP = "cleanup"
NOTIFICATION = "notification"
CADENCES = (EVALUATION, CLEANUP, NOTIFICATION)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CadenceState:
    """Run bookkeeping for one cadence."""

    running: bool = False
    last_started_at: datetime | None = None
    last_finished_at: datetime | None = None
    runs: int = 0
    skipped: int = 0


@dataclass
class SchedulerState:
    """Run bookkeeping for every cadence, shared by whoever triggers sweeps."""

    cadences: dict[str, CadenceState] = field(
        default_factory=lambda: {name: CadenceState() for name in CADENCES}
    )

    def __getitem__(self, cadence: str) -> CadenceState:
        return self.cadences[cadence]


@dataclass
class SweepReport:
    """What one sweep did."""

    cadence: str
    started_at: datetime
    finished_at: datetime | None = None
    skipped: bool = False
    resources: int = 0
    alerts: int = 0
    errors: int = 0

    def to_dict(self) -> dict:
        return {
            "cadence": self.cadence,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "skipped": self.skipped,
            "resources": self.resources,
            "alerts": self.alerts,
            "errors": self.errors,
        }


class AlertScheduler:
    """
    Drives the three sweeps on their cadences.

    Usage:
        scheduler = AlertScheduler(service, dispatcher, threshold_repo,
                                   alert_repo, directory)
        await scheduler.run_forever()  # Runs until stop()
    """

    def __init__(
        self,
        service: AlertService,
        dispatcher: NotificationDispatcher,
        threshold_repo: ThresholdRepository,
        alert_repo: AlertRepository,
        directory: ResourceDirectory,
        config: AlertConfig | None = None,
        state: SchedulerState | None = None,
    ) -> None:
        self._service = service
        self._dispatcher = dispatcher
        self._threshold_repo = threshold_repo
        self._alert_repo = alert_repo
        self._directory = directory
        self._config = config or service.config
        self._state = state or SchedulerState()
        self._running = False
        self._tasks: set[asyncio.Task] = set()

    @property
    def state(self) -> SchedulerState:
        return self._state

    def interval(self, cadence: str) -> timedelta:
        seconds = {
            EVALUATION: self._config.evaluation_interval_seconds,
            CLEANUP: self._config.cleanup_interval_seconds,
            NOTIFICATION: self._config.notification_interval_seconds,
        }[cadence]
        return timedelta(seconds=seconds)

    # ── Sweep wrapper ─────────────────────────────────────

    async def _run_sweep(
        self,
        cadence: str,
        now: datetime,
        body: Callable[[SweepReport], Awaitable[None]],
    ) -> SweepReport:
        """Guard against overlap, time the sweep and swallow its failures."""
        cadence_state = self._state[cadence]
        report = SweepReport(cadence=cadence, started_at=now)
        metrics = get_metrics()

        if cadence_state.running:
            cadence_state.skipped += 1
            metrics.record_sweep_skipped(cadence)
            logger.warning("Sweep already running, skipping", cadence=cadence)
            report.skipped = True
            return report

        cadence_state.running = True
        cadence_state.last_started_at = now
        start = time.monotonic()
        try:
            with sweep_context(cadence=cadence):
                await body(report)
        except Exception as e:
            report.errors += 1
            metrics.record_evaluation_error(cadence, type(e).__name__)
            logger.error("Sweep failed", cadence=cadence, error=str(e), exc_info=True)
        finally:
            duration = time.monotonic() - start
            report.finished_at = now + timedelta(seconds=duration)
            cadence_state.running = False
            cadence_state.last_finished_at = report.finished_at
            cadence_state.runs += 1
            metrics.observe_sweep(cadence, duration, report.resources)

        logger.info(
            "Sweep finished",
            cadence=cadence,
            resources=report.resources,
            alerts=report.alerts,
            errors=report.errors,
            duration_seconds=round(duration, 3),
        )
        return report

    async def _bounded(
        self,
        items: list,
        work: Callable[[object], Awaitable[int]],
        cadence: str,
        report: SweepReport,
    ) -> None:
        """Run ``work`` per item on a pool of ``max_concurrency`` slots."""
        semaphore = asyncio.Semaphore(self._config.max_concurrency)
        metrics = get_metrics()

        async def run_one(item) -> None:
            async with semaphore:
                try:
                    report.alerts += await work(item)
                except Exception as e:
                    report.errors += 1
                    metrics.record_evaluation_error(cadence, type(e).__name__)
                    logger.error(
                        "Unit of work failed",
                        resource_id=getattr(item, "resource_id", item),
                        error=str(e),
                        exc_info=True,
                    )

        report.resources = len(items)
        await asyncio.gather(*(run_one(item) for item in items))

    # ── Sweeps ────────────────────────────────────────────

    async def run_evaluation_sweep(self, now: datetime | None = None) -> SweepReport:
        """Evaluate every enabled threshold of every user."""
        now = now or _utcnow()

        async def body(report: SweepReport) -> None:
            thresholds: list[Threshold] = []
            for user_id in await self._directory.list_users():
                try:
                    thresholds.extend(await self._threshold_repo.list_enabled(user_id))
                except Exception as e:
                    report.errors += 1
                    get_metrics().record_evaluation_error(EVALUATION, type(e).__name__)
                    logger.error(
                        "Failed to list thresholds", user_id=user_id, error=str(e),
                    )

            async def evaluate_one(threshold: Threshold) -> int:
                return len(await self._service.evaluate_threshold(threshold, now))

            await self._bounded(thresholds, evaluate_one, EVALUATION, report)

        return await self._run_sweep(EVALUATION, now, body)

    async def run_cleanup_sweep(self, now: datetime | None = None) -> SweepReport:
        """Auto-resolve stale alerts resource by resource."""
        now = now or _utcnow()

        async def body(report: SweepReport) -> None:
            cutoff = now - self._config.stale_alert_age
            resource_ids = await self._alert_repo.list_stale_resources(cutoff)

            async def cleanup_one(resource_id: str) -> int:
                return len(await self._service.cleanup_resource(resource_id, now))

            await self._bounded(resource_ids, cleanup_one, CLEANUP, report)

        return await self._run_sweep(CLEANUP, now, body)

    async def run_notification_sweep(self, now: datetime | None = None) -> SweepReport:
        """Drain the notification queue once."""
        now = now or _utcnow()

        async def body(report: SweepReport) -> None:
            result = await self._dispatcher.drain_queue(now)
            report.resources = result.selected
            report.alerts = result.sent
            report.errors = result.failed

        return await self._run_sweep(NOTIFICATION, now, body)

    def _sweep_for(self, cadence: str) -> Callable[[datetime], Awaitable[SweepReport]]:
        return {
            EVALUATION: self.run_evaluation_sweep,
            CLEANUP: self.run_cleanup_sweep,
            NOTIFICATION: self.run_notification_sweep,
        }[cadence]

    # ── Cadence loop ──────────────────────────────────────

    def due_cadences(self, now: datetime) -> list[str]:
        """Cadences whose interval has elapsed since they last started."""
        due: list[str] = []
        for cadence in CADENCES:
            cadence_state = self._state[cadence]
            if cadence_state.running:
                continue
            last = cadence_state.last_started_at
            if last is None or now - last >= self.interval(cadence):
                due.append(cadence)
        return due

    async def tick(self, now: datetime | None = None) -> list[SweepReport]:
        """Run every due cadence concurrently and wait for them."""
        now = now or _utcnow()
        due = self.due_cadences(now)
        if not due:
            return []
        return list(await asyncio.gather(*(self._sweep_for(c)(now) for c in due)))

    async def run_forever(self) -> None:
        """
        Poll for due cadences until stop() is called.

        Each due sweep runs as its own task so a long evaluation does not
        delay the notification drain.
        """
        self._running = True
        logger.info(
            "Alert scheduler started",
            poll_seconds=self._config.scheduler_poll_seconds,
        )
        try:
            while self._running:
                now = _utcnow()
                for cadence in self.due_cadences(now):
                    task = asyncio.create_task(self._sweep_for(cadence)(now))
                    self._tasks.add(task)
                    task.add_done_callback(self._tasks.discard)
                await asyncio.sleep(self._config.scheduler_poll_seconds)
        except asyncio.CancelledError:
            logger.info("Alert scheduler cancelled")
        finally:
            if self._tasks:
                await asyncio.gather(*self._tasks, return_exceptions=True)
            logger.info("Alert scheduler stopped")

    async def stop(self) -> None:
        """Stop the loop after the current poll; running sweeps finish."""
        logger.info("Stopping alert scheduler")
        self._running = False

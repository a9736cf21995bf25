"""Alert evaluation and notification engine for API spend monitoring.

Components:
- Threshold / Alert: Dataclasses mapping to the alert_thresholds and alerts tables
- AlertType / Severity / BudgetStatus: Closed enums
- AlertConfig: Pydantic settings for dedup windows, cut-offs and cadences
- ThresholdRepository / AlertRepository: asyncpg persistence
- MetricSource / ResourceDirectory: Contracts for data owned elsewhere
- Deduplicator / Resolver: Suppression and stale-alert cleanup
- AlertService: Creation pipeline and management operations
- EmailSender / LoggingEmailSender / HttpEmailSender: Delivery transports
- CircuitBreaker: Resilience wrapper for senders
- NotificationConfig / NotificationDispatcher: Queue draining
- AlertScheduler / SchedulerState: Cadence-driven sweeps
"""

from src.alerts.channels import (
    CircuitBreaker,
    EmailSender,
    HttpEmailSender,
    LoggingEmailSender,
)
from src.alerts.config import AlertConfig
from src.alerts.deduplicator import Deduplicator
from src.alerts.dispatcher import DrainResult, NotificationConfig, NotificationDispatcher
from src.alerts.exceptions import (
    AlertError,
    AlreadyResolvedError,
    NotFoundError,
    NotificationError,
    ThresholdValidationError,
)
from src.alerts.repository import AlertRepository
from src.alerts.resolver import Resolver
from src.alerts.scheduler import AlertScheduler, CadenceState, SchedulerState, SweepReport
from src.alerts.schemas import (
    Alert,
    AlertActivity,
    AlertType,
    BudgetStatus,
    ResourceMetrics,
    Severity,
    Threshold,
    ThresholdSettings,
    ThresholdView,
)
from src.alerts.service import AlertService
from src.alerts.sources import MetricSource, ResourceDirectory
from src.alerts.thresholds import ThresholdRepository

__all__ = [
    "Alert",
    "AlertActivity",
    "AlertConfig",
    "AlertError",
    "AlertRepository",
    "AlertScheduler",
    "AlertService",
    "AlertType",
    "AlreadyResolvedError",
    "BudgetStatus",
    "CadenceState",
    "CircuitBreaker",
    "Deduplicator",
    "DrainResult",
    "EmailSender",
    "HttpEmailSender",
    "LoggingEmailSender",
    "MetricSource",
    "NotFoundError",
    "NotificationConfig",
    "NotificationDispatcher",
    "NotificationError",
    "Resolver",
    "ResourceDirectory",
    "ResourceMetrics",
    "SchedulerState",
    "Severity",
    "SweepReport",
    "Threshold",
    "ThresholdRepository",
    "ThresholdSettings",
    "ThresholdValidationError",
    "ThresholdView",
]

"""Alert engine configuration.

Controls deduplication windows, severity cut-offs, stale-alert cleanup,
sweep cadences and worker-pool size. All settings can be overridden via
``ALERTS_*`` environment variables.
"""

from datetime import timedelta

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.alerts.schemas import AlertType


class AlertConfig(BaseSettings):
    """Configuration for alert evaluation and scheduling."""

    model_config = SettingsConfigDict(
        env_prefix="ALERTS_",
        case_sensitive=False,
        extra="ignore",
    )

    # Deduplication: suppress repeat (resource_id, alert_type) pairs
    dedup_budget_hours: int = Field(
        default=24,
        ge=1,
        le=168,
        description="Window for BUDGET_WARNING / BUDGET_CRITICAL repeats",
    )
    dedup_spike_hours: int = Field(
        default=6,
        ge=1,
        le=168,
        description="Window for USAGE_SPIKE repeats",
    )
    dedup_error_rate_hours: int = Field(
        default=12,
        ge=1,
        le=168,
        description="Window for HIGH_ERROR_RATE repeats",
    )
    dedup_cost_anomaly_hours: int = Field(
        default=24,
        ge=1,
        le=168,
        description="Window for COST_ANOMALY repeats",
    )
    dedup_service_down_hours: int = Field(
        default=24,
        ge=1,
        le=168,
        description="Window for SERVICE_DOWN repeats",
    )

    # Stale cleanup
    stale_alert_days: int = Field(
        default=7,
        ge=1,
        description="Unresolved alerts older than this are auto-resolved",
    )

    # Severity cut-offs
    spike_high_percent: float = Field(
        default=100.0,
        ge=0.0,
        description="abs(spike) above which a usage spike is HIGH instead of MEDIUM",
    )
    error_rate_high: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Error fraction above which HIGH_ERROR_RATE is HIGH",
    )
    error_rate_critical: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Error fraction above which HIGH_ERROR_RATE is CRITICAL",
    )
    cost_anomaly_percent: float = Field(
        default=50.0,
        ge=0.0,
        description="Minimum abs deviation from expected cost that fires",
    )
    cost_anomaly_high_percent: float = Field(
        default=100.0,
        ge=0.0,
        description="abs deviation above which COST_ANOMALY is HIGH",
    )

    # Sweep cadences (seconds)
    evaluation_interval_seconds: int = Field(default=3600, ge=1)
    cleanup_interval_seconds: int = Field(default=86400, ge=1)
    notification_interval_seconds: int = Field(default=900, ge=1)
    scheduler_poll_seconds: float = Field(
        default=5.0,
        gt=0.0,
        description="How often the scheduler loop checks for due cadences",
    )

    # Concurrency
    max_concurrency: int = Field(
        default=8,
        ge=1,
        le=256,
        description="Resources evaluated in parallel within one sweep",
    )
    resource_lock_ttl_seconds: int = Field(
        default=120,
        ge=1,
        description="Expiry of the per-resource advisory lock",
    )

    # Activity summaries
    activity_window_days: int = Field(default=30, ge=1, le=365)
    activity_recent_limit: int = Field(default=50, ge=1, le=500)
    recent_alert_hours: int = Field(
        default=24,
        ge=1,
        description="Lookback for a threshold's has_recent_alerts flag",
    )

    def dedup_window(self, alert_type: AlertType) -> timedelta:
        """Deduplication window for an alert type."""
        hours = {
            AlertType.BUDGET_WARNING: self.dedup_budget_hours,
            AlertType.BUDGET_CRITICAL: self.dedup_budget_hours,
            AlertType.USAGE_SPIKE: self.dedup_spike_hours,
            AlertType.HIGH_ERROR_RATE: self.dedup_error_rate_hours,
            AlertType.COST_ANOMALY: self.dedup_cost_anomaly_hours,
            AlertType.SERVICE_DOWN: self.dedup_service_down_hours,
        }[alert_type]
        return timedelta(hours=hours)

    @property
    def stale_alert_age(self) -> timedelta:
        return timedelta(days=self.stale_alert_days)

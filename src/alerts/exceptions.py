"""Errors surfaced to interactive callers of the alert engine.

Scheduled sweeps never raise these; they are caught per unit of work
and logged. Only configuration-time and management operations let them
propagate.
"""


class AlertError(Exception):
    """Base exception for the alert engine."""


class ThresholdValidationError(AlertError, ValueError):
    """Threshold values are internally inconsistent."""


class NotFoundError(AlertError):
    """Alert or threshold does not exist or is not owned by the caller."""

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class AlreadyResolvedError(AlertError):
    """Resolving an alert that is already resolved."""


class NotificationError(AlertError):
    """A notification could not be delivered to an interactive caller."""

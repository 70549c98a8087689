"""Persisted models for the integration engine."""

from .integration import Integration, IntegrationType, Webhook
from .activity import ActivityLogEntry, ActivitySource, ActivityStatus

__all__ = [
    "Integration",
    "IntegrationType",
    "Webhook",
    "ActivityLogEntry",
    "ActivitySource",
    "ActivityStatus",
]

"""Observability: event callbacks, structured logging and metrics."""

from .callbacks import (
    CallbackManager,
    ErrorEvent,
    ResponseEvent,
    StatusEvent,
    create_logging_callbacks,
)
from .logging import StructuredLogger
from .metrics import MetricsTracker, ParticipantMetrics

__all__ = [
    "CallbackManager",
    "ErrorEvent",
    "MetricsTracker",
    "ParticipantMetrics",
    "ResponseEvent",
    "StatusEvent",
    "StructuredLogger",
    "create_logging_callbacks",
]

"""Observability module for metrics and logging."""

from decision_engine.observability.context import get_current_request_id, request_context
from decision_engine.observability.logging import (
    RequestContextFilter,
    StructuredLogFormatter,
    configure_logging,
)
from decision_engine.observability.metrics import MetricsRegistry
from decision_engine.observability.setup import build_metrics_registry, setup_observability

__all__ = [
    # Metrics
    "MetricsRegistry",
    "build_metrics_registry",
    # Logging
    "RequestContextFilter",
    "StructuredLogFormatter",
    "configure_logging",
    # Context
    "get_current_request_id",
    "request_context",
    # Setup
    "setup_observability",
]

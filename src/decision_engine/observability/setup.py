"""Settings-driven observability setup."""

import logging

from decision_engine.config import Settings, get_settings
from decision_engine.observability.logging import configure_logging
from decision_engine.observability.metrics import MetricsRegistry

logger = logging.getLogger(__name__)


def build_metrics_registry(settings: Settings | None = None) -> MetricsRegistry:
    """Metrics registry named after the service, disabled when metrics are off."""
    settings = settings or get_settings()
    return MetricsRegistry(meter_name=settings.service_name, enabled=settings.enable_metrics)


def setup_observability(
    settings: Settings | None = None,
    module_levels: dict[str, str] | None = None,
) -> MetricsRegistry:
    """
    Initialize logging and metrics from settings.

    Hosts call this once at startup, before building a DecisionEngine.

    Args:
        settings: Configuration settings. Uses defaults if not provided.
        module_levels: Per-module log levels passed to configure_logging.

    Returns:
        The metrics registry to hand to the engine.
    """
    settings = settings or get_settings()

    configure_logging(
        level=settings.log_level,
        json_format=settings.log_json,
        module_levels=module_levels,
    )

    registry = build_metrics_registry(settings)
    logger.info(
        f"Observability ready for {settings.service_name} "
        f"(metrics={'on' if settings.enable_metrics else 'off'})"
    )
    return registry

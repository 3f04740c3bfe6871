"""OpenTelemetry metrics definitions and recording."""

import logging
from typing import Any

from opentelemetry import metrics

logger = logging.getLogger(__name__)


class MetricsRegistry:
    """
    Registry for OpenTelemetry metrics.

    Provides pre-defined metrics for the decision engine:
    - Consensus metrics (count, confidence, agreement level, algorithm)
    - Decomposition metrics (subtasks planned, excluded, levels, duration)

    Without an SDK meter provider installed, the API hands out no-op
    instruments and every record call is free.
    """

    def __init__(self, meter_name: str = "decision_engine", enabled: bool = True) -> None:
        """
        Initialize the metrics registry.

        Args:
            meter_name: Name for the meter.
            enabled: When False, no instruments are created and nothing is recorded.
        """
        self.meter_name = meter_name
        self.enabled = enabled
        self._instruments: dict[str, Any] = {}
        self._meter = metrics.get_meter(meter_name) if enabled else None
        self._create_instruments()
        logger.debug(f"Metrics registry '{meter_name}' ready ({len(self._instruments)} instruments)")

    def _create_instruments(self) -> None:
        """Create all metric instruments."""
        if not self._meter:
            return

        # Consensus metrics
        self._instruments["consensus_total"] = self._meter.create_counter(
            name="consensus_decisions_total",
            description="Total number of consensus decisions",
            unit="1",
        )

        self._instruments["consensus_confidence"] = self._meter.create_histogram(
            name="consensus_confidence_score",
            description="Confidence of consensus decisions",
            unit="1",
        )

        self._instruments["consensus_votes"] = self._meter.create_histogram(
            name="consensus_participating_votes",
            description="Valid votes per consensus decision",
            unit="1",
        )

        # Decomposition metrics
        self._instruments["decomposition_total"] = self._meter.create_counter(
            name="decompositions_total",
            description="Total number of subtask decompositions",
            unit="1",
        )

        self._instruments["subtasks_planned"] = self._meter.create_counter(
            name="subtasks_planned_total",
            description="Subtasks placed on an execution plan",
            unit="1",
        )

        self._instruments["subtasks_excluded"] = self._meter.create_counter(
            name="subtasks_excluded_total",
            description="Subtasks excluded for unresolvable dependencies",
            unit="1",
        )

        self._instruments["plan_levels"] = self._meter.create_histogram(
            name="execution_plan_levels",
            description="Number of dependency levels per plan",
            unit="1",
        )

        self._instruments["decomposition_duration"] = self._meter.create_histogram(
            name="decomposition_duration_seconds",
            description="Duration of subtask decomposition in seconds",
            unit="s",
        )

    def record_consensus(
        self,
        algorithm: str,
        agreement_level: str,
        confidence: float,
        participating_votes: int,
    ) -> None:
        """
        Record consensus decision metrics.

        Args:
            algorithm: Algorithm applied (or "failed").
            agreement_level: Agreement classification value.
            confidence: Consensus confidence.
            participating_votes: Number of valid votes counted.
        """
        labels = {"algorithm": algorithm, "agreement_level": agreement_level}

        if "consensus_total" in self._instruments:
            self._instruments["consensus_total"].add(1, labels)

        if "consensus_confidence" in self._instruments:
            self._instruments["consensus_confidence"].record(confidence, labels)

        if "consensus_votes" in self._instruments:
            self._instruments["consensus_votes"].record(participating_votes, labels)

    def record_decomposition(
        self,
        planned: int,
        excluded: int,
        levels: int,
        duration_seconds: float,
        status: str = "success",
    ) -> None:
        """
        Record decomposition metrics.

        Args:
            planned: Subtasks placed on the plan.
            excluded: Subtasks excluded from leveling.
            levels: Dependency levels in the plan.
            duration_seconds: Time taken to decompose.
            status: success or error.
        """
        labels = {"status": status}

        if "decomposition_total" in self._instruments:
            self._instruments["decomposition_total"].add(1, labels)

        if "subtasks_planned" in self._instruments:
            self._instruments["subtasks_planned"].add(planned, labels)

        if excluded and "subtasks_excluded" in self._instruments:
            self._instruments["subtasks_excluded"].add(excluded, labels)

        if "plan_levels" in self._instruments:
            self._instruments["plan_levels"].record(levels, labels)

        if "decomposition_duration" in self._instruments:
            self._instruments["decomposition_duration"].record(duration_seconds, labels)

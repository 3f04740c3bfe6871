"""Entry point that chains vote consensus and subtask planning."""

import logging
import time
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from decision_engine.config import Settings, get_settings
from decision_engine.models.plan import DecompositionResult, Subtask
from decision_engine.models.vote import ConsensusDecision, Vote
from decision_engine.observability.context import request_context
from decision_engine.observability.metrics import MetricsRegistry
from decision_engine.observability.setup import build_metrics_registry
from decision_engine.reasoners.collaborators import (
    DependencyDetector,
    StructuralValidator,
    TaskValidator,
)
from decision_engine.reasoners.consensus import VoteAggregator
from decision_engine.reasoners.planner import DecompositionPlanner

logger = logging.getLogger(__name__)


@dataclass
class DecisionOutcome:
    """Everything the orchestrator needs to act on one utterance."""

    request_id: str
    decision: ConsensusDecision
    decomposition: DecompositionResult | None = None
    reasoning_trace: list[str] = field(default_factory=list)
    processing_time_ms: float = 0.0

    @property
    def needs_clarification(self) -> bool:
        """No usable consensus; the orchestrator should ask the user again."""
        return self.decision.is_failed


class DecisionEngine:
    """
    Resolve one utterance's votes into a decision and, when the decision
    carries subtasks, an execution plan.

    Pipeline:
    1. Vote aggregation (consensus)
    2. Subtask decomposition (when consensus succeeded and subtasks exist)
    3. Metrics recording
    """

    def __init__(
        self,
        settings: Settings | None = None,
        aggregator: VoteAggregator | None = None,
        planner: DecompositionPlanner | None = None,
        dependency_detector: DependencyDetector | None = None,
        validator: TaskValidator | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        """
        Initialize the decision engine.

        Args:
            settings: Configuration settings. Uses defaults if not provided.
            aggregator: Pre-configured aggregator (for testing).
            planner: Pre-configured planner (for testing).
            dependency_detector: External dependency detector for the planner.
            validator: External validator. Defaults to StructuralValidator.
            metrics: Metrics registry. Built from settings if not provided.
        """
        self.settings = settings or get_settings()
        self.aggregator = aggregator or VoteAggregator(self.settings.consensus_config())
        self.planner = planner or DecompositionPlanner(
            self.settings.decomposition_config(),
            dependency_detector=dependency_detector,
            validator=validator or StructuralValidator(),
        )
        self.metrics = metrics or build_metrics_registry(self.settings)

    def resolve(
        self,
        votes: Sequence[Vote | None],
        subtasks: Sequence[Subtask | dict[str, Any]] | None = None,
        context: dict[str, Any] | None = None,
        request_text: str | None = None,
        round_id: str | None = None,
    ) -> DecisionOutcome:
        """
        Resolve an utterance from its votes.

        Args:
            votes: Per-voter opinions.
            subtasks: Proposed subtasks. Defaults to the decision's merged subtasks.
            context: Conversation context for dependency detection.
            request_text: Original utterance, for validation.
            round_id: Optional voting round id.

        Returns:
            DecisionOutcome with the decision and, if any, the decomposition.
        """
        start_time = time.perf_counter()
        request_id = round_id or f"req-{uuid.uuid4().hex[:12]}"
        reasoning_trace: list[str] = []

        with request_context(request_id):
            reasoning_trace.append("Step 1: Aggregating votes")
            decision = self.aggregator.aggregate(votes, round_id=round_id)
            self.metrics.record_consensus(
                algorithm=decision.method,
                agreement_level=decision.agreement_level.value,
                confidence=decision.confidence,
                participating_votes=decision.participating_votes,
            )
            reasoning_trace.append(
                f"  Decision: {decision.intent} ({decision.agreement_level.value}, "
                f"confidence={decision.confidence:.2f})"
            )

            if decision.is_failed:
                reasoning_trace.append("Step 2: Decomposition (skipped - consensus failed)")
                return self._outcome(request_id, decision, None, reasoning_trace, start_time)

            proposed = list(subtasks) if subtasks is not None else list(decision.subtasks)
            if not proposed:
                reasoning_trace.append("Step 2: Decomposition (skipped - no subtasks)")
                return self._outcome(request_id, decision, None, reasoning_trace, start_time)

            reasoning_trace.append(f"Step 2: Decomposing {len(proposed)} subtasks")
            stage_start = time.perf_counter()
            decomposition = self.planner.decompose(
                proposed, context=context, request_text=request_text
            )
            plan = decomposition.execution_plan
            self.metrics.record_decomposition(
                planned=len(plan.subtask_ids),
                excluded=len(plan.excluded_subtask_ids),
                levels=len(plan.steps),
                duration_seconds=time.perf_counter() - stage_start,
                status="error" if decomposition.failed else "success",
            )
            reasoning_trace.extend(f"  {line}" for line in decomposition.reasoning)

            return self._outcome(request_id, decision, decomposition, reasoning_trace, start_time)

    def _outcome(
        self,
        request_id: str,
        decision: ConsensusDecision,
        decomposition: DecompositionResult | None,
        reasoning_trace: list[str],
        start_time: float,
    ) -> DecisionOutcome:
        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.info(f"Resolved {request_id} in {elapsed_ms:.1f}ms: {decision.intent}")
        return DecisionOutcome(
            request_id=request_id,
            decision=decision,
            decomposition=decomposition,
            reasoning_trace=reasoning_trace,
            processing_time_ms=elapsed_ms,
        )

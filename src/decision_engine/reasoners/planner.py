"""Subtask decomposition planning: ids, priorities, levels and execution plans."""

import logging
import time
import uuid
from collections.abc import Sequence
from typing import Any

from decision_engine.config import DecompositionConfig, TruncationStrategy
from decision_engine.exceptions import InvalidBatchError
from decision_engine.models.plan import (
    DecompositionResult,
    DecompositionStatistics,
    DependencyLevels,
    ExecutionPlan,
    ExecutionStep,
    ExecutionType,
    Subtask,
    SubtaskPriority,
)
from decision_engine.reasoners.collaborators import DependencyDetector, TaskValidator
from decision_engine.reasoners.leveling import compute_dependency_levels

logger = logging.getLogger(__name__)


class DecompositionPlanner:
    """
    Turn proposed subtasks into a dependency-respecting execution plan.

    Pipeline (see decompose):
    1. Cap the batch size
    2. Assign missing subtask ids
    3. Detect dependencies (external detector, optional)
    4. Assign keyword priorities (optional)
    5. Validate the batch (external validator, optional)
    6. Level the dependency graph and build steps and parallel groups
    7. Compute confidence, duration and statistics

    All state is local to one call. Subtasks are never mutated in place;
    every stage returns copies.
    """

    HIGH_PRIORITY_KEYWORDS: tuple[str, ...] = ("emergency", "urgent", "alarm", "alert")
    MEDIUM_PRIORITY_KEYWORDS: tuple[str, ...] = ("query", "search", "get", "find")

    def __init__(
        self,
        config: DecompositionConfig | None = None,
        dependency_detector: DependencyDetector | None = None,
        validator: TaskValidator | None = None,
    ) -> None:
        """
        Initialize the planner.

        Args:
            config: Default configuration, overridable per call.
            dependency_detector: Collaborator that fills in dependency ids.
            validator: Collaborator that filters structurally invalid subtasks.
        """
        self.config = config or DecompositionConfig()
        self.dependency_detector = dependency_detector
        self.validator = validator

    def assign_ids(self, subtasks: Sequence[Subtask]) -> list[Subtask]:
        """Give every subtask without an id one built from its position. Existing ids are kept."""
        assigned: list[Subtask] = []
        for position, subtask in enumerate(subtasks, start=1):
            if subtask.subtask_id is None:
                subtask = subtask.model_copy(
                    update={"subtask_id": f"task_{position}_{uuid.uuid4().hex[:8]}"}
                )
            assigned.append(subtask)
        return assigned

    def determine_priority(self, action: str) -> SubtaskPriority:
        """Priority from keywords in the action name."""
        action = action.lower()
        if any(keyword in action for keyword in self.HIGH_PRIORITY_KEYWORDS):
            return SubtaskPriority.HIGH
        if any(keyword in action for keyword in self.MEDIUM_PRIORITY_KEYWORDS):
            return SubtaskPriority.MEDIUM
        return SubtaskPriority.LOW

    def assign_priorities(self, subtasks: Sequence[Subtask]) -> list[Subtask]:
        """Set each subtask's priority from its action name."""
        return [
            subtask.model_copy(update={"priority": self.determine_priority(subtask.action)})
            for subtask in subtasks
        ]

    def enforce_cap(
        self,
        subtasks: Sequence[Subtask],
        config: DecompositionConfig | None = None,
    ) -> tuple[list[Subtask], list[Subtask]]:
        """
        Truncate a batch to the configured maximum.

        The default strategy keeps the first subtasks in proposal order. The
        priority strategy keeps the highest-priority ones instead, breaking
        ties by proposal order, and returns them in proposal order.

        Returns:
            (kept subtasks, dropped subtasks)
        """
        cfg = config or self.config
        limit = cfg.max_subtasks_per_request
        if len(subtasks) <= limit:
            return list(subtasks), []

        logger.warning(f"Limiting subtasks from {len(subtasks)} to {limit}")

        if cfg.truncation_strategy == TruncationStrategy.PRIORITY:
            ranked = sorted(
                range(len(subtasks)),
                key=lambda i: (self._effective_priority(subtasks[i], cfg).rank, i),
            )
            keep = set(ranked[:limit])
            kept = [s for i, s in enumerate(subtasks) if i in keep]
            dropped = [s for i, s in enumerate(subtasks) if i not in keep]
            return kept, dropped

        return list(subtasks[:limit]), list(subtasks[limit:])

    def compute_levels(self, subtasks: Sequence[Subtask]) -> DependencyLevels:
        """Dependency levels for a batch with assigned ids."""
        return compute_dependency_levels(subtasks)

    def plan(
        self,
        subtasks: Sequence[Subtask],
        config: DecompositionConfig | None = None,
    ) -> ExecutionPlan:
        """
        Build an execution plan for a batch.

        The batch is capped to max_subtasks_per_request first and the number
        of dropped subtasks is reported as truncated_count. Subtasks without
        ids then get one. Subtasks that cannot be leveled are listed in
        excluded_subtask_ids and left out of every step. An unexpected fault
        yields an empty plan flagged as failed.

        Raises:
            InvalidBatchError: If subtasks is None.
        """
        if subtasks is None:
            raise InvalidBatchError("Subtask batch must not be None")

        cfg = config or self.config
        try:
            kept, dropped = self.enforce_cap(subtasks, cfg)
            plan, _ = self._plan_batch(self.assign_ids(kept), cfg, truncated_count=len(dropped))
        except Exception as e:
            logger.exception("Unexpected error while building execution plan")
            return self._failed_plan(str(e))
        return plan

    def decomposition_confidence(
        self,
        subtasks: Sequence[Subtask],
        config: DecompositionConfig | None = None,
    ) -> float:
        """
        Mean subtask confidence decayed by batch size.

        confidence = mean x max(floor, 1 - (n - 1) x penalty), clamped to [0, 1].
        """
        if not subtasks:
            return 0.0

        cfg = config or self.config
        mean = sum(self._confidence(s, cfg) for s in subtasks) / len(subtasks)
        complexity_factor = max(
            cfg.min_complexity_factor,
            1.0 - (len(subtasks) - 1) * cfg.complexity_penalty,
        )
        return min(1.0, max(0.0, mean * complexity_factor))

    def total_estimated_duration(
        self,
        subtasks: Sequence[Subtask],
        config: DecompositionConfig | None = None,
    ) -> int:
        """Sum of subtask durations, defaulting unset ones."""
        cfg = config or self.config
        return sum(self._duration(s, cfg) for s in subtasks)

    def statistics(
        self,
        subtasks: Sequence[Subtask],
        levels: DependencyLevels,
        truncated_count: int = 0,
        started_at: float | None = None,
        config: DecompositionConfig | None = None,
    ) -> DecompositionStatistics:
        """Aggregate figures for a planned batch."""
        cfg = config or self.config
        priorities = [s.priority for s in subtasks]

        return DecompositionStatistics(
            total_subtasks=len(subtasks),
            high_priority_subtasks=priorities.count(SubtaskPriority.HIGH),
            medium_priority_subtasks=priorities.count(SubtaskPriority.MEDIUM),
            low_priority_subtasks=priorities.count(SubtaskPriority.LOW),
            subtasks_with_dependencies=sum(1 for s in subtasks if s.has_dependencies),
            parallel_executable_subtasks=sum(1 for s in subtasks if s.can_execute_parallel),
            average_confidence_score=(
                sum(self._confidence(s, cfg) for s in subtasks) / len(subtasks)
                if subtasks
                else 0.0
            ),
            level_count=len(levels.levels),
            max_parallelism=max((len(level) for level in levels.levels), default=0),
            excluded_subtasks=dict(levels.excluded),
            truncated_count=truncated_count,
            processing_time_ms=(
                (time.perf_counter() - started_at) * 1000 if started_at is not None else 0.0
            ),
        )

    def decompose(
        self,
        subtasks: Sequence[Subtask | dict[str, Any]],
        context: dict[str, Any] | None = None,
        request_text: str | None = None,
        config: DecompositionConfig | None = None,
    ) -> DecompositionResult:
        """
        Run the full decomposition pipeline on proposed subtasks.

        Args:
            subtasks: Proposed subtasks, as models or plain dicts.
            context: Conversation context handed to the dependency detector.
            request_text: Original user request handed to the validator.
            config: Configuration for this call.

        Returns:
            DecompositionResult. On an unexpected fault the result is flagged
            failed and carries an empty plan.

        Raises:
            InvalidBatchError: If subtasks is None.
        """
        if subtasks is None:
            raise InvalidBatchError("Subtask batch must not be None")

        cfg = config or self.config
        started_at = time.perf_counter()
        request_id = f"decomp_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"
        reasoning = [f"Received {len(subtasks)} proposed subtasks"]
        logger.info(f"Starting decomposition {request_id} with {len(subtasks)} subtasks")

        try:
            batch = [
                s if isinstance(s, Subtask) else Subtask.model_validate(s) for s in subtasks
            ]

            batch, dropped = self.enforce_cap(batch, cfg)
            if dropped:
                reasoning.append(
                    f"Truncated to {len(batch)} subtasks ({cfg.truncation_strategy.value} strategy), "
                    f"dropped: {[s.action for s in dropped]}"
                )

            batch = self.assign_ids(batch)

            if (
                cfg.enable_dependency_detection
                and self.dependency_detector is not None
                and len(batch) > 1
            ):
                logger.debug("Detecting dependencies between subtasks")
                batch = self.dependency_detector.detect(batch, context)
                reasoning.append("Dependency detection applied")

            if cfg.enable_priority_assignment:
                batch = self.assign_priorities(batch)

            if self.validator is not None:
                before = len(batch)
                batch = self.validator.validate(batch, request_text)
                if len(batch) != before:
                    reasoning.append(f"Validation removed {before - len(batch)} subtasks")

            plan, levels = self._plan_batch(batch, cfg, truncated_count=len(dropped))
        except Exception as e:
            logger.exception(f"Decomposition {request_id} failed")
            reasoning.append(f"Decomposition error: {e}")
            return DecompositionResult(
                request_id=request_id,
                execution_plan=self._failed_plan(str(e)),
                can_execute_parallel=cfg.enable_parallel_execution,
                reasoning=reasoning,
                failed=True,
            )

        reasoning.append(
            f"Planned {len(levels.placed_ids)} subtasks in {len(plan.steps)} steps"
        )
        for sid, reason in levels.excluded.items():
            reasoning.append(f"Excluded {sid}: {reason.value} dependency")

        confidence = self.decomposition_confidence(batch, cfg)
        reasoning.append(f"Decomposition confidence: {confidence:.2f}")

        statistics = self.statistics(
            batch,
            levels,
            truncated_count=len(dropped),
            started_at=started_at,
            config=cfg,
        )
        logger.info(
            f"Decomposition {request_id} completed: {len(batch)} subtasks, "
            f"{len(levels.excluded)} excluded, {statistics.processing_time_ms:.1f}ms"
        )

        return DecompositionResult(
            request_id=request_id,
            subtasks=batch,
            execution_plan=plan,
            decomposition_confidence=confidence,
            total_estimated_duration_ms=plan.estimated_total_duration_ms,
            can_execute_parallel=cfg.enable_parallel_execution,
            dependencies_detected=(
                cfg.enable_dependency_detection and any(s.has_dependencies for s in batch)
            ),
            priorities_assigned=cfg.enable_priority_assignment,
            statistics=statistics,
            reasoning=reasoning,
        )

    def _plan_batch(
        self, subtasks: list[Subtask], cfg: DecompositionConfig, truncated_count: int = 0
    ) -> tuple[ExecutionPlan, DependencyLevels]:
        """Level the batch and build one step per level."""
        levels = self.compute_levels(subtasks)
        by_id: dict[str, Subtask] = {}
        for subtask in subtasks:
            by_id.setdefault(subtask.subtask_id, subtask)

        steps: list[ExecutionStep] = []
        for order, level in enumerate(levels.levels, start=1):
            parallel = len(level) > 1 and cfg.enable_parallel_execution
            if parallel:
                execution_type = ExecutionType.PARALLEL
                description = f"Run {len(level)} subtasks in parallel"
            else:
                execution_type = ExecutionType.SEQUENTIAL
                description = f"Run {len(level)} subtasks sequentially"

            steps.append(
                ExecutionStep(
                    step_id=f"step_{order}",
                    step_order=order,
                    subtask_ids=list(level),
                    execution_type=execution_type,
                    estimated_duration_ms=max(self._duration(by_id[sid], cfg) for sid in level),
                    description=description,
                )
            )

        parallel_groups = (
            [list(level) for level in levels.levels] if cfg.enable_parallel_execution else []
        )

        plan = ExecutionPlan(
            plan_id=f"plan_{uuid.uuid4().hex[:8]}",
            steps=steps,
            parallel_groups=parallel_groups,
            estimated_total_duration_ms=self.total_estimated_duration(
                [by_id[sid] for sid in levels.placed_ids], cfg
            ),
            critical_path_duration_ms=sum(step.estimated_duration_ms for step in steps),
            excluded_subtask_ids=list(levels.excluded),
            truncated_count=truncated_count,
        )
        return plan, levels

    def _failed_plan(self, error: str) -> ExecutionPlan:
        return ExecutionPlan(
            plan_id=f"plan_{uuid.uuid4().hex[:8]}",
            failed=True,
            error=error,
        )

    def _effective_priority(self, subtask: Subtask, cfg: DecompositionConfig) -> SubtaskPriority:
        """Priority the subtask will end up with after assign_priorities."""
        if cfg.enable_priority_assignment or subtask.priority is None:
            return self.determine_priority(subtask.action)
        return subtask.priority

    @staticmethod
    def _confidence(subtask: Subtask, cfg: DecompositionConfig) -> float:
        return cfg.default_confidence if subtask.confidence is None else subtask.confidence

    @staticmethod
    def _duration(subtask: Subtask, cfg: DecompositionConfig) -> int:
        if subtask.estimated_duration_ms is None:
            return cfg.default_duration_ms
        return subtask.estimated_duration_ms

"""Subtask and execution plan models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class SubtaskPriority(str, Enum):
    """Execution priority of a subtask."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Sort rank, lower runs first."""
        return {"high": 0, "medium": 1, "low": 2}[self.value]


class ExecutionType(str, Enum):
    """How the members of one execution step run."""

    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class ExclusionReason(str, Enum):
    """Why a subtask could not be placed on a dependency level."""

    DANGLING = "dangling"  # references an id that is not in the batch
    CYCLE = "cycle"  # sits on a dependency cycle
    BLOCKED = "blocked"  # waits on another excluded subtask
    DUPLICATE = "duplicate"  # reuses an id already taken in the batch


class Subtask(BaseModel):
    """One atomic unit of work derived from a (possibly composite) request."""

    subtask_id: str | None = None
    action: str
    description: str | None = None
    entities: dict[str, Any] = Field(default_factory=dict)
    priority: SubtaskPriority | None = None
    confidence: float | None = Field(
        default=None,
        description="Proposer confidence; the planner default applies when None",
    )
    estimated_duration_ms: int | None = Field(default=None, ge=0)
    dependencies: list[str] = Field(
        default_factory=list,
        description="Ids of subtasks that must finish first",
    )
    can_execute_parallel: bool = True
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("dependencies")
    @classmethod
    def _dedupe_dependencies(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))

    @property
    def has_dependencies(self) -> bool:
        return bool(self.dependencies)


class ExecutionStep(BaseModel):
    """A set of subtasks that may start once all previous steps are done."""

    step_id: str
    step_order: int = Field(ge=1)
    subtask_ids: list[str]
    execution_type: ExecutionType
    estimated_duration_ms: int = Field(
        ge=0, description="Longest member duration; members overlap"
    )
    description: str = ""


class ExecutionPlan(BaseModel):
    """Ordered steps with parallel-group hints for the executor."""

    plan_id: str
    steps: list[ExecutionStep] = Field(default_factory=list)
    parallel_groups: list[list[str]] = Field(default_factory=list)
    estimated_total_duration_ms: int = Field(
        default=0, description="Sum of the durations of every planned subtask"
    )
    critical_path_duration_ms: int = Field(
        default=0, description="Sum of step durations, the wall-clock estimate"
    )
    excluded_subtask_ids: list[str] = Field(default_factory=list)
    truncated_count: int = Field(
        default=0, ge=0, description="Subtasks dropped by the batch size cap before planning"
    )
    failed: bool = False
    error: str | None = None

    @property
    def subtask_ids(self) -> list[str]:
        """Every planned subtask id in execution order."""
        return [sid for step in self.steps for sid in step.subtask_ids]


class DependencyLevels(BaseModel):
    """Result of dependency leveling over one batch."""

    levels: list[list[str]] = Field(default_factory=list)
    excluded: dict[str, ExclusionReason] = Field(default_factory=dict)

    def level_of(self, subtask_id: str) -> int | None:
        """Level index of a placed subtask, None when excluded or unknown."""
        for index, level in enumerate(self.levels):
            if subtask_id in level:
                return index
        return None

    @property
    def placed_ids(self) -> list[str]:
        return [sid for level in self.levels for sid in level]


class DecompositionStatistics(BaseModel):
    """Aggregate figures reported alongside a plan."""

    total_subtasks: int = 0
    high_priority_subtasks: int = 0
    medium_priority_subtasks: int = 0
    low_priority_subtasks: int = 0
    subtasks_with_dependencies: int = 0
    parallel_executable_subtasks: int = 0
    average_confidence_score: float = 0.0
    level_count: int = 0
    max_parallelism: int = 0
    excluded_subtasks: dict[str, ExclusionReason] = Field(default_factory=dict)
    truncated_count: int = 0
    processing_time_ms: float = 0.0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class DecompositionResult(BaseModel):
    """Output of the full decomposition pipeline."""

    request_id: str
    subtasks: list[Subtask] = Field(default_factory=list)
    execution_plan: ExecutionPlan
    decomposition_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    total_estimated_duration_ms: int = 0
    can_execute_parallel: bool = True
    dependencies_detected: bool = False
    priorities_assigned: bool = False
    statistics: DecompositionStatistics = Field(default_factory=DecompositionStatistics)
    reasoning: list[str] = Field(default_factory=list)
    failed: bool = False

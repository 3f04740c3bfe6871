"""Data models for the decision engine."""

from decision_engine.models.plan import (
    DecompositionResult,
    DecompositionStatistics,
    DependencyLevels,
    ExclusionReason,
    ExecutionPlan,
    ExecutionStep,
    ExecutionType,
    Subtask,
    SubtaskPriority,
)
from decision_engine.models.vote import (
    AgreementLevel,
    ConsensusAlgorithm,
    ConsensusDecision,
    Vote,
)

__all__ = [
    "AgreementLevel",
    "ConsensusAlgorithm",
    "ConsensusDecision",
    "DecompositionResult",
    "DecompositionStatistics",
    "DependencyLevels",
    "ExclusionReason",
    "ExecutionPlan",
    "ExecutionStep",
    "ExecutionType",
    "Subtask",
    "SubtaskPriority",
    "Vote",
]

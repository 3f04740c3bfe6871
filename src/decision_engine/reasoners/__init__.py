"""Reasoning layer: vote consensus and subtask planning."""

from decision_engine.reasoners.collaborators import (
    DependencyDetector,
    StructuralValidator,
    TaskValidator,
)
from decision_engine.reasoners.consensus import VoteAggregator
from decision_engine.reasoners.leveling import compute_dependency_levels
from decision_engine.reasoners.planner import DecompositionPlanner

__all__ = [
    "DecompositionPlanner",
    "DependencyDetector",
    "StructuralValidator",
    "TaskValidator",
    "VoteAggregator",
    "compute_dependency_levels",
]

"""Dependency leveling: batched topological layering of subtasks."""

import logging
from collections.abc import Sequence

from decision_engine.models.plan import DependencyLevels, ExclusionReason, Subtask

logger = logging.getLogger(__name__)


def compute_dependency_levels(subtasks: Sequence[Subtask]) -> DependencyLevels:
    """
    Group subtasks into dependency levels.

    Level 0 holds subtasks without dependencies. Level k holds the unplaced
    subtasks whose dependencies all sit on levels below k. Expansion stops
    once a pass places nothing; whatever is left over is excluded and tagged
    with the reason it could not be placed.

    Subtasks keep their input order within a level, so the result is fully
    determined by the input order and the dependency sets.

    Args:
        subtasks: Batch with assigned ids.

    Returns:
        DependencyLevels with the placed levels and the excluded ids.
    """
    arena: dict[str, Subtask] = {}
    excluded: dict[str, ExclusionReason] = {}

    for position, subtask in enumerate(subtasks):
        if subtask.subtask_id is None:
            raise ValueError(f"Subtask '{subtask.action}' has no id; assign ids before leveling")
        if subtask.subtask_id in arena:
            # keyed by position, the id itself belongs to the first occurrence
            logger.warning(f"Duplicate subtask id excluded: {subtask.subtask_id} at {position}")
            excluded[f"{subtask.subtask_id}@{position}"] = ExclusionReason.DUPLICATE
            continue
        arena[subtask.subtask_id] = subtask

    placed: set[str] = set()
    levels: list[list[str]] = []

    while True:
        frontier = [
            sid
            for sid, subtask in arena.items()
            if sid not in placed and all(dep in placed for dep in subtask.dependencies)
        ]
        if not frontier:
            break
        levels.append(frontier)
        placed.update(frontier)

    unplaced = [sid for sid in arena if sid not in placed]
    for sid, reason in _classify_unplaced(arena, unplaced).items():
        excluded.setdefault(sid, reason)

    if unplaced:
        logger.warning(f"Excluded {len(unplaced)} subtasks with unresolvable dependencies: {unplaced}")

    return DependencyLevels(levels=levels, excluded=excluded)


def _classify_unplaced(
    arena: dict[str, Subtask], unplaced: list[str]
) -> dict[str, ExclusionReason]:
    """Tag each unplaced subtask as dangling, on a cycle, or blocked."""
    unplaced_set = set(unplaced)
    reasons: dict[str, ExclusionReason] = {}

    for sid in unplaced:
        dependencies = arena[sid].dependencies
        if any(dep not in arena for dep in dependencies):
            reasons[sid] = ExclusionReason.DANGLING
        elif _reaches(arena, sid, sid, unplaced_set):
            reasons[sid] = ExclusionReason.CYCLE
        else:
            reasons[sid] = ExclusionReason.BLOCKED

    return reasons


def _reaches(
    arena: dict[str, Subtask], start: str, target: str, within: set[str]
) -> bool:
    """Whether target is reachable from start's dependencies inside `within`."""
    stack = [dep for dep in arena[start].dependencies if dep in within]
    seen: set[str] = set()

    while stack:
        current = stack.pop()
        if current == target:
            return True
        if current in seen:
            continue
        seen.add(current)
        stack.extend(dep for dep in arena[current].dependencies if dep in within)

    return False

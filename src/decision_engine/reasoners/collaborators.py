"""Seams for the external dependency detector and task validator."""

import logging
from typing import Any, Protocol, runtime_checkable

from decision_engine.models.plan import Subtask

logger = logging.getLogger(__name__)


@runtime_checkable
class DependencyDetector(Protocol):
    """Populates dependency ids on a batch. Must only reference ids in the batch."""

    def detect(
        self, subtasks: list[Subtask], context: dict[str, Any] | None = None
    ) -> list[Subtask]: ...


@runtime_checkable
class TaskValidator(Protocol):
    """Filters or corrects a batch against the original request."""

    def validate(
        self, subtasks: list[Subtask], request_text: str | None = None
    ) -> list[Subtask]: ...


class StructuralValidator:
    """
    Minimal structural validation for subtask batches.

    Drops subtasks with a blank action or a confidence outside [0, 1], and
    strips self-references from dependency lists. Dependency ids pointing
    outside the batch are left alone; leveling reports them as dangling.
    """

    def validate(
        self, subtasks: list[Subtask], request_text: str | None = None
    ) -> list[Subtask]:
        valid: list[Subtask] = []

        for subtask in subtasks:
            if not subtask.action or not subtask.action.strip():
                logger.warning(f"Dropping subtask {subtask.subtask_id}: blank action")
                continue
            if subtask.confidence is not None and not 0.0 <= subtask.confidence <= 1.0:
                logger.warning(
                    f"Dropping subtask {subtask.subtask_id}: confidence {subtask.confidence} out of range"
                )
                continue

            if subtask.subtask_id in subtask.dependencies:
                logger.debug(f"Removing self-dependency from {subtask.subtask_id}")
                subtask = subtask.model_copy(
                    update={
                        "dependencies": [
                            dep for dep in subtask.dependencies if dep != subtask.subtask_id
                        ]
                    }
                )

            valid.append(subtask)

        return valid

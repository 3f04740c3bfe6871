"""Domain exceptions for the decision engine.

Only programmer misuse raises. Quorum misses, malformed votes and unresolvable
dependencies are reported in the returned decision or plan instead.
"""


class DecisionEngineError(Exception):
    """Base exception for decision engine errors."""

    def __init__(
        self,
        message: str,
        *,
        detail: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or message


class InvalidBatchError(DecisionEngineError, ValueError):
    """Raised when a caller passes a batch the engine cannot accept at all."""

    def __init__(self, message: str, detail: str | None = None) -> None:
        super().__init__(message, detail=detail or message)

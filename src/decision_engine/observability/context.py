"""Request context propagation using contextvars."""

from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar

# Context variable for the request being resolved
_current_request_id: ContextVar[str | None] = ContextVar("current_request_id", default=None)


def get_current_request_id() -> str | None:
    """
    Get the current request ID from context.

    Returns:
        The current request ID, or None if not set.
    """
    return _current_request_id.get()


@contextmanager
def request_context(request_id: str) -> Generator[str, None, None]:
    """
    Context manager binding a request ID for the current thread or task.

    Usage:
        with request_context("req-1"):
            logger.info("Aggregating votes")  # Record carries request_id

    Args:
        request_id: The request ID to bind.

    Yields:
        The request ID.
    """
    token = _current_request_id.set(request_id)
    try:
        yield request_id
    finally:
        _current_request_id.reset(token)

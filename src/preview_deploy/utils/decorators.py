"""Timing decorators for deployment pipeline steps."""
import functools
import logging
import time
from typing import Any, Callable, TypeVar, cast

logger = logging.getLogger(__name__)

F = TypeVar('F', bound=Callable[..., Any])


def log_operation(description: str) -> Callable[[F], F]:
    """Log start, completion and failure of a named pipeline step with its duration.

    Args:
        description: Human-readable step name used in every log line

    Returns:
        Decorator that wraps the step and re-raises any failure
    """
    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            logger.info(f"Starting: {description}")
            started = time.monotonic()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.error(f"Failed: {description} after {time.monotonic() - started:.2f}s - {e}")
                raise
            logger.info(f"Completed: {description} in {time.monotonic() - started:.2f}s")
            return result
        return cast(F, wrapper)
    return decorator

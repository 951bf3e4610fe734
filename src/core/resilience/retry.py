"""
Retry utilities with exception-aware handling.

Uses the exception hierarchy to make retry decisions:
- Transient errors: retry with exponential backoff
- Permanent errors: fail immediately (no retry)
"""

import asyncio
import logging
import random
from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps

from core.errors.exceptions import ServiceError, classify_exception
from core.types import ErrorCategory

logger = logging.getLogger(__name__)


def _log_retry_failure(
    func_name: str,
    e: Exception,
    error_category: ErrorCategory,
    config: "RetryConfig",
) -> None:
    """Log permanent-error or max-retries-exhausted."""
    if isinstance(e, ServiceError) and not e.is_retryable:
        logger.warning(
            "Permanent error for %s, not retrying: %s",
            func_name,
            str(e)[:200],
            extra={
                "operation": func_name,
                "error_type": type(e).__name__,
                "error_category": error_category.value,
                "error_message": str(e)[:200],
            },
        )
        return

    logger.error(
        "Max retries exhausted for %s: %s",
        func_name,
        str(e)[:200],
        extra={
            "operation": func_name,
            "error_type": type(e).__name__,
            "error_category": error_category.value,
            "max_attempts": config.max_attempts,
            "error_message": str(e)[:200],
        },
    )


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0

    # If True, don't retry permanent errors even if max_attempts > 0
    respect_permanent: bool = True

    def __post_init__(self):
        """Ensure proper types from YAML/env vars."""
        self.max_attempts = int(self.max_attempts)
        self.base_delay = float(self.base_delay)
        self.max_delay = float(self.max_delay)
        self.exponential_base = float(self.exponential_base)
        # bool('false') would be True, so only coerce non-bools
        self.respect_permanent = (
            self.respect_permanent
            if isinstance(self.respect_permanent, bool)
            else bool(self.respect_permanent)
        )

    def get_delay(self, attempt: int) -> float:
        """
        Calculate delay with equal jitter to prevent synchronized retries.

        Args:
            attempt: 0-indexed attempt number

        Returns:
            Delay in seconds
        """
        base_delay = self.base_delay * (self.exponential_base**attempt)

        # Equal jitter: half fixed, half random
        jitter = random.uniform(0, base_delay / 2)
        delay = (base_delay / 2) + jitter

        return min(delay, self.max_delay)

    def should_retry(self, error: Exception, attempt: int) -> bool:
        """
        Determine if error should be retried.

        Args:
            error: The exception that occurred
            attempt: 0-indexed current attempt

        Returns:
            True if should retry
        """
        if attempt >= self.max_attempts - 1:
            return False

        category = classify_exception(error)
        if self.respect_permanent and category == ErrorCategory.PERMANENT:
            return False

        return category in (
            ErrorCategory.TRANSIENT,
            ErrorCategory.AUTH,
            ErrorCategory.UNKNOWN,
        )


GRANT_RETRY = RetryConfig(max_attempts=3, base_delay=0.5, max_delay=4.0)


def with_retry_async(config: RetryConfig | None = None):
    """
    Decorator for retrying async functions with backoff.

    The last exception is re-raised unchanged once retries stop.

    Args:
        config: Retry configuration (defaults to GRANT_RETRY)

    Usage:
        @with_retry_async(config=GRANT_RETRY)
        async def exchange():
            ...
    """
    if config is None:
        config = GRANT_RETRY

    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            for attempt in range(config.max_attempts):
                try:
                    result = await func(*args, **kwargs)

                    if attempt > 0:
                        logger.info(
                            "Retry succeeded for %s after %d attempts",
                            func.__name__,
                            attempt + 1,
                            extra={
                                "operation": func.__name__,
                                "attempt": attempt + 1,
                                "total_attempts": config.max_attempts,
                            },
                        )

                    return result

                except Exception as e:
                    error_category = classify_exception(e)

                    if not config.should_retry(e, attempt):
                        _log_retry_failure(func.__name__, e, error_category, config)
                        raise

                    delay = config.get_delay(attempt)
                    logger.warning(
                        "Retryable error for %s, will retry",
                        func.__name__,
                        extra={
                            "operation": func.__name__,
                            "attempt": attempt + 1,
                            "max_attempts": config.max_attempts,
                            "error_category": error_category.value,
                            "delay_seconds": round(delay, 2),
                            "error_message": str(e)[:200],
                        },
                    )

                    await asyncio.sleep(delay)

        return wrapper

    return decorator


__all__ = [
    "RetryConfig",
    "with_retry_async",
    "GRANT_RETRY",
]

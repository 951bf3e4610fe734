"""
Resilience patterns module.

Components:
    - RetryConfig: Exponential backoff configuration
    - @with_retry_async decorator: Retry with jitter
    - GRANT_RETRY: default for identity endpoint exchanges
"""

from .retry import (
    GRANT_RETRY,
    RetryConfig,
    with_retry_async,
)

__all__ = [
    "RetryConfig",
    "with_retry_async",
    "GRANT_RETRY",
]

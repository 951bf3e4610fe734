"""
Unified exception hierarchy for the seller API client.

Provides typed exceptions with retry classification so that every layer
(grant exchanges, token coordination, resource requests) can decide between
"retry later" and "needs external action" without parsing messages.
"""

import aiohttp

from core.types import ErrorCategory


class ServiceError(Exception):
    """
    Base exception for all seller API client errors.

    Attributes:
        message: Human-readable error description
        category: Error classification for retry decisions
        cause: Original exception if wrapping
        context: Additional context dict for debugging
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        return self.category in (
            ErrorCategory.TRANSIENT,
            ErrorCategory.AUTH,
            ErrorCategory.UNKNOWN,
        )

    @property
    def requires_external_action(self) -> bool:
        """True when retrying without new input (credentials, code, config) cannot help."""
        return self.category == ErrorCategory.PERMANENT

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


def classify_http_status(status_code: int) -> ErrorCategory:
    """Classify HTTP status code into error category."""
    if 200 <= status_code < 300:
        return ErrorCategory.UNKNOWN  # Not an error

    if status_code == 401:
        return ErrorCategory.AUTH

    if status_code in (408, 429):
        return ErrorCategory.TRANSIENT

    if 400 <= status_code < 500:
        return ErrorCategory.PERMANENT  # Client errors, won't fix with retry

    if status_code >= 500:
        return ErrorCategory.TRANSIENT  # Server errors, may recover

    return ErrorCategory.UNKNOWN


def classify_exception(exc: Exception) -> ErrorCategory:
    """
    Classify an exception by type.

    ServiceError subclasses carry their own category. Timeouts and connection
    failures (OS level or aiohttp) are transient. Anything else is UNKNOWN.
    """
    if isinstance(exc, ServiceError):
        return exc.category

    # asyncio.TimeoutError is the builtin TimeoutError on 3.11+
    if isinstance(exc, (TimeoutError, ConnectionError, aiohttp.ClientConnectionError)):
        return ErrorCategory.TRANSIENT

    return ErrorCategory.UNKNOWN

"""
Error classification and exception hierarchy.

Provides:
- ServiceError base class carrying an ErrorCategory
- Classification of HTTP statuses and untyped exceptions
"""

from core.errors.exceptions import (
    ServiceError,
    classify_exception,
    classify_http_status,
)
from core.types import ErrorCategory

__all__ = [
    "ErrorCategory",
    "ServiceError",
    "classify_http_status",
    "classify_exception",
]

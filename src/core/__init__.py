"""
Core library: reusable, transport-level components for the seller API client.

Modules:
    oauth2      - Credential store, grant exchanges, single-flight token coordination
    resilience  - Retry with exponential backoff and jitter
    logging     - Structured JSON/console logging with context propagation
    errors      - Error classification and exception hierarchy
    utils       - JSON serialization helpers

Design Principles:
    - No ambient/static token state: every component is owned and passed explicitly
    - All modules are independently testable
    - Async-first
"""

from .types import ErrorCategory, TokenProvider

__version__ = "0.1.0"

__all__ = [
    "ErrorCategory",
    "TokenProvider",
]

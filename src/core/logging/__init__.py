"""
Structured logging module.

Provides JSON and console logging with request-scoped context propagation.
"""

from core.logging.context import (
    clear_log_context,
    get_log_context,
    set_log_context,
)
from core.logging.context_managers import LogContext, RequestLogContext
from core.logging.formatters import ConsoleFormatter, JSONFormatter
from core.logging.setup import setup_logging
from core.logging.utilities import log_exception

__all__ = [
    # Setup
    "setup_logging",
    # Formatters
    "JSONFormatter",
    "ConsoleFormatter",
    # Context
    "set_log_context",
    "get_log_context",
    "clear_log_context",
    # Context Managers
    "LogContext",
    "RequestLogContext",
    # Utilities
    "log_exception",
]

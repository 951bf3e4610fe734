"""
Core types and protocols used across modules.

This module provides base types, enums, and protocol definitions that are
shared across the core library to ensure consistency and type safety.
"""

from enum import Enum
from typing import Protocol


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    Categories:
        TRANSIENT: Temporary failures that may succeed if retried later
                   (e.g., network timeouts, 429/5xx responses)
        AUTH: Credential rejected by a resource server; a fresh credential
              may fix it (e.g., 401 responses)
        PERMANENT: Failures that need external action before they can succeed
                   (e.g., revoked grants, missing configuration, 4xx validation)
        UNKNOWN: Unclassified errors, may retry conservatively
    """

    TRANSIENT = "transient"
    AUTH = "auth"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


class TokenProvider(Protocol):
    """
    Protocol for anything that can hand out a bearer token value.

    TokenCoordinator satisfies this through its get_token() method, which
    lets callers that only need a header value avoid importing the oauth2
    models.
    """

    async def get_token(self, kind) -> str:
        """
        Get a currently valid access token value for a credential kind.

        Raises:
            OAuth2Error: If no valid token can be produced
        """
        ...


__all__ = [
    "ErrorCategory",
    "TokenProvider",
]

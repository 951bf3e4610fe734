"""OAuth2-specific exceptions.

Every failure carries an ErrorCategory so callers can tell "retry later"
(TRANSIENT) apart from "needs new input" (PERMANENT) without reading messages.
"""

from core.errors.exceptions import ServiceError
from core.types import ErrorCategory


class OAuth2Error(ServiceError):
    """Base exception for OAuth2 operations."""

    pass


class InvalidConfigurationError(OAuth2Error):
    """Client id/secret (or another required setting) is missing or malformed.

    Raised before any network call is attempted.
    """

    category = ErrorCategory.PERMANENT


class TransientGrantError(OAuth2Error):
    """Grant exchange failed for a reason that may clear up on its own.

    Transport errors, timeouts talking to the identity endpoint, 429 and 5xx.
    """

    category = ErrorCategory.TRANSIENT

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(message, cause, context)
        self.status_code = status_code


class GrantRejectedError(OAuth2Error):
    """Identity endpoint refused the grant (invalid_grant, revoked code, bad client).

    The credential kind stays unobtainable until new input, such as a fresh
    authorization code, is supplied.
    """

    category = ErrorCategory.PERMANENT

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int | None = None,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(message, cause, context)
        self.error_code = error_code
        self.status_code = status_code


class TokenTimeoutError(OAuth2Error):
    """Grant exchange exceeded its time budget; a later acquire may succeed."""

    category = ErrorCategory.TRANSIENT


class ResourceAuthorizationError(OAuth2Error):
    """Resource server rejected the bearer credential (HTTP 401)."""

    category = ErrorCategory.AUTH

    def __init__(
        self,
        message: str,
        status_code: int = 401,
        body: object = None,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(message, cause, context)
        self.status_code = status_code
        self.body = body


class AuthenticationFailedError(ResourceAuthorizationError):
    """Resource server rejected a freshly acquired credential as well."""

    category = ErrorCategory.PERMANENT


__all__ = [
    "OAuth2Error",
    "InvalidConfigurationError",
    "TransientGrantError",
    "GrantRejectedError",
    "TokenTimeoutError",
    "ResourceAuthorizationError",
    "AuthenticationFailedError",
]

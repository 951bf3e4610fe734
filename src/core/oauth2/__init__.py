"""
OAuth2 credential lifecycle: storage, grant exchanges, single-flight refresh.

Components (leaves first):
    - CredentialStore: one credential per kind, expiry-aware reads
    - GrantExecutor: client-credentials, authorization-code and refresh grants
    - TokenCoordinator: at most one exchange per kind; all waiters share its result
    - AuthenticatedRequestExecutor: bearer requests with one-shot 401 recovery

Basic Usage:
    from core.oauth2 import (
        AuthenticatedRequestExecutor, CredentialKind, CredentialStore,
        GrantExecutor, OAuth2Config, RequestSpec, TokenCoordinator,
    )

    config = OAuth2Config(
        client_id=os.getenv("EBAY_CLIENT_ID"),
        client_secret=os.getenv("EBAY_CLIENT_SECRET"),
        token_url="https://api.sandbox.ebay.com/identity/v1/oauth2/token",
    )
    store = CredentialStore()
    coordinator = TokenCoordinator(store, GrantExecutor(config.token_url), config)
    executor = AuthenticatedRequestExecutor(coordinator, "https://api.sandbox.ebay.com")

    response = await executor.execute(
        CredentialKind.APPLICATION,
        RequestSpec("GET", "/commerce/taxonomy/v1/get_default_category_tree_id",
                    params={"marketplace_id": "EBAY_US"}),
    )
"""

from core.oauth2.coordinator import (
    DEFAULT_EXCHANGE_TIMEOUT_SECONDS,
    RefreshState,
    TokenCoordinator,
)
from core.oauth2.exceptions import (
    AuthenticationFailedError,
    GrantRejectedError,
    InvalidConfigurationError,
    OAuth2Error,
    ResourceAuthorizationError,
    TokenTimeoutError,
    TransientGrantError,
)
from core.oauth2.executor import (
    ApiRequestError,
    ApiResponse,
    AuthenticatedRequestExecutor,
    RequestSpec,
)
from core.oauth2.grants import GrantExecutor
from core.oauth2.models import (
    Credential,
    CredentialKind,
    OAuth2Config,
    TokenResponse,
    UserTokenPair,
)
from core.oauth2.store import DEFAULT_SAFETY_MARGIN_SECONDS, CredentialStore

__all__ = [
    # Store
    "CredentialStore",
    "DEFAULT_SAFETY_MARGIN_SECONDS",
    # Grants
    "GrantExecutor",
    # Coordinator
    "TokenCoordinator",
    "RefreshState",
    "DEFAULT_EXCHANGE_TIMEOUT_SECONDS",
    # Requests
    "AuthenticatedRequestExecutor",
    "RequestSpec",
    "ApiResponse",
    "ApiRequestError",
    # Models
    "Credential",
    "CredentialKind",
    "UserTokenPair",
    "TokenResponse",
    "OAuth2Config",
    # Exceptions
    "OAuth2Error",
    "InvalidConfigurationError",
    "TransientGrantError",
    "GrantRejectedError",
    "TokenTimeoutError",
    "ResourceAuthorizationError",
    "AuthenticationFailedError",
]

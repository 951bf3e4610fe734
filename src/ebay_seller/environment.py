"""eBay environment endpoints and default OAuth scopes."""

from enum import Enum

TOKEN_PATH = "/identity/v1/oauth2/token"
MARKETPLACE_HEADER = "X-EBAY-C-MARKETPLACE-ID"

_API_BASE_URLS = {
    "production": "https://api.ebay.com",
    "sandbox": "https://api.sandbox.ebay.com",
}

_AUTHORIZATION_ENDPOINTS = {
    "production": "https://auth.ebay.com/oauth2/authorize",
    "sandbox": "https://auth.sandbox.ebay.com/oauth2/authorize",
}

# Client-credentials tokens can only carry the public scope
DEFAULT_APPLICATION_SCOPES = ("https://api.ebay.com/oauth/api_scope",)

DEFAULT_USER_SCOPES = (
    "https://api.ebay.com/oauth/api_scope",
    "https://api.ebay.com/oauth/api_scope/sell.account",
    "https://api.ebay.com/oauth/api_scope/sell.fulfillment",
    "https://api.ebay.com/oauth/api_scope/sell.finances",
    "https://api.ebay.com/oauth/api_scope/sell.inventory",
    "https://api.ebay.com/oauth/api_scope/sell.marketing",
    "https://api.ebay.com/oauth/api_scope/sell.analytics.readonly",
)


class Environment(str, Enum):
    PRODUCTION = "production"
    SANDBOX = "sandbox"

    @classmethod
    def parse(cls, value: "str | Environment") -> "Environment":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(
                f"Unknown eBay environment {value!r}; expected 'production' or 'sandbox'"
            ) from None


def get_base_url(environment: "str | Environment") -> str:
    """REST API host for the environment."""
    return _API_BASE_URLS[Environment.parse(environment).value]


def get_token_url(environment: "str | Environment") -> str:
    """OAuth2 token endpoint for all three grants."""
    return get_base_url(environment) + TOKEN_PATH


def get_authorization_endpoint(environment: "str | Environment") -> str:
    """Consent page the seller is sent to for the authorization-code grant."""
    return _AUTHORIZATION_ENDPOINTS[Environment.parse(environment).value]


__all__ = [
    "Environment",
    "get_base_url",
    "get_token_url",
    "get_authorization_endpoint",
    "DEFAULT_APPLICATION_SCOPES",
    "DEFAULT_USER_SCOPES",
    "MARKETPLACE_HEADER",
    "TOKEN_PATH",
]

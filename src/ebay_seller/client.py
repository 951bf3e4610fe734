"""
eBay Sell API client.

Hosts one credential lifecycle (store, grants, coordinator, request executor)
per instance and exposes the authenticated request function the tool layer
calls. Nothing is shared between instances.
"""

import logging
from typing import Any
from urllib.parse import quote, unquote, urlencode

import aiohttp

from config.config import SellerConfig
from core.logging.context import set_log_context
from core.logging.context_managers import RequestLogContext
from core.oauth2 import (
    ApiResponse,
    AuthenticatedRequestExecutor,
    CredentialKind,
    CredentialStore,
    GrantExecutor,
    InvalidConfigurationError,
    OAuth2Config,
    RequestSpec,
    TokenCoordinator,
    UserTokenPair,
)
from core.oauth2.models import parse_scopes
from core.oauth2.store import STATUS_ABSENT, STATUS_PRESENT
from core.resilience.retry import GRANT_RETRY, RetryConfig
from ebay_seller.environment import (
    DEFAULT_APPLICATION_SCOPES,
    DEFAULT_USER_SCOPES,
    MARKETPLACE_HEADER,
    Environment,
    get_authorization_endpoint,
    get_base_url,
    get_token_url,
)

logger = logging.getLogger(__name__)


class EbaySellerClient:
    """
    Authenticated access to the eBay Sell APIs.

    Requests use the user (seller) token when one is available and fall back
    to the application token otherwise; pass kind= to force either.

    Usage:
        config = load_config()
        async with EbaySellerClient(config) as client:
            policies = await client.get(
                "/sell/account/v1/fulfillment_policy",
                params={"marketplace_id": "EBAY_US"},
            )
    """

    def __init__(self, config: SellerConfig, session: aiohttp.ClientSession | None = None):
        config.validate()

        self.config = config
        self.environment = Environment.parse(config.environment)
        self.base_url = get_base_url(self.environment)
        set_log_context(environment=self.environment.value)

        self.oauth_config = OAuth2Config(
            client_id=config.client_id,
            client_secret=config.client_secret,
            token_url=get_token_url(self.environment),
            redirect_uri=config.redirect_uri,
            application_scopes=config.application_scopes or list(DEFAULT_APPLICATION_SCOPES),
            user_scopes=config.user_scopes or list(DEFAULT_USER_SCOPES),
        )

        retry_config = RetryConfig(
            max_attempts=config.grant_max_attempts,
            base_delay=GRANT_RETRY.base_delay,
            max_delay=GRANT_RETRY.max_delay,
        )

        # One grant attempt may use at most its share of the exchange budget
        grant_timeout = min(
            config.request_timeout_seconds,
            config.exchange_timeout_seconds / config.grant_max_attempts,
        )

        self.store = CredentialStore(safety_margin_seconds=config.safety_margin_seconds)
        self.grants = GrantExecutor(
            self.oauth_config.token_url,
            timeout_seconds=grant_timeout,
            session=session,
        )
        self.coordinator = TokenCoordinator(
            self.store,
            self.grants,
            self.oauth_config,
            exchange_timeout_seconds=config.exchange_timeout_seconds,
            retry_config=retry_config,
        )
        self.executor = AuthenticatedRequestExecutor(
            self.coordinator,
            self.base_url,
            timeout_seconds=config.request_timeout_seconds,
            max_concurrent=config.max_concurrent,
            session=session,
        )

        if config.user_access_token or config.user_refresh_token:
            self.set_user_tokens(config.user_access_token, config.user_refresh_token)

        logger.info(
            "Initialized eBay seller client",
            extra={
                "environment": self.environment.value,
                "marketplace_id": config.marketplace_id,
            },
        )

    async def __aenter__(self) -> "EbaySellerClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # =========================================================================
    # Credentials
    # =========================================================================

    def default_kind(self) -> CredentialKind:
        """USER_ACCESS while a usable user access or refresh token is held, else APPLICATION."""
        if (
            self.store.status(CredentialKind.USER_ACCESS) == STATUS_PRESENT
            or self.store.status(CredentialKind.USER_REFRESH) == STATUS_PRESENT
        ):
            return CredentialKind.USER_ACCESS
        return CredentialKind.APPLICATION

    def set_user_tokens(
        self,
        access_token: str | None,
        refresh_token: str | None,
        access_expires_in: float | None = None,
        refresh_expires_in: float | None = None,
    ) -> None:
        """Seed user tokens obtained elsewhere (e.g. a previous authorization)."""
        self.store.seed_user_tokens(
            access_token,
            refresh_token,
            access_expires_in=access_expires_in,
            refresh_expires_in=refresh_expires_in,
            scopes=parse_scopes(self.oauth_config.user_scopes),
        )
        logger.info(
            "User tokens set",
            extra={"credential_kind": CredentialKind.USER_ACCESS.value},
        )

    def get_authorization_url(
        self,
        state: str | None = None,
        scopes: str | list[str] | None = None,
        prompt: str | None = None,
    ) -> str:
        """
        Consent URL for the authorization-code grant.

        Raises:
            InvalidConfigurationError: client_id or redirect_uri not configured
        """
        missing = [
            name
            for name, value in (
                ("client_id", self.oauth_config.client_id),
                ("redirect_uri", self.oauth_config.redirect_uri),
            )
            if not value
        ]
        if missing:
            raise InvalidConfigurationError(
                f"Cannot build authorization URL, missing: {', '.join(missing)}",
                context={"missing": missing},
            )

        query = {
            "client_id": self.oauth_config.client_id,
            "redirect_uri": self.oauth_config.redirect_uri,
            "response_type": "code",
            "scope": self.oauth_config.get_scope_string(scopes or self.oauth_config.user_scopes),
        }
        if state:
            query["state"] = state
        if prompt:
            query["prompt"] = prompt

        endpoint = get_authorization_endpoint(self.environment)
        return f"{endpoint}?{urlencode(query, quote_via=quote)}"

    async def exchange_authorization_code(
        self, code: str, redirect_uri: str | None = None
    ) -> UserTokenPair:
        """Exchange a consent-page code for user tokens and store them."""
        # Codes copied from the redirect URL arrive percent-encoded
        if "%" in code:
            code = unquote(code)
        return await self.coordinator.exchange_authorization_code(code, redirect_uri)

    async def get_access_token(self, kind: CredentialKind | None = None) -> str:
        """Valid access token value for kind (default: default_kind())."""
        return await self.coordinator.get_token(kind or self.default_kind())

    def get_token_info(self) -> dict[str, Any]:
        """Diagnostic view of held credentials. Never includes token values."""
        access_status = self.store.status(CredentialKind.USER_ACCESS)
        refresh_status = self.store.status(CredentialKind.USER_REFRESH)
        has_user_token = access_status != STATUS_ABSENT or refresh_status != STATUS_ABSENT
        return {
            "environment": self.environment.value,
            "has_user_token": has_user_token,
            "has_client_token": self.store.status(CredentialKind.APPLICATION) == STATUS_PRESENT,
            "access_token_expired": has_user_token and access_status != STATUS_PRESENT,
            "refresh_token_expired": has_user_token and refresh_status != STATUS_PRESENT,
            "default_kind": self.default_kind().value,
            "credentials": self.store.snapshot(),
        }

    def clear_all_tokens(self) -> None:
        """Forget every held credential; the next request starts from scratch."""
        self.store.clear()
        logger.info("Cleared all tokens")

    # =========================================================================
    # Requests
    # =========================================================================

    async def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_body: Any = None,
        headers: dict[str, str] | None = None,
        data: Any = None,
        marketplace_id: str | None = None,
        kind: CredentialKind | None = None,
    ) -> ApiResponse:
        """
        Authenticated request against the environment's API host.

        Raises:
            AuthenticationFailedError: credential rejected twice
            ApiRequestError: any other non-2xx status or transport failure
            OAuth2Error: no credential could be acquired
        """
        kind = kind or self.default_kind()
        request_headers = dict(headers or {})
        marketplace = marketplace_id or self.config.marketplace_id
        if marketplace:
            request_headers.setdefault(MARKETPLACE_HEADER, marketplace)

        spec = RequestSpec(
            method=method.upper(),
            path=path,
            params=params,
            json_body=json_body,
            headers=request_headers,
            data=data,
        )

        with RequestLogContext(f"{spec.method} {path}", credential_kind=kind.value) as ctx:
            response = await self.executor.execute(kind, spec)
            ctx.set_result(http_status=response.status)

        logger.debug(
            "Request complete",
            extra={
                "request_id": ctx.request_id,
                "api_method": spec.method,
                "api_endpoint": path,
                "credential_kind": kind.value,
                **ctx.result_context,
            },
        )
        return response

    async def get(self, path: str, params: dict[str, Any] | None = None, **kwargs: Any) -> Any:
        response = await self.request("GET", path, params=params, **kwargs)
        return response.body

    async def post(self, path: str, json_body: Any = None, **kwargs: Any) -> Any:
        response = await self.request("POST", path, json_body=json_body, **kwargs)
        return response.body

    async def put(self, path: str, json_body: Any = None, **kwargs: Any) -> Any:
        response = await self.request("PUT", path, json_body=json_body, **kwargs)
        return response.body

    async def delete(self, path: str, params: dict[str, Any] | None = None, **kwargs: Any) -> Any:
        response = await self.request("DELETE", path, params=params, **kwargs)
        return response.body

    async def close(self) -> None:
        """Cancel outstanding exchanges and close owned HTTP sessions."""
        await self.coordinator.close()
        await self.executor.close()
        await self.grants.close()


__all__ = ["EbaySellerClient"]

"""OAuth2 grant exchanges against the identity token endpoint.

Performs the three grants the seller APIs need:
    - client_credentials  -> application credential
    - authorization_code  -> user access + refresh credentials
    - refresh_token       -> new user access credential (and rotated refresh, if any)

Each call is one network round trip. Deduplicating concurrent calls is the
TokenCoordinator's job.
"""

import asyncio
import base64
import json
import logging

import aiohttp
from pydantic import ValidationError

from core.oauth2.exceptions import (
    GrantRejectedError,
    InvalidConfigurationError,
    OAuth2Error,
    TransientGrantError,
)
from core.oauth2.models import (
    Credential,
    CredentialKind,
    TokenResponse,
    UserTokenPair,
    parse_scopes,
)

logger = logging.getLogger(__name__)

DEFAULT_GRANT_TIMEOUT_SECONDS = 30

GRANT_CLIENT_CREDENTIALS = "client_credentials"
GRANT_AUTHORIZATION_CODE = "authorization_code"
GRANT_REFRESH_TOKEN = "refresh_token"


def _require_client(client_id: str, client_secret: str) -> None:
    missing = [
        name
        for name, value in (("client_id", client_id), ("client_secret", client_secret))
        if not value
    ]
    if missing:
        raise InvalidConfigurationError(
            f"Missing OAuth2 client credentials: {', '.join(missing)}",
            context={"missing": missing},
        )


def _basic_auth_header(client_id: str, client_secret: str) -> str:
    encoded = base64.b64encode(f"{client_id}:{client_secret}".encode()).decode()
    return f"Basic {encoded}"


def _parse_error_body(text: str) -> tuple[str | None, str]:
    """Extract (error, error_description) from an OAuth2 error body."""
    try:
        body = json.loads(text) if text else {}
    except ValueError:
        return None, text[:200]
    if not isinstance(body, dict):
        return None, text[:200]
    return body.get("error"), str(body.get("error_description") or body.get("error") or "")[:200]


def classify_grant_failure(status: int, text: str, grant_type: str) -> OAuth2Error:
    """Map a non-200 token endpoint response to a transient or terminal error."""
    error_code, description = _parse_error_body(text)
    context = {"grant_type": grant_type, "http_status": status, "error_code": error_code}

    if status == 429 or status >= 500:
        return TransientGrantError(
            f"Token endpoint unavailable for {grant_type} grant: HTTP {status}",
            status_code=status,
            context=context,
        )

    return GrantRejectedError(
        f"{grant_type} grant rejected: HTTP {status} {error_code or ''} {description}".strip(),
        error_code=error_code,
        status_code=status,
        context=context,
    )


class GrantExecutor:
    """
    Performs OAuth2 grant exchanges using aiohttp.

    Client authentication uses HTTP Basic with base64(client_id:client_secret)
    and form-encoded bodies, as the identity endpoint requires.

    Usage:
        grants = GrantExecutor("https://api.sandbox.ebay.com/identity/v1/oauth2/token")
        credential = await grants.acquire_application_token(client_id, client_secret)
        await grants.close()
    """

    def __init__(
        self,
        token_url: str,
        timeout_seconds: float = DEFAULT_GRANT_TIMEOUT_SECONDS,
        session: aiohttp.ClientSession | None = None,
    ):
        if not token_url:
            raise InvalidConfigurationError("token_url is required")

        self.token_url = token_url
        self.timeout_seconds = timeout_seconds
        self._session = session
        self._owns_session = session is None

        logger.debug("Initialized grant executor", extra={"token_url": token_url})

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP client session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def _post_grant(
        self,
        grant_type: str,
        client_id: str,
        client_secret: str,
        form: dict[str, str],
    ) -> TokenResponse:
        _require_client(client_id, client_secret)
        session = await self._ensure_session()

        request_data = {"grant_type": grant_type, **form}
        headers = {
            "Authorization": _basic_auth_header(client_id, client_secret),
            "Content-Type": "application/x-www-form-urlencoded",
        }

        try:
            async with session.post(
                self.token_url,
                data=request_data,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            ) as response:
                if response.status != 200:
                    error_text = await response.text()
                    error = classify_grant_failure(response.status, error_text, grant_type)
                    logger.warning(
                        "Token endpoint returned HTTP %s for %s grant",
                        response.status,
                        grant_type,
                        extra={
                            "grant_type": grant_type,
                            "http_status": response.status,
                            "error_category": error.category.value,
                            "error_code": getattr(error, "error_code", None),
                        },
                    )
                    raise error

                try:
                    payload = await response.json(content_type=None)
                except ValueError as e:
                    raise GrantRejectedError(
                        f"Token endpoint returned a non-JSON body for {grant_type} grant",
                        error_code="invalid_response",
                        status_code=response.status,
                        cause=e,
                    ) from e

        except OAuth2Error:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(
                "Transport error during %s grant: %s",
                grant_type,
                e,
                extra={"grant_type": grant_type, "error_type": type(e).__name__},
            )
            raise TransientGrantError(
                f"Transport error during {grant_type} grant: {type(e).__name__}",
                cause=e,
                context={"grant_type": grant_type},
            ) from e

        try:
            return TokenResponse.model_validate(payload)
        except ValidationError as e:
            raise GrantRejectedError(
                f"Malformed token response for {grant_type} grant",
                error_code="invalid_response",
                cause=e,
            ) from e

    async def acquire_application_token(
        self,
        client_id: str,
        client_secret: str,
        scopes: str | list[str] | None = None,
    ) -> Credential:
        """
        Acquire an application credential using the client-credentials grant.

        Returns:
            Credential of kind APPLICATION

        Raises:
            InvalidConfigurationError: client id/secret missing (no request sent)
            TransientGrantError: transport failure, 429 or 5xx
            GrantRejectedError: endpoint refused the grant
        """
        requested = parse_scopes(scopes)
        form = {"scope": " ".join(sorted(requested))} if requested else {}

        token = await self._post_grant(GRANT_CLIENT_CREDENTIALS, client_id, client_secret, form)
        credential = token.to_credential(CredentialKind.APPLICATION, requested)

        logger.info(
            "Acquired application token",
            extra={"grant_type": GRANT_CLIENT_CREDENTIALS, "expires_in": token.expires_in},
        )
        return credential

    async def acquire_user_token(
        self,
        client_id: str,
        client_secret: str,
        authorization_code: str,
        redirect_uri: str,
    ) -> UserTokenPair:
        """
        Exchange an authorization code for a user access + refresh credential pair.

        Raises:
            InvalidConfigurationError: code, redirect URI or client credentials missing
            TransientGrantError: transport failure, 429 or 5xx
            GrantRejectedError: code invalid/expired/used, or no refresh token issued
        """
        if not authorization_code:
            raise InvalidConfigurationError("authorization_code is required")
        if not redirect_uri:
            raise InvalidConfigurationError("redirect_uri is required for the authorization_code grant")

        token = await self._post_grant(
            GRANT_AUTHORIZATION_CODE,
            client_id,
            client_secret,
            {"code": authorization_code, "redirect_uri": redirect_uri},
        )

        refresh = token.to_refresh_credential()
        if refresh is None:
            raise GrantRejectedError(
                "authorization_code grant succeeded but no refresh token was issued",
                error_code="missing_refresh_token",
            )

        logger.info(
            "Exchanged authorization code for user tokens",
            extra={
                "grant_type": GRANT_AUTHORIZATION_CODE,
                "expires_in": token.expires_in,
                "refresh_expires_in": token.refresh_token_expires_in,
            },
        )
        return UserTokenPair(access=token.to_credential(CredentialKind.USER_ACCESS), refresh=refresh)

    async def refresh_user_token(
        self,
        client_id: str,
        client_secret: str,
        refresh_credential: Credential,
        scopes: str | list[str] | None = None,
    ) -> UserTokenPair:
        """
        Mint a new user access credential from a refresh credential.

        If the response rotates the refresh token the new one is returned;
        otherwise the refresh credential passed in is kept.

        Raises:
            InvalidConfigurationError: client credentials missing
            TransientGrantError: transport failure, 429 or 5xx
            GrantRejectedError: refresh token revoked/expired, or none supplied
        """
        if refresh_credential is None or refresh_credential.kind is not CredentialKind.USER_REFRESH:
            raise GrantRejectedError(
                "No refresh token available; user re-authorization required",
                error_code="missing_refresh_token",
            )

        requested = parse_scopes(scopes)
        form = {"refresh_token": refresh_credential.value}
        if requested:
            form["scope"] = " ".join(sorted(requested))

        token = await self._post_grant(GRANT_REFRESH_TOKEN, client_id, client_secret, form)

        fallback_scopes = requested or refresh_credential.scopes
        access = token.to_credential(CredentialKind.USER_ACCESS, fallback_scopes)
        rotated = token.to_refresh_credential(refresh_credential.scopes)

        logger.info(
            "Refreshed user access token",
            extra={
                "grant_type": GRANT_REFRESH_TOKEN,
                "expires_in": token.expires_in,
                "refresh_rotated": rotated is not None,
            },
        )
        return UserTokenPair(access=access, refresh=rotated or refresh_credential)

    async def close(self) -> None:
        """Close the HTTP client session if this executor created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            await asyncio.sleep(0)
        self._session = None


__all__ = [
    "GrantExecutor",
    "classify_grant_failure",
    "DEFAULT_GRANT_TIMEOUT_SECONDS",
    "GRANT_CLIENT_CREDENTIALS",
    "GRANT_AUTHORIZATION_CODE",
    "GRANT_REFRESH_TOKEN",
]

"""Authenticated HTTP requests against the resource APIs.

execute(kind, spec) acquires a credential from the TokenCoordinator, attaches
it as a bearer token and sends the request. A 401 gets exactly one recovery
attempt: the rejected credential is invalidated, a fresh one is acquired, and
the request is resent. Everything else is surfaced to the caller untouched.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

import aiohttp

from core.errors.exceptions import ServiceError, classify_http_status
from core.logging.context import get_log_context
from core.oauth2.coordinator import TokenCoordinator
from core.oauth2.exceptions import (
    AuthenticationFailedError,
    InvalidConfigurationError,
    ResourceAuthorizationError,
)
from core.oauth2.models import Credential, CredentialKind
from core.types import ErrorCategory

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT_SECONDS = 30
DEFAULT_MAX_CONCURRENT = 20

# Resource calls are sent at most twice: the original and one retry after a 401
MAX_AUTH_ATTEMPTS = 2


@dataclass
class RequestSpec:
    """Description of one resource API call, independent of any credential."""

    method: str
    path: str
    params: dict[str, Any] | None = None
    json_body: Any = None
    headers: dict[str, str] = field(default_factory=dict)
    data: Any = None


@dataclass
class ApiResponse:
    """Successful (2xx) resource API response."""

    status: int
    headers: dict[str, str]
    body: Any = None


class ApiRequestError(ServiceError):
    """Non-authorization failure from a resource API call.

    Carries the HTTP status and response body unmodified; category follows
    the status code so callers can decide whether to retry.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: Any = None,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(message, cause, context)
        self.status_code = status_code
        self.body = body
        self.category = category


async def _read_body(response) -> Any:
    """JSON body when the server says so, otherwise text; None for empty bodies."""
    if response.status == 204:
        return None
    text = await response.text()
    if not text:
        return None
    content_type = response.headers.get("Content-Type", "")
    if "json" in content_type:
        try:
            return await response.json(content_type=None)
        except ValueError:
            return text
    return text


class AuthenticatedRequestExecutor:
    """
    Sends bearer-authenticated requests with one-shot recovery from 401s.

    Usage:
        executor = AuthenticatedRequestExecutor(coordinator, "https://api.ebay.com")
        response = await executor.execute(
            CredentialKind.USER_ACCESS,
            RequestSpec("GET", "/sell/account/v1/fulfillment_policy",
                        params={"marketplace_id": "EBAY_US"}),
        )
    """

    def __init__(
        self,
        coordinator: TokenCoordinator,
        base_url: str,
        timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        session: aiohttp.ClientSession | None = None,
    ):
        if not base_url or not base_url.startswith(("http://", "https://")):
            raise ValueError(
                f"base_url must start with http:// or https://, got: {base_url!r}"
            )

        self.coordinator = coordinator
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.max_concurrent = max_concurrent

        self._session = session
        self._owns_session = session is None
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._closed = False

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._closed:
            raise RuntimeError("AuthenticatedRequestExecutor is closed")
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=self.max_concurrent,
                limit_per_host=self.max_concurrent,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                headers={"Accept": "application/json"},
            )
            self._owns_session = True
        return self._session

    def build_url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    async def execute(self, kind: CredentialKind, spec: RequestSpec) -> ApiResponse:
        """
        Perform spec with a credential of the given kind.

        Raises:
            AuthenticationFailedError: resource rejected a freshly acquired credential too
            ApiRequestError: any other non-2xx status or transport failure (not retried)
            InvalidConfigurationError: kind is USER_REFRESH, which only mints access tokens
            OAuth2Error: credential could not be acquired (see TokenCoordinator.acquire)
        """
        if kind is CredentialKind.USER_REFRESH:
            raise InvalidConfigurationError(
                "Refresh tokens are never sent to resource APIs; use USER_ACCESS",
                context={"credential_kind": kind.value},
            )

        last_rejection: ResourceAuthorizationError | None = None

        for attempt in range(1, MAX_AUTH_ATTEMPTS + 1):
            credential = await self.coordinator.acquire(kind)
            try:
                return await self._send(spec, credential)
            except ResourceAuthorizationError as e:
                last_rejection = e
                if attempt == MAX_AUTH_ATTEMPTS:
                    break
                logger.info(
                    "Credential rejected by resource server, retrying with a fresh one",
                    extra={
                        "credential_kind": kind.value,
                        "api_method": spec.method,
                        "api_endpoint": spec.path,
                        "attempt": attempt,
                    },
                )
                self.coordinator.invalidate(kind, credential)

        logger.error(
            "Resource server rejected %s credential twice",
            kind.value,
            extra={
                "credential_kind": kind.value,
                "api_method": spec.method,
                "api_endpoint": spec.path,
                "total_attempts": MAX_AUTH_ATTEMPTS,
            },
        )
        raise AuthenticationFailedError(
            f"{spec.method} {spec.path} rejected after credential refresh",
            status_code=last_rejection.status_code,
            body=last_rejection.body,
            cause=last_rejection,
        )

    async def _send(self, spec: RequestSpec, credential: Credential) -> ApiResponse:
        session = await self._ensure_session()
        url = self.build_url(spec.path)
        headers = {**spec.headers, "Authorization": credential.authorization_header}
        if spec.json_body is not None:
            headers.setdefault("Content-Type", "application/json")

        ctx = {k: v for k, v in get_log_context().items() if v}

        async with self._semaphore:
            start_time = time.monotonic()
            try:
                async with session.request(
                    spec.method,
                    url,
                    params=spec.params,
                    json=spec.json_body,
                    data=spec.data,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
                ) as response:
                    duration = time.monotonic() - start_time
                    body = await _read_body(response)

                    if response.status == 401:
                        raise ResourceAuthorizationError(
                            f"Unauthorized (401): {spec.method} {spec.path}",
                            status_code=401,
                            body=body,
                        )

                    if not 200 <= response.status < 300:
                        category = classify_http_status(response.status)
                        logger.warning(
                            "API request failed",
                            extra={
                                **ctx,
                                "api_method": spec.method,
                                "api_endpoint": spec.path,
                                "http_status": response.status,
                                "error_category": category.value,
                                "duration_ms": round(duration * 1000, 1),
                            },
                        )
                        raise ApiRequestError(
                            f"HTTP {response.status}: {spec.method} {spec.path}",
                            status_code=response.status,
                            body=body,
                            category=category,
                        )

                    logger.debug(
                        "API request succeeded",
                        extra={
                            **ctx,
                            "api_method": spec.method,
                            "api_endpoint": spec.path,
                            "http_status": response.status,
                            "duration_ms": round(duration * 1000, 1),
                        },
                    )
                    return ApiResponse(
                        status=response.status,
                        headers=dict(response.headers),
                        body=body,
                    )

            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.warning(
                    "API transport error",
                    extra={
                        **ctx,
                        "api_method": spec.method,
                        "api_endpoint": spec.path,
                        "error_type": type(e).__name__,
                        "error_category": ErrorCategory.TRANSIENT.value,
                    },
                )
                raise ApiRequestError(
                    f"Transport error: {spec.method} {spec.path}: {type(e).__name__}",
                    category=ErrorCategory.TRANSIENT,
                    cause=e,
                ) from e

    async def close(self) -> None:
        self._closed = True
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            await asyncio.sleep(0)
        self._session = None


__all__ = [
    "AuthenticatedRequestExecutor",
    "RequestSpec",
    "ApiResponse",
    "ApiRequestError",
    "MAX_AUTH_ATTEMPTS",
]

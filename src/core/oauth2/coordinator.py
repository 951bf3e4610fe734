"""Single-flight token coordination.

TokenCoordinator serves acquire(kind) to any number of concurrent callers so
that at most one grant exchange per credential kind is outstanding, and every
caller that arrives while it runs receives that exchange's outcome.

Per-kind state:

    IDLE  --acquire, store miss-->  EXCHANGING(task, future, waiters)
    EXCHANGING  --exchange finished-->  IDLE  (result broadcast to all waiters)

All state transitions happen between awaits on the event loop, so the
"is an exchange already running?" check and the decision to start one cannot
interleave with another caller's.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum

from core.oauth2.exceptions import (
    GrantRejectedError,
    InvalidConfigurationError,
    OAuth2Error,
    TokenTimeoutError,
    TransientGrantError,
)
from core.oauth2.grants import GrantExecutor
from core.oauth2.models import Credential, CredentialKind, OAuth2Config, UserTokenPair
from core.oauth2.store import CredentialStore
from core.resilience.retry import GRANT_RETRY, RetryConfig, with_retry_async

logger = logging.getLogger(__name__)

# Upper bound for one exchange including its internal retries
DEFAULT_EXCHANGE_TIMEOUT_SECONDS = 30.0

ExchangeResult = dict[CredentialKind, Credential]

# Refresh grant rejections that mean the stored refresh token itself is unusable
REFRESH_REVOKED_CODES = frozenset({"invalid_grant", "missing_refresh_token"})


class RefreshState(Enum):
    IDLE = "idle"
    EXCHANGING = "exchanging"


@dataclass
class _InFlight:
    """One outstanding grant exchange and the callers waiting on it."""

    kind: CredentialKind
    future: asyncio.Future
    task: asyncio.Task | None = None
    waiters: int = 0
    started_at: float = field(default_factory=time.monotonic)


def _mark_retrieved(future: asyncio.Future) -> None:
    # Every waiter may have cancelled; don't let the loop warn about an unread exception
    if not future.cancelled():
        future.exception()


class TokenCoordinator:
    """
    Hands out valid credentials, collapsing concurrent refreshes into one.

    Usage:
        coordinator = TokenCoordinator(store, grants, oauth_config)

        credential = await coordinator.acquire(CredentialKind.APPLICATION)
        headers = {"Authorization": credential.authorization_header}

    Exchange per kind:
        APPLICATION  -> client-credentials grant
        USER_ACCESS  -> refresh grant using the stored USER_REFRESH credential
        USER_REFRESH -> never minted here; needs a new authorization code
    """

    def __init__(
        self,
        store: CredentialStore,
        grants: GrantExecutor,
        config: OAuth2Config,
        exchange_timeout_seconds: float = DEFAULT_EXCHANGE_TIMEOUT_SECONDS,
        retry_config: RetryConfig = GRANT_RETRY,
    ):
        self.store = store
        self.grants = grants
        self.config = config
        self.exchange_timeout_seconds = exchange_timeout_seconds
        self.retry_config = retry_config

        self._inflight: dict[CredentialKind, _InFlight] = {}
        self._closed = False
        self.exchange_count: dict[CredentialKind, int] = {kind: 0 for kind in CredentialKind}

        logger.debug(
            "Initialized TokenCoordinator",
            extra={
                "exchange_timeout_seconds": exchange_timeout_seconds,
                "max_attempts": retry_config.max_attempts,
            },
        )

    def state(self, kind: CredentialKind) -> RefreshState:
        return RefreshState.EXCHANGING if kind in self._inflight else RefreshState.IDLE

    def waiters(self, kind: CredentialKind) -> int:
        inflight = self._inflight.get(kind)
        return inflight.waiters if inflight else 0

    async def acquire(self, kind: CredentialKind) -> Credential:
        """
        Get a credential of the given kind that is valid beyond the safety margin.

        Returns immediately when the store holds one. Otherwise joins the
        in-flight exchange for kind, starting it if none is running.

        Raises:
            InvalidConfigurationError: client credentials missing
            GrantRejectedError: grant refused or no refresh token; needs re-authorization
            TransientGrantError: identity endpoint unreachable after internal retries
            TokenTimeoutError: exchange exceeded exchange_timeout_seconds
        """
        if self._closed:
            raise OAuth2Error("TokenCoordinator is closed")

        credential = self.store.get(kind)
        if credential is not None:
            return credential

        if kind is CredentialKind.USER_REFRESH:
            raise GrantRejectedError(
                "Refresh token missing or expired; user re-authorization required",
                error_code="missing_refresh_token",
            )

        inflight = self._inflight.get(kind)
        if inflight is None:
            if kind is CredentialKind.APPLICATION:
                operation = self._with_retry(self._client_credentials_exchange)
            else:
                operation = self._with_retry(self._refresh_exchange)
            inflight = self._begin(kind, operation)
        else:
            logger.debug(
                "Joining in-flight %s exchange",
                kind.value,
                extra={"credential_kind": kind.value, "waiters": inflight.waiters + 1},
            )

        result = await self._wait(inflight)
        return result[kind]

    async def get_token(self, kind: CredentialKind) -> str:
        """Access token value for kind (TokenProvider protocol)."""
        credential = await self.acquire(kind)
        return credential.value

    async def exchange_authorization_code(
        self, authorization_code: str, redirect_uri: str | None = None
    ) -> UserTokenPair:
        """
        Run the authorization-code grant as the USER_ACCESS exchange.

        Concurrent acquire(USER_ACCESS) callers wait on it instead of
        starting a refresh. Not retried: codes are single-use, and a retry
        after a lost response would be rejected anyway.

        A rejected code leaves the stored user credentials untouched.
        """
        if self._closed:
            raise OAuth2Error("TokenCoordinator is closed")

        redirect_uri = redirect_uri or self.config.redirect_uri

        # Let a running refresh finish first so its result can't overwrite ours
        current = self._inflight.get(CredentialKind.USER_ACCESS)
        while current is not None:
            await asyncio.wait([current.future])
            current = self._inflight.get(CredentialKind.USER_ACCESS)
        if self._closed:
            raise OAuth2Error("TokenCoordinator is closed")

        async def authorization_code_exchange() -> ExchangeResult:
            pair = await self.grants.acquire_user_token(
                self.config.client_id,
                self.config.client_secret,
                authorization_code,
                redirect_uri,
            )
            return {
                CredentialKind.USER_ACCESS: pair.access,
                CredentialKind.USER_REFRESH: pair.refresh,
            }

        inflight = self._begin(
            CredentialKind.USER_ACCESS, authorization_code_exchange, clear_on_reject=False
        )
        result = await self._wait(inflight)
        return UserTokenPair(
            access=result[CredentialKind.USER_ACCESS],
            refresh=result[CredentialKind.USER_REFRESH],
        )

    def invalidate(self, kind: CredentialKind, credential: Credential | None = None) -> bool:
        """
        Drop a credential the resource server rejected.

        With credential given, only drops it if it is still the stored one.
        """
        removed = self.store.clear(kind, expected=credential)
        logger.info(
            "Invalidated %s credential",
            kind.value,
            extra={"credential_kind": kind.value, "removed": removed},
        )
        return removed

    async def _client_credentials_exchange(self) -> ExchangeResult:
        credential = await self.grants.acquire_application_token(
            self.config.client_id,
            self.config.client_secret,
            self.config.application_scopes,
        )
        return {CredentialKind.APPLICATION: credential}

    async def _refresh_exchange(self) -> ExchangeResult:
        refresh = self.store.get(CredentialKind.USER_REFRESH)
        if refresh is None:
            raise GrantRejectedError(
                "No valid refresh token; user re-authorization required",
                error_code="missing_refresh_token",
            )
        pair = await self.grants.refresh_user_token(
            self.config.client_id,
            self.config.client_secret,
            refresh,
            self.config.user_scopes,
        )
        return {
            CredentialKind.USER_ACCESS: pair.access,
            CredentialKind.USER_REFRESH: pair.refresh,
        }

    def _with_retry(
        self, operation: Callable[[], Awaitable[ExchangeResult]]
    ) -> Callable[[], Awaitable[ExchangeResult]]:
        return with_retry_async(config=self.retry_config)(operation)

    def _begin(
        self,
        kind: CredentialKind,
        operation: Callable[[], Awaitable[ExchangeResult]],
        clear_on_reject: bool = True,
    ) -> _InFlight:
        loop = asyncio.get_running_loop()
        inflight = _InFlight(kind=kind, future=loop.create_future())
        inflight.future.add_done_callback(_mark_retrieved)

        self._inflight[kind] = inflight
        self.exchange_count[kind] += 1

        inflight.task = loop.create_task(
            self._run_exchange(inflight, operation, clear_on_reject),
            name=f"token-exchange-{kind.value}",
        )
        logger.info(
            "Starting %s token exchange",
            kind.value,
            extra={"credential_kind": kind.value, "exchange_number": self.exchange_count[kind]},
        )
        return inflight

    async def _wait(self, inflight: _InFlight) -> ExchangeResult:
        # shield: a caller cancelling its own wait must not cancel the shared exchange
        inflight.waiters += 1
        try:
            return await asyncio.shield(inflight.future)
        finally:
            inflight.waiters -= 1

    async def _run_exchange(
        self,
        inflight: _InFlight,
        operation: Callable[[], Awaitable[ExchangeResult]],
        clear_on_reject: bool,
    ) -> None:
        kind = inflight.kind
        try:
            result = await asyncio.wait_for(operation(), timeout=self.exchange_timeout_seconds)
            self._check_freshness(kind, result)
        except asyncio.CancelledError:
            self._complete(inflight, error=OAuth2Error(f"{kind.value} token exchange cancelled"))
            raise
        except asyncio.TimeoutError:
            self._complete(
                inflight,
                error=TokenTimeoutError(
                    f"{kind.value} token exchange exceeded {self.exchange_timeout_seconds}s",
                    context={"credential_kind": kind.value},
                ),
            )
        except OAuth2Error as e:
            if e.requires_external_action and clear_on_reject:
                self.store.clear(kind)
                if (
                    kind is CredentialKind.USER_ACCESS
                    and isinstance(e, GrantRejectedError)
                    and e.error_code in REFRESH_REVOKED_CODES
                ):
                    self.store.clear(CredentialKind.USER_REFRESH)
            self._complete(inflight, error=e)
        except Exception as e:
            self._complete(
                inflight,
                error=TransientGrantError(
                    f"Unexpected error during {kind.value} token exchange: {e}", cause=e
                ),
            )
        else:
            self._complete(inflight, result=result)

    def _check_freshness(self, kind: CredentialKind, result: ExchangeResult) -> None:
        credential = result.get(kind)
        if credential is None:
            raise TransientGrantError(f"{kind.value} exchange returned no {kind.value} credential")
        if credential.is_expired(self.store.safety_margin_seconds):
            raise InvalidConfigurationError(
                f"Issued {kind.value} token expires within the "
                f"{self.store.safety_margin_seconds}s safety margin; lower safety_margin_seconds",
                context={"credential_kind": kind.value},
            )

    def _complete(
        self,
        inflight: _InFlight,
        result: ExchangeResult | None = None,
        error: OAuth2Error | None = None,
    ) -> None:
        # No awaits here: store write, return to IDLE, and broadcast are one step
        kind = inflight.kind
        if result is not None:
            for credential in result.values():
                self.store.put(credential)

        if self._inflight.get(kind) is inflight:
            del self._inflight[kind]

        duration_ms = (time.monotonic() - inflight.started_at) * 1000
        if error is None:
            logger.info(
                "%s token exchange succeeded",
                kind.value,
                extra={
                    "credential_kind": kind.value,
                    "waiters": inflight.waiters,
                    "duration_ms": round(duration_ms, 1),
                    "expires_at": result[kind].expires_at.isoformat(),
                },
            )
            if not inflight.future.done():
                inflight.future.set_result(result)
            return

        logger.warning(
            "%s token exchange failed: %s",
            kind.value,
            error.message,
            extra={
                "credential_kind": kind.value,
                "waiters": inflight.waiters,
                "duration_ms": round(duration_ms, 1),
                "error_type": type(error).__name__,
                "error_category": error.category.value,
            },
        )
        if not inflight.future.done():
            inflight.future.set_exception(error)

    async def close(self) -> None:
        """Cancel outstanding exchanges; their waiters receive OAuth2Error."""
        self._closed = True
        tasks = [inflight.task for inflight in self._inflight.values() if inflight.task]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        # Tasks cancelled before their first step never reach _run_exchange's handlers
        for inflight in list(self._inflight.values()):
            self._complete(inflight, error=OAuth2Error("TokenCoordinator closed"))
        logger.info("TokenCoordinator closed")


__all__ = [
    "TokenCoordinator",
    "RefreshState",
    "DEFAULT_EXCHANGE_TIMEOUT_SECONDS",
]

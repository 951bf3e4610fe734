"""OAuth2 data models and configuration."""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from core.oauth2.exceptions import InvalidConfigurationError

# Used when the identity endpoint omits expires_in
DEFAULT_ACCESS_TOKEN_LIFETIME_SECONDS = 3600

# Refresh tokens for seller accounts are issued for roughly 18 months
DEFAULT_REFRESH_TOKEN_LIFETIME_SECONDS = 47_304_000


class CredentialKind(Enum):
    """The independent credential slots the store keeps."""

    APPLICATION = "application"
    USER_ACCESS = "user_access"
    USER_REFRESH = "user_refresh"


def parse_scopes(scope: str | list[str] | tuple[str, ...] | frozenset | None) -> frozenset[str]:
    """Normalize a space-separated scope string or an iterable into a frozenset."""
    if not scope:
        return frozenset()
    if isinstance(scope, str):
        return frozenset(s for s in scope.split() if s)
    return frozenset(s.strip() for s in scope if s and s.strip())


@dataclass(frozen=True)
class Credential:
    """
    Bearer credential with expiration tracking.

    Immutable once issued: a refresh produces a new Credential which replaces
    the old one wholesale.

    Attributes:
        kind: Which slot this credential occupies
        value: Opaque token string (never logged or shown in repr)
        expires_at: UTC timestamp when the token expires
        scopes: Scopes granted with the token
        token_type: Token type (typically "Bearer")
    """

    kind: CredentialKind
    value: str = field(repr=False)
    expires_at: datetime
    scopes: frozenset[str] = frozenset()
    token_type: str = "Bearer"

    @classmethod
    def from_lifetime(
        cls,
        kind: CredentialKind,
        value: str,
        expires_in: float,
        scopes: str | list[str] | frozenset | None = None,
        token_type: str = "Bearer",
        now: datetime | None = None,
    ) -> "Credential":
        """Build a credential that expires expires_in seconds from now."""
        issued_at = now or datetime.now(UTC)
        return cls(
            kind=kind,
            value=value,
            expires_at=issued_at + timedelta(seconds=expires_in),
            scopes=parse_scopes(scopes),
            token_type=token_type or "Bearer",
        )

    def is_expired(self, buffer_seconds: float = 0, now: datetime | None = None) -> bool:
        """
        Check if credential is expired or within buffer_seconds of expiry.

        Args:
            buffer_seconds: Safety buffer subtracted from expires_at
            now: Reference time (defaults to current UTC time)

        Returns:
            True if the credential must not be handed out
        """
        now = now or datetime.now(UTC)
        return now >= self.expires_at - timedelta(seconds=buffer_seconds)

    @property
    def remaining_lifetime(self) -> timedelta:
        """Get remaining time before the credential expires."""
        return self.expires_at - datetime.now(UTC)

    @property
    def authorization_header(self) -> str:
        return f"Bearer {self.value}"


@dataclass(frozen=True)
class UserTokenPair:
    """User-delegated access credential plus the refresh credential that mints it."""

    access: Credential
    refresh: Credential


class TokenResponse(BaseModel):
    """Schema for a successful identity endpoint response.

    Fields not listed are ignored so provider additions don't break parsing.
    """

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(..., min_length=1)
    expires_in: int = Field(default=DEFAULT_ACCESS_TOKEN_LIFETIME_SECONDS, gt=0)
    token_type: str = "Bearer"
    refresh_token: str | None = None
    refresh_token_expires_in: int | None = Field(default=None, gt=0)
    scope: str | None = None

    def to_credential(
        self, kind: CredentialKind, requested_scopes: frozenset[str] = frozenset()
    ) -> Credential:
        """Access credential from this response; falls back to the requested scopes."""
        return Credential.from_lifetime(
            kind=kind,
            value=self.access_token,
            expires_in=self.expires_in,
            scopes=parse_scopes(self.scope) or requested_scopes,
            token_type=self.token_type,
        )

    def to_refresh_credential(
        self, requested_scopes: frozenset[str] = frozenset()
    ) -> Credential | None:
        """Refresh credential from this response, or None if the provider didn't rotate it."""
        if not self.refresh_token:
            return None
        return Credential.from_lifetime(
            kind=CredentialKind.USER_REFRESH,
            value=self.refresh_token,
            expires_in=self.refresh_token_expires_in or DEFAULT_REFRESH_TOKEN_LIFETIME_SECONDS,
            scopes=parse_scopes(self.scope) or requested_scopes,
        )


@dataclass
class OAuth2Config:
    """
    OAuth2 client configuration.

    Attributes:
        client_id: OAuth2 client ID
        client_secret: OAuth2 client secret
        token_url: Token endpoint URL
        redirect_uri: Redirect URI (RuName) registered for the authorization-code grant
        application_scopes: Scopes requested for the client-credentials grant
        user_scopes: Scopes requested when refreshing user tokens
    """

    client_id: str
    client_secret: str
    token_url: str
    redirect_uri: str | None = None
    application_scopes: str | list[str] | None = None
    user_scopes: str | list[str] | None = None

    def validate(self) -> None:
        """Raise InvalidConfigurationError naming every missing field."""
        missing = [
            name
            for name in ("client_id", "client_secret", "token_url")
            if not getattr(self, name)
        ]
        if missing:
            raise InvalidConfigurationError(
                f"Missing OAuth2 configuration: {', '.join(missing)}",
                context={"missing": missing},
            )

    def get_scope_string(self, scopes: str | list[str] | None) -> str:
        """Get scope as space-separated string."""
        if not scopes:
            return ""
        if isinstance(scopes, list):
            return " ".join(scopes)
        return scopes


__all__ = [
    "CredentialKind",
    "Credential",
    "UserTokenPair",
    "TokenResponse",
    "OAuth2Config",
    "parse_scopes",
    "DEFAULT_ACCESS_TOKEN_LIFETIME_SECONDS",
    "DEFAULT_REFRESH_TOKEN_LIFETIME_SECONDS",
]

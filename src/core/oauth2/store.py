"""
Thread-safe credential store with expiry-aware reads.

Holds at most one credential per CredentialKind. Reads treat a credential as
absent once it is within the safety margin of its expiry, but the expired
value is retained so diagnostics can still report it as "expired" rather
than "absent".

Thread Safety:
    All operations are protected by a threading.Lock so the store can be
    inspected from threads other than the event loop's (e.g. a diagnostics
    endpoint) while requests are running.

Example:
    >>> store = CredentialStore(safety_margin_seconds=60)
    >>> store.put(Credential.from_lifetime(CredentialKind.APPLICATION, "v^1.1#...", 7200))
    >>> store.get(CredentialKind.APPLICATION)   # Credential, or None near expiry
"""

import threading
from datetime import UTC, datetime
from typing import Any

from core.oauth2.models import (
    DEFAULT_REFRESH_TOKEN_LIFETIME_SECONDS,
    Credential,
    CredentialKind,
)

# Subtracted from expires_at on every read
DEFAULT_SAFETY_MARGIN_SECONDS = 60

# Externally supplied access tokens carry no issue time, so they get a short leash
SEEDED_ACCESS_TOKEN_LIFETIME_SECONDS = 300

STATUS_PRESENT = "present"
STATUS_EXPIRED = "expired"
STATUS_ABSENT = "absent"


class CredentialStore:
    """
    Guarded map of CredentialKind -> Credential.

    No network or retry logic lives here.
    """

    def __init__(self, safety_margin_seconds: float = DEFAULT_SAFETY_MARGIN_SECONDS):
        self._credentials: dict[CredentialKind, Credential] = {}
        self._lock = threading.Lock()
        self.safety_margin_seconds = safety_margin_seconds

    def get(self, kind: CredentialKind) -> Credential | None:
        """
        Get the stored credential if it is still usable.

        Args:
            kind: Credential slot to read

        Returns:
            Credential if now < expires_at - safety margin, None otherwise.
        """
        with self._lock:
            credential = self._credentials.get(kind)
            if credential and not credential.is_expired(self.safety_margin_seconds):
                return credential
            return None

    def peek(self, kind: CredentialKind) -> Credential | None:
        """Return whatever is retained for kind, expired or not."""
        with self._lock:
            return self._credentials.get(kind)

    def put(self, credential: Credential) -> None:
        """Replace the credential for credential.kind; the previous one is discarded."""
        with self._lock:
            self._credentials[credential.kind] = credential

    def clear(
        self,
        kind: CredentialKind | None = None,
        expected: Credential | None = None,
    ) -> bool:
        """
        Remove one or all credentials.

        Args:
            kind: Slot to clear. If None, clears every slot.
            expected: Only clear if the stored credential is this exact object.
                A request that was rejected with an old token must not wipe a
                newer one that a concurrent refresh already stored.

        Returns:
            True if anything was removed.
        """
        with self._lock:
            if kind is None:
                removed = bool(self._credentials)
                self._credentials.clear()
                return removed

            current = self._credentials.get(kind)
            if current is None:
                return False
            if expected is not None and current is not expected:
                return False
            del self._credentials[kind]
            return True

    def seed_user_tokens(
        self,
        access_token: str | None,
        refresh_token: str | None,
        access_expires_in: float | None = None,
        refresh_expires_in: float | None = None,
        scopes: frozenset[str] = frozenset(),
    ) -> None:
        """
        Seed the user pair from tokens obtained outside this process.

        Either token may be omitted; a refresh token alone is enough for the
        first acquire to mint an access token.
        """
        now = datetime.now(UTC)
        with self._lock:
            if access_token:
                self._credentials[CredentialKind.USER_ACCESS] = Credential.from_lifetime(
                    CredentialKind.USER_ACCESS,
                    access_token,
                    access_expires_in or SEEDED_ACCESS_TOKEN_LIFETIME_SECONDS,
                    scopes=scopes,
                    now=now,
                )
            if refresh_token:
                self._credentials[CredentialKind.USER_REFRESH] = Credential.from_lifetime(
                    CredentialKind.USER_REFRESH,
                    refresh_token,
                    refresh_expires_in or DEFAULT_REFRESH_TOKEN_LIFETIME_SECONDS,
                    scopes=scopes,
                    now=now,
                )

    def status(self, kind: CredentialKind) -> str:
        """present, expired (retained but unusable) or absent."""
        with self._lock:
            return self._status_locked(kind)

    def _status_locked(self, kind: CredentialKind) -> str:
        credential = self._credentials.get(kind)
        if credential is None:
            return STATUS_ABSENT
        if credential.is_expired(self.safety_margin_seconds):
            return STATUS_EXPIRED
        return STATUS_PRESENT

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """
        Read-only diagnostic view of every slot, without secret values.

        Returns:
            Dict keyed by kind value, e.g.
            {"application": {"status": "present", "expires_at": "...",
                             "remaining_seconds": 7080.2, "scopes": [...]}}
        """
        with self._lock:
            view: dict[str, dict[str, Any]] = {}
            for kind in CredentialKind:
                credential = self._credentials.get(kind)
                entry: dict[str, Any] = {"status": self._status_locked(kind)}
                if credential is not None:
                    entry["expires_at"] = credential.expires_at.isoformat()
                    entry["remaining_seconds"] = round(
                        credential.remaining_lifetime.total_seconds(), 1
                    )
                    entry["scopes"] = sorted(credential.scopes)
                view[kind.value] = entry
            return view


__all__ = [
    "CredentialStore",
    "DEFAULT_SAFETY_MARGIN_SECONDS",
    "SEEDED_ACCESS_TOKEN_LIFETIME_SECONDS",
    "STATUS_PRESENT",
    "STATUS_EXPIRED",
    "STATUS_ABSENT",
]

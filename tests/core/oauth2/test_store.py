"""Tests for CredentialStore."""

import threading
from datetime import UTC, datetime, timedelta

import pytest

from core.oauth2.models import Credential, CredentialKind
from core.oauth2.store import (
    SEEDED_ACCESS_TOKEN_LIFETIME_SECONDS,
    STATUS_ABSENT,
    STATUS_EXPIRED,
    STATUS_PRESENT,
    CredentialStore,
)


def _credential(kind=CredentialKind.APPLICATION, value="token", expires_in=3600, scopes=None):
    return Credential.from_lifetime(kind, value, expires_in, scopes=scopes)


@pytest.fixture
def store():
    return CredentialStore(safety_margin_seconds=60)


class TestGet:
    """Validity-gated reads."""

    def test_returns_none_when_empty(self, store):
        assert store.get(CredentialKind.APPLICATION) is None

    def test_returns_valid_credential(self, store):
        credential = _credential()
        store.put(credential)
        assert store.get(CredentialKind.APPLICATION) is credential

    def test_hides_credential_inside_safety_margin(self, store):
        """30s left with a 60s margin counts as absent."""
        store.put(_credential(expires_in=30))
        assert store.get(CredentialKind.APPLICATION) is None

    def test_returns_credential_just_outside_margin(self, store):
        store.put(_credential(expires_in=120))
        assert store.get(CredentialKind.APPLICATION) is not None

    def test_expired_credential_is_retained_for_diagnostics(self, store):
        credential = _credential(expires_in=30)
        store.put(credential)
        assert store.peek(CredentialKind.APPLICATION) is credential
        assert store.status(CredentialKind.APPLICATION) == STATUS_EXPIRED

    def test_kinds_are_independent(self, store):
        store.put(_credential(CredentialKind.USER_ACCESS))
        assert store.get(CredentialKind.APPLICATION) is None
        assert store.get(CredentialKind.USER_REFRESH) is None


class TestPut:
    def test_replaces_wholesale(self, store):
        first = _credential(value="first")
        second = _credential(value="second")
        store.put(first)
        store.put(second)
        assert store.get(CredentialKind.APPLICATION) is second


class TestClear:
    """Clearing, including compare-and-clear."""

    def test_clear_one_kind(self, store):
        store.put(_credential(CredentialKind.APPLICATION))
        store.put(_credential(CredentialKind.USER_ACCESS))

        assert store.clear(CredentialKind.APPLICATION) is True
        assert store.peek(CredentialKind.APPLICATION) is None
        assert store.peek(CredentialKind.USER_ACCESS) is not None

    def test_clear_all(self, store):
        for kind in CredentialKind:
            store.put(_credential(kind))
        assert store.clear() is True
        assert all(store.peek(kind) is None for kind in CredentialKind)

    def test_clear_empty_returns_false(self, store):
        assert store.clear(CredentialKind.USER_ACCESS) is False
        assert store.clear() is False

    def test_expected_mismatch_keeps_newer_credential(self, store):
        """A request rejected with an old token must not wipe a fresh one."""
        stale = _credential(value="stale")
        fresh = _credential(value="fresh")
        store.put(fresh)

        assert store.clear(CredentialKind.APPLICATION, expected=stale) is False
        assert store.get(CredentialKind.APPLICATION) is fresh

    def test_expected_match_clears(self, store):
        credential = _credential()
        store.put(credential)
        assert store.clear(CredentialKind.APPLICATION, expected=credential) is True
        assert store.peek(CredentialKind.APPLICATION) is None


class TestSeedUserTokens:
    def test_seeds_both(self, store):
        store.seed_user_tokens("access", "refresh", scopes=frozenset({"s"}))

        access = store.get(CredentialKind.USER_ACCESS)
        refresh = store.get(CredentialKind.USER_REFRESH)
        assert access.value == "access"
        assert refresh.value == "refresh"
        assert access.scopes == frozenset({"s"})

    def test_seeded_access_gets_short_lifetime(self, store):
        store.seed_user_tokens("access", None)
        access = store.peek(CredentialKind.USER_ACCESS)
        assert access.remaining_lifetime <= timedelta(seconds=SEEDED_ACCESS_TOKEN_LIFETIME_SECONDS)
        assert store.peek(CredentialKind.USER_REFRESH) is None

    def test_refresh_only(self, store):
        store.seed_user_tokens(None, "refresh")
        assert store.peek(CredentialKind.USER_ACCESS) is None
        assert store.get(CredentialKind.USER_REFRESH).value == "refresh"

    def test_explicit_lifetimes(self, store):
        store.seed_user_tokens("a", "r", access_expires_in=7200, refresh_expires_in=86400)
        assert store.peek(CredentialKind.USER_ACCESS).remaining_lifetime > timedelta(hours=1)
        assert store.peek(CredentialKind.USER_REFRESH).remaining_lifetime > timedelta(hours=23)


class TestSnapshot:
    """Diagnostic view."""

    def test_reports_every_kind(self, store):
        store.put(_credential(CredentialKind.APPLICATION, scopes="b a"))
        store.put(_credential(CredentialKind.USER_ACCESS, expires_in=10))

        view = store.snapshot()

        assert set(view) == {"application", "user_access", "user_refresh"}
        assert view["application"]["status"] == STATUS_PRESENT
        assert view["application"]["scopes"] == ["a", "b"]
        assert view["user_access"]["status"] == STATUS_EXPIRED
        assert view["user_refresh"] == {"status": STATUS_ABSENT}

    def test_never_contains_token_values(self, store):
        store.put(_credential(value="very-secret-token"))
        assert "very-secret-token" not in repr(store.snapshot())

    def test_expires_at_is_iso_string(self, store):
        store.put(_credential())
        expires_at = store.snapshot()["application"]["expires_at"]
        assert datetime.fromisoformat(expires_at) > datetime.now(UTC)


class TestThreadSafety:
    def test_concurrent_put_and_get(self, store):
        errors = []

        def writer(n):
            try:
                for i in range(200):
                    store.put(_credential(value=f"{n}-{i}"))
                    store.get(CredentialKind.APPLICATION)
                    store.snapshot()
            except Exception as e:  # pragma: no cover
                errors.append(e)

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert store.get(CredentialKind.APPLICATION) is not None

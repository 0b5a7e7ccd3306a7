# =============================================================================
# Unit Tests — Authentication
# =============================================================================
#
# Tests auth components without a running API or real API keys. The store is
# mocked; the dependency is called directly.
#
# Test groups:
#   1. Key generation & hashing (pure functions)
#   2. Key validity rules (key_rejection_reason)
#   3. Auth dependency (get_current_user)
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from fakes import _run, make_settings

from app.exceptions import AuthenticationFailed
from app.services.auth import generate_api_key, hash_api_key, key_rejection_reason

# ---------------------------------------------------------------------------
# 1. Key Generation & Hashing
# ---------------------------------------------------------------------------


class TestKeyGeneration:
    """Tests for API key generation and hashing."""

    def test_key_format_has_prefix(self):
        """Generated key starts with 'sk-'."""
        raw_key, prefix, key_hash = generate_api_key()
        assert raw_key.startswith("sk-")

    def test_key_length(self):
        """Generated key is 'sk-' + 64 hex chars = 67 chars total."""
        raw_key, prefix, key_hash = generate_api_key()
        assert len(raw_key) == 67

    def test_prefix_is_first_8_chars(self):
        raw_key, prefix, key_hash = generate_api_key()
        assert prefix == raw_key[:8]

    def test_hash_matches_raw_key(self):
        raw_key, prefix, key_hash = generate_api_key()
        assert key_hash == hash_api_key(raw_key)
        assert len(key_hash) == 64

    def test_keys_are_unique(self):
        raw1, _, hash1 = generate_api_key()
        raw2, _, hash2 = generate_api_key()
        assert raw1 != raw2
        assert hash1 != hash2


# ---------------------------------------------------------------------------
# Helpers — lightweight fakes
# ---------------------------------------------------------------------------


@dataclass
class FakeApiKey:
    """Lightweight stand-in for the ApiKey ORM model."""

    id: int = 1
    name: str = "test-key"
    user_id: str = "alice"
    key_prefix: str = "sk-test0"
    key_hash: str = ""
    is_active: bool = True
    expires_at: datetime | None = None


@dataclass
class FakeCredentials:
    """Stand-in for HTTPAuthorizationCredentials."""

    credentials: str = "sk-testkey"


@dataclass
class FakeServices:
    settings: object
    store: object


def _services(tmp_path, api_key=None, auth_enabled=True):
    store = AsyncMock()
    store.get_api_key_by_hash.return_value = api_key
    return FakeServices(settings=make_settings(tmp_path, auth_enabled=auth_enabled), store=store)


# ---------------------------------------------------------------------------
# 2. Key validity
# ---------------------------------------------------------------------------


class TestKeyRejectionReason:

    def test_valid_key(self):
        assert key_rejection_reason(FakeApiKey()) is None

    def test_unknown_key(self):
        assert key_rejection_reason(None) == "Invalid API key"

    def test_inactive_key(self):
        assert "deactivated" in key_rejection_reason(FakeApiKey(is_active=False))

    def test_expired_key(self):
        key = FakeApiKey(expires_at=datetime.now(UTC) - timedelta(hours=1))
        assert "expired" in key_rejection_reason(key)

    def test_future_expiry_is_valid(self):
        key = FakeApiKey(expires_at=datetime.now(UTC) + timedelta(days=1))
        assert key_rejection_reason(key) is None

    def test_naive_expiry_read_as_utc(self):
        naive_past = (datetime.now(UTC) - timedelta(minutes=5)).replace(tzinfo=None)
        assert "expired" in key_rejection_reason(FakeApiKey(expires_at=naive_past))


# ---------------------------------------------------------------------------
# 3. Auth Dependency (get_current_user)
# ---------------------------------------------------------------------------


class TestGetCurrentUser:
    """Tests for the get_current_user dependency."""

    def test_auth_disabled_acts_as_dev_user(self, tmp_path):
        from app.api.deps import get_current_user

        services = _services(tmp_path, auth_enabled=False)
        user = _run(get_current_user(credentials=None, services=services))
        assert user.user_id == "alice"
        services.store.get_api_key_by_hash.assert_not_called()

    def test_missing_credentials_raises_401(self, tmp_path):
        from app.api.deps import get_current_user

        with pytest.raises(AuthenticationFailed) as exc_info:
            _run(get_current_user(credentials=None, services=_services(tmp_path)))
        assert exc_info.value.status_code == 401

    def test_unknown_key_raises_401(self, tmp_path):
        from app.api.deps import get_current_user

        with pytest.raises(AuthenticationFailed):
            _run(get_current_user(credentials=FakeCredentials(), services=_services(tmp_path)))

    def test_inactive_key_raises_401(self, tmp_path):
        from app.api.deps import get_current_user

        services = _services(tmp_path, api_key=FakeApiKey(is_active=False))
        with pytest.raises(AuthenticationFailed):
            _run(get_current_user(credentials=FakeCredentials(), services=services))
        services.store.touch_api_key.assert_not_called()

    def test_expired_key_raises_401(self, tmp_path):
        from app.api.deps import get_current_user

        expired = FakeApiKey(expires_at=datetime.now(UTC) - timedelta(hours=1))
        with pytest.raises(AuthenticationFailed):
            _run(get_current_user(
                credentials=FakeCredentials(), services=_services(tmp_path, api_key=expired),
            ))

    def test_valid_key_resolves_owner(self, tmp_path):
        """A valid key resolves to its user id and is marked as used."""
        from app.api.deps import get_current_user

        services = _services(tmp_path, api_key=FakeApiKey(user_id="bob"))
        user = _run(get_current_user(credentials=FakeCredentials("sk-bob"), services=services))

        assert user.user_id == "bob"
        services.store.get_api_key_by_hash.assert_awaited_once_with(hash_api_key("sk-bob"))
        services.store.touch_api_key.assert_awaited_once_with(1)

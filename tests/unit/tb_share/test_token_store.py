import os
import stat
from datetime import datetime, timedelta, timezone

import pytest

from tb_share.token_store import AuthToken, TokenStore

pytestmark = [pytest.mark.unit, pytest.mark.unit_share]

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def test_token_expiry_with_skew():
    token = AuthToken("abc", expires_at=NOW + timedelta(seconds=20))
    assert token.is_expired(NOW) is True
    assert AuthToken("abc", expires_at=NOW + timedelta(minutes=5)).is_expired(NOW) is False
    assert AuthToken("abc").is_expired(NOW) is False


def test_from_response():
    token = AuthToken.from_response({"access_token": "tok", "expires_in": 3600, "scope": "read:user"}, now=NOW)
    assert token.expires_at == NOW + timedelta(hours=1)
    assert token.authorization == "Bearer tok"
    assert token.scope == "read:user"


def test_save_load_round_trip_with_owner_only_permissions(tmp_path):
    store = TokenStore(tmp_path / "auth" / "token.json")
    token = AuthToken("tok", expires_at=NOW, refresh_token="r")
    store.save(token)
    assert store.load() == token
    mode = stat.S_IMODE(os.stat(store.path).st_mode)
    assert mode == 0o600


def test_load_missing_or_corrupt(tmp_path):
    store = TokenStore(tmp_path / "token.json")
    assert store.load() is None
    store.path.write_text("{broken")
    assert store.load() is None


def test_clear(tmp_path):
    store = TokenStore(tmp_path / "token.json")
    assert store.clear() is False
    store.save(AuthToken("tok"))
    assert store.clear() is True
    assert not store.path.exists()


@pytest.mark.parametrize("expires_in", ["3600", "3600.0", 3600.0])
def test_from_response_accepts_numeric_strings(expires_in):
    token = AuthToken.from_response({"access_token": "tok", "expires_in": expires_in}, now=NOW)
    assert token.expires_at == NOW + timedelta(hours=1)


def test_naive_expiry_in_stored_file_is_utc(tmp_path):
    store = TokenStore(tmp_path / "token.json")
    store.path.write_text('{"access_token": "tok", "expires_at": "2025-06-01T12:10:00"}')
    token = store.load()
    assert token.expires_at == NOW + timedelta(minutes=10)
    assert token.is_expired(NOW) is False
    assert token.is_expired(NOW + timedelta(minutes=10)) is True


def test_offset_expiry_is_normalized_to_utc():
    token = AuthToken.from_dict({"access_token": "tok", "expires_at": "2025-06-01T14:00:00+02:00"})
    assert token.expires_at == NOW
    assert token.expires_at.tzinfo is timezone.utc

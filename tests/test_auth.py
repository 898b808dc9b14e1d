"""
Supabase JWT helper tests
"""
import time

import jwt
import pytest
from fastapi import HTTPException

from auth import extract_user_id_from_token, require_auth

SECRET = "super-secret-jwt-key-for-tests-0123456789"


def _token(secret=SECRET, **claims):
    payload = {"sub": "user-123", "aud": "authenticated", "exp": int(time.time()) + 60}
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm="HS256")


class TestExtractUserId:
    """extract_user_id_from_token"""

    def test_valid_token(self):
        assert extract_user_id_from_token(f"Bearer {_token()}", secret=SECRET) == "user-123"

    def test_wrong_secret(self):
        token = _token(secret="another-secret-key-that-is-long-enough")
        assert extract_user_id_from_token(f"Bearer {token}", secret=SECRET) is None

    def test_wrong_audience(self):
        assert extract_user_id_from_token(f"Bearer {_token(aud='anon')}", secret=SECRET) is None

    def test_expired(self):
        token = _token(exp=int(time.time()) - 10)
        assert extract_user_id_from_token(f"Bearer {token}", secret=SECRET) is None

    def test_missing_or_malformed_header(self):
        assert extract_user_id_from_token(None) is None
        assert extract_user_id_from_token(_token(), secret=SECRET) is None

    def test_unverified_without_secret(self, monkeypatch):
        """Development mode: no secret configured"""
        monkeypatch.delenv("SUPABASE_JWT_SECRET", raising=False)
        assert extract_user_id_from_token(f"Bearer {_token()}") == "user-123"


class TestRequireAuth:
    @pytest.mark.asyncio
    async def test_rejects_anonymous(self):
        with pytest.raises(HTTPException) as exc_info:
            await require_auth(None)
        assert exc_info.value.status_code == 401

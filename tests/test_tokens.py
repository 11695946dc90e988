"""Unit tests for auth/tokens.py -- passwords, JWTs, refresh tokens, cookies.

Covers:
- bcrypt round trip and tolerance of malformed stored hashes
- verify_credentials() with a missing user returns False
- JWT claims, custom lifetime, tampering, and expiry
- generate_refresh_token() produces unique opaque values with a future expiry
- set_auth_cookies() makes the refresh cookie persistent only when remembered
"""

from datetime import datetime, timezone

from fastapi.responses import Response
from jose import jwt

from auth.tokens import (
    ACCESS_COOKIE,
    REFRESH_COOKIE,
    REMEMBERED_COOKIE,
    clear_auth_cookies,
    create_access_token,
    decode_access_token,
    generate_refresh_token,
    hash_password,
    set_auth_cookies,
    verify_credentials,
    verify_password,
)
from core.config import get_settings
from core.models import User


def _set_cookie_headers(response: Response) -> dict[str, str]:
    headers = {}
    for raw in response.headers.getlist("set-cookie"):
        name = raw.split("=", 1)[0]
        headers[name] = raw
    return headers


class TestPasswords:
    def test_hash_and_verify(self) -> None:
        hashed = hash_password("pw1")
        assert hashed != "pw1"
        assert verify_password("pw1", hashed)
        assert not verify_password("pw2", hashed)

    def test_malformed_hash_is_a_mismatch(self) -> None:
        assert verify_password("pw1", "not-a-bcrypt-hash") is False

    def test_verify_credentials_without_user(self) -> None:
        assert verify_credentials(None, "pw1") is False

    def test_verify_credentials_with_user(self) -> None:
        user = User(email="a@x.com", hashed_password=hash_password("pw1"), id=1)
        assert verify_credentials(user, "pw1") is True
        assert verify_credentials(user, "nope") is False


class TestJwt:
    def test_claims(self) -> None:
        payload = decode_access_token(create_access_token(7, "a@x.com"))
        assert payload["user_id"] == 7
        assert payload["sub"] == "a@x.com"

    def test_custom_lifetime(self) -> None:
        payload = decode_access_token(create_access_token(7, "a@x.com", expire_seconds=3600))
        remaining = payload["exp"] - datetime.now(timezone.utc).timestamp()
        assert 3500 < remaining <= 3600

    def test_default_lifetime_from_settings(self) -> None:
        payload = decode_access_token(create_access_token(7, "a@x.com"))
        remaining = payload["exp"] - datetime.now(timezone.utc).timestamp()
        assert remaining <= get_settings().token_expire_seconds

    def test_tampered_token_rejected(self) -> None:
        header, payload, _signature = create_access_token(7, "a@x.com").split(".")
        other_signature = create_access_token(8, "b@x.com").split(".")[2]
        assert decode_access_token(f"{header}.{payload}.{other_signature}") is None

    def test_foreign_key_rejected(self) -> None:
        forged = jwt.encode({"user_id": 7, "sub": "a@x.com"}, "x" * 32, algorithm="HS256")
        assert decode_access_token(forged) is None

    def test_expired_token_rejected(self) -> None:
        expired = jwt.encode(
            {"user_id": 7, "sub": "a@x.com", "exp": 1},
            get_settings().secret_key,
            algorithm="HS256",
        )
        assert decode_access_token(expired) is None

    def test_token_without_user_id_rejected(self) -> None:
        token = jwt.encode({"sub": "a@x.com"}, get_settings().secret_key, algorithm="HS256")
        assert decode_access_token(token) is None


class TestRefreshTokens:
    def test_unique_and_unexpired(self) -> None:
        first = generate_refresh_token("10.0.0.1")
        second = generate_refresh_token("10.0.0.1")
        assert first.token != second.token
        assert first.created_by_ip == "10.0.0.1"
        assert first.is_active
        assert first.revoked_at is None


class TestCookies:
    def test_session_only_when_not_remembered(self) -> None:
        response = Response()
        set_auth_cookies(response, "jwt", "refresh", remembered=False)
        cookies = _set_cookie_headers(response)
        assert "HttpOnly" in cookies[ACCESS_COOKIE]
        assert "HttpOnly" in cookies[REFRESH_COOKIE]
        assert "Max-Age" not in cookies[REFRESH_COOKIE]
        assert REMEMBERED_COOKIE not in cookies

    def test_persistent_when_remembered(self) -> None:
        response = Response()
        set_auth_cookies(response, "jwt", "refresh", remembered=True)
        cookies = _set_cookie_headers(response)
        days = get_settings().refresh_token_expire_days
        assert f"Max-Age={days * 24 * 3600}" in cookies[REFRESH_COOKIE]
        assert cookies[REMEMBERED_COOKIE].startswith(f"{REMEMBERED_COOKIE}=1;")

    def test_clear(self) -> None:
        response = Response()
        clear_auth_cookies(response)
        cookies = _set_cookie_headers(response)
        assert set(cookies) == {ACCESS_COOKIE, REFRESH_COOKIE, REMEMBERED_COOKIE}
        assert all("Max-Age=0" in c for c in cookies.values())

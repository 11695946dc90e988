"""
auth/tokens.py -- JWT, password hashing, refresh token, and cookie utilities.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       user_id, email, and expiry. They are short-lived (token_expire_seconds);
       long sessions come from refresh token rotation, not long JWTs.
       Verification returns None on any failure -- route layer turns that
       into a 401.

  Passwords: bcrypt, salted and one-way. The _DUMMY_HASH constant enables
       timing equalization in verify_credentials() so response time does not
       reveal whether an email is registered [C1].

  Refresh tokens: secrets.token_urlsafe(48) gives 384 bits of entropy. The
       value is opaque -- it carries no claims and is only meaningful as a
       lookup key into the refresh_tokens table.

Layer rule: no imports from api/, web/, db/, or services/. Import from core/
is allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from jose import JWTError, jwt

from core.config import get_settings
from core.models import RefreshToken, User, utcnow_iso

logger = logging.getLogger("taledynamic.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton [M6]
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"
REMEMBERED_COOKIE = "remembered"

# bcrypt rejects longer inputs outright (bcrypt>=5 raises ValueError).
MAX_PASSWORD_BYTES = 72

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Callers must keep plain within MAX_PASSWORD_BYTES once UTF-8 encoded;
    the services reject longer passwords before hashing.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash, or a password past bcrypt's 72-byte limit.
        return False


# Timing equalization dummy hash [C1]. Computed once at module load.
_DUMMY_HASH: str = hash_password("taledynamic_timing_dummy")


def verify_credentials(user: Optional[User], password: str) -> bool:
    """Check a password against a possibly-missing user in constant-ish time.

    Always runs bcrypt, whether or not the user exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as a real check)
    - Wrong password: bcrypt runs against the real hash (same cost)
    """
    if user is None:
        verify_password(password, _DUMMY_HASH)
        return False
    return verify_password(password, user.hashed_password)


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(user_id: int, email: str, expire_seconds: int = 0) -> str:
    """Encode a signed JWT with user identity and expiry.

    Args:
        user_id:        Numeric user ID stored in the DB.
        email:          Stored as the JWT subject claim.
        expire_seconds: Lifetime in seconds. If 0 (default), uses
                        Settings.token_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    expire = datetime.now(timezone.utc) + timedelta(seconds=duration)
    payload = {
        "sub": email,
        "user_id": user_id,
        "exp": expire,
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure."""
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if "user_id" not in payload:
        return None
    return payload


# ---------------------------------------------------------------------------
# Refresh tokens
# ---------------------------------------------------------------------------


def generate_refresh_token(ip_address: str) -> RefreshToken:
    """Mint a new unsaved refresh token stamped with the caller's IP."""
    expires = datetime.now(timezone.utc) + timedelta(days=_settings.refresh_token_expire_days)
    return RefreshToken(
        token=secrets.token_urlsafe(48),
        expires_at=expires.isoformat(),
        created_at=utcnow_iso(),
        created_by_ip=ip_address or "",
    )


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_access_cookie(response, jwt_token: str) -> None:
    """Write only the JWT cookie. max_age matches the JWT expiry."""
    response.set_cookie(
        ACCESS_COOKIE,
        value=jwt_token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=_settings.token_expire_seconds,
    )


def set_auth_cookies(response, jwt_token: str, refresh_token: str, remembered: bool = False) -> None:
    """Write the session cookies on a response.

    access_token:  httpOnly, expires with the JWT.
    refresh_token: httpOnly. Persistent only when the user asked to be
                   remembered; otherwise a browser-session cookie.
    remembered:    "1" when persistent. Readable by the route guard, which
                   uses it to decide whether a missing JWT may be refreshed.

    httponly=True: JS cannot read the tokens (XSS mitigation).
    samesite="lax": CSRF mitigation for cross-site POSTs.
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
    """
    refresh_max_age = _settings.refresh_token_expire_days * 24 * 3600 if remembered else None
    set_access_cookie(response, jwt_token)
    response.set_cookie(
        REFRESH_COOKIE,
        value=refresh_token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=refresh_max_age,
    )
    if remembered:
        response.set_cookie(
            REMEMBERED_COOKIE,
            value="1",
            samesite="lax",
            secure=_settings.secure_cookies,
            max_age=refresh_max_age,
        )


def clear_auth_cookies(response) -> None:
    for name in (ACCESS_COOKIE, REFRESH_COOKIE, REMEMBERED_COOKIE):
        response.delete_cookie(name)

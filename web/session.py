"""
web/session.py -- Browser session state and the route guard for protected pages.

The session lives entirely in cookies (see auth/tokens.py). SessionState is
the per-request view of those cookies with an explicit lifecycle:

  login    a fresh AuthResult from sign-in; cookies are written on apply()
  refresh  a rotated AuthResult from the guard; cookies are rewritten
  logout   every session cookie is cleared on apply()

require_session is the guard for /profile and its children. When the JWT is
missing or stale but the user asked to be remembered, it AWAITS the refresh
token rotation before deciding -- navigation never proceeds on an
unresolved session.

Layer rule: imports from auth/, core/, and services/ only. Never from api/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Union
from urllib.parse import quote

from fastapi import Request
from fastapi.responses import RedirectResponse
from starlette.concurrency import run_in_threadpool

from auth.dependencies import client_ip, try_get_current_user
from auth.tokens import REFRESH_COOKIE, REMEMBERED_COOKIE, clear_auth_cookies, set_access_cookie, set_auth_cookies
from core.errors import BadRequestError, NotFoundError
from core.models import AuthResult, User
from services.users import UserService

logger = logging.getLogger("taledynamic.web.session")


@dataclass
class SessionState:
    user: Optional[User] = None
    jwt_token: Optional[str] = None
    refresh_token: Optional[str] = None
    remembered: bool = False
    changed: bool = False
    ended: bool = False

    @property
    def is_logged_in(self) -> bool:
        return self.user is not None and not self.ended

    def login(self, result: AuthResult, remembered: bool) -> None:
        self.user = result.user
        self.jwt_token = result.jwt_token
        self.refresh_token = result.refresh_token
        self.remembered = remembered
        self.changed = True
        self.ended = False

    def refresh(self, result: AuthResult) -> None:
        """Adopt a rotated token pair. The remembered flag carries over."""
        self.login(result, self.remembered)

    def reissue(self, user: User, jwt_token: str) -> None:
        """Swap in a new JWT after the account row was replaced."""
        self.user = user
        self.jwt_token = jwt_token
        self.changed = True

    def logout(self) -> None:
        self.user = None
        self.jwt_token = None
        self.refresh_token = None
        self.remembered = False
        self.changed = True
        self.ended = True

    def apply(self, response) -> None:
        """Write the session changes made during this request onto a response."""
        if not self.changed:
            return
        if self.ended:
            clear_auth_cookies(response)
        elif self.refresh_token:
            set_auth_cookies(response, self.jwt_token, self.refresh_token, remembered=self.remembered)
        elif self.jwt_token:
            set_access_cookie(response, self.jwt_token)
        response.headers["Cache-Control"] = "no-store"  # [M5]


def safe_redirect(target: Optional[str], default: str = "/") -> str:
    """Only accept server-local relative paths as redirect targets. [C2]

    Rejects absolute URLs and protocol-relative URLs (//attacker.com) so a
    crafted ?redirect= cannot send the user off-site after sign-in.
    """
    if target and target.startswith("/") and not target.startswith("//") and "\\" not in target:
        return target
    return default


def redirect_to_auth(request: Request) -> RedirectResponse:
    """Send the browser to the sign-in page, remembering where it was going."""
    target = safe_redirect(request.url.path)
    resp = RedirectResponse(f"/auth?redirect={quote(target)}", status_code=302)
    clear_auth_cookies(resp)
    return resp


async def require_session(request: Request) -> Union[SessionState, RedirectResponse]:
    """Resolve the session for a protected page, or redirect to /auth.

    Usage at the top of a protected handler:
        session = await require_session(request)
        if isinstance(session, RedirectResponse):
            return session
        ...
        session.apply(response)
    """
    remembered = request.cookies.get(REMEMBERED_COOKIE) == "1"
    user = await run_in_threadpool(try_get_current_user, request)
    if user is not None:
        return SessionState(user=user, remembered=remembered)

    token = request.cookies.get(REFRESH_COOKIE)
    if not (remembered and token):
        return redirect_to_auth(request)

    users: UserService = request.app.state.users
    try:
        result = await run_in_threadpool(users.refresh_token, token, client_ip(request))
    except (BadRequestError, NotFoundError) as exc:
        logger.info("Session refresh failed on %s: %s", request.url.path, exc.message)
        return redirect_to_auth(request)

    session = SessionState(remembered=True)
    session.refresh(result)
    return session

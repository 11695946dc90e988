"""
web/routes.py -- Jinja2 template routes for the Taledynamic web UI.

These routes serve server-rendered HTML. They share app.state with the API
routes (same UserService over the same DataContext) but return HTML and
redirects instead of JSON.

Route registration order matters. FastAPI resolves same-level paths in order:
  - POST /auth/sign-in and POST /auth/sign-up sit next to GET /auth; they
    do not clash, but the catch-all GET /{path:path} must be registered LAST
    or it swallows every page.
  - The catch-all never answers for api/ paths; those get the JSON 404 so
    API clients are not handed an HTML page.

Routes:
  GET  /                    -- home
  GET  /auth                -- sign-in and sign-up forms (?redirect=, ?error=, ?notice=)
  POST /auth/sign-in        -- handle sign-in, redirect to ?redirect or /profile
  POST /auth/sign-up        -- handle registration, redirect to /auth?notice=registered
  GET  /profile             -- profile overview (session required)
  GET  /profile/settings    -- account settings (session required)
  GET  /profile/email       -- email edit form (session required)
  POST /profile/email       -- change email
  GET  /profile/password    -- password edit form (session required)
  POST /profile/password    -- change password
  POST /logout              -- revoke refresh token, clear cookies, redirect /auth
  GET  /{path}              -- not found page
"""

import logging
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Form, HTTPException, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from starlette.concurrency import run_in_threadpool

from auth.dependencies import client_ip, try_get_current_user
from auth.tokens import REFRESH_COOKIE, create_access_token
from core.errors import BadRequestError, NotFoundError
from services.users import UserService
from web.session import SessionState, redirect_to_auth, require_session, safe_redirect

logger = logging.getLogger("taledynamic.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
# Expose try_get_current_user as a Jinja2 global so layout.html can render the
# navigation on public pages without every handler passing current_user.
# Guarded pages pass current_user explicitly, because after a refresh the
# request still carries the stale cookie.
templates.env.globals["try_get_current_user"] = try_get_current_user
router = APIRouter()

# ---------------------------------------------------------------------------
# Message whitelists
# ---------------------------------------------------------------------------

# The raw ?error= and ?notice= params are NEVER passed to templates -- only
# the message looked up here is. Prevents reflected XSS via crafted URLs. [M3]
_ERROR_MESSAGES: dict[str, str] = {
    "bad_credentials": "Invalid email or password.",
    "session_expired": "Your session has expired. Please sign in again.",
}

_NOTICES: dict[str, str] = {
    "registered": "Account created. Please sign in.",
    "email": "Email was changed.",
    "password": "Password was changed.",
}

_PROFILE_SECTIONS = ("settings", "email", "password")


def _auth_page(
    request: Request,
    redirect: str = "",
    error_msg: Optional[str] = None,
    notice: Optional[str] = None,
    signup_errors: Optional[list[str]] = None,
    signup_email: str = "",
    status_code: int = 200,
) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "auth.html",
        {
            "redirect": redirect,
            "error_msg": error_msg,
            "notice": notice,
            "signup_errors": signup_errors or [],
            "signup_email": signup_email,
        },
        status_code=status_code,
    )


def _profile_page(
    request: Request,
    session: SessionState,
    section: str,
    errors: Optional[list[str]] = None,
    status_code: int = 200,
) -> HTMLResponse:
    notice = _NOTICES.get(request.query_params.get("notice", ""))
    resp = templates.TemplateResponse(
        request,
        "profile.html",
        {
            "current_user": session.user,
            "section": section,
            "sections": _PROFILE_SECTIONS,
            "notice": notice,
            "errors": errors or [],
        },
        status_code=status_code,
    )
    session.apply(resp)
    return resp


# ---------------------------------------------------------------------------
# GET / -- home
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
def home(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(request, "home.html")


# ---------------------------------------------------------------------------
# /auth -- sign in and sign up
# ---------------------------------------------------------------------------


@router.get("/auth", response_class=HTMLResponse)
def auth_form(request: Request, redirect: str = "") -> HTMLResponse:
    """Render the sign-in and sign-up forms."""
    # Redirect already-authenticated users straight to their destination
    if try_get_current_user(request) is not None:
        return RedirectResponse(safe_redirect(redirect, "/profile"), status_code=302)

    return _auth_page(
        request,
        redirect=safe_redirect(redirect, ""),
        error_msg=_ERROR_MESSAGES.get(request.query_params.get("error", "")),
        notice=_NOTICES.get(request.query_params.get("notice", "")),
    )


@router.post("/auth/sign-in", response_class=HTMLResponse)
def sign_in(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    remembered: bool = Form(False),
    redirect: str = Form(""),
) -> RedirectResponse:
    """Handle the sign-in form. A failed attempt never says which field was wrong."""
    users: UserService = request.app.state.users
    target = safe_redirect(redirect, "/profile")  # [C2]
    try:
        result = users.authenticate(email, password, client_ip(request))  # [C1] timing equalization
    except (BadRequestError, NotFoundError):
        return RedirectResponse(f"/auth?error=bad_credentials&redirect={quote(target)}", status_code=302)

    session = SessionState()
    session.login(result, remembered)
    resp = RedirectResponse(target, status_code=302)
    session.apply(resp)
    return resp


@router.post("/auth/sign-up", response_class=HTMLResponse)
def sign_up(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    confirmed_password: str = Form(""),
) -> HTMLResponse:
    """Handle the registration form. Validation messages are re-rendered in place."""
    users: UserService = request.app.state.users
    try:
        users.create_user(email, password, confirmed_password, client_ip(request))
    except BadRequestError as exc:
        return _auth_page(
            request,
            signup_errors=exc.message.split("\n"),
            signup_email=email,
            status_code=exc.status_code,
        )
    return RedirectResponse("/auth?notice=registered", status_code=302)


# ---------------------------------------------------------------------------
# /profile -- guarded account pages
# ---------------------------------------------------------------------------


@router.get("/profile", response_class=HTMLResponse)
async def profile(request: Request) -> HTMLResponse:
    session = await require_session(request)
    if isinstance(session, RedirectResponse):
        return session
    return _profile_page(request, session, "overview")


@router.get("/profile/{section}", response_class=HTMLResponse)
async def profile_section(request: Request, section: str) -> HTMLResponse:
    if section not in _PROFILE_SECTIONS:
        return _not_found(request)
    session = await require_session(request)
    if isinstance(session, RedirectResponse):
        return session
    return _profile_page(request, session, section)


@router.post("/profile/email", response_class=HTMLResponse)
async def profile_email(
    request: Request,
    current_password: str = Form(""),
    email: str = Form(""),
) -> HTMLResponse:
    session = await require_session(request)
    if isinstance(session, RedirectResponse):
        return session
    return await _update_account(request, session, "email", current_password, email=email)


@router.post("/profile/password", response_class=HTMLResponse)
async def profile_password(
    request: Request,
    current_password: str = Form(""),
    new_password: str = Form(""),
    confirmed_password: str = Form(""),
) -> HTMLResponse:
    session = await require_session(request)
    if isinstance(session, RedirectResponse):
        return session
    return await _update_account(
        request,
        session,
        "password",
        current_password,
        password=new_password,
        confirm_password=confirmed_password,
    )


async def _update_account(
    request: Request,
    session: SessionState,
    section: str,
    current_password: str,
    **changes: str,
) -> HTMLResponse:
    """Apply an account change and reissue the JWT for the replacement row."""
    users: UserService = request.app.state.users
    try:
        updated = await run_in_threadpool(
            users.update_user,
            session.user.id,
            current_password=current_password,
            **changes,
        )
    except NotFoundError:
        # The account vanished between the guard and the update.
        return redirect_to_auth(request)
    except BadRequestError as exc:
        return _profile_page(request, session, section, errors=exc.message.split("\n"), status_code=exc.status_code)

    session.reissue(updated, create_access_token(updated.id, updated.email))
    resp = RedirectResponse(f"/profile/settings?notice={section}", status_code=302)
    session.apply(resp)
    return resp


# ---------------------------------------------------------------------------
# POST /logout
# ---------------------------------------------------------------------------


@router.post("/logout")
def logout(request: Request) -> RedirectResponse:
    """Revoke the refresh token, clear the session cookies, and go to /auth."""
    token = request.cookies.get(REFRESH_COOKIE)
    if token:
        users: UserService = request.app.state.users
        try:
            users.revoke_token(token, client_ip(request))
        except (BadRequestError, NotFoundError):
            logger.debug("Logout with an inactive refresh token")
    session = SessionState()
    session.logout()
    resp = RedirectResponse("/auth", status_code=302)
    session.apply(resp)
    return resp


# ---------------------------------------------------------------------------
# Catch-all not found page -- registered LAST
# ---------------------------------------------------------------------------


def _not_found(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(request, "not_found.html", status_code=404)


@router.get("/{path:path}", response_class=HTMLResponse, include_in_schema=False)
def not_found(request: Request, path: str) -> HTMLResponse:
    if path == "api" or path.startswith("api/"):
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "Not Found"},
        )
    return _not_found(request)

"""
web/routes.py -- Jinja2 template routes for the SuiVote web UI.

These routes serve server-rendered HTML. They share app.state with the API
routes (same ledger client, login flow, session DB) but return HTML instead of
JSON.

Route registration order: GET /login/{provider} is a sub-path of /login and is
registered first, then the base /login route.

Routes:
  GET  /                   -- account page (login required): every stored account
                              with its balance, and a faucet button on test networks
  GET  /login/{provider}   -- start zkLogin, 302 to the provider
  GET  /login              -- provider buttons
  GET  /auth               -- OAuth callback page; its script posts the URL
                              fragment to POST /api/v1/auth/complete
  POST /logout             -- wipe zkLogin records, redirect /login
"""

import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from auth.dependencies import get_session_store, try_get_current_account, try_get_session_store
from auth.login import LoginFlow
from core.errors import ZkLoginError
from core.ledger import LedgerClient
from core.models import MIST_PER_SUI

logger = logging.getLogger("suivote.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
# layout.html calls this to decide between the login link and the logout button.
templates.env.globals["try_get_current_account"] = try_get_current_account
router = APIRouter()

_NEXT_KEY = "next"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

# Whitelist mapping for ?error= and ?notice= query params [M3].
# The raw query param is NEVER passed to templates -- only the message from
# these dicts is. Prevents reflected XSS via crafted query strings.
_ERROR_MESSAGES: dict[str, str] = {
    "unknown_provider": "That sign-in provider is not available.",
    "epoch_unavailable": "Could not reach the Sui network. Please try again.",
    "network_error": "Could not reach the Sui network. Please try again.",
    "malformed_token": "The sign-in response was not valid. Please try again.",
    "no_pending_login": "No sign-in was in progress. Please start again.",
    "salt_service_failed": "The salt service did not answer. Please try again later.",
    "proof_service_failed": "The proving service did not answer. Please try again later.",
    "session_expired": "Your session has expired. Please log in again.",
    "no_id_token": "The sign-in provider did not return an identity token.",
    "rate_limited": "Too many sign-in attempts. Please wait a minute.",
    "faucet_unavailable": "There is no faucet on this network.",
    "faucet_failed": "The faucet did not send any SUI. Please try again later.",
    "faucet_rate_limited": "The faucet is busy. Please try again later.",
    "not_your_account": "The faucet only funds accounts logged in here.",
}

_NOTICE_MESSAGES: dict[str, str] = {
    "already_logged_in": "You are already logged in with this account.",
    "logged_out": "You have been logged out.",
    "faucet_requested": "The faucet sent SUI. It can take a few seconds to show up.",
}


def _safe_next(next_url: Optional[str]) -> str:
    """Validate a post-login redirect target. Only accept relative paths. [C2]

    Rejects absolute URLs and protocol-relative URLs ("//host"), both of
    which would redirect off-site after login.
    """
    if next_url and next_url.startswith("/") and not next_url.startswith("//"):
        return next_url
    return "/"


# ---------------------------------------------------------------------------
# GET / -- account page
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
def account_page(request: Request) -> HTMLResponse:
    account = try_get_current_account(request)
    if account is None:
        return RedirectResponse("/login", status_code=302)

    accounts = try_get_session_store(request).load_accounts()
    ledger: LedgerClient = request.app.state.ledger
    # None marks a balance the ledger could not report.
    balances: dict[str, Optional[float]] = {}
    for a in accounts:
        try:
            balances[a.user_address] = ledger.get_balance(a.user_address) / MIST_PER_SUI
        except ZkLoginError as e:
            logger.warning("Balance unavailable for %s: %s", a.user_address, e.message)
            balances[a.user_address] = None

    return templates.TemplateResponse(
        request,
        "home.html",
        {
            "account": account,
            "accounts": accounts,
            "balances": balances,
            "faucet_enabled": getattr(request.app.state, "faucet", None) is not None,
            "error_msg": _ERROR_MESSAGES.get(request.query_params.get("error", "")),
            "current_epoch": getattr(request.app.state, "display_epoch", None),
            "notice_msg": _NOTICE_MESSAGES.get(request.query_params.get("notice", "")),
        },
    )


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


@router.get("/login/{provider}")
def login_redirect(request: Request, provider: str) -> RedirectResponse:
    """Start a zkLogin session and redirect the browser to the provider.

    Unknown providers and ledger failures land back on /login with a
    whitelisted error code. No SetupData is written in either case.
    """
    flow: LoginFlow = request.app.state.login_flow
    try:
        url = flow.begin_login(get_session_store(request), provider)
    except ZkLoginError as e:
        logger.warning("Login start failed for provider %r: %s", provider, e.code)
        return RedirectResponse(f"/login?error={e.code}", status_code=302)

    request.session[_NEXT_KEY] = _safe_next(request.query_params.get("next"))  # [C2]
    resp = RedirectResponse(url, status_code=302)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.get("/login", response_class=HTMLResponse)
def login_page(request: Request) -> HTMLResponse:
    """Render the provider buttons. Logged-in users go straight to /."""
    if try_get_current_account(request) is not None:
        return RedirectResponse("/", status_code=302)

    return templates.TemplateResponse(
        request,
        "login.html",
        {
            "error_msg": _ERROR_MESSAGES.get(request.query_params.get("error", "")),
            "notice_msg": _NOTICE_MESSAGES.get(request.query_params.get("notice", "")),
            "providers": request.app.state.providers.enabled(),
            "next_url": _safe_next(request.query_params.get("next")),
        },
    )


@router.get("/auth", response_class=HTMLResponse)
def auth_callback(request: Request) -> HTMLResponse:
    """OAuth redirect target.

    The id_token arrives in the URL fragment, which browsers never send to
    the server. The page shows a pending state while its script posts the
    fragment to /api/v1/auth/complete, then navigates to next_url on success
    or to /login?error=<code> on failure.
    """
    resp = templates.TemplateResponse(
        request,
        "auth_callback.html",
        {"next_url": _safe_next(request.session.get(_NEXT_KEY))},
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/logout")
def logout(request: Request) -> RedirectResponse:
    """Wipe this browser's zkLogin records and redirect to the login page."""
    try_get_session_store(request).clear_all()
    request.session.clear()
    return RedirectResponse("/login?notice=logged_out", status_code=302)

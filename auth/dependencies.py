"""
auth/dependencies.py -- FastAPI Depends() helpers for the zkLogin session.

Each browser gets a random session id, kept in the signed session cookie
(Starlette SessionMiddleware, signed with SECRET_KEY). The id selects that
browser's namespace in app.state.session_db; the zkLogin records themselves
never travel in the cookie.

get_session_store() assigns a session id on first use -- call it on routes that
write (login start, callback completion).
try_get_session_store() never assigns one -- a visitor without a cookie gets a
store with no storage, whose reads return nothing.

try_get_current_account() is the soft variant (returns None when logged out).
get_current_account() wraps it and raises HTTP 401 if there is no account.

Layer rule: no imports from web/ or api/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import secrets

from fastapi import HTTPException, Request

from auth.models import AccountData
from auth.store import ZkSessionStore

_SESSION_ID_KEY = "sid"


def get_session_store(request: Request) -> ZkSessionStore:
    """Return this browser's session store, creating a session id if needed."""
    session_id = request.session.get(_SESSION_ID_KEY)
    if not session_id:
        session_id = secrets.token_urlsafe(32)
        request.session[_SESSION_ID_KEY] = session_id
    return ZkSessionStore(request.app.state.session_db.for_session(session_id))


def try_get_session_store(request: Request) -> ZkSessionStore:
    """Return this browser's session store without creating a session id."""
    session_id = request.session.get(_SESSION_ID_KEY)
    if not session_id:
        return ZkSessionStore(None)
    return ZkSessionStore(request.app.state.session_db.for_session(session_id))


def try_get_current_account(request: Request) -> AccountData | None:
    """Return the active zkLogin account, or None. Never raises.

    Expiry is not checked here -- that needs a ledger round-trip and is done
    by the session guard when a transaction is signed.
    """
    return try_get_session_store(request).active_account()


def get_current_account(request: Request) -> AccountData:
    """Require a logged-in account. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.post("/transactions")
        def route(account: AccountData = Depends(get_current_account)): ...
    """
    account = try_get_current_account(request)
    if account is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Log in to continue."},
        )
    return account

"""
api/routes/v1/auth.py -- zkLogin login and session REST endpoints.

Routes:
  GET  /api/v1/auth/providers          -- list enabled OAuth providers (public)
  POST /api/v1/auth/login/{provider}   -- start a login; returns the authorization URL
  POST /api/v1/auth/complete           -- finish a login from the callback fragment
  GET  /api/v1/auth/me                 -- active account and all stored accounts
  POST /api/v1/auth/logout             -- wipe this browser's zkLogin records

Login start and completion are plain `def` handlers: they make blocking HTTP
calls (ledger, salt service, prover) and FastAPI runs them in the threadpool.

Security:
  [H2] Login start and completion are rate-limited per IP (LOGIN_RATE_LIMIT).
  [M5] Cache-Control: no-store on every response that touches session state.
"""


from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.models import (
    AccountResponse,
    CompleteLoginRequest,
    LoginUrlResponse,
    MeResponse,
    OAuthProviderInfo,
)
from auth.dependencies import get_current_account, get_session_store, try_get_session_store
from auth.login import LoginFlow
from auth.models import AccountData

# Auth policy:
# - GET  /api/v1/auth/providers:         public -- login page renders provider buttons
# - POST /api/v1/auth/login/{provider}:  public -- starts the session
# - POST /api/v1/auth/complete:          public -- requires the pending SetupData instead
# - GET  /api/v1/auth/me:                requires an account (get_current_account)
# - POST /api/v1/auth/logout:            public -- wiping nothing is not an error
router = APIRouter()


@router.get("/auth/providers", response_model=list[OAuthProviderInfo])
async def list_providers(request: Request) -> list[OAuthProviderInfo]:
    """Return the configured OAuth providers. Empty when no client ids are set."""
    return [OAuthProviderInfo(**p) for p in request.app.state.providers.enabled()]


@router.post("/auth/login/{provider}", response_model=LoginUrlResponse)
@limiter.limit(login_rate_limit)  # [H2] below @router so the registered endpoint is the limited one
def start_login(request: Request, provider: str) -> JSONResponse:
    """Generate the ephemeral key, persist SetupData, and return the provider URL.

    Script clients open the URL themselves; the web UI uses GET /login/{provider},
    which answers with a 302 instead.
    """
    flow: LoginFlow = request.app.state.login_flow
    url = flow.begin_login(get_session_store(request), provider)
    resp = JSONResponse(content=LoginUrlResponse(provider=provider, authorization_url=url).model_dump())
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/complete", response_model=AccountResponse)
@limiter.limit(login_rate_limit)  # [H2]
def complete_login(request: Request, body: CompleteLoginRequest) -> JSONResponse:
    """Finish the login: claims, salt, address, proof, persisted account.

    DuplicateAccount and the other ZkLoginError kinds are rendered by the
    exception handler in api/main.py.
    """
    flow: LoginFlow = request.app.state.login_flow
    account = flow.complete_login(get_session_store(request), body.callback)
    if account is None:
        raise HTTPException(
            status_code=400,
            detail={"code": "no_id_token", "message": "The callback carried no identity token."},
        )
    resp = JSONResponse(content=AccountResponse.from_account(account).model_dump())
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.get("/auth/me", response_model=MeResponse)
def me(request: Request, account: AccountData = Depends(get_current_account)) -> MeResponse:
    """Return the active account and every account stored for this browser."""
    accounts = try_get_session_store(request).load_accounts()
    return MeResponse(
        active=AccountResponse.from_account(account),
        accounts=[AccountResponse.from_account(a) for a in accounts],
    )


@router.post("/auth/logout")
def logout(request: Request) -> JSONResponse:
    """Delete the setup and account records and drop the session id."""
    try_get_session_store(request).clear_all()
    request.session.clear()
    resp = JSONResponse(content={"message": "Logged out."})
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp

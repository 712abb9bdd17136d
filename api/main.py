"""
api/main.py -- FastAPI application entry point for SuiVote.

Exposes the zkLogin session lifecycle over HTTP: login start and completion,
account info, ledger reads, and zkLogin-signed transactions. The web UI
(web/routes.py) shares app.state with these routes.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter
  4. SessionMiddleware     -- signed cookie carrying the session namespace id

Lifespan builds every collaborator once (ledger client, epoch tracker,
provider registry, salt resolver, prover, login flow, signer, faucet, session DB) and
tears them down symmetrically. Nothing below is a module-level singleton
except the FastAPI app itself.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.middleware.sessions import SessionMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.ledger import router as ledger_router
from auth.epochs import EpochTracker
from auth.login import LoginFlow
from auth.oauth import ProviderRegistry
from auth.prover import ProverClient
from auth.salt import build_salt_resolver
from auth.signing import SessionGuard, TransactionSigner
from auth.store import SessionDatabase
from core.config import get_settings
from core.errors import ZkLoginError
from core.faucet import FaucetClient
from core.ledger import LedgerClient

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("suivote.api")

_settings = get_settings()

_EPOCH_REFRESH_SECONDS = 60
_PURGE_INTERVAL_SECONDS = 60 * 60

# ---------------------------------------------------------------------------
# Background tasks
# ---------------------------------------------------------------------------


async def _epoch_refresh_loop(app: FastAPI) -> None:
    """Refresh app.state.display_epoch every minute.

    Display only -- the account page shows it next to the expiry epoch. The
    session guard never reads it; it fetches a fresh epoch per signature.
    """
    while True:
        try:
            app.state.display_epoch = await asyncio.to_thread(app.state.ledger.get_current_epoch)
        except ZkLoginError as e:
            logger.warning("Epoch refresh failed: %s", e.message)
        await asyncio.sleep(_EPOCH_REFRESH_SECONDS)


async def _purge_loop(app: FastAPI) -> None:
    """Purge idle session namespaces every hour.

    CancelledError from task.cancel() during shutdown propagates out of
    asyncio.sleep and unwinds the coroutine cleanly.
    """
    while True:
        await asyncio.sleep(_PURGE_INTERVAL_SECONDS)
        removed = await asyncio.to_thread(app.state.session_db.purge_expired, _settings.session_ttl_seconds)
        if removed:
            logger.info("Purged %d idle session records", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the zkLogin collaborators on startup, release them on shutdown.

    Startup order matters:
      1. Ledger client first -- epochs, guard and signer all take it.
      2. Login flow next -- needs epochs, providers, salt resolver, prover.
      3. Session DB before any task or request can touch a namespace.
      4. Background tasks last -- they reference the ledger and session DB.
    """
    cfg = get_settings()
    logger.info("SuiVote API starting up (network=%s, fullnode=%s)", cfg.network, cfg.fullnode_url)

    ledger = LedgerClient(cfg.fullnode_url, timeout=cfg.request_timeout_seconds)
    app.state.ledger = ledger
    app.state.epochs = EpochTracker(ledger, cfg.max_epoch_offset)
    app.state.providers = ProviderRegistry.from_settings(cfg)
    if not app.state.providers.providers:
        logger.warning("No OAuth providers configured -- login is unavailable")

    app.state.prover = ProverClient(cfg.prover_url, timeout=cfg.prover_timeout_seconds)
    app.state.login_flow = LoginFlow(
        epochs=app.state.epochs,
        providers=app.state.providers,
        salt_resolver=build_salt_resolver(cfg),
        prover=app.state.prover,
    )
    app.state.guard = SessionGuard(ledger)
    app.state.signer = TransactionSigner(ledger, app.state.guard)
    # None on mainnet: the faucet route answers faucet_unavailable.
    app.state.faucet = FaucetClient(cfg.faucet_url, timeout=cfg.request_timeout_seconds) if cfg.faucet_url else None

    app.state.session_db = SessionDatabase(cfg.session_db_url)
    logger.info("Session store initialized")

    app.state.display_epoch = None
    app.state.epoch_task = asyncio.create_task(_epoch_refresh_loop(app))
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    app.state.epoch_task.cancel()
    app.state.purge_task.cancel()
    app.state.session_db.close()
    ledger.close()
    if app.state.faucet is not None:
        app.state.faucet.close()
    logger.info("SuiVote API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="SuiVote API",
    description="zkLogin authentication and transaction signing for on-chain voting on Sui.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# add_middleware() wraps the app, so the LAST middleware added is the
# OUTERMOST at request time. SessionMiddleware is added first so it sits
# innermost, closest to the routes that read request.session.
# ---------------------------------------------------------------------------

# Signed (not encrypted) cookie. It only ever holds the random session id.
app.add_middleware(
    SessionMiddleware,
    secret_key=_settings.secret_key,
    session_cookie="suivote_session",
    max_age=_settings.session_ttl_seconds,
    same_site="lax",
    https_only=_settings.secure_cookies,
)

app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://localhost:3000", "http://127.0.0.1"],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type"],
    max_age=3600,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_host_list)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(ledger_router, prefix="/api/v1", tags=["Ledger"])
# Web UI router is mounted by asgi.py, not here.
# api/ and web/ are independent layers -- only the top-level asgi.py imports both.


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(ZkLoginError)
async def zklogin_error_handler(request: Request, exc: ZkLoginError) -> JSONResponse:
    """Render any login or signing failure with the status its class declares."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=exc.code,
                message=exc.message,
                detail=exc.detail,
                retryable=exc.retryable,
                rpc_code=getattr(exc, "rpc_code", None),
            )
        ).model_dump(),
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error and Retry-After when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
                retryable=True,
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers raise HTTPException with a {"code", "message"} dict as
    detail. A dict detail is used directly as the error field; anything else
    is wrapped.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit applied.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness, version, and the configured network."""
    return HealthResponse(version=VERSION, network=_settings.network)

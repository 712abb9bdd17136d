"""
api/routes/v1/ledger.py -- Ledger reads and zkLogin-signed transactions.

Routes:
  GET  /api/v1/epoch                   -- current epoch and the expiry a login would get
  GET  /api/v1/balance                 -- SUI balance (owner param, or the active account)
  GET  /api/v1/objects/{object_id}     -- raw object read
  POST /api/v1/transactions            -- sign and execute one Move call (requires account)
  POST /api/v1/polls/{poll_id}/vote    -- cast_vote on the configured voting program
  POST /api/v1/faucet                  -- test SUI for one of this browser's accounts (devnet/testnet)

Signing routes share _execute(): on SessionExpired the expired account is
removed from this browser's store before the error is rendered, so the next
page load shows the user as logged out.

The faucet route is rate-limited per IP (FAUCET_RATE_LIMIT) and only funds
addresses stored in this browser's session, so it cannot be used to drain the
public faucet towards arbitrary addresses.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request

from api.limiter import faucet_rate_limit, limiter
from api.models import (
    BalanceResponse,
    EpochResponse,
    ExecutionResponse,
    FaucetRequest,
    FaucetResponse,
    TransactionRequest,
    VoteRequest,
)
from auth.dependencies import get_current_account, try_get_current_account, try_get_session_store
from auth.epochs import EpochTracker
from auth.models import AccountData
from auth.signing import TransactionSigner
from core.config import get_settings
from core.errors import FaucetUnavailable, SessionExpired
from core.faucet import FaucetClient
from core.ledger import LedgerClient
from core.models import SUI_ADDRESS_PATTERN, SUI_COIN_TYPE, MoveCall, cast_vote_call

logger = logging.getLogger("suivote.api.ledger")

router = APIRouter()


def _execute(request: Request, tx: MoveCall, account: AccountData) -> ExecutionResponse:
    signer: TransactionSigner = request.app.state.signer
    try:
        result = signer.execute(tx, account)
    except SessionExpired:
        try_get_session_store(request).discard_account(account.user_address)
        raise
    return ExecutionResponse.from_result(result)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@router.get("/epoch", response_model=EpochResponse)
def epoch(request: Request) -> EpochResponse:
    epochs: EpochTracker = request.app.state.epochs
    current = epochs.fetch_current_epoch()
    return EpochResponse(
        current_epoch=current,
        login_expiry_epoch=epochs.compute_expiry_epoch(current, epochs.offset),
    )


@router.get("/balance", response_model=BalanceResponse)
def balance(
    request: Request,
    owner: Optional[str] = Query(default=None, pattern=SUI_ADDRESS_PATTERN),
    coin_type: str = Query(default=SUI_COIN_TYPE, max_length=256),
) -> BalanceResponse:
    """Balance of owner, defaulting to the active zkLogin account."""
    if owner is None:
        account = try_get_current_account(request)
        if account is None:
            raise HTTPException(
                status_code=400,
                detail={"code": "owner_required", "message": "Pass owner or log in first."},
            )
        owner = account.user_address
    ledger: LedgerClient = request.app.state.ledger
    return BalanceResponse(owner=owner, coin_type=coin_type, total_balance=ledger.get_balance(owner, coin_type))


@router.get("/objects/{object_id}")
def get_object(request: Request, object_id: str = Path(pattern=SUI_ADDRESS_PATTERN)) -> dict[str, Any]:
    ledger: LedgerClient = request.app.state.ledger
    return ledger.get_object(object_id)


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


@router.post("/transactions", response_model=ExecutionResponse)
def execute_transaction(
    request: Request,
    body: TransactionRequest,
    account: AccountData = Depends(get_current_account),
) -> ExecutionResponse:
    """Sign one Move call with the active zkLogin account and execute it."""
    tx = MoveCall(
        target=body.target,
        arguments=body.arguments,
        type_arguments=body.type_arguments,
        gas_budget=body.gas_budget,
    )
    return _execute(request, tx, account)


@router.post("/polls/{poll_id}/vote", response_model=ExecutionResponse)
def cast_vote(
    request: Request,
    body: VoteRequest,
    poll_id: str = Path(pattern=SUI_ADDRESS_PATTERN),
    account: AccountData = Depends(get_current_account),
) -> ExecutionResponse:
    cfg = get_settings()
    if not cfg.voting_package_id or not cfg.voting_registry_id:
        raise HTTPException(
            status_code=503,
            detail={"code": "voting_not_configured", "message": "No voting program is configured."},
        )
    tx = cast_vote_call(
        cfg.voting_package_id,
        cfg.voting_registry_id,
        poll_id,
        body.choice_id,
        account.user_address,
        gas_budget=cfg.vote_gas_budget,
    )
    logger.info("Vote on poll %s from %s", poll_id, account.user_address)
    return _execute(request, tx, account)


# ---------------------------------------------------------------------------
# Faucet
# ---------------------------------------------------------------------------


@router.post("/faucet", response_model=FaucetResponse)
@limiter.limit(faucet_rate_limit)
def request_faucet(
    request: Request,
    body: FaucetRequest,
    account: AccountData = Depends(get_current_account),
) -> FaucetResponse:
    """Fund one of this browser's accounts from the network faucet."""
    faucet: Optional[FaucetClient] = request.app.state.faucet
    if faucet is None:
        raise FaucetUnavailable(f"No faucet is available on {get_settings().network}.")

    recipient = body.recipient or account.user_address
    if try_get_session_store(request).find_account(recipient) is None:
        raise HTTPException(
            status_code=403,
            detail={"code": "not_your_account", "message": "The faucet only funds accounts logged in here."},
        )
    coins = faucet.request_sui(recipient)
    return FaucetResponse(
        recipient=recipient,
        coins_sent=coins,
        total_mist=sum(int(c.get("amount", 0)) for c in coins),
    )

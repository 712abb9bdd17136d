"""
API request and response models for SuiVote REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in core/models.py and
auth/models.py, which own the internal domain representation. Route handlers
map between the two.

AccountResponse deliberately omits ephemeral_private_key and user_salt. Both
stay server-side; the browser only ever sees the address and expiry.

Separation of concerns: core/ models = domain truth; api/ models = API contract.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import AccountData
from core.models import MOVE_TARGET_PATTERN, SUI_ADDRESS_PATTERN, ExecutionResult

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class CompleteLoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/complete.

    callback is whatever the callback page saw: the full URL, the fragment
    ("#id_token=..."), or the query string.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    callback: str = Field(min_length=1, max_length=16384)


class TransactionRequest(BaseModel):
    """Request body for POST /api/v1/transactions -- one Move call."""

    target: str = Field(pattern=MOVE_TARGET_PATTERN, description="<package>::<module>::<function>")
    arguments: list[Any] = Field(default_factory=list, max_length=32)
    type_arguments: list[str] = Field(default_factory=list, max_length=16)
    gas_budget: int = Field(default=10_000_000, gt=0, le=50_000_000_000)


class VoteRequest(BaseModel):
    """Request body for POST /api/v1/polls/{poll_id}/vote."""

    choice_id: str = Field(pattern=SUI_ADDRESS_PATTERN)


class FaucetRequest(BaseModel):
    """Request body for POST /api/v1/faucet. recipient defaults to the active account."""

    recipient: Optional[str] = Field(default=None, pattern=SUI_ADDRESS_PATTERN)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None
    retryable: bool = False
    # JSON-RPC error code when the ledger refused the request.
    rpc_code: Optional[int] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    network: str


class OAuthProviderInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    label: str


class LoginUrlResponse(BaseModel):
    """Response for POST /api/v1/auth/login/{provider}."""

    provider: str
    authorization_url: str


class AccountResponse(BaseModel):
    """Public view of a logged-in zkLogin account."""

    provider: str
    user_address: str
    expiry_epoch: int

    @classmethod
    def from_account(cls, account: AccountData) -> "AccountResponse":
        return cls(
            provider=account.provider,
            user_address=account.user_address,
            expiry_epoch=account.expiry_epoch,
        )


class MeResponse(BaseModel):
    """Response for GET /api/v1/auth/me: active account first, then the rest."""

    active: AccountResponse
    accounts: list[AccountResponse]


class EpochResponse(BaseModel):
    current_epoch: int
    login_expiry_epoch: int


class BalanceResponse(BaseModel):
    owner: str
    coin_type: str
    total_balance: int


class FaucetResponse(BaseModel):
    recipient: str
    coins_sent: list[dict[str, Any]] = Field(default_factory=list)
    total_mist: int


class ExecutionResponse(BaseModel):
    """Outcome of a signed and executed transaction."""

    digest: str
    status: str
    effects: dict[str, Any] = Field(default_factory=dict)
    events: list[dict[str, Any]] = Field(default_factory=list)
    object_changes: list[dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: ExecutionResult) -> "ExecutionResponse":
        return cls(
            digest=result.digest,
            status=result.status,
            effects=result.effects,
            events=result.events,
            object_changes=result.object_changes,
        )

"""
core/errors.py -- Error kinds for the zkLogin session lifecycle.

Every failure the login and signing flows can produce is a ZkLoginError
subclass. Each class carries:
  code        -- stable machine-readable string used in API error envelopes
                 and in the /login?error= whitelist.
  status_code -- HTTP status the API exception handler answers with.
  retryable   -- True only for transient failures (transport, faucet rate
                 limit). The UI may offer a retry; the server never retries
                 on its own.

Propagation policy:
  Login failures abort the flow and leave the browser session unauthenticated.
  Signing failures go back to the action that asked for the transaction. A
  rejected signature is never resubmitted -- it cannot start succeeding and a
  resubmitted vote risks a double vote.

Layer rule: core/ is the kernel. This module may not import from api/, web/,
or auth/.
"""

from __future__ import annotations


class ZkLoginError(Exception):
    code = "zklogin_error"
    status_code = 400
    retryable = False

    def __init__(self, message: str, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class NetworkError(ZkLoginError):
    """Ledger or service unreachable. Callers may retry submission, never signing logic."""

    code = "network_error"
    status_code = 503
    retryable = True


class EpochFetchFailed(NetworkError):
    code = "epoch_unavailable"


class LedgerRPCError(ZkLoginError):
    """The ledger answered with a JSON-RPC error object."""

    code = "ledger_error"
    status_code = 502

    def __init__(self, message: str, rpc_code: int | None = None, detail: str | None = None) -> None:
        super().__init__(message, detail)
        self.rpc_code = rpc_code


class UnknownProvider(ZkLoginError):
    code = "unknown_provider"
    status_code = 404


class MalformedIdentityToken(ZkLoginError):
    code = "malformed_token"


class MissingSetupData(ZkLoginError):
    code = "no_pending_login"
    status_code = 409


class DuplicateAccount(ZkLoginError):
    """Already logged in with this identity. Non-fatal; the caller decides what to show."""

    code = "already_logged_in"
    status_code = 409

    def __init__(self, message: str, user_address: str) -> None:
        super().__init__(message)
        self.user_address = user_address


class SaltServiceFailed(ZkLoginError):
    code = "salt_service_failed"
    status_code = 502


class ProofServiceFailed(ZkLoginError):
    code = "proof_service_failed"
    status_code = 502


class SessionExpired(ZkLoginError):
    """The account's expiry epoch has been reached. The user must log in again."""

    code = "session_expired"
    status_code = 401

    def __init__(self, message: str, current_epoch: int, expiry_epoch: int) -> None:
        super().__init__(message)
        self.current_epoch = current_epoch
        self.expiry_epoch = expiry_epoch


class AddressMismatch(ZkLoginError):
    """Stored address no longer matches the one derived from salt and claims."""

    code = "address_mismatch"
    status_code = 409


class SignatureRejectedByLedger(ZkLoginError):
    """The ledger refused the signed transaction.

    detail holds the raw ledger error and rpc_code its JSON-RPC code. Either the
    signature or the transaction itself may be at fault; only the ledger knows.
    """

    code = "signature_rejected"
    status_code = 422

    def __init__(self, message: str, rpc_code: int | None = None, detail: str | None = None) -> None:
        super().__init__(message, detail)
        self.rpc_code = rpc_code


class FaucetUnavailable(ZkLoginError):
    """No faucet serves the configured network (mainnet)."""

    code = "faucet_unavailable"
    status_code = 400


class FaucetRequestFailed(ZkLoginError):
    code = "faucet_failed"
    status_code = 502


class FaucetRateLimited(FaucetRequestFailed):
    code = "faucet_rate_limited"
    status_code = 429
    retryable = True

"""
auth/signing.py -- Session guard and the zkLogin transaction signing bridge.

TransactionSigner.execute(tx, account) turns a MoveCall into an executed
transaction signed by the account's zkLogin address:

  guard -> address seed + address check -> sender = zkLogin address
        -> build bytes -> ephemeral signature -> composite signature -> execute

Failure mapping:
  expiry reached          -> SessionExpired (caller discards the account)
  derived address differs -> AddressMismatch (nothing is built or submitted)
  ledger JSON-RPC error   -> SignatureRejectedByLedger with the raw message and rpc_code
  transport failure       -> NetworkError, propagated unchanged

Nothing here retries. A submission that failed on the ledger is surfaced to
the user; a resubmitted vote risks a double vote.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import logging

from auth.keys import EphemeralKeyPair
from auth.models import AccountData
from auth.zkcrypto import compute_address_from_seed, gen_address_seed, get_zklogin_signature
from core.errors import AddressMismatch, LedgerRPCError, SessionExpired, SignatureRejectedByLedger
from core.ledger import LedgerClient
from core.models import ExecutionResult, MoveCall

logger = logging.getLogger("suivote.auth.signing")


class SessionGuard:
    """Refuses to sign for accounts whose expiry epoch has been reached.

    The epoch is fetched fresh on every call; a cached value could let a
    session sign one epoch too long.
    """

    def __init__(self, ledger: LedgerClient) -> None:
        self.ledger = ledger

    def assert_valid(self, account: AccountData) -> int:
        """Return the current epoch. Raises SessionExpired when current >= expiry."""
        current = self.ledger.get_current_epoch()
        if current >= account.expiry_epoch:
            logger.info(
                "Session for %s expired (epoch %d >= expiry %d)",
                account.user_address,
                current,
                account.expiry_epoch,
            )
            raise SessionExpired(
                "Your session has expired. Please log in again.",
                current_epoch=current,
                expiry_epoch=account.expiry_epoch,
            )
        return current


class TransactionSigner:
    def __init__(self, ledger: LedgerClient, guard: SessionGuard) -> None:
        self.ledger = ledger
        self.guard = guard

    def execute(self, tx: MoveCall, account: AccountData) -> ExecutionResult:
        self.guard.assert_valid(account)

        address_seed = gen_address_seed(int(account.user_salt), "sub", account.subject, account.audience)
        derived = compute_address_from_seed(address_seed, account.issuer)
        if derived != account.user_address:
            logger.warning("Derived address %s does not match stored %s", derived, account.user_address)
            raise AddressMismatch("Stored account no longer matches its derived address.")

        tx.sender = account.user_address
        keypair = EphemeralKeyPair.from_secret_key(account.ephemeral_private_key)

        tx_bytes = self.ledger.build_transaction(tx)
        tx_b64, user_signature = self.ledger.sign_transaction(tx_bytes, keypair)

        zk_signature = get_zklogin_signature(account.zk_proofs, address_seed, account.expiry_epoch, user_signature)

        try:
            result = self.ledger.execute_transaction_block(tx_b64, [zk_signature])
        except LedgerRPCError as e:
            logger.warning(
                "Ledger rejected transaction from %s: rpc_code=%s %s", account.user_address, e.rpc_code, e.detail
            )
            raise SignatureRejectedByLedger(
                "The ledger rejected the transaction.", rpc_code=e.rpc_code, detail=e.detail
            ) from e

        execution = ExecutionResult(
            digest=result.get("digest", ""),
            effects=result.get("effects") or {},
            events=result.get("events") or [],
            object_changes=result.get("objectChanges") or [],
        )
        logger.info("Executed %s from %s: %s (%s)", tx.target, account.user_address, execution.digest, execution.status)
        return execution

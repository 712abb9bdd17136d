"""
core/ledger.py -- Sui fullnode JSON-RPC client.

One LedgerClient is constructed at application start (api/main.py lifespan)
and passed to every component that talks to the ledger. It is a thin,
stateless wrapper over a requests.Session -- no caching. The session guard
relies on that: every epoch read is a fresh network round-trip.

Failure mapping:
  requests.RequestException / non-JSON body -> NetworkError (retryable)
  JSON-RPC "error" object                   -> LedgerRPCError (carries the raw message)

Callers turn these into the flow-specific kinds (EpochFetchFailed,
SignatureRejectedByLedger) where the context is known.

Layer rule: core/ may not import from api/, web/, or auth/. The signer passed
to sign_transaction() is duck-typed for that reason.
"""

from __future__ import annotations

import base64
import itertools
import logging
from typing import Any, Optional, Protocol

import requests

from core.errors import LedgerRPCError, NetworkError
from core.models import SUI_COIN_TYPE, MoveCall

logger = logging.getLogger("suivote.ledger")

# Options passed to sui_executeTransactionBlock -- the caller always wants to
# see what the transaction did.
EXECUTE_OPTIONS = {
    "showEffects": True,
    "showEvents": True,
    "showObjectChanges": True,
}


class TransactionSigner(Protocol):
    def sign_transaction(self, tx_bytes: bytes) -> str: ...


class LedgerClient:
    """JSON-RPC client for a single Sui fullnode.

    Usage:
        ledger = LedgerClient("https://fullnode.devnet.sui.io:443")
        epoch = ledger.get_current_epoch()
        ledger.close()
    """

    def __init__(self, url: str, timeout: float = 10.0, session: Optional[requests.Session] = None) -> None:
        self.url = url
        self.timeout = timeout
        self._session = session or requests.Session()
        # Known endpoint, no redirects expected -- keep the chain short.
        self._session.max_redirects = 3
        self._ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _call(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            resp = self._session.post(self.url, json=payload, timeout=self.timeout)
            resp.raise_for_status()
            body = resp.json()
        except requests.RequestException as e:
            logger.warning("Ledger call %s failed: %s", method, e)
            raise NetworkError(f"Ledger unreachable during {method}.", detail=str(e)) from e
        except ValueError as e:
            logger.warning("Ledger call %s returned a non-JSON body", method)
            raise NetworkError(f"Ledger returned an unreadable response to {method}.") from e

        error = body.get("error")
        if error:
            message = error.get("message", "unknown ledger error")
            logger.warning("Ledger rejected %s: %s", method, message)
            raise LedgerRPCError(f"Ledger rejected {method}.", rpc_code=error.get("code"), detail=message)
        return body.get("result")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_latest_system_state(self) -> dict[str, Any]:
        return self._call("suix_getLatestSuiSystemState", [])

    def get_current_epoch(self) -> int:
        """Return the ledger's current epoch. The RPC returns it as a decimal string."""
        state = self.get_latest_system_state()
        try:
            return int(state["epoch"])
        except (KeyError, TypeError, ValueError) as e:
            raise NetworkError("Ledger system state carried no readable epoch.") from e

    def get_balance(self, owner: str, coin_type: str = SUI_COIN_TYPE) -> int:
        """Return the total balance of coin_type owned by owner, in the coin's base unit."""
        result = self._call("suix_getBalance", [owner, coin_type])
        return int(result.get("totalBalance", 0))

    def get_object(self, object_id: str, options: Optional[dict[str, bool]] = None) -> dict[str, Any]:
        opts = options or {"showContent": True, "showType": True, "showOwner": True}
        return self._call("sui_getObject", [object_id, opts])

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def build_transaction(self, tx: MoveCall) -> bytes:
        """Ask the fullnode to build TransactionData bytes for a single Move call.

        The fullnode resolves gas coins, object references and the reference
        gas price for tx.sender, so the sender must be set before building.
        """
        if not tx.sender:
            raise ValueError("Transaction sender must be set before building.")
        result = self._call(
            "unsafe_moveCall",
            [
                tx.sender,
                tx.package,
                tx.module,
                tx.function,
                tx.type_arguments,
                tx.arguments,
                None,  # gas coin: let the fullnode pick one owned by sender
                str(tx.gas_budget),
            ],
        )
        return base64.b64decode(result["txBytes"])

    def sign_transaction(self, tx_bytes: bytes, signer: TransactionSigner) -> tuple[str, str]:
        """Sign built transaction bytes. Returns (base64 tx bytes, serialized signature)."""
        return base64.b64encode(tx_bytes).decode("ascii"), signer.sign_transaction(tx_bytes)

    def execute_transaction_block(
        self,
        tx_bytes_b64: str,
        signatures: list[str],
        options: Optional[dict[str, bool]] = None,
    ) -> dict[str, Any]:
        return self._call(
            "sui_executeTransactionBlock",
            [tx_bytes_b64, signatures, options or EXECUTE_OPTIONS, "WaitForLocalExecution"],
        )

    def close(self) -> None:
        self._session.close()

"""
core/faucet.py -- Sui faucet client for devnet and testnet gas.

A fresh zkLogin address owns nothing, so it cannot pay for its first vote.
On test networks the public faucet sends it a fixed amount of SUI:

  POST {faucet_url}/v2/gas   {"FixedAmountRequest": {"recipient": "0x..."}}
    -> {"status": "Success", "coins_sent": [{"amount": ..., "id": ..., "transferTxDigest": ...}]}
    -> {"status": {"Failure": {...}}}

Failure mapping:
  requests.RequestException / non-JSON body -> NetworkError (retryable)
  HTTP 429                                  -> FaucetRateLimited (retryable)
  any other HTTP error or a Failure status  -> FaucetRequestFailed

The client is only constructed when a faucet URL is configured. Settings never
produce one for mainnet, so there is no faucet object there at all.

Layer rule: core/ may not import from api/, web/, or auth/.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from core.errors import FaucetRateLimited, FaucetRequestFailed, NetworkError

logger = logging.getLogger("suivote.faucet")


class FaucetClient:
    """Request test SUI for an address.

    Usage:
        faucet = FaucetClient("https://faucet.devnet.sui.io")
        coins = faucet.request_sui("0x5f3c...a1")
        faucet.close()
    """

    def __init__(self, url: str, timeout: float = 10.0, session: Optional[requests.Session] = None) -> None:
        self.url = url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.max_redirects = 3

    def request_sui(self, recipient: str) -> list[dict[str, Any]]:
        """Ask the faucet to fund recipient. Returns the coins it sent."""
        payload = {"FixedAmountRequest": {"recipient": recipient}}
        try:
            resp = self._session.post(f"{self.url}/v2/gas", json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("Faucet request failed: %s", e)
            raise NetworkError("Faucet unreachable.", detail=str(e)) from e

        if resp.status_code == 429:
            logger.info("Faucet rate limit hit for %s", recipient)
            raise FaucetRateLimited("Too many faucet requests. Try again later.")
        try:
            body = resp.json()
        except ValueError as e:
            logger.warning("Faucet returned a non-JSON body (HTTP %s)", resp.status_code)
            raise NetworkError("Faucet returned an unreadable response.") from e

        status = body.get("status") if isinstance(body, dict) else None
        if resp.status_code >= 400 or status != "Success":
            detail = str(body.get("error") or status) if isinstance(body, dict) else str(body)
            logger.warning("Faucet refused %s: HTTP %s %s", recipient, resp.status_code, detail)
            raise FaucetRequestFailed("The faucet did not send any SUI.", detail=detail)

        coins = body.get("coins_sent") or []
        logger.info("Faucet sent %d coin(s) to %s", len(coins), recipient)
        return coins

    def close(self) -> None:
        self._session.close()

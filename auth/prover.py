"""
auth/prover.py -- Client for the external zkLogin proving service.

The prover checks the id_token's provider signature and the nonce binding,
and returns the Groth16 proof points plus the token fragments the ledger's
verifier needs. Generation takes several seconds; callers show a pending
state while request_proof() runs.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from auth.zkcrypto import validate_proof_bundle
from core.errors import ProofServiceFailed

logger = logging.getLogger("suivote.auth.prover")


class ProverClient:
    def __init__(self, url: str, timeout: float = 60.0, session: requests.Session | None = None) -> None:
        self.url = url
        self.timeout = timeout
        self._session = session or requests.Session()

    def request_proof(
        self,
        *,
        jwt: str,
        extended_ephemeral_public_key: str,
        max_epoch: int,
        randomness: str,
        salt: str,
        key_claim_name: str = "sub",
    ) -> dict[str, Any]:
        """Request a proof bundle. Raises ProofServiceFailed on transport or shape errors."""
        payload = {
            "maxEpoch": max_epoch,
            "jwtRandomness": randomness,
            "extendedEphemeralPublicKey": extended_ephemeral_public_key,
            "jwt": jwt,
            "salt": salt,
            "keyClaimName": key_claim_name,
        }
        logger.debug("Requesting ZK proof (maxEpoch=%d, keyClaimName=%s)", max_epoch, key_claim_name)
        try:
            resp = self._session.post(self.url, json=payload, timeout=self.timeout)
            resp.raise_for_status()
            bundle = resp.json()
        except requests.RequestException as e:
            logger.warning("ZK proving service error: %s", e)
            raise ProofServiceFailed("Proof service request failed.", detail=str(e)) from e
        except ValueError as e:
            raise ProofServiceFailed("Proof service returned an unreadable response.") from e

        try:
            return validate_proof_bundle(bundle)
        except ValueError as e:
            raise ProofServiceFailed("Proof service returned a malformed proof bundle.", detail=str(e)) from e

"""
auth/salt.py -- Per-user salt resolution.

The salt is the secret half of the zkLogin address: address = f(claims, salt).
Losing it loses the address; leaking it links the address to the OAuth
identity. Two resolvers, chosen once at startup by build_salt_resolver():

  RemoteSaltResolver            -- POST {"jwt": token} to the salt service,
                                   which verifies the token and returns
                                   {"salt": "<decimal>"}. Production path.

  DeterministicDemoSaltResolver -- NOT FOR PRODUCTION. Derives the salt from
                                   (iss, sub) with a public hash. Anyone who
                                   knows a user's subject can compute their
                                   salt and therefore link their address.
                                   Namespaced by issuer so two providers with
                                   the same subject value get different salts.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Protocol

import requests

from auth.zkcrypto import BN254_FIELD_SIZE, IdentityClaims
from core.config import Settings
from core.errors import SaltServiceFailed

logger = logging.getLogger("suivote.auth.salt")


class SaltResolver(Protocol):
    def resolve(self, token: str, claims: IdentityClaims) -> str: ...


def _parse_salt(value: object) -> str:
    """Normalize a salt to a decimal string inside the field. Raises SaltServiceFailed."""
    try:
        salt = int(str(value))
    except (TypeError, ValueError):
        raise SaltServiceFailed("Salt service returned a non-numeric salt.") from None
    if not 0 <= salt < BN254_FIELD_SIZE:
        raise SaltServiceFailed("Salt service returned a salt outside the field.")
    return str(salt)


class RemoteSaltResolver:
    def __init__(self, url: str, timeout: float = 10.0, session: requests.Session | None = None) -> None:
        self.url = url
        self.timeout = timeout
        self._session = session or requests.Session()

    def resolve(self, token: str, claims: IdentityClaims) -> str:
        if not self.url:
            raise SaltServiceFailed("No salt service is configured.")
        try:
            resp = self._session.post(self.url, json={"jwt": token}, timeout=self.timeout)
            resp.raise_for_status()
            body = resp.json()
        except requests.RequestException as e:
            logger.warning("Salt service request failed: %s", e)
            raise SaltServiceFailed("Salt service request failed.", detail=str(e)) from e
        except ValueError as e:
            raise SaltServiceFailed("Salt service returned an unreadable response.") from e

        if not isinstance(body, dict) or "salt" not in body:
            raise SaltServiceFailed("Salt service response carried no salt.")
        logger.debug("Salt service success")
        return _parse_salt(body["salt"])


class DeterministicDemoSaltResolver:
    """Demo-only salt derivation. Never configure this where real value is at stake."""

    def resolve(self, token: str, claims: IdentityClaims) -> str:
        logger.warning("Using the deterministic DEMO salt for %s -- not production safe", claims.issuer)
        seed = f"suivote-demo-salt|{claims.issuer}|{claims.subject}".encode("utf-8")
        return str(int.from_bytes(hashlib.blake2b(seed, digest_size=16).digest(), "big"))


def build_salt_resolver(cfg: Settings, session: requests.Session | None = None) -> SaltResolver:
    if cfg.salt_mode == "demo":
        logger.warning("SALT_MODE=demo: salts are derived from public claims. Do not use in production.")
        return DeterministicDemoSaltResolver()
    return RemoteSaltResolver(cfg.salt_service_url, timeout=cfg.request_timeout_seconds, session=session)

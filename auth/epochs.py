"""
auth/epochs.py -- Current epoch, session expiry epoch, and nonce randomness.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import logging
import secrets

from core.errors import EpochFetchFailed, LedgerRPCError, NetworkError
from core.ledger import LedgerClient

logger = logging.getLogger("suivote.auth.epochs")


class EpochTracker:
    """Reads the ledger epoch and computes how long a new login stays valid.

    Args:
        ledger: Injected ledger client.
        offset: Number of epochs a session stays usable after login.
    """

    def __init__(self, ledger: LedgerClient, offset: int) -> None:
        self.ledger = ledger
        self.offset = offset

    def fetch_current_epoch(self) -> int:
        """Fetch the current epoch. Raises EpochFetchFailed (retryable) on any ledger failure."""
        try:
            return self.ledger.get_current_epoch()
        except (NetworkError, LedgerRPCError) as e:
            raise EpochFetchFailed("Could not read the current epoch from the ledger.", detail=e.detail) from e

    @staticmethod
    def compute_expiry_epoch(current_epoch: int, offset: int) -> int:
        return current_epoch + offset

    def next_expiry_epoch(self) -> int:
        current = self.fetch_current_epoch()
        expiry = self.compute_expiry_epoch(current, self.offset)
        logger.debug("Current epoch %d, new sessions expire at epoch %d", current, expiry)
        return expiry

    @staticmethod
    def generate_randomness() -> str:
        """128 bits from the OS CSPRNG as a decimal string. Never reuse across logins."""
        return str(secrets.randbits(128))

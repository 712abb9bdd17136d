"""
tests/test_signing.py -- SessionGuard and TransactionSigner.

Covers:
  - Valid session: sender forced to the zkLogin address, composite signature
    submitted, ExecutionResult returned
  - Expiry: equality is expired; nothing is built or submitted
  - Ledger rejection -> SignatureRejectedByLedger with the raw ledger message and rpc_code
  - Transport failure propagates as NetworkError
  - Address drift -> AddressMismatch before anything is built or submitted
"""

from __future__ import annotations

import base64
import dataclasses

import pytest

from auth.models import AccountData
from auth.signing import SessionGuard, TransactionSigner
from auth.zkcrypto import ZKLOGIN_FLAG
from conftest import FakeLedger
from core.errors import AddressMismatch, LedgerRPCError, NetworkError, SessionExpired, SignatureRejectedByLedger
from core.models import MoveCall

OTHER_ADDRESS = "0x" + "cd" * 32


@pytest.fixture()
def signer(fake_ledger: FakeLedger) -> TransactionSigner:
    return TransactionSigner(fake_ledger, SessionGuard(fake_ledger))


def _tx() -> MoveCall:
    return MoveCall(target="0x2::voting::cast_vote", arguments=["0x1"], sender=OTHER_ADDRESS)


class TestSessionGuard:
    def test_valid_before_expiry(self, fake_ledger: FakeLedger, logged_in_account: AccountData) -> None:
        fake_ledger.epoch = 11
        assert SessionGuard(fake_ledger).assert_valid(logged_in_account) == 11

    @pytest.mark.parametrize("epoch", [12, 13])
    def test_expired_at_or_after_expiry(
        self, fake_ledger: FakeLedger, logged_in_account: AccountData, epoch: int
    ) -> None:
        fake_ledger.epoch = epoch
        with pytest.raises(SessionExpired) as exc_info:
            SessionGuard(fake_ledger).assert_valid(logged_in_account)
        assert exc_info.value.current_epoch == epoch
        assert exc_info.value.expiry_epoch == 12


class TestTransactionSigner:
    def test_executes_with_zklogin_signature(
        self, signer: TransactionSigner, fake_ledger: FakeLedger, logged_in_account: AccountData
    ) -> None:
        tx = _tx()
        result = signer.execute(tx, logged_in_account)

        assert result.digest
        assert result.status == "success"
        assert tx.sender == logged_in_account.user_address
        assert fake_ledger.built == [tx]

        tx_b64, signatures = fake_ledger.executed[0]
        assert base64.b64decode(tx_b64) == b"\x00tx:0x2::voting::cast_vote"
        assert len(signatures) == 1
        assert base64.b64decode(signatures[0])[0] == ZKLOGIN_FLAG

    def test_expired_session_builds_nothing(
        self, signer: TransactionSigner, fake_ledger: FakeLedger, logged_in_account: AccountData
    ) -> None:
        fake_ledger.epoch = logged_in_account.expiry_epoch
        with pytest.raises(SessionExpired):
            signer.execute(_tx(), logged_in_account)
        assert fake_ledger.built == []
        assert fake_ledger.executed == []

    def test_ledger_rejection_carries_raw_message(
        self, signer: TransactionSigner, fake_ledger: FakeLedger, logged_in_account: AccountData
    ) -> None:
        fake_ledger.execute_error = LedgerRPCError("rejected", rpc_code=-32002, detail="Invalid user signature")
        with pytest.raises(SignatureRejectedByLedger) as exc_info:
            signer.execute(_tx(), logged_in_account)
        assert exc_info.value.detail == "Invalid user signature"
        assert exc_info.value.rpc_code == -32002
        assert exc_info.value.retryable is False

    def test_network_failure_propagates(
        self, signer: TransactionSigner, fake_ledger: FakeLedger, logged_in_account: AccountData
    ) -> None:
        fake_ledger.execute_error = NetworkError("timeout")
        with pytest.raises(NetworkError):
            signer.execute(_tx(), logged_in_account)

    def test_address_drift_rejected(
        self, signer: TransactionSigner, fake_ledger: FakeLedger, logged_in_account: AccountData
    ) -> None:
        drifted = dataclasses.replace(logged_in_account, user_salt=str(int(logged_in_account.user_salt) + 1))
        with pytest.raises(AddressMismatch):
            signer.execute(_tx(), drifted)
        assert fake_ledger.built == []
        assert fake_ledger.executed == []

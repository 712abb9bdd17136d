"""
tests/test_ledger.py -- LedgerClient JSON-RPC mapping, with requests mocked.

Covers:
  - Request envelope and method names
  - Result extraction (epoch, balance, built transaction bytes)
  - JSON-RPC error -> LedgerRPCError carrying the raw message
  - Transport failure -> NetworkError
  - sui_executeTransactionBlock waits for local execution
"""

from __future__ import annotations

import base64
from unittest.mock import MagicMock

import pytest
import requests

from core.errors import LedgerRPCError, NetworkError
from core.ledger import EXECUTE_OPTIONS, LedgerClient
from core.models import MoveCall, cast_vote_call

URL = "https://fullnode.devnet.sui.io:443"
SENDER = "0x" + "ab" * 32


def _ledger(body=None, exc: Exception | None = None) -> tuple[LedgerClient, MagicMock]:
    session = MagicMock(spec=requests.Session)
    if exc is not None:
        session.post.side_effect = exc
    else:
        session.post.return_value.json.return_value = body
    return LedgerClient(URL, timeout=5, session=session), session


def _sent(session: MagicMock) -> dict:
    return session.post.call_args.kwargs["json"]


def test_current_epoch() -> None:
    ledger, session = _ledger({"jsonrpc": "2.0", "id": 1, "result": {"epoch": "421"}})
    assert ledger.get_current_epoch() == 421
    sent = _sent(session)
    assert sent["method"] == "suix_getLatestSuiSystemState"
    assert sent["jsonrpc"] == "2.0"
    assert session.post.call_args.kwargs["timeout"] == 5


def test_epoch_missing_is_network_error() -> None:
    ledger, _ = _ledger({"result": {}})
    with pytest.raises(NetworkError):
        ledger.get_current_epoch()


def test_balance() -> None:
    ledger, session = _ledger({"result": {"coinType": "0x2::sui::SUI", "totalBalance": "2500000000"}})
    assert ledger.get_balance(SENDER) == 2_500_000_000
    assert _sent(session)["params"] == [SENDER, "0x2::sui::SUI"]


def test_rpc_error_keeps_raw_message() -> None:
    ledger, _ = _ledger({"error": {"code": -32002, "message": "Invalid user signature"}})
    with pytest.raises(LedgerRPCError) as exc_info:
        ledger.get_latest_system_state()
    assert exc_info.value.detail == "Invalid user signature"
    assert exc_info.value.rpc_code == -32002


def test_transport_failure_is_retryable() -> None:
    ledger, _ = _ledger(exc=requests.ConnectionError("refused"))
    with pytest.raises(NetworkError) as exc_info:
        ledger.get_current_epoch()
    assert exc_info.value.retryable is True


def test_build_transaction() -> None:
    ledger, session = _ledger({"result": {"txBytes": base64.b64encode(b"tx-data").decode()}})
    tx = MoveCall(target="0x2::voting::cast_vote", arguments=["0x1"], gas_budget=5000, sender=SENDER)
    assert ledger.build_transaction(tx) == b"tx-data"
    sent = _sent(session)
    assert sent["method"] == "unsafe_moveCall"
    assert sent["params"] == [SENDER, "0x2", "voting", "cast_vote", [], ["0x1"], None, "5000"]


def test_build_requires_sender() -> None:
    ledger, session = _ledger({})
    with pytest.raises(ValueError):
        ledger.build_transaction(MoveCall(target="0x2::voting::cast_vote"))
    session.post.assert_not_called()


def test_execute_waits_for_local_execution() -> None:
    ledger, session = _ledger({"result": {"digest": "D1"}})
    assert ledger.execute_transaction_block("dHg=", ["c2ln"]) == {"digest": "D1"}
    sent = _sent(session)
    assert sent["method"] == "sui_executeTransactionBlock"
    assert sent["params"] == ["dHg=", ["c2ln"], EXECUTE_OPTIONS, "WaitForLocalExecution"]


def test_cast_vote_call_arguments() -> None:
    tx = cast_vote_call("0xpkg", "0xregistry", "0xpoll", "0xchoice", "0xab", gas_budget=42)
    assert tx.target == "0xpkg::voting::cast_vote"
    assert tx.arguments == ["0xregistry", "0xpoll", list(b"0xab"), "0xchoice", "0x6"]
    assert tx.gas_budget == 42
    assert tx.sender is None

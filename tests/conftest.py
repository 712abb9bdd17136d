"""
tests/conftest.py -- Shared test fixtures for SuiVote.

This module provides:
  - FakeLedger: in-process stand-in for core.ledger.LedgerClient with a
    settable epoch and a recorded list of executed transactions.
  - PROOF_BUNDLE and FAUCET_COINS: well-formed prover and faucet responses.
  - Unit fixtures: id_token_factory, fake_ledger, fake_prover, fake_faucet, providers,
    session_store, login_flow, logged_in_account.
  - _patch_lifespan(): wires the fakes into app.state, bypassing real startup
    so no test touches the network.
  - client: TestClient with follow_redirects=False for API and web route tests.
  - api_login: drives POST /auth/login/{provider} + POST /auth/complete.

Identity tokens are HS256-signed with a throwaway key. The service only reads
claims without verifying them (verification is the prover's job), so the
signing algorithm is irrelevant to every code path under test.

The DEBUG env var must be set before any api/auth import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import asyncio
import base64
import copy
import os
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager
from typing import Any, Optional
from unittest.mock import MagicMock
from urllib.parse import parse_qs, urlsplit

# CRITICAL: Set env before any api/auth/core import so get_settings() sees it.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", "testserver,localhost,127.0.0.1")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("FAUCET_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from asgi import app
from auth.epochs import EpochTracker
from auth.login import LoginFlow
from auth.models import AccountData
from auth.oauth import ProviderConfig, ProviderRegistry
from auth.salt import DeterministicDemoSaltResolver
from auth.signing import SessionGuard, TransactionSigner
from auth.store import MemorySessionDatabase, MemorySessionStorage, ZkSessionStore
from core.errors import ZkLoginError
from core.models import SUI_COIN_TYPE, MoveCall

GOOGLE_CLIENT_ID = "suivote-test.apps.googleusercontent.com"
TWITCH_CLIENT_ID = "suivote-test-twitch"
GOOGLE_ISSUER = "https://accounts.google.com"
TEST_SUBJECT = "110463452167303598383"
REDIRECT_URI = "http://testserver/auth"

FAUCET_COINS: list[dict[str, Any]] = [
    {
        "amount": 10_000_000_000,
        "id": "0x" + "c0" * 32,
        "transferTxDigest": "3Ga8Ugc7HCpZzZ3ZpCSUxSf3P9PHFMRzAfdALFtNDFYt",
    }
]

PROOF_BUNDLE: dict[str, Any] = {
    "proofPoints": {
        "a": ["1789", "2204", "1"],
        "b": [["1101", "1202"], ["3303", "4404"], ["1", "0"]],
        "c": ["5505", "6606", "1"],
    },
    "issBase64Details": {"value": "yJpc3MiOiJodHRwczovL2FjY291bnRzLmdvb2dsZS5jb20iLC", "indexMod4": 1},
    "headerBase64": "eyJhbGciOiJSUzI1NiIsImtpZCI6IjEifQ",
}


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeLedger:
    """LedgerClient stand-in. Set .epoch_error / .execute_error to inject failures.

    .balance answers for every owner not listed in .balances.
    """

    def __init__(self, epoch: int = 10) -> None:
        self.epoch = epoch
        self.balance = 2_500_000_000
        self.balances: dict[str, int] = {}
        self.epoch_error: Optional[ZkLoginError] = None
        self.execute_error: Optional[ZkLoginError] = None
        self.built: list[MoveCall] = []
        self.executed: list[tuple[str, list[str]]] = []

    def get_current_epoch(self) -> int:
        if self.epoch_error is not None:
            raise self.epoch_error
        return self.epoch

    def get_balance(self, owner: str, coin_type: str = SUI_COIN_TYPE) -> int:
        return self.balances.get(owner, self.balance)

    def get_object(self, object_id: str, options: Optional[dict] = None) -> dict:
        return {"data": {"objectId": object_id, "version": "1"}}

    def build_transaction(self, tx: MoveCall) -> bytes:
        self.built.append(tx)
        return b"\x00tx:" + tx.target.encode("utf-8")

    def sign_transaction(self, tx_bytes: bytes, signer) -> tuple[str, str]:
        return base64.b64encode(tx_bytes).decode("ascii"), signer.sign_transaction(tx_bytes)

    def execute_transaction_block(self, tx_bytes_b64: str, signatures: list[str], options=None) -> dict:
        if self.execute_error is not None:
            raise self.execute_error
        self.executed.append((tx_bytes_b64, signatures))
        return {
            "digest": "8Nq4TsDJgbGDCkMVWqMsrkAkDhUDbV6YtUcnVnTq2mZS",
            "effects": {"status": {"status": "success"}},
            "events": [],
            "objectChanges": [],
        }

    def close(self) -> None:
        pass


def nonce_from_url(url: str) -> str:
    return parse_qs(urlsplit(url).query)["nonce"][0]


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def id_token_factory() -> Callable[..., str]:
    def make(
        nonce: Optional[str] = None,
        sub: str = TEST_SUBJECT,
        aud: Any = GOOGLE_CLIENT_ID,
        iss: str = GOOGLE_ISSUER,
    ) -> str:
        claims: dict[str, Any] = {"sub": sub, "aud": aud, "iss": iss, "iat": 1700000000, "exp": 1700003600}
        if nonce is not None:
            claims["nonce"] = nonce
        return jwt.encode(claims, "test-only-signing-key", algorithm="HS256")

    return make


@pytest.fixture()
def fake_ledger() -> FakeLedger:
    return FakeLedger(epoch=10)


@pytest.fixture()
def fake_prover() -> MagicMock:
    prover = MagicMock()
    prover.request_proof.side_effect = lambda **kwargs: copy.deepcopy(PROOF_BUNDLE)
    return prover


@pytest.fixture()
def fake_faucet() -> MagicMock:
    faucet = MagicMock()
    faucet.request_sui.return_value = copy.deepcopy(FAUCET_COINS)
    return faucet


@pytest.fixture()
def providers() -> ProviderRegistry:
    return ProviderRegistry(
        [
            ProviderConfig("google", "Google", "https://accounts.google.com/o/oauth2/v2/auth", GOOGLE_CLIENT_ID),
            ProviderConfig("twitch", "Twitch", "https://id.twitch.tv/oauth2/authorize", TWITCH_CLIENT_ID),
        ],
        REDIRECT_URI,
    )


@pytest.fixture()
def session_store() -> ZkSessionStore:
    return ZkSessionStore(MemorySessionStorage())


@pytest.fixture()
def login_flow(fake_ledger: FakeLedger, providers: ProviderRegistry, fake_prover: MagicMock) -> LoginFlow:
    return LoginFlow(
        epochs=EpochTracker(fake_ledger, 2),
        providers=providers,
        salt_resolver=DeterministicDemoSaltResolver(),
        prover=fake_prover,
    )


@pytest.fixture()
def logged_in_account(
    login_flow: LoginFlow,
    session_store: ZkSessionStore,
    id_token_factory: Callable[..., str],
) -> AccountData:
    """Complete a Google login at epoch 10; the account expires at epoch 12."""
    url = login_flow.begin_login(session_store, "google")
    token = id_token_factory(nonce=nonce_from_url(url))
    account = login_flow.complete_login(session_store, f"{REDIRECT_URI}#id_token={token}")
    assert account is not None
    return account


# ---------------------------------------------------------------------------
# App fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(ledger: FakeLedger, providers: ProviderRegistry, prover: MagicMock, faucet: MagicMock):
    """Return an async context manager that replaces the real lifespan.

    Mirrors api.main.lifespan with fakes in place of the ledger client, the
    prover and the faucet, plus the demo salt resolver and an in-memory
    session database.

    The background tasks are long-sleeping coroutines: a real asyncio.Task is
    required because shutdown calls .cancel() on them.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.ledger = ledger
        app.state.epochs = EpochTracker(ledger, 2)
        app.state.providers = providers
        app.state.prover = prover
        app.state.login_flow = LoginFlow(app.state.epochs, providers, DeterministicDemoSaltResolver(), prover)
        app.state.guard = SessionGuard(ledger)
        app.state.signer = TransactionSigner(ledger, app.state.guard)
        app.state.faucet = faucet
        app.state.session_db = MemorySessionDatabase()
        app.state.display_epoch = ledger.epoch
        app.state.epoch_task = asyncio.create_task(asyncio.sleep(99999))
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.epoch_task.cancel()
        app.state.purge_task.cancel()
        app.state.session_db.close()

    return test_lifespan


@pytest.fixture()
def client(
    fake_ledger: FakeLedger,
    providers: ProviderRegistry,
    fake_prover: MagicMock,
    fake_faucet: MagicMock,
) -> Generator[TestClient, None, None]:
    """TestClient over the full app (API + web) with a fresh cookie jar and session DB.

    follow_redirects=False so web tests can assert on Location headers.
    """
    app.router.lifespan_context = _patch_lifespan(fake_ledger, providers, fake_prover, fake_faucet)
    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as test_client:
        yield test_client


@pytest.fixture()
def api_login(client: TestClient, id_token_factory: Callable[..., str]):
    """Return login(provider="google", **claims) -> response of POST /api/v1/auth/complete."""

    def login(provider: str = "google", **claims):
        start = client.post(f"/api/v1/auth/login/{provider}")
        assert start.status_code == 200, start.text
        token = id_token_factory(nonce=nonce_from_url(start.json()["authorization_url"]), **claims)
        return client.post("/api/v1/auth/complete", json={"callback": f"#id_token={token}"})

    return login

"""
auth/store.py -- Browser-session key-value namespace and the zkLogin session store.

Three layers, narrowest first:

  SessionStorage   -- protocol: get / set / delete / take of string values under a
                      key, scoped to ONE browser session. take() removes and
                      returns a value so only one caller can consume it.
                      Two implementations:
                        MemorySessionStorage -- dict-backed, for tests and the CLI.
                        SqlSessionStorage    -- one session's view of SessionDatabase.

  SessionDatabase  -- SQLAlchemy Core table holding every browser session's
                      namespace, keyed by (session_id, key). The session id
                      travels in the signed session cookie; the values never
                      leave the server. MemorySessionDatabase is the test fake.

  ZkSessionStore   -- the zkLogin records on top of a SessionStorage: the
                      transient SetupData and the list of AccountData.

Security:
  All queries use bound parameters. No f-strings in SQL.
  The ephemeral private key is stored in plaintext here. The namespace is
  only reachable through a session id signed with SECRET_KEY, and purged once
  idle for longer than SESSION_TTL_SECONDS.

DB path: auth/suivote_sessions.db unless SESSION_DB_URL is set.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Protocol

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine

from auth.models import AccountData, SetupData

logger = logging.getLogger("suivote.auth.store")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'suivote_sessions.db'}"

# Fixed namespace keys. Logout deletes exactly these.
SETUP_KEY = "zklogin.setup"
ACCOUNTS_KEY = "zklogin.accounts"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_session_kv = Table(
    "session_kv",
    _metadata,
    Column("session_id", String(64), primary_key=True),
    Column("key", String(64), primary_key=True),
    Column("value", Text, nullable=False),
    Column("updated_at", String(32), nullable=False),  # ISO 8601 UTC
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block on concurrent writes."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Key-value namespace
# ---------------------------------------------------------------------------


class SessionStorage(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def take(self, key: str) -> Optional[str]: ...


class MemorySessionStorage:
    """Dict-backed SessionStorage."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)

    def take(self, key: str) -> Optional[str]:
        return self.data.pop(key, None)


class MemorySessionDatabase:
    """In-process stand-in for SessionDatabase."""

    def __init__(self) -> None:
        self.sessions: dict[str, MemorySessionStorage] = {}

    def for_session(self, session_id: str) -> MemorySessionStorage:
        return self.sessions.setdefault(session_id, MemorySessionStorage())

    def purge_expired(self, ttl_seconds: int) -> int:
        return 0

    def close(self) -> None:
        self.sessions.clear()


class SessionDatabase:
    """SQL-backed namespaces for all browser sessions.

    Usage:
        db = SessionDatabase()
        storage = db.for_session(session_id)
        storage.set("zklogin.setup", "...")
        db.purge_expired(ttl_seconds=3600)
        db.close()
    """

    def __init__(self, db_url: str = "") -> None:
        db_url = db_url or _DEFAULT_DB_URL
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def for_session(self, session_id: str) -> SqlSessionStorage:
        return SqlSessionStorage(self.engine, session_id)

    def purge_expired(self, ttl_seconds: int) -> int:
        """Delete namespaces idle longer than ttl_seconds. Returns number of rows removed."""
        cutoff = (datetime.now(timezone.utc) - timedelta(seconds=ttl_seconds)).isoformat()
        with self.engine.connect() as conn:
            result = conn.execute(_session_kv.delete().where(_session_kv.c.updated_at < cutoff))
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


class SqlSessionStorage:
    """One browser session's view of SessionDatabase."""

    def __init__(self, engine: Engine, session_id: str) -> None:
        self._engine = engine
        self.session_id = session_id

    def _where(self, key: str):
        return (_session_kv.c.session_id == self.session_id) & (_session_kv.c.key == key)

    def get(self, key: str) -> Optional[str]:
        with self._engine.connect() as conn:
            row = conn.execute(_session_kv.select().where(self._where(key))).fetchone()
        return row.value if row is not None else None

    def set(self, key: str, value: str) -> None:
        # Delete + insert in one transaction: portable upsert.
        with self._engine.begin() as conn:
            conn.execute(_session_kv.delete().where(self._where(key)))
            conn.execute(
                _session_kv.insert().values(
                    session_id=self.session_id,
                    key=key,
                    value=value,
                    updated_at=_now_iso(),
                )
            )

    def delete(self, key: str) -> None:
        with self._engine.begin() as conn:
            conn.execute(_session_kv.delete().where(self._where(key)))

    def take(self, key: str) -> Optional[str]:
        """Read and delete key in one transaction.

        Returns None unless this call deleted the row, so of two concurrent
        callers only one gets the value.
        """
        with self._engine.begin() as conn:
            row = conn.execute(_session_kv.select().where(self._where(key))).fetchone()
            if row is None:
                return None
            deleted = conn.execute(_session_kv.delete().where(self._where(key)))
            if deleted.rowcount != 1:
                return None
        return row.value


# ---------------------------------------------------------------------------
# zkLogin records
# ---------------------------------------------------------------------------


def _parse_setup(raw: Optional[str]) -> Optional[SetupData]:
    if not raw:
        return None
    try:
        return SetupData(**json.loads(raw))
    except (ValueError, TypeError):
        logger.warning("Discarding unreadable setup data")
        return None


class ZkSessionStore:
    """SetupData and AccountData persistence for one browser session.

    storage may be None when no browser session exists (e.g. a request
    without cookies reaching a read-only page). Reads then return nothing
    instead of raising; writes are a programming error.
    """

    def __init__(self, storage: Optional[SessionStorage]) -> None:
        self.storage = storage

    # -- SetupData ---------------------------------------------------------

    def save_setup(self, setup: SetupData) -> None:
        self._require_storage().set(SETUP_KEY, json.dumps(asdict(setup)))

    def load_setup(self) -> Optional[SetupData]:
        raw = self.storage.get(SETUP_KEY) if self.storage is not None else None
        setup = _parse_setup(raw)
        if raw and setup is None:
            self.clear_setup()
        return setup

    def take_setup(self) -> Optional[SetupData]:
        """Remove and return the pending SetupData. A second caller gets None."""
        raw = self.storage.take(SETUP_KEY) if self.storage is not None else None
        return _parse_setup(raw)

    def clear_setup(self) -> None:
        if self.storage is not None:
            self.storage.delete(SETUP_KEY)

    # -- AccountData -------------------------------------------------------

    def save_account(self, account: AccountData) -> None:
        """Prepend account to the stored list. The first entry is the active account."""
        accounts = [account, *self.load_accounts()]
        self._write_accounts(accounts)

    def load_accounts(self) -> list[AccountData]:
        if self.storage is None:
            return []
        raw = self.storage.get(ACCOUNTS_KEY)
        if not raw:
            return []
        try:
            return [AccountData(**item) for item in json.loads(raw)]
        except (ValueError, TypeError):
            logger.warning("Discarding unreadable account data")
            return []

    def active_account(self) -> Optional[AccountData]:
        accounts = self.load_accounts()
        return accounts[0] if accounts else None

    def find_account(self, user_address: str) -> Optional[AccountData]:
        for account in self.load_accounts():
            if account.user_address == user_address:
                return account
        return None

    def discard_account(self, user_address: str) -> None:
        remaining = [a for a in self.load_accounts() if a.user_address != user_address]
        self._write_accounts(remaining)

    def clear_all(self) -> None:
        """Wipe every key this subsystem uses (logout)."""
        if self.storage is None:
            return
        self.storage.delete(SETUP_KEY)
        self.storage.delete(ACCOUNTS_KEY)

    # -- helpers -----------------------------------------------------------

    def _write_accounts(self, accounts: list[AccountData]) -> None:
        storage = self._require_storage()
        if accounts:
            storage.set(ACCOUNTS_KEY, json.dumps([asdict(a) for a in accounts]))
        else:
            storage.delete(ACCOUNTS_KEY)

    def _require_storage(self) -> SessionStorage:
        if self.storage is None:
            raise RuntimeError("No browser session storage is available for writing.")
        return self.storage

"""
Account store boundary.

The vault persists one encrypted secret per account id through an
AccountStore. Stores are injected, have an explicit init()/close() lifecycle,
and guarantee atomic create-if-absent on put() so that concurrent
registrations of one id cannot both succeed.
"""

import logging
import random
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, TypeVar

from .errors import NotFound, StoreUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class AccountRecord:
    """Stored account: the id and its encrypted secret blob."""
    account_id: str
    encrypted_secret: str


class AccountStore(ABC):
    """
    Abstract interface for account persistence.

    Implementations must be:
    - Atomic on put (no double registration)
    - Explicit about transient failures (raise StoreUnavailable)
    """

    def init(self) -> None:
        """Prepare the store for use. Safe to call multiple times."""

    def close(self) -> None:
        """Release resources held by the store."""

    @abstractmethod
    def get(self, account_id: str) -> AccountRecord:
        """
        Fetch an account.

        Raises:
            NotFound: If the account does not exist
        """
        pass

    @abstractmethod
    def put(self, record: AccountRecord) -> bool:
        """
        Create an account if absent.

        Returns:
            True if created, False if the id already exists
        """
        pass

    def exists(self, account_id: str) -> bool:
        try:
            self.get(account_id)
            return True
        except NotFound:
            return False


class InMemoryAccountStore(AccountStore):
    """
    In-memory account store for development/testing.

    WARNING: Not persistent across restarts.
    """

    def __init__(self):
        self._accounts: Dict[str, AccountRecord] = {}
        self._lock = threading.Lock()

    def get(self, account_id: str) -> AccountRecord:
        with self._lock:
            record = self._accounts.get(account_id)
        if record is None:
            raise NotFound(account_id)
        return record

    def put(self, record: AccountRecord) -> bool:
        with self._lock:
            if record.account_id in self._accounts:
                return False
            self._accounts[record.account_id] = record
            return True

    def close(self) -> None:
        with self._lock:
            self._accounts.clear()


class SqliteAccountStore(AccountStore):
    """
    SQLite-backed account store.

    Uses one connection per thread and INSERT OR IGNORE for atomic
    create-if-absent. Lock contention surfaces as StoreUnavailable.
    """

    def __init__(self, db_path: str = "data/zkotp.db", timeout: float = 5.0):
        self._db_path = Path(db_path)
        self._timeout = timeout
        self._local = threading.local()
        self._connections = []
        self._conn_lock = threading.Lock()

    def _get_connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self._db_path), timeout=self._timeout, check_same_thread=False)
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.row_factory = sqlite3.Row
            self._local.conn = conn
            with self._conn_lock:
                self._connections.append(conn)
        return conn

    @contextmanager
    def _transaction(self):
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except sqlite3.OperationalError as e:
            conn.rollback()
            raise StoreUnavailable(str(e)) from e
        except Exception:
            conn.rollback()
            raise

    def init(self) -> None:
        with self._transaction() as conn:
            conn.execute("""
            CREATE TABLE IF NOT EXISTS accounts (
                account_id TEXT PRIMARY KEY,
                encrypted_secret TEXT NOT NULL,
                created_at INTEGER DEFAULT (strftime('%s', 'now'))
            );""")

    def get(self, account_id: str) -> AccountRecord:
        try:
            cur = self._get_connection().execute(
                "SELECT account_id, encrypted_secret FROM accounts WHERE account_id=?",
                (account_id,)
            )
            row = cur.fetchone()
        except sqlite3.OperationalError as e:
            raise StoreUnavailable(str(e)) from e
        if row is None:
            raise NotFound(account_id)
        return AccountRecord(row["account_id"], row["encrypted_secret"])

    def put(self, record: AccountRecord) -> bool:
        with self._transaction() as conn:
            cur = conn.execute(
                "INSERT OR IGNORE INTO accounts(account_id, encrypted_secret) VALUES(?,?)",
                (record.account_id, record.encrypted_secret)
            )
            return cur.rowcount == 1

    def close(self) -> None:
        with self._conn_lock:
            for conn in self._connections:
                conn.close()
            self._connections.clear()
        self._local = threading.local()


def retry_transient(
    operation: Callable[[], T],
    attempts: int = 3,
    base_delay: float = 0.05,
    max_delay: float = 1.0,
    sleep: Callable[[float], None] = time.sleep
) -> T:
    """
    Run a store operation, retrying StoreUnavailable with exponential backoff.

    Any other exception propagates immediately.
    """
    delay = base_delay
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except StoreUnavailable as e:
            if attempt == attempts:
                raise
            logger.warning("Store unavailable (attempt %d/%d): %s", attempt, attempts, e)
            sleep(delay + random.uniform(0, delay * 0.25))
            delay = min(delay * 2, max_delay)

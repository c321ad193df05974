"""SQLite persistence for providers, bookings and flags.

One connection is shared by all request handlers. Writes are serialized by a
process-local lock and run inside ``BEGIN IMMEDIATE`` transactions, so a
check-then-insert sequence inside ``transaction()`` cannot interleave with
another writer. The partial unique index on active bookings backs the
no-double-booking rule for writers in other processes too.
"""
import sqlite3
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

from .errors import StorageError

log = structlog.get_logger()

SCHEMA = """
    CREATE TABLE IF NOT EXISTS providers (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        specialization TEXT NOT NULL,
        hospital TEXT NOT NULL,
        location TEXT NOT NULL,
        experience INTEGER NOT NULL,
        consultation_fee TEXT NOT NULL,
        start_time TEXT NOT NULL DEFAULT '09:00',
        end_time TEXT NOT NULL DEFAULT '17:00',
        availability TEXT NOT NULL DEFAULT '[]',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS bookings (
        id TEXT PRIMARY KEY,
        provider_id TEXT NOT NULL REFERENCES providers(id),
        requester_id TEXT,
        date TEXT NOT NULL,
        time TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending'
            CHECK(status IN ('pending', 'confirmed', 'cancelled', 'completed')),
        payment_status TEXT NOT NULL DEFAULT 'pending'
            CHECK(payment_status IN ('pending', 'completed', 'failed', 'refunded')),
        amount TEXT NOT NULL,
        reference TEXT,
        reason TEXT,
        name TEXT,
        email TEXT,
        phone TEXT,
        requester_location TEXT,
        filled_by_other INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ux_bookings_active_slot
        ON bookings(provider_id, date, time)
        WHERE status IN ('pending', 'confirmed');
    CREATE INDEX IF NOT EXISTS idx_bookings_requester ON bookings(requester_id);
    CREATE INDEX IF NOT EXISTS idx_bookings_reference ON bookings(reference);

    CREATE TABLE IF NOT EXISTS flags (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        id TEXT NOT NULL UNIQUE,
        booking_id TEXT NOT NULL REFERENCES bookings(id) ON DELETE CASCADE,
        type TEXT NOT NULL CHECK(type IN ('warning', 'info', 'success', 'error')),
        message TEXT NOT NULL,
        created_by TEXT NOT NULL,
        created_at TEXT NOT NULL
    );
    CREATE INDEX IF NOT EXISTS idx_flags_booking ON flags(booking_id, seq);
"""


def generate_id(prefix: str) -> str:
    """Generate a prefixed UUID."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class Store:
    """Shared SQLite database with serialized write transactions."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        # Autocommit mode; transactions are opened explicitly.
        self.conn = sqlite3.connect(db_path, check_same_thread=False, isolation_level=None)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._lock = threading.RLock()

    def init_schema(self) -> None:
        """Create tables and indexes if they don't exist."""
        with self._lock:
            self.conn.executescript(SCHEMA)

    def close(self) -> None:
        self.conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a serialized write transaction.

        BookingError subclasses raised inside the block roll back and
        propagate unchanged; other sqlite errors become StorageError.
        """
        with self._lock:
            try:
                self.conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                log.error("transaction_begin_failed", error=str(e))
                raise StorageError(f"Could not start transaction: {e}") from e
            try:
                yield self.conn
            except sqlite3.Error as e:
                self._rollback()
                log.error("transaction_failed", error=str(e))
                raise StorageError(f"Storage failure: {e}") from e
            except BaseException:
                self._rollback()
                raise
            try:
                self.conn.execute("COMMIT")
            except sqlite3.Error as e:
                self._rollback()
                log.error("transaction_commit_failed", error=str(e))
                raise StorageError(f"Could not commit transaction: {e}") from e

    def _rollback(self) -> None:
        # The connection must leave every transaction idle, even after a
        # failed COMMIT.
        if not self.conn.in_transaction:
            return
        try:
            self.conn.execute("ROLLBACK")
        except sqlite3.Error as e:
            log.error("transaction_rollback_failed", error=str(e))

    @contextmanager
    def reading(self) -> Iterator[sqlite3.Connection]:
        """Read from the shared connection."""
        with self._lock:
            try:
                yield self.conn
            except sqlite3.Error as e:
                log.error("read_failed", error=str(e))
                raise StorageError(f"Storage failure: {e}") from e

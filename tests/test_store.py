"""Tests for the SQLite store."""
import sqlite3

import pytest

from consultations import StorageError, ValidationFailed, build_core


def _register(core, name="Dr. Silva"):
    return core.providers.register(
        name=name, specialization="Neurology", hospital="Lanka Hospital",
        location="Colombo", experience=8, consultation_fee=4000,
    )


@pytest.fixture
def file_core(tmp_path):
    """Core backed by a database file that other connections can lock."""
    core = build_core(db_path=str(tmp_path / "consultations.db"))
    core.store.conn.execute("PRAGMA busy_timeout = 0")
    yield core
    core.store.close()


@pytest.fixture
def reader(file_core):
    """Second connection holding a read lock on the database file."""
    conn = sqlite3.connect(file_core.store.db_path, isolation_level=None)
    conn.execute("BEGIN")
    conn.execute("SELECT COUNT(*) FROM providers").fetchone()
    yield conn
    conn.close()


class TestTransaction:
    """Tests for write transactions."""

    def test_commit_blocked_by_reader(self, file_core, reader):
        """Test a commit that cannot get the write lock raises StorageError."""
        with pytest.raises(StorageError):
            _register(file_core)

        assert not file_core.store.conn.in_transaction

    def test_store_usable_after_failed_commit(self, file_core, reader):
        with pytest.raises(StorageError):
            _register(file_core, name="Dr. Blocked")
        reader.execute("ROLLBACK")

        registered = _register(file_core)

        assert [p.id for p in file_core.providers.search()] == [registered.id]

    def test_domain_error_rolls_back(self, core):
        """Test a BookingError inside the block leaves nothing behind."""
        with pytest.raises(ValidationFailed):
            with core.store.transaction() as conn:
                conn.execute(
                    "INSERT INTO providers (id, name, specialization, hospital, location,"
                    " experience, consultation_fee, created_at, updated_at)"
                    " VALUES ('prov_x', 'X', 'Y', 'Z', 'W', 1, '10', 'now', 'now')"
                )
                raise ValidationFailed("stop")

        assert core.providers.find("prov_x") is None
        assert not core.store.conn.in_transaction

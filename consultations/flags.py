"""Audit notes attached to bookings."""
import sqlite3
from datetime import datetime

import structlog

from .errors import InvalidFlagType, NotFound, ValidationFailed
from .models import Flag, FlagType
from .store import Store, generate_id

log = structlog.get_logger()

FLAG_TYPES = {t.value for t in FlagType}


def row_to_flag(row: sqlite3.Row) -> Flag:
    return Flag(
        id=row["id"],
        type=row["type"],
        message=row["message"],
        created_by=row["created_by"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def insert_flag(
    conn: sqlite3.Connection,
    booking_id: str,
    type: str,
    message: str,
    created_by: str,
) -> Flag:
    """Insert a flag inside an open transaction."""
    if type not in FLAG_TYPES:
        raise InvalidFlagType(f"Invalid flag type: {type}", type=type)
    if not message or not created_by:
        raise ValidationFailed("Flag message and creator are required")

    exists = conn.execute("SELECT 1 FROM bookings WHERE id = ?", (booking_id,)).fetchone()
    if exists is None:
        raise NotFound(f"Booking not found: {booking_id}", booking_id=booking_id)

    flag = Flag(
        id=generate_id("flag"),
        type=type,
        message=message,
        created_by=created_by,
        created_at=datetime.now(),
    )
    conn.execute(
        """INSERT INTO flags (id, booking_id, type, message, created_by, created_at)
           VALUES (?, ?, ?, ?, ?, ?)""",
        (flag.id, booking_id, flag.type, flag.message, flag.created_by,
         flag.created_at.isoformat()),
    )
    return flag


def select_flags(conn: sqlite3.Connection, booking_id: str) -> list[Flag]:
    rows = conn.execute(
        "SELECT * FROM flags WHERE booking_id = ? ORDER BY seq", (booking_id,)
    ).fetchall()
    return [row_to_flag(row) for row in rows]


class FlagLog:
    """Append-only notes per booking, removable one at a time."""

    def __init__(self, store: Store):
        self.store = store

    def append(self, booking_id: str, type: str, message: str, created_by: str) -> Flag:
        with self.store.transaction() as conn:
            flag = insert_flag(conn, booking_id, type, message, created_by)
        log.info("flag_added", booking_id=booking_id, flag_id=flag.id, type=type)
        return flag

    def remove(self, booking_id: str, flag_id: str) -> None:
        """Remove exactly one flag."""
        with self.store.transaction() as conn:
            exists = conn.execute("SELECT 1 FROM bookings WHERE id = ?", (booking_id,)).fetchone()
            if exists is None:
                raise NotFound(f"Booking not found: {booking_id}", booking_id=booking_id)
            cursor = conn.execute(
                "DELETE FROM flags WHERE booking_id = ? AND id = ?", (booking_id, flag_id)
            )
            if cursor.rowcount == 0:
                raise NotFound(f"Flag not found: {flag_id}", flag_id=flag_id)
        log.info("flag_removed", booking_id=booking_id, flag_id=flag_id)

    def for_booking(self, booking_id: str) -> list[Flag]:
        with self.store.reading() as conn:
            return select_flags(conn, booking_id)

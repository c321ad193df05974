"""Booking ledger: creation, lifecycle changes, removal and queries.

Creation checks and the insert run in one serialized write transaction, and
the store's partial unique index rejects a second active booking for the same
provider, date and time even if a writer bypasses these checks.
"""
import math
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

import structlog

from .availability import ACTIVE_PLACEHOLDERS, normalize_date
from .errors import (
    Conflict,
    DuplicateRequest,
    NotFound,
    SlotUnavailable,
    ValidationFailed,
)
from .flags import insert_flag, row_to_flag, select_flags
from .models import (
    ACTIVE_STATUSES,
    Booking,
    BookingStatus,
    FlagType,
    PaymentStatus,
)
from .providers import availability_from_json
from .slots import normalize_clock
from .status import check_booking_transition, check_payment_transition, check_refund
from .store import Store, generate_id

log = structlog.get_logger()

REFUND_MESSAGE = "Refund processed"
SYSTEM_ACTOR = "system"

SORT_COLUMNS = {
    "date": "date {order}, time {order}",
    "time": "time {order}",
    "amount": "CAST(amount AS REAL) {order}",
    "created_at": "created_at {order}",
    "status": "status {order}",
    "payment_status": "payment_status {order}",
}


@dataclass
class LedgerSummary:
    total_amount: Decimal = Decimal("0")
    total_transactions: int = 0
    completed_transactions: int = 0
    pending_transactions: int = 0
    failed_transactions: int = 0
    refunded_transactions: int = 0


@dataclass
class TransactionPage:
    transactions: list[Booking]
    summary: LedgerSummary
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


@dataclass
class TransactionFilter:
    start_date: str | None = None
    end_date: str | None = None
    payment_status: str | None = None
    provider_id: str | None = None
    requester_id: str | None = None
    sort_by: str = "date"
    sort_order: str = "desc"
    page: int = 1
    limit: int = 10


def _row_to_booking(row: sqlite3.Row) -> Booking:
    return Booking(
        id=row["id"],
        provider_id=row["provider_id"],
        requester_id=row["requester_id"],
        date=row["date"],
        time=row["time"],
        status=row["status"],
        payment_status=row["payment_status"],
        amount=Decimal(row["amount"]),
        reference=row["reference"],
        reason=row["reason"],
        name=row["name"],
        email=row["email"],
        phone=row["phone"],
        requester_location=row["requester_location"],
        filled_by_other=bool(row["filled_by_other"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _check_enum(value: str | None, enum, label: str) -> None:
    if value is not None and value not in {member.value for member in enum}:
        raise ValidationFailed(f"Invalid {label}: {value}")


class BookingLedger:
    """Persistent bookings with the no-double-booking guarantee."""

    def __init__(self, store: Store):
        self.store = store

    # =========================================================================
    # Loading
    # =========================================================================

    def _attach_flags(self, conn: sqlite3.Connection, bookings: list[Booking]) -> list[Booking]:
        if not bookings:
            return bookings
        by_id = {booking.id: booking for booking in bookings}
        placeholders = ", ".join("?" for _ in by_id)
        rows = conn.execute(
            f"SELECT * FROM flags WHERE booking_id IN ({placeholders}) ORDER BY seq",
            list(by_id),
        ).fetchall()
        for row in rows:
            by_id[row["booking_id"]].flags.append(row_to_flag(row))
        return bookings

    def _load(self, conn: sqlite3.Connection, booking_id: str) -> Booking:
        row = conn.execute("SELECT * FROM bookings WHERE id = ?", (booking_id,)).fetchone()
        if row is None:
            raise NotFound(f"Booking not found: {booking_id}", booking_id=booking_id)
        booking = _row_to_booking(row)
        booking.flags = select_flags(conn, booking_id)
        return booking

    def _select(self, query: str, params: list | tuple) -> list[Booking]:
        with self.store.reading() as conn:
            rows = conn.execute(query, params).fetchall()
            return self._attach_flags(conn, [_row_to_booking(row) for row in rows])

    def get(self, booking_id: str) -> Booking:
        with self.store.reading() as conn:
            return self._load(conn, booking_id)

    def _load_by_reference(self, conn: sqlite3.Connection, reference: str) -> Booking:
        row = conn.execute(
            "SELECT id FROM bookings WHERE reference = ? ORDER BY created_at LIMIT 1",
            (reference,),
        ).fetchone()
        if row is None:
            raise NotFound(f"Booking not found for reference: {reference}")
        return self._load(conn, row["id"])

    def find_by_reference(self, reference: str) -> Booking:
        with self.store.reading() as conn:
            return self._load_by_reference(conn, reference)

    # =========================================================================
    # Writes
    # =========================================================================

    def create(
        self,
        provider_id: str,
        date: str,
        time: str,
        requester_id: str | None = None,
        *,
        reason: str | None = None,
        name: str | None = None,
        email: str | None = None,
        phone: str | None = None,
        reference: str | None = None,
        requester_location: str | None = None,
        filled_by_other: bool = False,
        status: str | None = None,
        payment_status: str | None = None,
    ) -> Booking:
        """Book a slot, snapshotting the provider's current fee.

        Raises:
            NotFound: provider does not exist.
            SlotUnavailable: calendar has no open slot at date/time.
            DuplicateRequest: this requester already holds the slot.
            Conflict: someone else holds the slot.
        """
        try:
            date = normalize_date(date)
            time = normalize_clock(time)
        except ValueError as e:
            raise ValidationFailed(f"Invalid date or time: {e}") from e
        _check_enum(status, BookingStatus, "status")
        _check_enum(payment_status, PaymentStatus, "payment status")

        booking_id = generate_id("appt")
        now = datetime.now().isoformat()

        with self.store.transaction() as conn:
            provider = conn.execute(
                "SELECT consultation_fee, availability FROM providers WHERE id = ?",
                (provider_id,),
            ).fetchone()
            if provider is None:
                raise NotFound(f"Provider not found: {provider_id}", provider_id=provider_id)

            day = next(
                (d for d in availability_from_json(provider["availability"]) if d.date == date),
                None,
            )
            if day is None or not day.is_available or not day.has_slot(time):
                log.info("booking_slot_unavailable", provider_id=provider_id, date=date, time=time)
                raise SlotUnavailable(
                    f"No available slot on {date} at {time}",
                    provider_id=provider_id, date=date, time=time,
                )

            holders = conn.execute(
                f"""SELECT requester_id FROM bookings
                    WHERE provider_id = ? AND date = ? AND time = ?
                    AND status IN ({ACTIVE_PLACEHOLDERS})""",
                (provider_id, date, time, *ACTIVE_STATUSES),
            ).fetchall()
            if requester_id and any(row["requester_id"] == requester_id for row in holders):
                log.info("booking_duplicate", provider_id=provider_id, date=date, time=time)
                raise DuplicateRequest("You have already booked this time slot")
            if holders:
                log.info("booking_conflict", provider_id=provider_id, date=date, time=time)
                raise Conflict("This time slot is already booked by another requester")

            try:
                conn.execute(
                    """INSERT INTO bookings
                       (id, provider_id, requester_id, date, time, status, payment_status,
                        amount, reference, reason, name, email, phone, requester_location,
                        filled_by_other, created_at, updated_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        booking_id, provider_id, requester_id, date, time,
                        status or BookingStatus.PENDING.value,
                        payment_status or PaymentStatus.PENDING.value,
                        provider["consultation_fee"],
                        reference, reason, name, email, phone, requester_location,
                        int(filled_by_other), now, now,
                    ),
                )
            except sqlite3.IntegrityError as e:
                log.warning("booking_conflict_constraint", provider_id=provider_id, date=date, time=time)
                raise Conflict("This time slot is already booked by another requester") from e

            booking = self._load(conn, booking_id)

        log.info(
            "booking_created",
            booking_id=booking.id,
            provider_id=provider_id,
            date=date,
            time=time,
            amount=str(booking.amount),
            phone_last4=phone[-4:] if phone else None,
        )
        return booking

    def update_status(self, booking_id: str, new_status: str) -> Booking:
        with self.store.transaction() as conn:
            booking = self._load(conn, booking_id)
            check_booking_transition(booking.status, new_status)
            conn.execute(
                "UPDATE bookings SET status = ?, updated_at = ? WHERE id = ?",
                (new_status, datetime.now().isoformat(), booking_id),
            )
            booking = self._load(conn, booking_id)
        log.info("booking_status_updated", booking_id=booking_id, status=new_status)
        return booking

    def update_payment_status(self, booking_id: str, new_status: str) -> Booking:
        with self.store.transaction() as conn:
            booking = self._load(conn, booking_id)
            check_payment_transition(booking.payment_status, new_status)
            conn.execute(
                "UPDATE bookings SET payment_status = ?, updated_at = ? WHERE id = ?",
                (new_status, datetime.now().isoformat(), booking_id),
            )
            booking = self._load(conn, booking_id)
        log.info("booking_payment_updated", booking_id=booking_id, payment_status=new_status)
        return booking

    def refund(self, booking_id: str | None = None, reference: str | None = None) -> Booking:
        """Mark a pending booking's payment refunded and note it in the flags."""
        if not booking_id and not reference:
            raise ValidationFailed("Either booking_id or reference is required")

        with self.store.transaction() as conn:
            if booking_id:
                booking = self._load(conn, booking_id)
            else:
                booking = self._load_by_reference(conn, reference)

            check_refund(booking.status, booking.payment_status)
            insert_flag(conn, booking.id, FlagType.INFO.value, REFUND_MESSAGE, SYSTEM_ACTOR)
            conn.execute(
                "UPDATE bookings SET payment_status = ?, updated_at = ? WHERE id = ?",
                (PaymentStatus.REFUNDED.value, datetime.now().isoformat(), booking.id),
            )
            booking = self._load(conn, booking.id)
        log.info("booking_refunded", booking_id=booking.id, amount=str(booking.amount))
        return booking

    def remove(self, booking_id: str) -> None:
        """Hard-delete a booking and its flags."""
        with self.store.transaction() as conn:
            cursor = conn.execute("DELETE FROM bookings WHERE id = ?", (booking_id,))
            if cursor.rowcount == 0:
                raise NotFound(f"Booking not found: {booking_id}", booking_id=booking_id)
        log.info("booking_removed", booking_id=booking_id)

    # =========================================================================
    # Queries
    # =========================================================================

    def list_by_requester(self, requester_id: str) -> list[Booking]:
        return self._select(
            "SELECT * FROM bookings WHERE requester_id = ? ORDER BY date, time",
            (requester_id,),
        )

    def list_by_provider(self, provider_id: str) -> list[Booking]:
        return self._select(
            "SELECT * FROM bookings WHERE provider_id = ? ORDER BY date, time",
            (provider_id,),
        )

    def list_by_provider_and_date(self, provider_id: str, date: str) -> list[Booking]:
        """Bookings still holding slots on the given date."""
        return self._select(
            f"""SELECT * FROM bookings
                WHERE provider_id = ? AND date = ? AND status IN ({ACTIVE_PLACEHOLDERS})
                ORDER BY time""",
            (provider_id, date, *ACTIVE_STATUSES),
        )

    def payment_history(self, requester_id: str) -> list[Booking]:
        return self._select(
            "SELECT * FROM bookings WHERE requester_id = ? ORDER BY created_at DESC",
            (requester_id,),
        )

    def transactions(self, filters: TransactionFilter | None = None) -> TransactionPage:
        """Paginated, filterable ledger scan with a summary computed on read."""
        filters = filters or TransactionFilter()
        if filters.sort_by not in SORT_COLUMNS:
            raise ValidationFailed(f"Cannot sort by {filters.sort_by}")
        if filters.sort_order not in ("asc", "desc"):
            raise ValidationFailed(f"Invalid sort order: {filters.sort_order}")
        if filters.page < 1 or filters.limit < 1:
            raise ValidationFailed("Page and limit must be positive")

        where = " WHERE 1=1"
        params: list = []
        if filters.start_date and filters.end_date:
            where += " AND date >= ? AND date <= ?"
            params.extend([filters.start_date, filters.end_date])
        if filters.payment_status:
            where += " AND payment_status = ?"
            params.append(filters.payment_status)
        if filters.provider_id:
            where += " AND provider_id = ?"
            params.append(filters.provider_id)
        if filters.requester_id:
            where += " AND requester_id = ?"
            params.append(filters.requester_id)

        order = SORT_COLUMNS[filters.sort_by].format(order=filters.sort_order.upper())
        offset = (filters.page - 1) * filters.limit

        with self.store.reading() as conn:
            totals = conn.execute(
                "SELECT amount, payment_status FROM bookings" + where, params
            ).fetchall()
            rows = conn.execute(
                f"SELECT * FROM bookings{where} ORDER BY {order} LIMIT ? OFFSET ?",
                [*params, filters.limit, offset],
            ).fetchall()
            page = self._attach_flags(conn, [_row_to_booking(row) for row in rows])

        summary = LedgerSummary()
        for row in totals:
            summary.total_amount += Decimal(row["amount"])
            summary.total_transactions += 1
            if row["payment_status"] == PaymentStatus.COMPLETED.value:
                summary.completed_transactions += 1
            elif row["payment_status"] == PaymentStatus.PENDING.value:
                summary.pending_transactions += 1
            elif row["payment_status"] == PaymentStatus.FAILED.value:
                summary.failed_transactions += 1
            elif row["payment_status"] == PaymentStatus.REFUNDED.value:
                summary.refunded_transactions += 1

        return TransactionPage(
            transactions=page,
            summary=summary,
            total=len(totals),
            page=filters.page,
            limit=filters.limit,
        )

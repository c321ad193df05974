"""Tests for the booking ledger."""
import sqlite3
import threading
from decimal import Decimal

import pytest

from consultations import (
    BookingError,
    Conflict,
    DuplicateRequest,
    NotFound,
    SlotUnavailable,
    TransactionFilter,
    ValidationFailed,
)

BOOKING_DATE = "2099-03-02"
CLOSED_DATE = "2099-03-03"


def _active_count(core, provider_id, date, time) -> int:
    row = core.store.conn.execute(
        """SELECT COUNT(*) FROM bookings
           WHERE provider_id = ? AND date = ? AND time = ?
           AND status IN ('pending', 'confirmed')""",
        (provider_id, date, time),
    ).fetchone()
    return row[0]


class TestCreate:
    """Tests for booking creation."""

    def test_create_booking(self, core, provider):
        """Test a booking starts pending with the provider's fee."""
        booking = core.ledger.create(
            provider.id, BOOKING_DATE, "09:00",
            requester_id="user-1", reason="Chest pain", phone="+94771234567",
        )

        assert booking.status == "pending"
        assert booking.payment_status == "pending"
        assert booking.amount == Decimal("2500")
        assert booking.reason == "Chest pain"
        assert booking.flags == []

    def test_unauthenticated_requester(self, core, provider):
        """Test bookings without a requester id are allowed."""
        booking = core.ledger.create(provider.id, BOOKING_DATE, "09:00", name="Walk In")

        assert booking.requester_id is None

    def test_status_overrides(self, core, provider):
        """Test caller-supplied initial statuses are kept."""
        booking = core.ledger.create(
            provider.id, BOOKING_DATE, "09:00",
            requester_id="user-1", status="confirmed", payment_status="completed",
        )

        assert booking.status == "confirmed"
        assert booking.payment_status == "completed"

    def test_invalid_status_override(self, core, provider):
        with pytest.raises(ValidationFailed):
            core.ledger.create(provider.id, BOOKING_DATE, "09:00", status="archived")

    def test_unknown_provider(self, core):
        """Test booking an unknown provider raises NotFound."""
        with pytest.raises(NotFound):
            core.ledger.create("prov-missing", BOOKING_DATE, "09:00")

    def test_time_not_in_calendar(self, core, provider):
        """Test a time without a slot raises SlotUnavailable."""
        with pytest.raises(SlotUnavailable):
            core.ledger.create(provider.id, BOOKING_DATE, "09:10")

    def test_closed_day(self, core, provider):
        """Test an unavailable day raises SlotUnavailable."""
        with pytest.raises(SlotUnavailable):
            core.ledger.create(provider.id, CLOSED_DATE, "09:00")

    def test_date_not_in_calendar(self, core, provider):
        with pytest.raises(SlotUnavailable):
            core.ledger.create(provider.id, "2099-12-25", "09:00")

    def test_malformed_time(self, core, provider):
        with pytest.raises(ValidationFailed):
            core.ledger.create(provider.id, BOOKING_DATE, "9am")

    def test_second_requester_conflicts(self, core, provider):
        """Test a different requester cannot take a held slot."""
        core.ledger.create(provider.id, BOOKING_DATE, "09:00", requester_id="user-1")

        with pytest.raises(Conflict):
            core.ledger.create(provider.id, BOOKING_DATE, "09:00", requester_id="user-2")

    def test_anonymous_requester_conflicts(self, core, provider):
        """Test an anonymous request for a held slot conflicts."""
        core.ledger.create(provider.id, BOOKING_DATE, "09:00")

        with pytest.raises(Conflict):
            core.ledger.create(provider.id, BOOKING_DATE, "09:00")

    def test_unpadded_time_conflicts(self, core, provider):
        """Test "9:00" is the same slot as a held "09:00"."""
        core.ledger.create(provider.id, BOOKING_DATE, "09:00", requester_id="user-1")

        with pytest.raises(Conflict):
            core.ledger.create(provider.id, BOOKING_DATE, "9:00", requester_id="user-2")

        assert _active_count(core, provider.id, BOOKING_DATE, "09:00") == 1

    def test_unpadded_input_stored_padded(self, core, provider):
        booking = core.ledger.create(provider.id, "2099-3-2", "9:00")

        assert (booking.date, booking.time) == (BOOKING_DATE, "09:00")

    def test_same_requester_duplicate(self, core, provider):
        """Test the same requester booking twice is a duplicate."""
        core.ledger.create(provider.id, BOOKING_DATE, "09:00", requester_id="user-1")

        with pytest.raises(DuplicateRequest):
            core.ledger.create(provider.id, BOOKING_DATE, "09:00", requester_id="user-1")

    def test_rebook_after_cancel(self, core, provider):
        """Test a cancelled booking frees the slot."""
        first = core.ledger.create(provider.id, BOOKING_DATE, "09:00", requester_id="user-1")
        core.ledger.update_status(first.id, "cancelled")

        second = core.ledger.create(provider.id, BOOKING_DATE, "09:00", requester_id="user-2")

        assert second.status == "pending"

    def test_rebook_after_completion(self, core, provider):
        first = core.ledger.create(provider.id, BOOKING_DATE, "09:00", requester_id="user-1")
        core.ledger.update_status(first.id, "confirmed")
        core.ledger.update_status(first.id, "completed")

        second = core.ledger.create(provider.id, BOOKING_DATE, "09:00", requester_id="user-1")

        assert second.id != first.id


class TestFeeSnapshot:
    """Tests for price snapshots."""

    def test_fee_change_does_not_touch_amount(self, core, provider):
        """Test existing bookings keep the fee from creation time."""
        booking = core.ledger.create(provider.id, BOOKING_DATE, "09:00", requester_id="user-1")

        core.providers.update_fee(provider.id, Decimal("4000"))

        assert core.ledger.get(booking.id).amount == Decimal("2500")

    def test_new_bookings_use_new_fee(self, core, provider):
        core.providers.update_fee(provider.id, Decimal("4000"))

        booking = core.ledger.create(provider.id, BOOKING_DATE, "09:30", requester_id="user-1")

        assert booking.amount == Decimal("4000")


class TestNoDoubleBooking:
    """Tests for the one-active-booking-per-slot invariant."""

    def test_concurrent_creates(self, core, provider):
        """Test racing requests for one slot produce exactly one booking."""
        outcomes = []
        barrier = threading.Barrier(8)

        def attempt(n):
            barrier.wait()
            try:
                core.ledger.create(provider.id, BOOKING_DATE, "11:00", requester_id=f"user-{n}")
                outcomes.append("ok")
            except BookingError as e:
                outcomes.append(e.code)

        threads = [threading.Thread(target=attempt, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert outcomes.count("ok") == 1
        assert outcomes.count("conflict") == 7
        assert _active_count(core, provider.id, BOOKING_DATE, "11:00") == 1

    def test_storage_constraint(self, core, provider):
        """Test the database rejects a second active row directly."""
        core.ledger.create(provider.id, BOOKING_DATE, "09:00", requester_id="user-1")

        with pytest.raises(sqlite3.IntegrityError):
            core.store.conn.execute(
                """INSERT INTO bookings
                   (id, provider_id, date, time, status, payment_status, amount,
                    created_at, updated_at)
                   VALUES ('appt_raw', ?, ?, '09:00', 'confirmed', 'pending', '1', 'x', 'x')""",
                (provider.id, BOOKING_DATE),
            )

    def test_terminal_rows_do_not_count(self, core, provider):
        """Test many cancelled bookings may share a slot."""
        for n in range(3):
            booking = core.ledger.create(provider.id, BOOKING_DATE, "09:00", requester_id=f"user-{n}")
            core.ledger.update_status(booking.id, "cancelled")

        assert _active_count(core, provider.id, BOOKING_DATE, "09:00") == 0
        assert len(core.ledger.list_by_provider(provider.id)) == 3


class TestRemove:
    """Tests for hard deletion."""

    def test_remove(self, core, provider):
        booking = core.ledger.create(provider.id, BOOKING_DATE, "09:00", requester_id="user-1")

        core.ledger.remove(booking.id)

        with pytest.raises(NotFound):
            core.ledger.get(booking.id)

    def test_remove_frees_slot(self, core, provider):
        booking = core.ledger.create(provider.id, BOOKING_DATE, "09:00", requester_id="user-1")
        core.ledger.remove(booking.id)

        assert core.ledger.create(provider.id, BOOKING_DATE, "09:00", requester_id="user-2")

    def test_remove_drops_flags(self, core, provider):
        booking = core.ledger.create(provider.id, BOOKING_DATE, "09:00", requester_id="user-1")
        core.flags.append(booking.id, "info", "Called patient", "staff-1")

        core.ledger.remove(booking.id)

        assert core.flags.for_booking(booking.id) == []

    def test_remove_missing(self, core):
        with pytest.raises(NotFound):
            core.ledger.remove("appt_missing")


class TestQueries:
    """Tests for read-only ledger queries."""

    def test_list_by_requester_sorted(self, core, provider):
        core.ledger.create(provider.id, BOOKING_DATE, "15:00", requester_id="user-1")
        core.ledger.create(provider.id, BOOKING_DATE, "09:00", requester_id="user-1")
        core.ledger.create(provider.id, BOOKING_DATE, "10:00", requester_id="user-2")

        bookings = core.ledger.list_by_requester("user-1")

        assert [b.time for b in bookings] == ["09:00", "15:00"]

    def test_list_by_provider_and_date_active_only(self, core, provider):
        """Test only pending and confirmed bookings are listed for a date."""
        kept = core.ledger.create(provider.id, BOOKING_DATE, "09:00", requester_id="user-1")
        dropped = core.ledger.create(provider.id, BOOKING_DATE, "09:30", requester_id="user-2")
        core.ledger.update_status(dropped.id, "cancelled")

        bookings = core.ledger.list_by_provider_and_date(provider.id, BOOKING_DATE)

        assert [b.id for b in bookings] == [kept.id]

    def test_find_by_reference(self, core, provider):
        booking = core.ledger.create(
            provider.id, BOOKING_DATE, "09:00", requester_id="user-1", reference="PAY-123"
        )

        assert core.ledger.find_by_reference("PAY-123").id == booking.id

    def test_payment_history_newest_first(self, core, provider):
        first = core.ledger.create(provider.id, BOOKING_DATE, "09:00", requester_id="user-1")
        second = core.ledger.create(provider.id, BOOKING_DATE, "09:30", requester_id="user-1")

        history = core.ledger.payment_history("user-1")

        assert {b.id for b in history} == {first.id, second.id}
        assert history[0].created_at >= history[1].created_at


class TestTransactions:
    """Tests for the reporting scan."""

    @pytest.fixture
    def bookings(self, core, provider):
        created = []
        for n, time in enumerate(["09:00", "09:30", "10:00", "10:30"]):
            created.append(core.ledger.create(provider.id, BOOKING_DATE, time, requester_id=f"user-{n}"))
        core.ledger.update_payment_status(created[0].id, "completed")
        core.ledger.update_payment_status(created[1].id, "failed")
        core.ledger.refund(created[2].id)
        return created

    def test_summary(self, core, bookings):
        """Test totals are computed from the matching rows."""
        page = core.ledger.transactions()

        assert page.summary.total_transactions == 4
        assert page.summary.total_amount == Decimal("10000")
        assert page.summary.completed_transactions == 1
        assert page.summary.failed_transactions == 1
        assert page.summary.refunded_transactions == 1
        assert page.summary.pending_transactions == 1

    def test_filter_by_payment_status(self, core, bookings):
        page = core.ledger.transactions(TransactionFilter(payment_status="completed"))

        assert [b.id for b in page.transactions] == [bookings[0].id]
        assert page.summary.total_transactions == 1

    def test_pagination(self, core, bookings):
        page = core.ledger.transactions(TransactionFilter(sort_order="asc", page=2, limit=3))

        assert page.total == 4
        assert page.pages == 2
        assert [b.time for b in page.transactions] == ["10:30"]

    def test_date_range(self, core, bookings):
        page = core.ledger.transactions(TransactionFilter(start_date="2099-04-01", end_date="2099-04-30"))

        assert page.total == 0
        assert page.summary.total_amount == Decimal("0")

    def test_invalid_sort(self, core):
        with pytest.raises(ValidationFailed):
            core.ledger.transactions(TransactionFilter(sort_by="name"))

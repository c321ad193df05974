"""Per-provider availability calendar.

A provider's availability is a single immutable value: a date-ordered tuple
of frozen ``AvailabilityDay`` records. Updates build a new value and swap it
in with one write transaction; days are never merged slot by slot.
"""
from collections.abc import Iterable
from datetime import date, datetime, timedelta

import structlog

from .config import Settings
from .errors import NotFound, ValidationFailed
from .models import ACTIVE_STATUSES, AvailabilityDay, Slot
from .providers import ProviderDirectory, availability_from_json, availability_to_json
from .slots import format_clock, generate_slots, parse_clock
from .store import Store

log = structlog.get_logger()

DATE_FORMAT = "%Y-%m-%d"
ACTIVE_PLACEHOLDERS = ", ".join("?" for _ in ACTIVE_STATUSES)


def parse_date(value: str) -> date:
    """Parse a YYYY-MM-DD date string."""
    return datetime.strptime(value, DATE_FORMAT).date()


def normalize_date(value: str) -> str:
    """Zero-padded YYYY-MM-DD form of a date string."""
    return parse_date(value).strftime(DATE_FORMAT)


def display_label(day: date) -> str:
    """Short label such as 'Mon, Jan 5'."""
    return f"{day:%a}, {day:%b} {day.day}"


def week_start(day: date) -> date:
    """Sunday on or before the given day."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


def is_editable(day: date, today: date) -> bool:
    """Dates from today through 31 Dec of the current year may be edited."""
    return today <= day <= date(today.year, 12, 31)


def navigable_weeks(today: date) -> list[date]:
    """Week starts from the current week to the week containing 31 Dec."""
    end_of_year = date(today.year, 12, 31)
    weeks = []
    current = week_start(today)
    while current <= end_of_year:
        weeks.append(current)
        current += timedelta(days=7)
    return weeks


def build_week(
    start: date,
    open_dates: Iterable[str],
    start_time: str,
    end_time: str,
) -> tuple[AvailabilityDay, ...]:
    """Build seven day records; open dates get slots over the working hours."""
    open_dates = set(open_dates)
    slots = tuple(generate_slots(start_time, end_time))
    days = []
    for offset in range(7):
        day = start + timedelta(days=offset)
        key = day.strftime(DATE_FORMAT)
        is_open = key in open_dates
        days.append(AvailabilityDay(
            date=key,
            display_label=display_label(day),
            day_name=f"{day:%A}",
            is_available=is_open,
            slots=slots if is_open else (),
        ))
    return tuple(days)


def _normalize_day(day: AvailabilityDay) -> AvailabilityDay:
    try:
        key = normalize_date(day.date)
    except ValueError as e:
        raise ValidationFailed(f"Invalid date {day.date!r}: expected YYYY-MM-DD") from e

    slots = {}
    for slot in day.slots:
        try:
            start, end = parse_clock(slot.start_time), parse_clock(slot.end_time)
        except ValueError as e:
            raise ValidationFailed(f"Invalid slot on {day.date}: {e}") from e
        if start >= end:
            raise ValidationFailed(
                f"Slot on {day.date} must start before it ends: {slot.start_time}-{slot.end_time}"
            )
        if start in slots:
            raise ValidationFailed(f"Duplicate slot {format_clock(start)} on {day.date}")
        slots[start] = Slot(start_time=format_clock(start), end_time=format_clock(end))

    return AvailabilityDay(
        date=key,
        display_label=day.display_label,
        day_name=day.day_name,
        is_available=day.is_available,
        slots=tuple(slots[start] for start in sorted(slots)),
    )


def normalize_days(days: Iterable[AvailabilityDay]) -> tuple[AvailabilityDay, ...]:
    """Validate day records and return them sorted by date."""
    normalized = [_normalize_day(day) for day in days]
    dates = [day.date for day in normalized]
    if len(dates) != len(set(dates)):
        raise ValidationFailed("Each date may appear only once")
    return tuple(sorted(normalized, key=lambda d: d.date))


class AvailabilityCalendar:
    """Authoritative bookable days and slots per provider."""

    def __init__(self, store: Store, providers: ProviderDirectory, settings: Settings):
        self.store = store
        self.providers = providers
        self.settings = settings

    def _check_window(self, days: tuple[AvailabilityDay, ...], today: date) -> None:
        if not self.settings.enforce_edit_window:
            return
        for day in days:
            if not is_editable(parse_date(day.date), today):
                raise ValidationFailed(
                    f"Date {day.date} is outside the editable window",
                    date=day.date,
                )

    def _swap(self, provider_id: str, build) -> tuple[AvailabilityDay, ...]:
        with self.store.transaction() as conn:
            row = conn.execute(
                "SELECT availability FROM providers WHERE id = ?", (provider_id,)
            ).fetchone()
            if row is None:
                raise NotFound(f"Provider not found: {provider_id}", provider_id=provider_id)
            value = build(availability_from_json(row["availability"]))
            conn.execute(
                "UPDATE providers SET availability = ?, updated_at = ? WHERE id = ?",
                (availability_to_json(value), datetime.now().isoformat(), provider_id),
            )
        return value

    def replace_week(
        self,
        provider_id: str,
        days: Iterable[AvailabilityDay],
        today: date | None = None,
    ) -> tuple[AvailabilityDay, ...]:
        """Overwrite the records for the submitted dates as whole days."""
        submitted = normalize_days(days)
        self._check_window(submitted, today or date.today())
        dates = {day.date for day in submitted}

        def build(current):
            kept = [day for day in current if day.date not in dates]
            return tuple(sorted(kept + list(submitted), key=lambda d: d.date))

        value = self._swap(provider_id, build)
        log.info("availability_week_replaced", provider_id=provider_id, dates=sorted(dates))
        return value

    def replace_availability(
        self,
        provider_id: str,
        days: Iterable[AvailabilityDay],
        today: date | None = None,
    ) -> tuple[AvailabilityDay, ...]:
        """Replace the provider's full day-record set.

        With the edit window enforced, records dated before today are history
        and survive the replacement.
        """
        submitted = normalize_days(days)
        today = today or date.today()
        self._check_window(submitted, today)

        def build(current):
            if not self.settings.enforce_edit_window:
                return submitted
            history = [day for day in current if parse_date(day.date) < today]
            return tuple(sorted(history + list(submitted), key=lambda d: d.date))

        value = self._swap(provider_id, build)
        log.info("availability_replaced", provider_id=provider_id, days=len(value))
        return value

    def days(self, provider_id: str) -> tuple[AvailabilityDay, ...]:
        return self.providers.get(provider_id).availability

    def lookup(self, provider_id: str, day: str) -> AvailabilityDay | None:
        """Day record for the date, or None when the calendar has none."""
        try:
            day = normalize_date(day)
        except ValueError as e:
            raise ValidationFailed(f"Invalid date {day!r}: expected YYYY-MM-DD") from e
        return next((d for d in self.days(provider_id) if d.date == day), None)

    def open_slots(self, provider_id: str, day: str, now: datetime | None = None) -> list[Slot]:
        """Slots still open for booking on a date.

        Excludes slots held by pending or confirmed bookings and, when the
        date is today, slots whose start time has passed.
        """
        record = self.lookup(provider_id, day)
        if record is None or not record.is_available:
            return []

        with self.store.reading() as conn:
            rows = conn.execute(
                f"""SELECT time FROM bookings
                    WHERE provider_id = ? AND date = ?
                    AND status IN ({ACTIVE_PLACEHOLDERS})""",
                (provider_id, record.date, *ACTIVE_STATUSES),
            ).fetchall()
        taken = {row["time"] for row in rows}

        now = now or datetime.now()
        slots = [slot for slot in record.slots if slot.start_time not in taken]
        if parse_date(record.date) == now.date():
            current = now.hour * 60 + now.minute
            slots = [slot for slot in slots if parse_clock(slot.start_time) > current]
        return slots

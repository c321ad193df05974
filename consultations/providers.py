"""Provider records: registration, fee changes and search."""
import json
import sqlite3
from datetime import datetime
from decimal import Decimal

import structlog

from .config import Settings
from .errors import NotFound, ValidationFailed
from .models import AvailabilityDay, Provider, Slot
from .slots import normalize_clock, parse_clock
from .store import Store, generate_id

log = structlog.get_logger()


def availability_to_json(days: tuple[AvailabilityDay, ...]) -> str:
    return json.dumps([
        {
            "date": day.date,
            "display_label": day.display_label,
            "day_name": day.day_name,
            "is_available": day.is_available,
            "slots": [{"start_time": s.start_time, "end_time": s.end_time} for s in day.slots],
        }
        for day in days
    ])


def availability_from_json(raw: str) -> tuple[AvailabilityDay, ...]:
    return tuple(
        AvailabilityDay(
            date=item["date"],
            display_label=item["display_label"],
            day_name=item["day_name"],
            is_available=item["is_available"],
            slots=tuple(Slot(**slot) for slot in item["slots"]),
        )
        for item in json.loads(raw)
    )


def _row_to_provider(row: sqlite3.Row, currency: str) -> Provider:
    return Provider(
        id=row["id"],
        name=row["name"],
        specialization=row["specialization"],
        hospital=row["hospital"],
        location=row["location"],
        experience=row["experience"],
        consultation_fee=Decimal(row["consultation_fee"]),
        start_time=row["start_time"],
        end_time=row["end_time"],
        availability=availability_from_json(row["availability"]),
        currency=currency,
    )


class ProviderDirectory:
    """Provider records as seen by the booking core."""

    def __init__(self, store: Store, settings: Settings):
        self.store = store
        self.settings = settings

    def register(
        self,
        name: str,
        specialization: str,
        hospital: str,
        location: str,
        experience: int,
        consultation_fee: Decimal,
        start_time: str | None = None,
        end_time: str | None = None,
    ) -> Provider:
        """Register a provider with empty availability."""
        start_time = start_time or self.settings.default_start_time
        end_time = end_time or self.settings.default_end_time
        try:
            start_time, end_time = normalize_clock(start_time), normalize_clock(end_time)
        except ValueError as e:
            raise ValidationFailed(f"Invalid working hours: {e}") from e
        if parse_clock(start_time) >= parse_clock(end_time):
            raise ValidationFailed("Working hours must start before they end")
        if consultation_fee < 0:
            raise ValidationFailed("Consultation fee cannot be negative")

        provider_id = generate_id("prov")
        now = datetime.now().isoformat()
        with self.store.transaction() as conn:
            conn.execute(
                """INSERT INTO providers
                   (id, name, specialization, hospital, location, experience,
                    consultation_fee, start_time, end_time, availability,
                    created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, '[]', ?, ?)""",
                (provider_id, name, specialization, hospital, location, experience,
                 str(consultation_fee), start_time, end_time, now, now),
            )
        log.info("provider_registered", provider_id=provider_id, specialization=specialization)
        return self.get(provider_id)

    def find(self, provider_id: str) -> Provider | None:
        with self.store.reading() as conn:
            row = conn.execute("SELECT * FROM providers WHERE id = ?", (provider_id,)).fetchone()
        return _row_to_provider(row, self.settings.currency) if row else None

    def get(self, provider_id: str) -> Provider:
        provider = self.find(provider_id)
        if provider is None:
            raise NotFound(f"Provider not found: {provider_id}", provider_id=provider_id)
        return provider

    def update_fee(self, provider_id: str, consultation_fee: Decimal) -> Provider:
        """Change the fee charged to future bookings."""
        if consultation_fee < 0:
            raise ValidationFailed("Consultation fee cannot be negative")
        with self.store.transaction() as conn:
            cursor = conn.execute(
                "UPDATE providers SET consultation_fee = ?, updated_at = ? WHERE id = ?",
                (str(consultation_fee), datetime.now().isoformat(), provider_id),
            )
            if cursor.rowcount == 0:
                raise NotFound(f"Provider not found: {provider_id}", provider_id=provider_id)
        log.info("provider_fee_updated", provider_id=provider_id, fee=str(consultation_fee))
        return self.get(provider_id)

    def search(
        self,
        specialization: str | None = None,
        location: str | None = None,
        hospital: str | None = None,
    ) -> list[Provider]:
        """List providers, optionally filtered by exact field values."""
        query = "SELECT * FROM providers WHERE 1=1"
        params: list = []
        if specialization:
            query += " AND specialization = ?"
            params.append(specialization)
        if location:
            query += " AND location = ?"
            params.append(location)
        if hospital:
            query += " AND hospital = ?"
            params.append(hospital)
        query += " ORDER BY name"

        with self.store.reading() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_provider(row, self.settings.currency) for row in rows]

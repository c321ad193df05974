"""Domain records for providers, availability and bookings."""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class FlagType(str, Enum):
    WARNING = "warning"
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


# Statuses that still occupy the slot
ACTIVE_STATUSES = (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)


@dataclass(frozen=True)
class Slot:
    start_time: str
    end_time: str


@dataclass(frozen=True)
class AvailabilityDay:
    date: str
    display_label: str
    day_name: str
    is_available: bool = False
    slots: tuple[Slot, ...] = ()

    def has_slot(self, start_time: str) -> bool:
        return any(slot.start_time == start_time for slot in self.slots)


@dataclass
class Provider:
    id: str
    name: str
    specialization: str
    hospital: str
    location: str
    experience: int
    consultation_fee: Decimal
    start_time: str = "09:00"
    end_time: str = "17:00"
    availability: tuple[AvailabilityDay, ...] = ()
    currency: str = "LKR"

    @property
    def availability_text(self) -> str:
        if not self.availability:
            return "Not available"
        return ", ".join(day.display_label for day in self.availability if day.is_available)

    @property
    def formatted_fee(self) -> str:
        fee = self.consultation_fee
        amount = f"{fee:,.0f}" if fee == fee.to_integral_value() else f"{fee:,.2f}"
        return f"{self.currency} {amount}"


@dataclass
class Flag:
    id: str
    type: str
    message: str
    created_by: str
    created_at: datetime


@dataclass
class Booking:
    id: str
    provider_id: str
    date: str
    time: str
    amount: Decimal
    requester_id: str | None = None
    status: str = BookingStatus.PENDING.value
    payment_status: str = PaymentStatus.PENDING.value
    reference: str | None = None
    reason: str | None = None
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    requester_location: str | None = None
    filled_by_other: bool = False
    flags: list[Flag] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

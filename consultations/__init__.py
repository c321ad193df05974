from .availability import (
    AvailabilityCalendar,
    build_week,
    is_editable,
    navigable_weeks,
    week_start,
)
from .config import SLOT_MINUTES, Settings, get_settings
from .core import Core, build_core, get_core, reset_core
from .errors import (
    BookingError,
    Conflict,
    DuplicateRequest,
    InvalidFlagType,
    InvalidTransition,
    NotFound,
    RefundNotPermitted,
    SlotUnavailable,
    StorageError,
    ValidationFailed,
)
from .flags import FlagLog
from .ledger import BookingLedger, TransactionFilter, TransactionPage
from .models import (
    AvailabilityDay,
    Booking,
    BookingStatus,
    Flag,
    FlagType,
    PaymentStatus,
    Provider,
    Slot,
)
from .providers import ProviderDirectory
from .slots import generate_slots

__all__ = [
    "AvailabilityCalendar",
    "build_week",
    "is_editable",
    "navigable_weeks",
    "week_start",
    "SLOT_MINUTES",
    "Settings",
    "get_settings",
    "Core",
    "build_core",
    "get_core",
    "reset_core",
    "BookingError",
    "Conflict",
    "DuplicateRequest",
    "InvalidFlagType",
    "InvalidTransition",
    "NotFound",
    "RefundNotPermitted",
    "SlotUnavailable",
    "StorageError",
    "ValidationFailed",
    "FlagLog",
    "BookingLedger",
    "TransactionFilter",
    "TransactionPage",
    "AvailabilityDay",
    "Booking",
    "BookingStatus",
    "Flag",
    "FlagType",
    "PaymentStatus",
    "Provider",
    "Slot",
    "ProviderDirectory",
    "generate_slots",
]

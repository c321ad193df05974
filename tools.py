"""Booking operations as validated tools."""
import logging
import sys
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Callable, Literal

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from consultations import (
    AvailabilityDay,
    BookingError,
    Slot,
    TransactionFilter,
    get_core,
    get_settings,
)
from consultations.availability import display_label

# Configure structlog to output to stderr (MCP uses stdout for JSON-RPC)
structlog.configure(
    wrapper_class=structlog.make_filtering_bound_logger(
        getattr(logging, get_settings().log_level, logging.INFO)
    ),
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
)
log = structlog.get_logger()

DatePattern = Annotated[str, Field(pattern=r"^\d{4}-\d{2}-\d{2}$", description="Date YYYY-MM-DD")]
TimePattern = Annotated[str, Field(pattern=r"^\d{2}:\d{2}$", description="Clock time HH:MM")]
Identifier = Annotated[str, Field(min_length=1)]
BookingStatusName = Literal["pending", "confirmed", "cancelled", "completed"]
PaymentStatusName = Literal["pending", "completed", "failed", "refunded"]

# ============================================
# Input Schemas
# ============================================


class ToolInput(BaseModel):
    model_config = ConfigDict(extra="forbid")


class SlotInput(ToolInput):
    start_time: TimePattern
    end_time: TimePattern


class DayInput(ToolInput):
    date: DatePattern
    display_label: str | None = None
    day_name: str | None = None
    is_available: bool = False
    slots: list[SlotInput] = []

    def to_day(self) -> AvailabilityDay:
        # Labels default to the date's own rendering
        day = datetime.strptime(self.date, "%Y-%m-%d").date()
        return AvailabilityDay(
            date=self.date,
            display_label=self.display_label or display_label(day),
            day_name=self.day_name or f"{day:%A}",
            is_available=self.is_available,
            slots=tuple(Slot(start_time=s.start_time, end_time=s.end_time) for s in self.slots),
        )


class RegisterProviderInput(ToolInput):
    name: Identifier
    specialization: Identifier
    hospital: Identifier
    location: Identifier
    experience: Annotated[int, Field(ge=0)]
    consultation_fee: Annotated[Decimal, Field(ge=0)]
    start_time: TimePattern | None = None
    end_time: TimePattern | None = None


class GetProviderInput(ToolInput):
    provider_id: Identifier


class UpdateFeeInput(ToolInput):
    provider_id: Identifier
    consultation_fee: Annotated[Decimal, Field(ge=0)]


class SearchProvidersInput(ToolInput):
    specialization: str | None = None
    location: str | None = None
    hospital: str | None = None


class ReplaceAvailabilityInput(ToolInput):
    provider_id: Identifier
    days: list[DayInput]


class OpenSlotsInput(ToolInput):
    provider_id: Identifier
    date: DatePattern


class CreateBookingInput(ToolInput):
    provider_id: Identifier
    date: DatePattern
    time: TimePattern
    requester_id: str | None = None
    reason: str | None = None
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    reference: str | None = None
    requester_location: str | None = None
    filled_by_other: bool = False
    status: BookingStatusName | None = None
    payment_status: PaymentStatusName | None = None


class BookingIdInput(ToolInput):
    booking_id: Identifier


class UpdateStatusInput(ToolInput):
    booking_id: Identifier
    status: BookingStatusName


class UpdatePaymentStatusInput(ToolInput):
    booking_id: Identifier
    payment_status: PaymentStatusName


class RefundInput(ToolInput):
    booking_id: str | None = None
    reference: str | None = None

    @model_validator(mode="after")
    def require_locator(self) -> "RefundInput":
        if not self.booking_id and not self.reference:
            raise ValueError("Either booking_id or reference is required")
        return self


class AddFlagInput(ToolInput):
    booking_id: Identifier
    type: Identifier
    message: Identifier
    created_by: Identifier


class RemoveFlagInput(ToolInput):
    booking_id: Identifier
    flag_id: Identifier


class RequesterInput(ToolInput):
    requester_id: Identifier


class ProviderBookingsInput(ToolInput):
    provider_id: Identifier
    date: DatePattern | None = None


class TransactionsInput(ToolInput):
    start_date: DatePattern | None = None
    end_date: DatePattern | None = None
    payment_status: PaymentStatusName | None = None
    provider_id: str | None = None
    requester_id: str | None = None
    sort_by: Literal["date", "time", "amount", "created_at", "status", "payment_status"] = "date"
    sort_order: Literal["asc", "desc"] = "desc"
    page: Annotated[int, Field(ge=1)] = 1
    limit: Annotated[int, Field(ge=1, le=100)] = 10


# ============================================
# Output Schemas
# ============================================


class ToolOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class SlotOutput(ToolOutput):
    start_time: str
    end_time: str


class DayOutput(ToolOutput):
    date: str
    display_label: str
    day_name: str
    is_available: bool
    slots: list[SlotOutput]


class ProviderOutput(ToolOutput):
    id: str
    name: str
    specialization: str
    hospital: str
    location: str
    experience: int
    consultation_fee: Decimal
    formatted_fee: str
    start_time: str
    end_time: str
    availability: list[DayOutput]
    availability_text: str


class ProviderListOutput(ToolOutput):
    providers: list[ProviderOutput]


class AvailabilityOutput(ToolOutput):
    provider_id: str
    days: list[DayOutput]


class OpenSlotsOutput(ToolOutput):
    provider_id: str
    date: str
    slots: list[SlotOutput]


class FlagOutput(ToolOutput):
    id: str
    type: str
    message: str
    created_by: str
    created_at: datetime


class BookingOutput(ToolOutput):
    id: str
    provider_id: str
    requester_id: str | None
    date: str
    time: str
    status: str
    payment_status: str
    amount: Decimal
    reference: str | None
    reason: str | None
    name: str | None
    email: str | None
    phone: str | None
    requester_location: str | None
    filled_by_other: bool
    flags: list[FlagOutput]
    created_at: datetime
    updated_at: datetime


class BookingListOutput(ToolOutput):
    bookings: list[BookingOutput]


class RemovedOutput(ToolOutput):
    removed: bool
    id: str


class SummaryOutput(ToolOutput):
    total_amount: Decimal
    total_transactions: int
    completed_transactions: int
    pending_transactions: int
    failed_transactions: int
    refunded_transactions: int


class PaginationOutput(ToolOutput):
    total: int
    page: int
    limit: int
    pages: int


class TransactionsOutput(ToolOutput):
    transactions: list[BookingOutput]
    summary: SummaryOutput
    pagination: PaginationOutput


# ============================================
# Tool Implementations
# ============================================


def register_provider(input: RegisterProviderInput) -> ProviderOutput:
    provider = get_core().providers.register(**input.model_dump())
    return ProviderOutput.model_validate(provider)


def get_provider(input: GetProviderInput) -> ProviderOutput:
    return ProviderOutput.model_validate(get_core().providers.get(input.provider_id))


def update_consultation_fee(input: UpdateFeeInput) -> ProviderOutput:
    """Change a provider's fee; existing bookings keep their amount."""
    provider = get_core().providers.update_fee(input.provider_id, input.consultation_fee)
    return ProviderOutput.model_validate(provider)


def search_providers(input: SearchProvidersInput) -> ProviderListOutput:
    providers = get_core().providers.search(**input.model_dump())
    return ProviderListOutput(providers=[ProviderOutput.model_validate(p) for p in providers])


def replace_availability(input: ReplaceAvailabilityInput) -> AvailabilityOutput:
    """Replace a provider's whole availability calendar."""
    days = get_core().calendar.replace_availability(
        input.provider_id, [day.to_day() for day in input.days]
    )
    return AvailabilityOutput(provider_id=input.provider_id, days=[DayOutput.model_validate(d) for d in days])


def replace_week(input: ReplaceAvailabilityInput) -> AvailabilityOutput:
    """Replace only the submitted dates, each as a whole day."""
    days = get_core().calendar.replace_week(
        input.provider_id, [day.to_day() for day in input.days]
    )
    return AvailabilityOutput(provider_id=input.provider_id, days=[DayOutput.model_validate(d) for d in days])


def get_open_slots(input: OpenSlotsInput) -> OpenSlotsOutput:
    slots = get_core().calendar.open_slots(input.provider_id, input.date)
    log.info("get_open_slots", provider_id=input.provider_id, date=input.date, slots_found=len(slots))
    return OpenSlotsOutput(
        provider_id=input.provider_id,
        date=input.date,
        slots=[SlotOutput.model_validate(s) for s in slots],
    )


def create_booking(input: CreateBookingInput) -> BookingOutput:
    booking = get_core().ledger.create(**input.model_dump())
    return BookingOutput.model_validate(booking)


def get_booking(input: BookingIdInput) -> BookingOutput:
    return BookingOutput.model_validate(get_core().ledger.get(input.booking_id))


def update_booking_status(input: UpdateStatusInput) -> BookingOutput:
    booking = get_core().ledger.update_status(input.booking_id, input.status)
    return BookingOutput.model_validate(booking)


def update_payment_status(input: UpdatePaymentStatusInput) -> BookingOutput:
    booking = get_core().ledger.update_payment_status(input.booking_id, input.payment_status)
    return BookingOutput.model_validate(booking)


def refund_booking(input: RefundInput) -> BookingOutput:
    booking = get_core().ledger.refund(booking_id=input.booking_id, reference=input.reference)
    return BookingOutput.model_validate(booking)


def remove_booking(input: BookingIdInput) -> RemovedOutput:
    get_core().ledger.remove(input.booking_id)
    return RemovedOutput(removed=True, id=input.booking_id)


def add_flag(input: AddFlagInput) -> BookingOutput:
    core = get_core()
    core.flags.append(input.booking_id, input.type, input.message, input.created_by)
    return BookingOutput.model_validate(core.ledger.get(input.booking_id))


def remove_flag(input: RemoveFlagInput) -> BookingOutput:
    core = get_core()
    core.flags.remove(input.booking_id, input.flag_id)
    return BookingOutput.model_validate(core.ledger.get(input.booking_id))


def list_requester_bookings(input: RequesterInput) -> BookingListOutput:
    bookings = get_core().ledger.list_by_requester(input.requester_id)
    return BookingListOutput(bookings=[BookingOutput.model_validate(b) for b in bookings])


def list_provider_bookings(input: ProviderBookingsInput) -> BookingListOutput:
    """All provider bookings, or only slot-holding ones on a given date."""
    ledger = get_core().ledger
    if input.date:
        bookings = ledger.list_by_provider_and_date(input.provider_id, input.date)
    else:
        bookings = ledger.list_by_provider(input.provider_id)
    return BookingListOutput(bookings=[BookingOutput.model_validate(b) for b in bookings])


def payment_history(input: RequesterInput) -> BookingListOutput:
    bookings = get_core().ledger.payment_history(input.requester_id)
    return BookingListOutput(bookings=[BookingOutput.model_validate(b) for b in bookings])


def list_transactions(input: TransactionsInput) -> TransactionsOutput:
    page = get_core().ledger.transactions(TransactionFilter(**input.model_dump()))
    return TransactionsOutput(
        transactions=[BookingOutput.model_validate(b) for b in page.transactions],
        summary=SummaryOutput.model_validate(page.summary),
        pagination=PaginationOutput(
            total=page.total, page=page.page, limit=page.limit, pages=page.pages
        ),
    )


# ============================================
# Tool Registry
# ============================================

TOOLS: dict[str, tuple[type[ToolInput], Callable, str]] = {
    "register_provider": (RegisterProviderInput, register_provider, "Register a provider with working hours and fee"),
    "get_provider": (GetProviderInput, get_provider, "Get a provider with availability"),
    "update_consultation_fee": (UpdateFeeInput, update_consultation_fee, "Change a provider's consultation fee"),
    "search_providers": (SearchProvidersInput, search_providers, "Search providers by specialization, location or hospital"),
    "replace_availability": (ReplaceAvailabilityInput, replace_availability, "Replace a provider's full availability"),
    "replace_week": (ReplaceAvailabilityInput, replace_week, "Replace availability for the submitted dates"),
    "get_open_slots": (OpenSlotsInput, get_open_slots, "List open slots for a provider on a date"),
    "create_booking": (CreateBookingInput, create_booking, "Book a consultation slot"),
    "get_booking": (BookingIdInput, get_booking, "Get a booking by id"),
    "update_booking_status": (UpdateStatusInput, update_booking_status, "Move a booking to a new status"),
    "update_payment_status": (UpdatePaymentStatusInput, update_payment_status, "Record a payment outcome"),
    "refund_booking": (RefundInput, refund_booking, "Refund a pending booking by id or reference"),
    "remove_booking": (BookingIdInput, remove_booking, "Permanently delete a booking"),
    "add_flag": (AddFlagInput, add_flag, "Attach a note to a booking"),
    "remove_flag": (RemoveFlagInput, remove_flag, "Remove one note from a booking"),
    "list_requester_bookings": (RequesterInput, list_requester_bookings, "List a requester's bookings"),
    "list_provider_bookings": (ProviderBookingsInput, list_provider_bookings, "List a provider's bookings"),
    "payment_history": (RequesterInput, payment_history, "List a requester's payments, newest first"),
    "list_transactions": (TransactionsInput, list_transactions, "Filtered, paginated ledger with summary"),
}

TOOL_DEFINITIONS = [
    {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": input_model.model_json_schema(),
        },
    }
    for name, (input_model, _, description) in TOOLS.items()
]


# ============================================
# Tool Executor
# ============================================


def run_tool(name: str, arguments: dict) -> BaseModel:
    """Validate arguments and run a tool, raising on failure."""
    if name not in TOOLS:
        raise KeyError(f"Unknown tool: {name}")
    input_model, handler, _ = TOOLS[name]
    return handler(input_model(**arguments))


def execute_tool(name: str, arguments: dict) -> dict:
    """Execute a tool by name with validation."""
    if name not in TOOLS:
        return {"error": f"Unknown tool: {name}", "code": "unknown_tool"}
    try:
        return run_tool(name, arguments).model_dump(mode="json")
    except ValidationError as e:
        log.warning("tool_validation_error", tool=name, errors=e.error_count())
        return {"error": str(e), "code": "validation_error"}
    except BookingError as e:
        log.warning("tool_booking_error", tool=name, code=e.code, error=e.message)
        return e.to_dict()
    except Exception as e:
        log.error("tool_execution_error", tool=name, error=str(e))
        return {"error": str(e), "code": "internal_error"}

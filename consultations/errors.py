"""Booking error taxonomy."""


class BookingError(Exception):
    """Base error for booking core operations."""

    code = "booking_error"
    http_status = 400

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class NotFound(BookingError):
    """Provider, booking or flag does not exist."""

    code = "not_found"
    http_status = 404


class SlotUnavailable(BookingError):
    """Calendar has no open slot for the requested date and time."""

    code = "slot_unavailable"
    http_status = 409


class Conflict(BookingError):
    """Another requester already holds the slot."""

    code = "conflict"
    http_status = 409


class DuplicateRequest(BookingError):
    """The same requester already holds the slot."""

    code = "duplicate_request"
    http_status = 409


class InvalidTransition(BookingError):
    code = "invalid_transition"
    http_status = 400


class InvalidFlagType(BookingError):
    code = "invalid_flag_type"
    http_status = 400


class RefundNotPermitted(BookingError):
    code = "refund_not_permitted"
    http_status = 400


class ValidationFailed(BookingError):
    """Input is well typed but violates a calendar or ledger rule."""

    code = "validation_failed"
    http_status = 422


class StorageError(BookingError):
    """Unclassified persistence failure."""

    code = "storage_error"
    http_status = 500

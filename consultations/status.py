"""Booking and payment status transitions."""
from .errors import InvalidTransition, RefundNotPermitted
from .models import BookingStatus, PaymentStatus

BOOKING_TRANSITIONS: dict[str, set[str]] = {
    BookingStatus.PENDING.value: {BookingStatus.CONFIRMED.value, BookingStatus.CANCELLED.value},
    BookingStatus.CONFIRMED.value: {BookingStatus.COMPLETED.value, BookingStatus.CANCELLED.value},
    BookingStatus.CANCELLED.value: set(),
    BookingStatus.COMPLETED.value: set(),
}

PAYMENT_TRANSITIONS: dict[str, set[str]] = {
    PaymentStatus.PENDING.value: {
        PaymentStatus.COMPLETED.value,
        PaymentStatus.FAILED.value,
        PaymentStatus.REFUNDED.value,
    },
    # A captured payment can still be handed back.
    PaymentStatus.COMPLETED.value: {PaymentStatus.REFUNDED.value},
    PaymentStatus.FAILED.value: set(),
    PaymentStatus.REFUNDED.value: set(),
}

REFUNDABLE_STATUSES = {BookingStatus.PENDING.value}


def check_booking_transition(current: str, target: str) -> None:
    """Raise InvalidTransition unless current -> target is allowed."""
    if target not in BOOKING_TRANSITIONS.get(current, set()):
        raise InvalidTransition(
            f"Invalid booking status transition: {current} -> {target}",
            current=current,
            target=target,
        )


def check_payment_transition(current: str, target: str) -> None:
    """Raise InvalidTransition unless the payment move is allowed."""
    if target not in PAYMENT_TRANSITIONS.get(current, set()):
        raise InvalidTransition(
            f"Invalid payment status transition: {current} -> {target}",
            current=current,
            target=target,
        )


def check_refund(booking_status: str, payment_status: str) -> None:
    """Only pending bookings can be refunded."""
    if booking_status not in REFUNDABLE_STATUSES:
        raise RefundNotPermitted(
            "Only pending bookings can be refunded",
            status=booking_status,
        )
    check_payment_transition(payment_status, PaymentStatus.REFUNDED.value)

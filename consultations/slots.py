"""Fixed-length slot generation over working hours."""
from datetime import datetime, time

from .config import SLOT_MINUTES
from .models import Slot

CLOCK_FORMAT = "%H:%M"


def parse_clock(value: str | time) -> int:
    """Convert an HH:MM clock string (or time) to minutes after midnight."""
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    parsed = datetime.strptime(value, CLOCK_FORMAT)
    return parsed.hour * 60 + parsed.minute


def format_clock(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def normalize_clock(value: str | time) -> str:
    """Zero-padded HH:MM form of a clock time, so "9:00" becomes "09:00"."""
    return format_clock(parse_clock(value))


def generate_slots(start_time: str | time, end_time: str | time) -> list[Slot]:
    """Split working hours into consecutive 30-minute slots.

    Walks forward from start_time; a trailing interval shorter than a full
    slot is dropped rather than truncated.

    Raises:
        ValueError: if either bound is not a valid HH:MM clock time.
    """
    start = parse_clock(start_time)
    end = parse_clock(end_time)

    slots = []
    current = start
    while current < end:
        slot_end = current + SLOT_MINUTES
        if slot_end > end:
            break
        slots.append(Slot(start_time=format_clock(current), end_time=format_clock(slot_end)))
        current = slot_end
    return slots

"""Pytest configuration and fixtures."""
from decimal import Decimal

import pytest

from consultations import AvailabilityDay, generate_slots, reset_core

BOOKING_DATE = "2099-03-02"
CLOSED_DATE = "2099-03-03"


@pytest.fixture(scope="session")
def anyio_backend():
    """Configure async backend for pytest-asyncio."""
    return "asyncio"


@pytest.fixture(autouse=True)
def core():
    """Fresh in-memory core for every test."""
    return reset_core(":memory:")


@pytest.fixture
def provider(core):
    """Provider open 09:00-17:00 on BOOKING_DATE and closed on CLOSED_DATE."""
    registered = core.providers.register(
        name="Dr. Nimal Perera",
        specialization="Cardiology",
        hospital="City Hospital",
        location="Colombo",
        experience=12,
        consultation_fee=Decimal("2500"),
    )
    core.calendar.replace_availability(registered.id, [
        AvailabilityDay(
            date=BOOKING_DATE,
            display_label="Mon, Mar 2",
            day_name="Monday",
            is_available=True,
            slots=tuple(generate_slots("09:00", "17:00")),
        ),
        AvailabilityDay(
            date=CLOSED_DATE,
            display_label="Tue, Mar 3",
            day_name="Tuesday",
            is_available=False,
        ),
    ])
    return core.providers.get(registered.id)

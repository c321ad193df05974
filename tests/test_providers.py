"""Tests for provider records."""
from decimal import Decimal

import pytest

from consultations import AvailabilityDay, NotFound, ValidationFailed


class TestProviders:
    """Tests for the provider directory."""

    def test_register_defaults(self, core):
        """Test working hours default from settings."""
        provider = core.providers.register(
            name="Dr. Silva", specialization="Pediatrics", hospital="Lady Ridgeway",
            location="Colombo", experience=5, consultation_fee=Decimal("1500"),
        )

        assert provider.start_time == "09:00"
        assert provider.end_time == "17:00"
        assert provider.availability == ()
        assert provider.availability_text == "Not available"

    def test_formatted_fee(self, core, provider):
        assert provider.formatted_fee == "LKR 2,500"

    def test_availability_text(self, provider):
        assert provider.availability_text == "Mon, Mar 2"

    def test_availability_text_all_closed(self, core, provider):
        """Test days that are all closed give empty text, not "Not available"."""
        core.calendar.replace_availability(provider.id, [
            AvailabilityDay(date="2099-03-03", display_label="Tue, Mar 3", day_name="Tuesday"),
        ])

        assert core.providers.get(provider.id).availability_text == ""

    def test_invalid_hours(self, core):
        with pytest.raises(ValidationFailed):
            core.providers.register(
                name="Dr. Late", specialization="Pediatrics", hospital="General",
                location="Galle", experience=1, consultation_fee=Decimal("100"),
                start_time="18:00", end_time="09:00",
            )

    def test_get_missing(self, core):
        with pytest.raises(NotFound):
            core.providers.get("prov_missing")

    def test_update_fee(self, core, provider):
        updated = core.providers.update_fee(provider.id, Decimal("3000"))

        assert updated.consultation_fee == Decimal("3000")

    def test_negative_fee(self, core, provider):
        with pytest.raises(ValidationFailed):
            core.providers.update_fee(provider.id, Decimal("-1"))

    def test_search(self, core, provider):
        core.providers.register(
            name="Dr. Fernando", specialization="Neurology", hospital="City Hospital",
            location="Kandy", experience=8, consultation_fee=Decimal("3000"),
        )

        assert [p.id for p in core.providers.search(specialization="Cardiology")] == [provider.id]
        assert len(core.providers.search(hospital="City Hospital")) == 2
        assert core.providers.search(location="Jaffna") == []

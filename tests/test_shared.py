from datetime import datetime, time

import pytest

from cleanops.shared.formatters import (
    format_cleaning_date,
    format_long_date,
    format_money,
    format_time_12h,
    ordinal,
    parse_booking_time,
    split_name,
    to_minor_units,
)
from cleanops.shared.validators import (
    format_uk_phone,
    is_cancelled_status,
    phone_match_suffix,
    validate_email,
    validate_postcode,
    validate_uk_phone,
)


class TestPhoneNumbers:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("07700 900123", "+447700900123"),
            ("447700900123", "+447700900123"),
            ("00447700900123", "+447700900123"),
            ("+44 44 7700900123", "+447700900123"),
            ("+447700900123", "+447700900123"),
            ("020 7946 0018", "+442079460018"),
        ],
    )
    def test_format_uk_phone(self, raw, expected):
        assert format_uk_phone(raw) == expected

    def test_empty_phone_is_none(self):
        assert format_uk_phone("") is None
        assert format_uk_phone(None) is None

    def test_validate_rejects_short_numbers(self):
        with pytest.raises(ValueError):
            validate_uk_phone("12345")

    def test_match_suffix_ignores_prefix_format(self):
        assert phone_match_suffix("+447700900123") == phone_match_suffix("07700 900123")


class TestEmailAndPostcode:
    def test_email_is_lowercased(self):
        assert validate_email("  Jane@Example.COM ") == "jane@example.com"

    def test_invalid_email(self):
        with pytest.raises(ValueError):
            validate_email("not-an-email")

    def test_postcode_normalised(self):
        assert validate_postcode("sw1a1aa") == "SW1A 1AA"
        assert validate_postcode("e1  6an") == "E1 6AN"

    def test_invalid_postcode(self):
        with pytest.raises(ValueError):
            validate_postcode("12345")


class TestCancelledStatus:
    @pytest.mark.parametrize("status", ["cancelled", "Cancelled by customer", "CANCELED"])
    def test_cancelled_variants(self, status):
        assert is_cancelled_status(status)

    @pytest.mark.parametrize("status", [None, "", "active", "completed"])
    def test_not_cancelled(self, status):
        assert not is_cancelled_status(status)


class TestFormatters:
    def test_ordinals(self):
        assert [ordinal(d) for d in (1, 2, 3, 4, 11, 12, 13, 21, 22, 23)] == [
            "1st", "2nd", "3rd", "4th", "11th", "12th", "13th", "21st", "22nd", "23rd",
        ]

    def test_time_12h(self):
        assert format_time_12h(datetime(2025, 3, 3, 9, 0)) == "9:00 AM"
        assert format_time_12h(datetime(2025, 3, 3, 0, 5)) == "12:05 AM"
        assert format_time_12h(datetime(2025, 3, 3, 14, 30)) == "2:30 PM"

    def test_long_date(self):
        assert format_long_date(datetime(2025, 3, 3, 9, 0)) == "Monday, 3 March 2025"

    def test_cleaning_date(self):
        assert format_cleaning_date(datetime(2025, 3, 11, 9, 0)) == "11th of March, 9:00 AM"

    def test_money(self):
        assert format_money(60) == "£60.00"
        assert format_money(None) == "£0.00"

    def test_minor_units_round(self):
        assert to_minor_units(19.99) == 1999
        assert to_minor_units(0.285) in (28, 29)
        assert to_minor_units(60) == 6000

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("14:30", time(14, 30)),
            ("9am", time(9, 0)),
            ("2:30 pm", time(14, 30)),
            ("12am", time(0, 0)),
            ("09:00 - 11:00", time(9, 0)),
            ("9am-11am", time(9, 0)),
            ("", time(9, 0)),
            ("whenever", time(9, 0)),
            ("25:00", time(9, 0)),
        ],
    )
    def test_parse_booking_time(self, value, expected):
        assert parse_booking_time(value) == expected

    def test_split_name(self):
        assert split_name("Jane Mary Smith") == ("Jane", "Mary Smith")
        assert split_name("Jane") == ("Jane", "")
        assert split_name(None) == ("", "")

"""
Tests for the identity helpers that build the buyer natural key:
phone canonicalization, country mapping and the Kurasi value parsers.

Pure functions, no database.
"""
from datetime import date, datetime

import pytest

from shipsync.api.errors import InvalidPhoneError
from shipsync.utils.phone_normalizer import normalize_phone, format_phone_for_display, PhoneQuality
from shipsync.utils.country_codes import normalize_country
from shipsync.utils.data_conversion import (
    clean_str,
    safe_int,
    fit_str,
    parse_fee,
    parse_positive_int,
    parse_platform_datetime,
    parse_optional_date,
    end_of_month,
    start_of_month,
    previous_month_end,
)


# ────────────────────────────────────────────
# PHONE
# ────────────────────────────────────────────


class TestNormalizePhone:
    """Canonical phone from raw input, calling code and country hint."""

    def test_calling_code_replaces_trunk_zero(self):
        """A national number with trunk prefix loses the zero after the calling code."""
        result = normalize_phone("08111280720", "+61")
        assert result.value.startswith("+61")
        assert not result.value.startswith("+610")

    def test_country_hint_supplies_calling_code(self):
        result = normalize_phone("9176187575", None, "US")
        assert result.value.startswith("+1")
        assert result.value == "+19176187575"
        assert result.quality is PhoneQuality.VALIDATED

    def test_international_input_is_kept(self):
        result = normalize_phone("+61 412 345 678", None, "US")
        assert result.value == "+61412345678"
        assert result.is_validated

    def test_calling_code_without_plus(self):
        assert normalize_phone("(917) 618-7575", "1").value == "+19176187575"

    def test_invalid_number_is_best_effort(self):
        """An impossible number still gets a candidate, flagged as best effort."""
        result = normalize_phone("12", "+1")
        assert result.quality is PhoneQuality.BEST_EFFORT
        assert result.value == "+112"

    def test_no_hint_no_code_returns_digits(self):
        result = normalize_phone("12345", None, None)
        assert result.quality is PhoneQuality.BEST_EFFORT
        assert result.value == "12345"

    @pytest.mark.parametrize("raw", [None, "", "   ", "n/a", "+--"])
    def test_no_digits_raises(self, raw):
        with pytest.raises(InvalidPhoneError):
            normalize_phone(raw, "+1", "US")

    def test_international_prefix_is_not_doubled(self):
        """A '+' input that fails validation keys the same as its national form."""
        national = normalize_phone("08111280720", "+61", "AU")
        international = normalize_phone("+61 08111280720", "+61", "AU")
        assert international.value == national.value == "+618111280720"

    def test_phone_longer_than_column_raises(self):
        with pytest.raises(InvalidPhoneError):
            normalize_phone("9" * 40, "+1", "US")

    def test_idempotent_on_canonical_value(self):
        first = normalize_phone("9176187575", "+1", "US").value
        assert normalize_phone(first, "+1", "US").value == first

    def test_display_format(self):
        assert format_phone_for_display("+19176187575") == "+1 917-618-7575"
        assert format_phone_for_display("not-a-phone") == "not-a-phone"
        assert format_phone_for_display(None) is None


# ────────────────────────────────────────────
# COUNTRY
# ────────────────────────────────────────────


class TestNormalizeCountry:

    @pytest.mark.parametrize("value,expected", [
        ("US", "US"),
        ("us", "US"),
        (" au ", "AU"),
        ("USA", "US"),
        ("United Kingdom", "GB"),
        ("united   states", "US"),
        ("Viet Nam", "VN"),
    ])
    def test_known_values(self, value, expected):
        assert normalize_country(value) == expected

    @pytest.mark.parametrize("value", [None, "", "null", "Atlantis", "ZZ", "QQQ"])
    def test_unknown_values(self, value):
        assert normalize_country(value) is None


# ────────────────────────────────────────────
# KURASI VALUE PARSERS
# ────────────────────────────────────────────


class TestValueParsers:

    def test_clean_str_null_markers(self):
        assert clean_str("null") is None
        assert clean_str("  ") is None
        assert clean_str(None) is None
        assert clean_str(" NY ") == "NY"

    @pytest.mark.parametrize("value,expected", [
        ("104,000", 104000),
        ("Rp 1.250.000", 1250000),
        (2500, 2500),
        ("", None),
        ("free", None),
        (None, None),
        ("9" * 25, None),
    ])
    def test_parse_fee(self, value, expected):
        assert parse_fee(value) == expected

    @pytest.mark.parametrize("value,expected", [
        ("1001", 1001),
        (2945, 2945),
        (" 42 ", 42),
        ("0", None),
        (-5, None),
        ("12a", None),
        ("1.5", None),
        (True, None),
        (None, None),
        ("9" * 25, None),
    ])
    def test_parse_positive_int(self, value, expected):
        assert parse_positive_int(value) == expected

    @pytest.mark.parametrize("value,expected", [
        ("450", 450),
        (" 12.0 ", 12),
        (7.0, 7),
        ("99999999999999999999999", None),
        (2**31, None),
        (float("inf"), None),
        ("heavy", None),
        (None, None),
    ])
    def test_safe_int_stays_in_integer_range(self, value, expected):
        assert safe_int(value) == expected

    def test_fit_str(self):
        assert fit_str("10001", 32) == "10001"
        assert fit_str("1" * 33, 32) is None
        assert fit_str(None, 32) is None
        assert fit_str("anything", None) == "anything"

    def test_platform_datetime(self):
        assert parse_platform_datetime("2025/09/01 10:00:00") == datetime(2025, 9, 1, 10, 0, 0)
        assert parse_platform_datetime("null") is None
        assert parse_platform_datetime("2025-09-01") is None

    def test_optional_date(self):
        assert parse_optional_date("2025-09-01") == date(2025, 9, 1)
        assert parse_optional_date("2025-09-01T12:00:00Z") == date(2025, 9, 1)
        assert parse_optional_date("01/09/2025") is None
        assert parse_optional_date(None) is None


class TestMonthArithmetic:

    def test_end_of_month_handles_leap_year(self):
        assert end_of_month(date(2024, 2, 10)) == date(2024, 2, 29)
        assert end_of_month(date(2025, 2, 10)) == date(2025, 2, 28)

    def test_start_of_month(self):
        assert start_of_month(date(2025, 9, 17)) == date(2025, 9, 1)

    def test_previous_month_end_crosses_year(self):
        assert previous_month_end(date(2025, 1, 31)) == date(2024, 12, 31)
        assert previous_month_end(date(2025, 9, 30)) == date(2025, 8, 31)

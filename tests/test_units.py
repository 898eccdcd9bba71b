"""Tests for forgelink.units: quantities and the distance codec."""

from __future__ import annotations

import pytest

from forgelink.errors import ParseFailure
from forgelink.units import Distance, Temperature, format_distance, parse_distance

# ---------------------------------------------------------------------------
# parse_distance
# ---------------------------------------------------------------------------


class TestParseDistance:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("0", 0),
            ("10", 10_000),
            ("-12.34", -12_340),
            ("0.5", 500),
            ("150.000", 150_000),
            ("1.001", 1_001),
            ("-0.001", -1),
        ],
    )
    def test_valid(self, text, expected):
        assert parse_distance(text) == expected

    def test_returns_distance(self):
        assert isinstance(parse_distance("1.5"), Distance)

    def test_truncates_below_micrometre(self):
        assert parse_distance("1.2345") == 1_234
        assert parse_distance("-1.9999") == -1_999

    def test_negative_zero(self):
        assert parse_distance("-0.0") == 0

    @pytest.mark.parametrize(
        "text",
        ["", "-", "1.", ".5", "+1", "1.2.3", "1,5", " 1", "1 ", "abc", "1e3", "١٢"],
    )
    def test_invalid(self, text):
        with pytest.raises(ParseFailure) as exc_info:
            parse_distance(text)
        assert exc_info.value.text == text


# ---------------------------------------------------------------------------
# format_distance
# ---------------------------------------------------------------------------


class TestFormatDistance:
    def test_negative(self):
        assert format_distance(Distance(-12_340)) == "-12.340"

    def test_small_negative(self):
        assert format_distance(Distance(-1)) == "-0.001"

    def test_whole(self):
        assert format_distance(Distance.from_mm(150)) == "150.000"

    def test_inverse_of_parse(self):
        for value in (0, 1, -1, 999, 1_000, -123_456):
            assert parse_distance(format_distance(Distance(value))) == value


# ---------------------------------------------------------------------------
# Quantities
# ---------------------------------------------------------------------------


class TestDistance:
    def test_from_mm(self):
        assert Distance.from_mm(150) == 150_000

    def test_arithmetic_keeps_type(self):
        d = Distance(1_500)
        assert isinstance(d + Distance(500), Distance)
        assert isinstance(d - 500, Distance)
        assert isinstance(d * 2, Distance)
        assert isinstance(3 * d, Distance)
        assert isinstance(-d, Distance)
        assert isinstance(abs(Distance(-5)), Distance)
        assert d * 2 == 3_000
        assert -d == -1_500

    def test_comparison(self):
        assert Distance(1) < Distance(2)
        assert sorted([Distance(3), Distance(-1)]) == [-1, 3]

    def test_str_and_repr(self):
        assert str(Distance(-12_340)) == "-12.340mm"
        assert repr(Distance(5)) == "Distance(5)"


class TestTemperature:
    def test_scaling(self):
        t = Temperature(60)
        assert isinstance(t * 2, Temperature)
        assert t * 2 == 120

    def test_str(self):
        assert str(Temperature(210)) == "210°C"
        assert repr(Temperature(210)) == "Temperature(210)"

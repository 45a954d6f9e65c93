import pytest

from core.vehicles.registration import (
    clean_registration,
    format_registration,
    is_valid_licence_number,
    is_valid_registration,
)


@pytest.mark.parametrize(
    "reg,expected",
    [
        ("AB12CDE", True),
        ("ab12 cde", True),
        ("A123BCD", True),  # prefix
        ("ABC123D", True),  # suffix
        ("A1", True),  # dateless
        ("1234ABC", True),
        ("", False),
        ("AB12CDEF", False),
        ("12AB34", False),
        ("AB-12-CDE", False),
    ],
)
def test_is_valid_registration(reg, expected):
    assert is_valid_registration(reg) is expected


def test_clean_and_format():
    assert clean_registration(" ab12  cde ") == "AB12CDE"
    assert format_registration("ab12cde") == "AB12 CDE"
    assert format_registration("a123bcd") == "A123 BCD"
    assert format_registration("abc123d") == "ABC123D"


def test_licence_number_format():
    assert is_valid_licence_number("MORGA753116SM9IJ") is False
    assert is_valid_licence_number("morga 753116 sm 99") is True
    assert is_valid_licence_number("MORGA753116SM9") is False

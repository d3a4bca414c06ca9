"""
Tests for the configuration validation rules
"""

import pytest

from config.ats_config import ValidationRules


class TestValidationRules:
    """Identifier and period rules"""

    @pytest.mark.parametrize("ruc", ["1790011674001", "1710034065001", "1710034065"])
    def test_valid_ruc(self, ruc):
        assert ValidationRules.validate_ruc(ruc) is True

    @pytest.mark.parametrize("ruc", [
        "",
        "1790011674009",   # establishment suffix
        "1790011675001",   # check digit
        "9990011674001",   # province
        "17900116740",     # length
        "17900116A4001",
    ])
    def test_invalid_ruc(self, ruc):
        assert ValidationRules.validate_ruc(ruc) is False

    def test_cedula_check_digit(self):
        assert ValidationRules.validate_cedula("1710034065") is True
        assert ValidationRules.validate_cedula("1710034066") is False
        assert ValidationRules.validate_cedula("171003406") is False

    @pytest.mark.parametrize("period, expected", [
        ("01/2024", True),
        ("12/1999", True),
        ("13/2024", False),
        ("00/2024", False),
        ("1/2024", False),
        ("2024-01", False),
        ("01/2024\n", False),
        ("01/２０２４", False),
        ("", False),
    ])
    def test_validate_period(self, period, expected):
        assert ValidationRules.validate_period(period) is expected

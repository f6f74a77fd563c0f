"""
Tests for contact-detail validators and log helpers.
"""

import pytest
from django.core.exceptions import ValidationError

from toolkit.helpers import mask_phone
from toolkit.validators import normalize_ghana_phone, validate_ghana_phone


class TestNormalizeGhanaPhone:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("0241234567", ("+233241234567", "MTN")),
            ("+233201234567", ("+233201234567", "VODAFONE")),
            ("271234567", ("+233271234567", "AIRTELTIGO")),
            ("024 123-4567", ("+233241234567", "MTN")),
        ],
    )
    def test_accepted_forms(self, value, expected):
        assert normalize_ghana_phone(value) == expected

    @pytest.mark.parametrize("value", ["", "12345", "0211234567", "+2332412345678"])
    def test_rejected(self, value):
        with pytest.raises(ValidationError):
            normalize_ghana_phone(value)

    def test_field_validator(self):
        validate_ghana_phone("0551234567")

        with pytest.raises(ValidationError):
            validate_ghana_phone("0001234567")


class TestMaskPhone:
    def test_international(self):
        assert mask_phone("+233241234567") == "+233*******67"

    def test_local(self):
        assert mask_phone("0241234567") == "024*****67"

    def test_short_or_missing(self):
        assert mask_phone("123") == "***"
        assert mask_phone(None) == "***"

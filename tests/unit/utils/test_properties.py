"""
Module: test_properties.py
Description: Unit tests for application property validation.
"""

import pytest

from large_message.config.constants import (
    BLOB_POINTER_MARKER,
    LARGE_MESSAGE_CLIENT_USER_AGENT,
    LEGACY_RESERVED_ATTRIBUTE_NAME,
    RESERVED_ATTRIBUTE_NAME,
)
from large_message.utils.errors import PropertyValidationError
from large_message.utils.properties import is_reserved, properties_size, validate_properties


class TestValidateProperties:
    """Test cases for validate_properties."""

    def test_empty_and_none_are_valid(self):
        validate_properties(None, max_allowed=9)
        validate_properties({}, max_allowed=0)

    def test_exactly_max_allowed_is_valid(self):
        validate_properties({f"k{i}": i for i in range(9)}, max_allowed=9)

    def test_too_many_properties(self):
        with pytest.raises(PropertyValidationError, match="exceeds maximum allowed"):
            validate_properties({f"k{i}": i for i in range(10)}, max_allowed=9)

    @pytest.mark.parametrize("key", [
        RESERVED_ATTRIBUTE_NAME,
        LEGACY_RESERVED_ATTRIBUTE_NAME,
        BLOB_POINTER_MARKER,
        LARGE_MESSAGE_CLIENT_USER_AGENT,
    ])
    def test_reserved_key_rejected(self, key):
        with pytest.raises(PropertyValidationError, match="Reserved property name"):
            validate_properties({key: "x"}, max_allowed=9)

    def test_reserved_key_checked_before_count(self):
        properties = {f"k{i}": i for i in range(20)}
        properties[BLOB_POINTER_MARKER] = True

        with pytest.raises(PropertyValidationError, match="Reserved"):
            validate_properties(properties, max_allowed=9)

    def test_size_at_cap_is_valid(self):
        validate_properties({"k": "v" * (65536 - 1)}, max_allowed=9)

    def test_size_over_cap(self):
        with pytest.raises(PropertyValidationError, match="size"):
            validate_properties({"k": "v" * 65536}, max_allowed=9)

    def test_null_values_count_only_key(self):
        assert properties_size({"abc": None}) == 3
        validate_properties({"k" * 65536: None}, max_allowed=9)

    def test_multibyte_values_measured_in_bytes(self):
        assert properties_size({"k": "é"}) == 3

    def test_non_string_values_measured_by_str(self):
        assert properties_size({"n": 12345, "flag": True}) == 1 + 5 + 4 + 4

    def test_non_string_key_rejected(self):
        with pytest.raises(PropertyValidationError):
            validate_properties({1: "x"}, max_allowed=9)

    def test_validation_error_is_value_error(self):
        with pytest.raises(ValueError):
            validate_properties({BLOB_POINTER_MARKER: True}, max_allowed=9)


def test_is_reserved():
    assert is_reserved(RESERVED_ATTRIBUTE_NAME)
    assert not is_reserved("customer_id")

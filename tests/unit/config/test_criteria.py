"""
Module: test_criteria.py
Description: Unit tests for offload criteria.
"""

from large_message.config.criteria import DefaultMessageSizeCriteria, encoded_size


def test_encoded_size_counts_utf8_bytes():
    assert encoded_size("abc") == 3
    assert encoded_size("é") == 2
    assert encoded_size(b"\x00\x01") == 2


def test_threshold_is_exclusive():
    criteria = DefaultMessageSizeCriteria(message_size_threshold=10)

    assert not criteria.should_offload("x" * 10, {})
    assert criteria.should_offload("x" * 11, {})


def test_always_through_blob():
    criteria = DefaultMessageSizeCriteria(message_size_threshold=10, always_through_blob=True)

    assert criteria.should_offload("", {})


def test_multibyte_body_measured_encoded():
    criteria = DefaultMessageSizeCriteria(message_size_threshold=10)

    # 6 characters, 12 bytes
    assert criteria.should_offload("éééééé", {})

"""
Module: test_pointer.py
Description: Unit tests for BlobPointer and its JSON wire codec.
"""

import json

import pytest
from pydantic import ValidationError

from large_message.models.pointer import BlobPointer, decode_pointer, encode_pointer
from large_message.utils.errors import InvalidPointerError


class TestBlobPointer:
    """Test cases for the pointer value object."""

    def test_equality_and_hash_by_value(self):
        a = BlobPointer(container_name="bucket", blob_name="blob-1")
        b = BlobPointer(containerName="bucket", blobName="blob-1")

        assert a == b
        assert hash(a) == hash(b)
        assert len({a, b}) == 1

    def test_pointer_is_immutable(self):
        pointer = BlobPointer(container_name="bucket", blob_name="blob-1")

        with pytest.raises(ValidationError):
            pointer.blob_name = "other"

    def test_str_names_both_fields(self):
        pointer = BlobPointer(container_name="bucket", blob_name="blob-1")

        assert "bucket" in str(pointer)
        assert "blob-1" in str(pointer)


class TestPointerCodec:
    """Test cases for encode_pointer / decode_pointer."""

    def test_encode_uses_wire_field_names(self):
        pointer = BlobPointer(container_name="bucket", blob_name="prefix/blob-1")

        payload = json.loads(encode_pointer(pointer))

        assert payload == {"containerName": "bucket", "blobName": "prefix/blob-1"}

    @pytest.mark.parametrize("container,blob", [
        ("bucket", "blob"),
        ("", ""),
        ("bucket", ""),
        ("bücket", "blob with spaces/ünïcode"),
    ])
    def test_round_trip(self, container, blob):
        pointer = BlobPointer(container_name=container, blob_name=blob)

        assert decode_pointer(encode_pointer(pointer)) == pointer

    def test_decode_accepts_bytes(self):
        data = b'{"containerName":"bucket","blobName":"blob-1"}'

        assert decode_pointer(data) == BlobPointer(container_name="bucket", blob_name="blob-1")

    def test_to_json_and_from_json(self):
        pointer = BlobPointer(container_name="bucket", blob_name="blob-1")

        assert BlobPointer.from_json(pointer.to_json()) == pointer

    @pytest.mark.parametrize("body", [
        "not json",
        "[]",
        '"just a string"',
        '{"containerName":"bucket"}',
        '{"containerName":"bucket","blobName":42}',
        '{"containerName":"bucket","blobName":"b","extra":"x"}',
        b"\xff\xfe",
    ])
    def test_decode_rejects_malformed_bodies(self, body):
        with pytest.raises(InvalidPointerError):
            decode_pointer(body)

    def test_invalid_pointer_error_is_value_error(self):
        with pytest.raises(ValueError):
            decode_pointer("{}")

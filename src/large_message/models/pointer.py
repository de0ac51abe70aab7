"""
Module: pointer.py
Description: Blob pointer model and its wire codec.

A BlobPointer is the small reference that replaces an offloaded message
body. On the wire it is a JSON object with exactly two string fields,
`containerName` and `blobName`; the names are fixed for compatibility
with existing producers and consumers.

Key Components:
- BlobPointer: immutable value object, equality and hashing by value
- encode_pointer(): BlobPointer -> JSON text
- decode_pointer(): JSON text/bytes -> BlobPointer

Dependencies: pydantic, json
Author: Large Message Client Team
"""

import json
from typing import Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from large_message.utils.errors import InvalidPointerError


class BlobPointer(BaseModel):
    """
    Reference to an offloaded payload.

    Attributes:
        container_name: Container (S3 bucket) holding the payload
        blob_name: Blob (S3 object key) of the payload
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    container_name: str = Field(..., alias="containerName", strict=True)
    blob_name: str = Field(..., alias="blobName", strict=True)

    def to_json(self) -> str:
        return encode_pointer(self)

    @classmethod
    def from_json(cls, data: Union[str, bytes]) -> "BlobPointer":
        return decode_pointer(data)

    def __str__(self) -> str:
        return f"BlobPointer(container_name={self.container_name}, blob_name={self.blob_name})"


def encode_pointer(pointer: BlobPointer) -> str:
    """Serialize a pointer to its JSON wire form."""
    return json.dumps(
        {"containerName": pointer.container_name, "blobName": pointer.blob_name},
        separators=(",", ":"),
    )


def decode_pointer(data: Union[str, bytes]) -> BlobPointer:
    """
    Parse a pointer from its JSON wire form.

    Raises:
        InvalidPointerError: If the data is not JSON or lacks the two
            string fields
    """
    try:
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        payload = json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError, TypeError) as e:
        raise InvalidPointerError(f"Message body is not a valid blob pointer: {e}") from e

    if not isinstance(payload, dict):
        raise InvalidPointerError("Blob pointer must be a JSON object")

    try:
        return BlobPointer.model_validate(payload)
    except ValidationError as e:
        raise InvalidPointerError(f"Invalid blob pointer fields: {e}") from e

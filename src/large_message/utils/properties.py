"""
Module: properties.py
Description: Validation of caller-supplied application properties.

Rejects property maps that use a reserved key, carry more user keys than
allowed, or exceed the total size cap. Validation is pure and runs before
any blob store or queue interaction.
"""

from typing import Any, Mapping, Optional

from large_message.config.constants import (
    MAX_PROPERTIES_SIZE_BYTES,
    RESERVED_PROPERTY_NAMES,
)
from large_message.utils.errors import PropertyValidationError


def is_reserved(property_name: str) -> bool:
    """Return True if `property_name` is written only by the client itself."""
    return property_name in RESERVED_PROPERTY_NAMES


def properties_size(properties: Mapping[str, Any]) -> int:
    """
    Compute the UTF-8 byte size of all keys and non-null values.

    Values are measured through their string form; None values contribute
    only their key.
    """
    total = 0
    for key, value in properties.items():
        total += len(key.encode("utf-8"))
        if value is not None:
            total += len(str(value).encode("utf-8"))
    return total


def validate_properties(
    properties: Optional[Mapping[str, Any]],
    max_allowed: int,
    max_size: int = MAX_PROPERTIES_SIZE_BYTES,
) -> None:
    """
    Validate user application properties.

    Args:
        properties: Caller-supplied properties (None is treated as empty)
        max_allowed: Maximum number of user keys
        max_size: Maximum summed byte size of keys and values

    Raises:
        PropertyValidationError: If a reserved key is used, the key count
            exceeds `max_allowed`, or the size exceeds `max_size`
    """
    if not properties:
        return

    for key in properties:
        if not isinstance(key, str):
            raise PropertyValidationError(f"Property names must be strings: {key!r}")
        if is_reserved(key):
            raise PropertyValidationError(f"Reserved property name cannot be used: {key}")

    if len(properties) > max_allowed:
        raise PropertyValidationError(
            f"Application properties count ({len(properties)}) exceeds "
            f"maximum allowed ({max_allowed})"
        )

    total_size = properties_size(properties)
    if total_size > max_size:
        raise PropertyValidationError(
            f"Total application properties size ({total_size} bytes) exceeds "
            f"safe limit ({max_size} bytes)"
        )

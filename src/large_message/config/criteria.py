"""
Module: criteria.py
Description: Pluggable offload criteria.

The send pipeline always offloads when the encoded body is larger than
the configured threshold or when always-through-blob is set. A
MessageSizeCriteria adds a caller-defined reason to offload, for example
by content type or a property value.
"""

from abc import ABC, abstractmethod
from typing import Any, Mapping, Union


def encoded_size(body: Union[str, bytes]) -> int:
    """Byte length of the body as it is sent (str bodies are UTF-8 encoded)."""
    if isinstance(body, str):
        return len(body.encode("utf-8"))
    return len(body)


class MessageSizeCriteria(ABC):
    """Decides whether a message should be offloaded to the blob store."""

    @abstractmethod
    def should_offload(self, body: Union[str, bytes], properties: Mapping[str, Any]) -> bool:
        """Return True to offload `body`."""


class DefaultMessageSizeCriteria(MessageSizeCriteria):
    """Offload when the body exceeds a fixed byte threshold, or always."""

    def __init__(self, message_size_threshold: int, always_through_blob: bool = False):
        self.message_size_threshold = message_size_threshold
        self.always_through_blob = always_through_blob

    def should_offload(self, body: Union[str, bytes], properties: Mapping[str, Any]) -> bool:
        if self.always_through_blob:
            return True
        return encoded_size(body) > self.message_size_threshold

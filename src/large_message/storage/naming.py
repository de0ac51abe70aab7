"""
Module: naming.py
Description: Blob naming and body replacement strategies.

Key Components:
- BlobNameResolver / DefaultBlobNameResolver: prefix + uuid4 names
- MessageBodyReplacer / DefaultMessageBodyReplacer: pointer JSON bodies
"""

import uuid
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional, Union

from large_message.models.pointer import BlobPointer, encode_pointer


class BlobNameResolver(ABC):
    """Chooses the blob name for an offloaded payload."""

    @abstractmethod
    def resolve(self, body: Union[str, bytes], properties: Mapping[str, Any]) -> str:
        ...


class DefaultBlobNameResolver(BlobNameResolver):
    """Generates `<prefix><uuid4>` names."""

    def __init__(self, blob_key_prefix: Optional[str] = ""):
        self.blob_key_prefix = blob_key_prefix or ""

    def resolve(self, body: Union[str, bytes], properties: Mapping[str, Any]) -> str:
        return f"{self.blob_key_prefix}{uuid.uuid4()}"


class MessageBodyReplacer(ABC):
    """Builds the queue body that replaces an offloaded payload."""

    @abstractmethod
    def replace(self, original_body: Union[str, bytes], pointer: BlobPointer) -> Union[str, bytes]:
        ...


class DefaultMessageBodyReplacer(MessageBodyReplacer):
    """Replaces the body with the pointer's JSON wire form."""

    def replace(self, original_body: Union[str, bytes], pointer: BlobPointer) -> Union[str, bytes]:
        return encode_pointer(pointer)

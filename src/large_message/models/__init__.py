"""
Module: models
Description: Package initialization for message and pointer models.

- BlobPointer: reference to an offloaded payload
- MessageEnvelope: raw queue message
- LargeMessage: received message with resolved payload
- BatchSendResult: counts reported by batch sends
"""

from .message import BatchSendResult, LargeMessage, MessageEnvelope
from .pointer import BlobPointer, decode_pointer, encode_pointer

__all__ = [
    "BlobPointer",
    "decode_pointer",
    "encode_pointer",
    "MessageEnvelope",
    "LargeMessage",
    "BatchSendResult",
]

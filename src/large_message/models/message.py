"""
Module: message.py
Description: Message models exchanged with the queue transport.

Key Components:
- MessageEnvelope: raw message as sent to / received from the transport
- LargeMessage: received message with its payload resolved
- BatchSendResult: outcome counts of a batch send

Dependencies: pydantic, typing
Author: Large Message Client Team
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from large_message.models.pointer import BlobPointer


class MessageEnvelope(BaseModel):
    """
    Raw queue message.

    Attributes:
        body: Message body bytes (a pointer JSON when offloaded)
        properties: Application properties, insertion-ordered
        session_id: Optional session (SQS FIFO message group)
        message_id: Message id; the content hash when duplicate detection is on
        delivery_count: Number of deliveries so far (0 before sending)
        dead_letter_reason: Reason recorded when dead-lettered
        dead_letter_description: Description recorded when dead-lettered
        sequence_number: Transport-assigned sequence number, if any
        lock_token: Transport handle used to settle the message
        content_type: Content type of the original payload
    """

    model_config = ConfigDict(validate_assignment=True)

    body: bytes = Field(default=b"", description="Message body")
    properties: Dict[str, Any] = Field(default_factory=dict)
    session_id: Optional[str] = None
    message_id: Optional[str] = None
    delivery_count: int = Field(default=0, ge=0)
    dead_letter_reason: Optional[str] = None
    dead_letter_description: Optional[str] = None
    sequence_number: Optional[int] = None
    lock_token: Optional[str] = None
    content_type: Optional[str] = None

    @field_validator("body", mode="before")
    @classmethod
    def encode_text_body(cls, v: Any) -> Any:
        """Accept str bodies and store them UTF-8 encoded."""
        if isinstance(v, str):
            return v.encode("utf-8")
        return v

    @property
    def size(self) -> int:
        """Body size in bytes."""
        return len(self.body)


class LargeMessage(BaseModel):
    """
    Received message with the offloaded payload resolved.

    Reserved bookkeeping properties are removed from `properties`. The raw
    envelope is kept for settlement (complete, defer, dead-letter, lock
    renewal) and for cleanup of the referenced blob.
    """

    message_id: Optional[str] = None
    body: bytes = b""
    properties: Dict[str, Any] = Field(default_factory=dict)
    payload_from_blob: bool = False
    blob_pointer: Optional[BlobPointer] = None
    delivery_count: int = 0
    dead_letter_reason: Optional[str] = None
    dead_letter_description: Optional[str] = None
    session_id: Optional[str] = None
    sequence_number: Optional[int] = None
    envelope: Optional[MessageEnvelope] = Field(default=None, repr=False)

    @property
    def text(self) -> str:
        """Body decoded as UTF-8."""
        return self.body.decode("utf-8")


class BatchSendResult(BaseModel):
    """Counts reported by a batch send."""

    batch_count: int = 0
    batched_count: int = 0
    individual_count: int = 0

    @property
    def total_sent(self) -> int:
        return self.batched_count + self.individual_count

"""
Module: sqs_queue/base.py
Description: Queue transport interfaces consumed by the client.

Key Components:
- SubQueue: main queue or its dead-letter queue
- MessageBatch: batch with a capacity-probing add
- QueueTransport / AsyncQueueTransport: send, receive and settlement
"""

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import List, Optional

from large_message.models.message import MessageEnvelope


class SubQueue(str, Enum):
    NONE = "none"
    DEAD_LETTER = "deadletter"


class MessageBatch(ABC):
    """Ordered group of envelopes sent in one transport call."""

    def __init__(self):
        self.envelopes: List[MessageEnvelope] = []

    @abstractmethod
    def try_add(self, envelope: MessageEnvelope) -> bool:
        """Add `envelope` if it fits; return False without adding otherwise."""

    def __len__(self) -> int:
        return len(self.envelopes)


class QueueTransport(ABC):
    """Blocking queue transport."""

    @abstractmethod
    def send(self, envelope: MessageEnvelope) -> Optional[str]:
        """Send one message; returns the transport message id when known."""

    @abstractmethod
    def create_batch(self) -> MessageBatch:
        ...

    @abstractmethod
    def send_batch(self, batch: MessageBatch) -> None:
        ...

    @abstractmethod
    def receive(
        self,
        max_count: int,
        wait_seconds: float,
        sub_queue: SubQueue = SubQueue.NONE,
    ) -> List[MessageEnvelope]:
        """Receive up to `max_count` messages, waiting at most `wait_seconds`."""

    @abstractmethod
    def complete(self, envelope: MessageEnvelope) -> None:
        """Remove a received message from the queue."""

    @abstractmethod
    def abandon(self, envelope: MessageEnvelope) -> None:
        """Release a received message for redelivery."""

    @abstractmethod
    def defer(self, envelope: MessageEnvelope) -> None:
        ...

    @abstractmethod
    def receive_deferred(self, sequence_number: int) -> Optional[MessageEnvelope]:
        ...

    @abstractmethod
    def renew_lock(self, envelope: MessageEnvelope) -> datetime:
        """Extend the lock on a received message; returns the new expiry."""

    @abstractmethod
    def schedule(self, envelope: MessageEnvelope, scheduled_time: datetime) -> Optional[int]:
        """Enqueue a message at `scheduled_time`; returns its sequence number."""

    @abstractmethod
    def dead_letter(
        self,
        envelope: MessageEnvelope,
        reason: str,
        description: Optional[str] = None,
    ) -> None:
        ...

    def close(self) -> None:
        return None


class AsyncQueueTransport(ABC):
    """Non-blocking queue transport, same operations as QueueTransport."""

    @abstractmethod
    async def send(self, envelope: MessageEnvelope) -> Optional[str]:
        ...

    @abstractmethod
    def create_batch(self) -> MessageBatch:
        ...

    @abstractmethod
    async def send_batch(self, batch: MessageBatch) -> None:
        ...

    @abstractmethod
    async def receive(
        self,
        max_count: int,
        wait_seconds: float,
        sub_queue: SubQueue = SubQueue.NONE,
    ) -> List[MessageEnvelope]:
        ...

    @abstractmethod
    async def complete(self, envelope: MessageEnvelope) -> None:
        ...

    @abstractmethod
    async def abandon(self, envelope: MessageEnvelope) -> None:
        ...

    @abstractmethod
    async def defer(self, envelope: MessageEnvelope) -> None:
        ...

    @abstractmethod
    async def receive_deferred(self, sequence_number: int) -> Optional[MessageEnvelope]:
        ...

    @abstractmethod
    async def renew_lock(self, envelope: MessageEnvelope) -> datetime:
        ...

    @abstractmethod
    async def schedule(self, envelope: MessageEnvelope, scheduled_time: datetime) -> Optional[int]:
        ...

    @abstractmethod
    async def dead_letter(
        self,
        envelope: MessageEnvelope,
        reason: str,
        description: Optional[str] = None,
    ) -> None:
        ...

    async def close(self) -> None:
        return None

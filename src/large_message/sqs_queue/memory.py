"""
Module: sqs_queue/memory.py
Description: In-process queue transport for local development and tests.

Supports every transport operation, including the ones SQS lacks
(deferral, sequence numbers, arbitrary scheduling). Messages are locked
on receive for `lock_duration`; an expired lock makes the message
receivable again with an incremented delivery count.

Key Components:
- InMemoryMessageBatch: batch bounded by entry count and body bytes
- InMemoryQueueTransport: thread-safe QueueTransport
- AsyncInMemoryQueueTransport: AsyncQueueTransport over the same state
"""

import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from large_message.models.message import MessageEnvelope
from large_message.sqs_queue.base import (
    AsyncQueueTransport,
    MessageBatch,
    QueueTransport,
    SubQueue,
)
from large_message.utils.errors import QueueOperationError
from large_message.utils.logger import get_logger

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryMessageBatch(MessageBatch):
    """Batch bounded by entry count and summed body size."""

    def __init__(self, max_entries: int = 10, max_size_bytes: int = 262144):
        super().__init__()
        self.max_entries = max_entries
        self.max_size_bytes = max_size_bytes
        self.size_bytes = 0

    def try_add(self, envelope: MessageEnvelope) -> bool:
        if len(self.envelopes) >= self.max_entries:
            return False
        if self.size_bytes + envelope.size > self.max_size_bytes:
            return False
        self.envelopes.append(envelope)
        self.size_bytes += envelope.size
        return True


class _Entry:
    __slots__ = ("envelope", "available_at", "locked_until", "deferred")

    def __init__(self, envelope: MessageEnvelope, available_at: datetime):
        self.envelope = envelope
        self.available_at = available_at
        self.locked_until: Optional[datetime] = None
        self.deferred = False


class InMemoryQueueTransport(QueueTransport):
    """
    Dictionary-backed queue with a dead-letter sub-queue.

    Attributes:
        lock_duration: How long a received message stays locked
        sent: Every envelope accepted by send/send_batch/schedule, in order
        batches_sent: Number of send_batch calls with a non-empty batch
    """

    def __init__(
        self,
        lock_duration: timedelta = timedelta(seconds=30),
        max_batch_entries: int = 10,
        max_batch_size_bytes: int = 262144,
    ):
        self.lock_duration = lock_duration
        self.max_batch_entries = max_batch_entries
        self.max_batch_size_bytes = max_batch_size_bytes
        self.sent: List[MessageEnvelope] = []
        self.batches_sent = 0
        self._queues: Dict[SubQueue, Dict[int, _Entry]] = {
            SubQueue.NONE: {},
            SubQueue.DEAD_LETTER: {},
        }
        self._locks: Dict[str, tuple] = {}
        self._next_sequence = 1
        self._mutex = threading.RLock()

    def _enqueue(
        self,
        envelope: MessageEnvelope,
        sub_queue: SubQueue = SubQueue.NONE,
        available_at: Optional[datetime] = None,
    ) -> int:
        with self._mutex:
            sequence_number = self._next_sequence
            self._next_sequence += 1
            stored = envelope.model_copy(update={
                'sequence_number': sequence_number,
                'message_id': envelope.message_id or uuid.uuid4().hex,
                'lock_token': None,
                'delivery_count': 0,
            })
            self._queues[sub_queue][sequence_number] = _Entry(stored, available_at or _utcnow())
            if sub_queue == SubQueue.NONE:
                self.sent.append(stored)
            return sequence_number

    def send(self, envelope: MessageEnvelope) -> Optional[str]:
        sequence_number = self._enqueue(envelope)
        message_id = self._queues[SubQueue.NONE][sequence_number].envelope.message_id
        logger.debug("Message enqueued", message_id=message_id, sequence_number=sequence_number)
        return message_id

    def create_batch(self) -> InMemoryMessageBatch:
        return InMemoryMessageBatch(self.max_batch_entries, self.max_batch_size_bytes)

    def send_batch(self, batch: MessageBatch) -> None:
        if not len(batch):
            return
        with self._mutex:
            for envelope in batch.envelopes:
                self._enqueue(envelope)
            self.batches_sent += 1

    def receive(
        self,
        max_count: int,
        wait_seconds: float,
        sub_queue: SubQueue = SubQueue.NONE,
    ) -> List[MessageEnvelope]:
        now = _utcnow()
        received = []
        with self._mutex:
            for sequence_number, entry in sorted(self._queues[sub_queue].items()):
                if len(received) >= max_count:
                    break
                if entry.deferred or entry.available_at > now:
                    continue
                if entry.locked_until is not None and entry.locked_until > now:
                    continue
                received.append(self._lock(entry, sub_queue, now))
        return received

    def _lock(self, entry: _Entry, sub_queue: SubQueue, now: datetime) -> MessageEnvelope:
        lock_token = uuid.uuid4().hex
        entry.locked_until = now + self.lock_duration
        entry.envelope = entry.envelope.model_copy(update={
            'delivery_count': entry.envelope.delivery_count + 1,
            'lock_token': lock_token,
        })
        self._locks[lock_token] = (sub_queue, entry.envelope.sequence_number)
        return entry.envelope

    def _locked_entry(self, envelope: MessageEnvelope):
        with self._mutex:
            key = self._locks.get(envelope.lock_token or "")
            if key is None:
                raise QueueOperationError(
                    f"Lock lost for message {envelope.message_id}"
                )
            sub_queue, sequence_number = key
            entry = self._queues[sub_queue].get(sequence_number)
            if entry is None or entry.envelope.lock_token != envelope.lock_token:
                self._locks.pop(envelope.lock_token, None)
                raise QueueOperationError(f"Lock lost for message {envelope.message_id}")
            return sub_queue, sequence_number, entry

    def complete(self, envelope: MessageEnvelope) -> None:
        with self._mutex:
            sub_queue, sequence_number, _ = self._locked_entry(envelope)
            del self._queues[sub_queue][sequence_number]
            self._locks.pop(envelope.lock_token, None)

    def abandon(self, envelope: MessageEnvelope) -> None:
        with self._mutex:
            _, _, entry = self._locked_entry(envelope)
            entry.locked_until = None
            self._locks.pop(envelope.lock_token, None)

    def defer(self, envelope: MessageEnvelope) -> None:
        with self._mutex:
            _, _, entry = self._locked_entry(envelope)
            entry.deferred = True
            entry.locked_until = None
            self._locks.pop(envelope.lock_token, None)

    def receive_deferred(self, sequence_number: int) -> Optional[MessageEnvelope]:
        with self._mutex:
            entry = self._queues[SubQueue.NONE].get(sequence_number)
            if entry is None or not entry.deferred:
                return None
            return self._lock(entry, SubQueue.NONE, _utcnow())

    def renew_lock(self, envelope: MessageEnvelope) -> datetime:
        with self._mutex:
            _, _, entry = self._locked_entry(envelope)
            entry.locked_until = _utcnow() + self.lock_duration
            return entry.locked_until

    def schedule(self, envelope: MessageEnvelope, scheduled_time: datetime) -> Optional[int]:
        if scheduled_time.tzinfo is None:
            scheduled_time = scheduled_time.replace(tzinfo=timezone.utc)
        return self._enqueue(envelope, available_at=scheduled_time)

    def dead_letter(
        self,
        envelope: MessageEnvelope,
        reason: str,
        description: Optional[str] = None,
    ) -> None:
        with self._mutex:
            sub_queue, sequence_number, entry = self._locked_entry(envelope)
            del self._queues[sub_queue][sequence_number]
            self._locks.pop(envelope.lock_token, None)
            self._enqueue(
                entry.envelope.model_copy(update={
                    'dead_letter_reason': reason,
                    'dead_letter_description': description,
                }),
                sub_queue=SubQueue.DEAD_LETTER,
            )
        logger.warning(
            "Message dead-lettered",
            message_id=envelope.message_id,
            reason=reason,
            description=description
        )

    def pending_count(self, sub_queue: SubQueue = SubQueue.NONE) -> int:
        with self._mutex:
            return len(self._queues[sub_queue])


class AsyncInMemoryQueueTransport(AsyncQueueTransport):
    """Async facade over an InMemoryQueueTransport; operations never block."""

    def __init__(self, transport: Optional[InMemoryQueueTransport] = None):
        self.transport = transport or InMemoryQueueTransport()

    async def send(self, envelope: MessageEnvelope) -> Optional[str]:
        return self.transport.send(envelope)

    def create_batch(self) -> MessageBatch:
        return self.transport.create_batch()

    async def send_batch(self, batch: MessageBatch) -> None:
        self.transport.send_batch(batch)

    async def receive(
        self,
        max_count: int,
        wait_seconds: float,
        sub_queue: SubQueue = SubQueue.NONE,
    ) -> List[MessageEnvelope]:
        return self.transport.receive(max_count, wait_seconds, sub_queue)

    async def complete(self, envelope: MessageEnvelope) -> None:
        self.transport.complete(envelope)

    async def abandon(self, envelope: MessageEnvelope) -> None:
        self.transport.abandon(envelope)

    async def defer(self, envelope: MessageEnvelope) -> None:
        self.transport.defer(envelope)

    async def receive_deferred(self, sequence_number: int) -> Optional[MessageEnvelope]:
        return self.transport.receive_deferred(sequence_number)

    async def renew_lock(self, envelope: MessageEnvelope) -> datetime:
        return self.transport.renew_lock(envelope)

    async def schedule(self, envelope: MessageEnvelope, scheduled_time: datetime) -> Optional[int]:
        return self.transport.schedule(envelope, scheduled_time)

    async def dead_letter(
        self,
        envelope: MessageEnvelope,
        reason: str,
        description: Optional[str] = None,
    ) -> None:
        self.transport.dead_letter(envelope, reason, description)

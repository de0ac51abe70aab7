"""
Module: sqs_queue/batch.py
Description: SQS send batch with capacity-probing add.

An SQS SendMessageBatch call takes at most 10 entries whose summed size
(bodies plus message attributes) is at most 256 KiB.

Key Components:
- SqsMessageBatch: MessageBatch holding prepared send_message parameters

Dependencies: typing
Author: Large Message Client Team
"""

from typing import Any, Dict, List

from large_message.models.message import MessageEnvelope
from large_message.sqs_queue.base import MessageBatch
from large_message.sqs_queue.codec import envelope_to_sqs, sqs_message_size

MAX_BATCH_ENTRIES = 10
MAX_BATCH_SIZE_BYTES = 262144


class SqsMessageBatch(MessageBatch):
    """
    Batch of SQS entries.

    Attributes:
        entries: send_message parameters, one per accepted envelope
        size_bytes: Summed SQS size of the accepted entries
    """

    def __init__(
        self,
        fifo: bool = False,
        max_entries: int = MAX_BATCH_ENTRIES,
        max_size_bytes: int = MAX_BATCH_SIZE_BYTES,
    ):
        super().__init__()
        self.fifo = fifo
        self.max_entries = max_entries
        self.max_size_bytes = max_size_bytes
        self.entries: List[Dict[str, Any]] = []
        self.size_bytes = 0

    def try_add(self, envelope: MessageEnvelope) -> bool:
        if len(self.entries) >= self.max_entries:
            return False

        params = envelope_to_sqs(envelope, fifo=self.fifo)
        size = sqs_message_size(params)
        if self.size_bytes + size > self.max_size_bytes:
            return False

        self.entries.append(params)
        self.envelopes.append(envelope)
        self.size_bytes += size
        return True

    def to_entries(self) -> List[Dict[str, Any]]:
        """Entries for send_message_batch, with positional Ids."""
        return [dict(params, Id=str(index)) for index, params in enumerate(self.entries)]

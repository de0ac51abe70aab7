"""
Module: batch.py
Description: Splits prepared envelopes into transport batches.

Envelopes are added to the current batch until one does not fit; the
batch is then flushed and a new one started. An envelope that does not
fit even an empty batch is sent on its own. Order is preserved across
flush boundaries and every envelope is dispatched exactly once.
"""

from typing import List, Optional, Sequence

from large_message.models.message import BatchSendResult, MessageEnvelope
from large_message.sqs_queue.base import AsyncQueueTransport, MessageBatch, QueueTransport
from large_message.utils.logger import get_logger
from large_message.utils.retry import AsyncRetryExecutor, RetryExecutor

logger = get_logger(__name__)


def plan_batches(
    envelopes: Sequence[MessageEnvelope], create_batch
) -> List[object]:
    """
    Group envelopes into dispatch units.

    Returns an ordered list whose items are either a non-empty
    MessageBatch or a single MessageEnvelope to send individually.
    """
    units: List[object] = []
    batch: MessageBatch = create_batch()

    for envelope in envelopes:
        if batch.try_add(envelope):
            continue
        if len(batch):
            units.append(batch)
            batch = create_batch()
            if batch.try_add(envelope):
                continue
        units.append(envelope)

    if len(batch):
        units.append(batch)
    return units


def _record(result: BatchSendResult, unit: object) -> None:
    if isinstance(unit, MessageBatch):
        result.batch_count += 1
        result.batched_count += len(unit)
    else:
        result.individual_count += 1


class BatchAssembler:
    """Dispatches envelopes through a QueueTransport in as few batches as fit."""

    def __init__(self, transport: QueueTransport, retry: Optional[RetryExecutor] = None):
        self.transport = transport
        self.retry = retry or RetryExecutor()

    def send(self, envelopes: Sequence[MessageEnvelope]) -> BatchSendResult:
        result = BatchSendResult()
        for unit in plan_batches(envelopes, self.transport.create_batch):
            # Counted before dispatch; send_batch may prune entries on partial failure
            _record(result, unit)
            if isinstance(unit, MessageBatch):
                self.retry.execute(self.transport.send_batch, unit)
            else:
                logger.info(
                    "Message too large for a batch, sending individually",
                    message_id=unit.message_id,
                    size=unit.size
                )
                self.retry.execute(self.transport.send, unit)

        logger.info(
            "Batch send completed",
            batch_count=result.batch_count,
            batched_count=result.batched_count,
            individual_count=result.individual_count
        )
        return result


class AsyncBatchAssembler:
    """Async counterpart of BatchAssembler; units are dispatched in order."""

    def __init__(self, transport: AsyncQueueTransport, retry: Optional[AsyncRetryExecutor] = None):
        self.transport = transport
        self.retry = retry or AsyncRetryExecutor()

    async def send(self, envelopes: Sequence[MessageEnvelope]) -> BatchSendResult:
        result = BatchSendResult()
        for unit in plan_batches(envelopes, self.transport.create_batch):
            _record(result, unit)
            if isinstance(unit, MessageBatch):
                await self.retry.execute(self.transport.send_batch, unit)
            else:
                await self.retry.execute(self.transport.send, unit)
        return result

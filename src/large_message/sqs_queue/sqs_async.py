"""
Module: sqs_async.py
Description: Async SQS queue transport built on aioboto3.

Same wire format and settlement rules as SqsTransport; each operation
opens a short-lived client from the shared aioboto3 session.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from aioboto3 import Session
from botocore.exceptions import ClientError

from large_message.models.message import MessageEnvelope
from large_message.sqs_queue.base import AsyncQueueTransport, SubQueue
from large_message.sqs_queue.batch import SqsMessageBatch
from large_message.sqs_queue.codec import envelope_to_sqs, is_fifo_queue, sqs_to_envelope
from large_message.sqs_queue.sqs import (
    DEFAULT_VISIBILITY_TIMEOUT,
    MAX_RECEIVE_COUNT,
    MAX_WAIT_SECONDS,
    ReceiptHandleRegistry,
    schedule_delay_seconds,
)
from large_message.utils.errors import (
    InvalidRequestError,
    QueueOperationError,
    UnsupportedOperationError,
)
from large_message.utils.logger import get_logger

logger = get_logger(__name__)


class AsyncSqsTransport(AsyncQueueTransport):
    """
    Non-blocking SQS transport.

    Example:
        >>> transport = AsyncSqsTransport(queue_url)
        >>> await transport.send(MessageEnvelope(body=b"hello"))
    """

    def __init__(
        self,
        queue_url: str,
        dead_letter_queue_url: Optional[str] = None,
        region_name: Optional[str] = None,
        visibility_timeout: int = DEFAULT_VISIBILITY_TIMEOUT,
        session: Optional[Session] = None,
    ):
        if not queue_url or not isinstance(queue_url, str):
            raise ValueError("queue_url must be a non-empty string")

        self.queue_url = queue_url
        self.dead_letter_queue_url = dead_letter_queue_url
        self.region_name = region_name
        self.visibility_timeout = visibility_timeout
        self.fifo = is_fifo_queue(queue_url)
        self.session = session or Session()
        self._dead_letter_handles = ReceiptHandleRegistry()

        logger.info(
            "Async SQS transport initialized",
            queue_url=queue_url,
            dead_letter_queue_url=dead_letter_queue_url,
            fifo=self.fifo
        )

    def _client(self):
        return self.session.client('sqs', region_name=self.region_name)

    def _failed(self, action: str, e: ClientError, **context) -> QueueOperationError:
        error_code = e.response.get('Error', {}).get('Code', '')
        error_message = e.response.get('Error', {}).get('Message', '')
        logger.error(
            f"Failed to {action}",
            queue_url=self.queue_url,
            error_code=error_code,
            error_message=error_message,
            **context
        )
        return QueueOperationError(f"Failed to {action}: {error_code} {error_message}".strip())

    def _queue_for(self, receipt_handle: str) -> str:
        if receipt_handle in self._dead_letter_handles:
            return self.dead_letter_queue_url
        return self.queue_url

    @staticmethod
    def _require_lock(envelope: MessageEnvelope) -> str:
        if not envelope.lock_token:
            raise InvalidRequestError("envelope has no receipt handle; was it received?")
        return envelope.lock_token

    async def send(self, envelope: MessageEnvelope) -> Optional[str]:
        params = envelope_to_sqs(envelope, fifo=self.fifo)
        try:
            async with self._client() as sqs:
                response = await sqs.send_message(QueueUrl=self.queue_url, **params)
        except ClientError as e:
            raise self._failed("send message to SQS", e, message_id=envelope.message_id) from e

        logger.info(
            "Message sent to SQS",
            message_id=envelope.message_id,
            sqs_message_id=response['MessageId'],
            queue_url=self.queue_url
        )
        return response['MessageId']

    def create_batch(self) -> SqsMessageBatch:
        return SqsMessageBatch(fifo=self.fifo)

    async def send_batch(self, batch: SqsMessageBatch) -> None:
        if not len(batch):
            return
        try:
            async with self._client() as sqs:
                response = await sqs.send_message_batch(
                    QueueUrl=self.queue_url, Entries=batch.to_entries()
                )
        except ClientError as e:
            raise self._failed("send message batch to SQS", e, batch_size=len(batch)) from e

        failed = response.get('Failed', [])
        if failed:
            failed_ids = {int(entry['Id']) for entry in failed}
            batch.entries = [p for i, p in enumerate(batch.entries) if i in failed_ids]
            batch.envelopes = [m for i, m in enumerate(batch.envelopes) if i in failed_ids]
            logger.error(
                "Partial failure sending message batch to SQS",
                queue_url=self.queue_url,
                failed_count=len(failed)
            )
            raise QueueOperationError(f"{len(failed)} batch entries failed")

        logger.info("Message batch sent to SQS", queue_url=self.queue_url, batch_size=len(batch))

    async def receive(
        self,
        max_count: int,
        wait_seconds: float,
        sub_queue: SubQueue = SubQueue.NONE,
    ) -> List[MessageEnvelope]:
        if sub_queue == SubQueue.DEAD_LETTER:
            if not self.dead_letter_queue_url:
                raise UnsupportedOperationError("No dead-letter queue URL configured")
            queue_url = self.dead_letter_queue_url
        else:
            queue_url = self.queue_url

        try:
            async with self._client() as sqs:
                response = await sqs.receive_message(
                    QueueUrl=queue_url,
                    MaxNumberOfMessages=max(1, min(max_count, MAX_RECEIVE_COUNT)),
                    WaitTimeSeconds=int(min(max(wait_seconds, 0), MAX_WAIT_SECONDS)),
                    MessageAttributeNames=['All'],
                    AttributeNames=['All']
                )
        except ClientError as e:
            raise self._failed("receive messages from SQS", e) from e

        envelopes = [sqs_to_envelope(message) for message in response.get('Messages', [])]
        if sub_queue == SubQueue.DEAD_LETTER:
            self._dead_letter_handles.add(e.lock_token for e in envelopes)
        return envelopes

    async def complete(self, envelope: MessageEnvelope) -> None:
        receipt_handle = self._require_lock(envelope)
        try:
            async with self._client() as sqs:
                await sqs.delete_message(
                    QueueUrl=self._queue_for(receipt_handle), ReceiptHandle=receipt_handle
                )
        except ClientError as e:
            raise self._failed("delete message from SQS", e, message_id=envelope.message_id) from e
        self._dead_letter_handles.discard(receipt_handle)

    async def _change_visibility(self, envelope: MessageEnvelope, timeout: int, action: str) -> None:
        receipt_handle = self._require_lock(envelope)
        try:
            async with self._client() as sqs:
                await sqs.change_message_visibility(
                    QueueUrl=self._queue_for(receipt_handle),
                    ReceiptHandle=receipt_handle,
                    VisibilityTimeout=timeout
                )
        except ClientError as e:
            raise self._failed(action, e, message_id=envelope.message_id) from e

    async def abandon(self, envelope: MessageEnvelope) -> None:
        await self._change_visibility(envelope, 0, "abandon SQS message")
        self._dead_letter_handles.discard(envelope.lock_token)

    async def defer(self, envelope: MessageEnvelope) -> None:
        raise UnsupportedOperationError("SQS does not support message deferral")

    async def receive_deferred(self, sequence_number: int) -> Optional[MessageEnvelope]:
        raise UnsupportedOperationError("SQS does not support message deferral")

    async def renew_lock(self, envelope: MessageEnvelope) -> datetime:
        await self._change_visibility(envelope, self.visibility_timeout, "renew SQS message lock")
        return datetime.now(timezone.utc) + timedelta(seconds=self.visibility_timeout)

    async def schedule(self, envelope: MessageEnvelope, scheduled_time: datetime) -> Optional[int]:
        if self.fifo:
            raise UnsupportedOperationError("FIFO queues do not support per-message delays")
        delay = schedule_delay_seconds(scheduled_time)
        params = envelope_to_sqs(envelope)
        try:
            async with self._client() as sqs:
                response = await sqs.send_message(
                    QueueUrl=self.queue_url, DelaySeconds=delay, **params
                )
        except ClientError as e:
            raise self._failed("schedule SQS message", e, message_id=envelope.message_id) from e

        sequence_number = response.get('SequenceNumber')
        return int(sequence_number) if sequence_number else None

    async def dead_letter(
        self,
        envelope: MessageEnvelope,
        reason: str,
        description: Optional[str] = None,
    ) -> None:
        if not self.dead_letter_queue_url:
            raise UnsupportedOperationError("No dead-letter queue URL configured")

        copy = envelope.model_copy(
            update={'dead_letter_reason': reason, 'dead_letter_description': description}
        )
        params = envelope_to_sqs(copy, fifo=is_fifo_queue(self.dead_letter_queue_url))
        try:
            async with self._client() as sqs:
                await sqs.send_message(QueueUrl=self.dead_letter_queue_url, **params)
        except ClientError as e:
            raise self._failed("dead-letter SQS message", e, message_id=envelope.message_id) from e

        await self.complete(envelope)
        logger.warning(
            "Message dead-lettered",
            message_id=envelope.message_id,
            reason=reason,
            description=description
        )

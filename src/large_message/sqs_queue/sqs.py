"""
Module: sqs.py
Description: SQS queue transport.

Sends envelopes to the queue, receives them for processing, and settles
them (delete, visibility changes, dead-letter copy). The receipt handle is
the envelope's lock token.
"""

import math
import threading
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

import boto3
from botocore.exceptions import ClientError

from large_message.models.message import MessageEnvelope
from large_message.sqs_queue.base import QueueTransport, SubQueue
from large_message.sqs_queue.batch import SqsMessageBatch
from large_message.sqs_queue.codec import envelope_to_sqs, is_fifo_queue, sqs_to_envelope
from large_message.utils.errors import (
    InvalidRequestError,
    QueueOperationError,
    UnsupportedOperationError,
)
from large_message.utils.logger import get_logger

logger = get_logger(__name__)

MAX_RECEIVE_COUNT = 10
MAX_WAIT_SECONDS = 20
MAX_DELAY_SECONDS = 900
DEFAULT_VISIBILITY_TIMEOUT = 30


MAX_TRACKED_DEAD_LETTER_HANDLES = 10000


class ReceiptHandleRegistry:
    """
    Receipt handles of messages received from the dead-letter queue.

    Settling a message needs the URL of the queue it came from, and SQS
    receipt handles do not carry it. Handles leave the registry when their
    message is completed or abandoned; handles of messages whose visibility
    simply lapsed are evicted oldest first once `max_size` is reached.
    """

    def __init__(self, max_size: int = MAX_TRACKED_DEAD_LETTER_HANDLES):
        self.max_size = max_size
        self._handles: OrderedDict = OrderedDict()
        self._lock = threading.Lock()

    def add(self, receipt_handles: Iterable[str]) -> None:
        with self._lock:
            for receipt_handle in receipt_handles:
                self._handles[receipt_handle] = None
                self._handles.move_to_end(receipt_handle)
            while len(self._handles) > self.max_size:
                self._handles.popitem(last=False)

    def discard(self, receipt_handle: str) -> None:
        with self._lock:
            self._handles.pop(receipt_handle, None)

    def __contains__(self, receipt_handle: str) -> bool:
        with self._lock:
            return receipt_handle in self._handles

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)


def schedule_delay_seconds(scheduled_time: datetime, now: Optional[datetime] = None) -> int:
    """
    Seconds from now until `scheduled_time`, rounded up; naive times are UTC.

    Raises:
        InvalidRequestError: If the delay exceeds the SQS maximum of 900 seconds
    """
    if scheduled_time.tzinfo is None:
        scheduled_time = scheduled_time.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    delay = max(0, math.ceil((scheduled_time - now).total_seconds()))
    if delay > MAX_DELAY_SECONDS:
        raise InvalidRequestError(
            f"scheduled_time is {delay}s away; SQS supports at most {MAX_DELAY_SECONDS}s"
        )
    return delay


class SqsTransport(QueueTransport):
    """
    Blocking SQS transport.

    Attributes:
        queue_url: URL of the main queue
        dead_letter_queue_url: URL of the dead-letter queue, if configured
        visibility_timeout: Seconds a lock renewal extends visibility by
    """

    def __init__(
        self,
        queue_url: str,
        dead_letter_queue_url: Optional[str] = None,
        region_name: Optional[str] = None,
        visibility_timeout: int = DEFAULT_VISIBILITY_TIMEOUT,
        client=None,
    ):
        """
        Initialize SQS transport.

        Args:
            queue_url: URL of the SQS queue
            dead_letter_queue_url: URL receiving dead-lettered messages
            region_name: AWS region for the client
            visibility_timeout: Visibility extension applied by renew_lock
            client: Pre-built boto3 SQS client

        Raises:
            ValueError: If queue_url is empty or invalid
        """
        if not queue_url or not isinstance(queue_url, str):
            raise ValueError("queue_url must be a non-empty string")

        self.queue_url = queue_url
        self.dead_letter_queue_url = dead_letter_queue_url
        self.visibility_timeout = visibility_timeout
        self.fifo = is_fifo_queue(queue_url)
        self.client = client or boto3.client('sqs', region_name=region_name)
        self._dead_letter_handles = ReceiptHandleRegistry()

        logger.info(
            "SQS transport initialized",
            queue_url=queue_url,
            dead_letter_queue_url=dead_letter_queue_url,
            fifo=self.fifo
        )

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

    def send(self, envelope: MessageEnvelope) -> Optional[str]:
        params = envelope_to_sqs(envelope, fifo=self.fifo)
        try:
            response = self.client.send_message(QueueUrl=self.queue_url, **params)
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

    def send_batch(self, batch: SqsMessageBatch) -> None:
        """
        Send a batch with send_message_batch.

        Entries that succeeded are removed from the batch before a partial
        failure is raised, so a retry only resends the failed entries.
        """
        if not len(batch):
            return
        try:
            response = self.client.send_message_batch(
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
                failed_count=len(failed),
                error_codes=[entry.get('Code') for entry in failed]
            )
            raise QueueOperationError(f"{len(failed)} batch entries failed")

        logger.info("Message batch sent to SQS", queue_url=self.queue_url, batch_size=len(batch))

    def receive(
        self,
        max_count: int,
        wait_seconds: float,
        sub_queue: SubQueue = SubQueue.NONE,
    ) -> List[MessageEnvelope]:
        queue_url = self._sub_queue_url(sub_queue)
        try:
            response = self.client.receive_message(
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
        logger.debug("Messages received from SQS", queue_url=queue_url, count=len(envelopes))
        return envelopes

    def _sub_queue_url(self, sub_queue: SubQueue) -> str:
        if sub_queue == SubQueue.DEAD_LETTER:
            if not self.dead_letter_queue_url:
                raise UnsupportedOperationError("No dead-letter queue URL configured")
            return self.dead_letter_queue_url
        return self.queue_url

    def _queue_for(self, receipt_handle: str) -> str:
        if receipt_handle in self._dead_letter_handles:
            return self.dead_letter_queue_url
        return self.queue_url

    def _require_lock(self, envelope: MessageEnvelope) -> str:
        if not envelope.lock_token:
            raise InvalidRequestError("envelope has no receipt handle; was it received?")
        return envelope.lock_token

    def complete(self, envelope: MessageEnvelope) -> None:
        receipt_handle = self._require_lock(envelope)
        try:
            self.client.delete_message(
                QueueUrl=self._queue_for(receipt_handle), ReceiptHandle=receipt_handle
            )
        except ClientError as e:
            raise self._failed("delete message from SQS", e, message_id=envelope.message_id) from e
        self._dead_letter_handles.discard(receipt_handle)
        logger.debug("Message deleted from SQS", message_id=envelope.message_id)

    def abandon(self, envelope: MessageEnvelope) -> None:
        receipt_handle = self._require_lock(envelope)
        try:
            self.client.change_message_visibility(
                QueueUrl=self._queue_for(receipt_handle),
                ReceiptHandle=receipt_handle,
                VisibilityTimeout=0
            )
        except ClientError as e:
            raise self._failed("abandon SQS message", e, message_id=envelope.message_id) from e
        self._dead_letter_handles.discard(receipt_handle)
        logger.debug("Message released for redelivery", message_id=envelope.message_id)

    def defer(self, envelope: MessageEnvelope) -> None:
        raise UnsupportedOperationError("SQS does not support message deferral")

    def receive_deferred(self, sequence_number: int) -> Optional[MessageEnvelope]:
        raise UnsupportedOperationError("SQS does not support message deferral")

    def renew_lock(self, envelope: MessageEnvelope) -> datetime:
        receipt_handle = self._require_lock(envelope)
        try:
            self.client.change_message_visibility(
                QueueUrl=self._queue_for(receipt_handle),
                ReceiptHandle=receipt_handle,
                VisibilityTimeout=self.visibility_timeout
            )
        except ClientError as e:
            raise self._failed("renew SQS message lock", e, message_id=envelope.message_id) from e
        return datetime.now(timezone.utc) + timedelta(seconds=self.visibility_timeout)

    def schedule(self, envelope: MessageEnvelope, scheduled_time: datetime) -> Optional[int]:
        if self.fifo:
            raise UnsupportedOperationError("FIFO queues do not support per-message delays")
        delay = schedule_delay_seconds(scheduled_time)
        params = envelope_to_sqs(envelope)
        try:
            response = self.client.send_message(
                QueueUrl=self.queue_url, DelaySeconds=delay, **params
            )
        except ClientError as e:
            raise self._failed("schedule SQS message", e, message_id=envelope.message_id) from e

        logger.info("Message scheduled", message_id=envelope.message_id, delay_seconds=delay)
        sequence_number = response.get('SequenceNumber')
        return int(sequence_number) if sequence_number else None

    def dead_letter(
        self,
        envelope: MessageEnvelope,
        reason: str,
        description: Optional[str] = None,
    ) -> None:
        """Copy the message to the dead-letter queue, then delete the original."""
        if not self.dead_letter_queue_url:
            raise UnsupportedOperationError("No dead-letter queue URL configured")

        copy = envelope.model_copy(
            update={'dead_letter_reason': reason, 'dead_letter_description': description}
        )
        params = envelope_to_sqs(copy, fifo=is_fifo_queue(self.dead_letter_queue_url))
        try:
            self.client.send_message(QueueUrl=self.dead_letter_queue_url, **params)
        except ClientError as e:
            raise self._failed("dead-letter SQS message", e, message_id=envelope.message_id) from e

        self.complete(envelope)
        logger.warning(
            "Message dead-lettered",
            message_id=envelope.message_id,
            reason=reason,
            description=description
        )

    def close(self) -> None:
        self.client.close()

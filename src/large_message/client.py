"""
Module: client.py
Description: Blocking large message client.

Composes the send, batch, receive and cleanup pipelines over one queue
transport and one blob store. Every call runs on the caller's thread;
retries sleep on that thread.

Key Components:
- LargeMessageClient: send, receive, settle and clean up messages
- from_settings(): builds the SQS + S3 client from LargeMessageSettings

Dependencies: boto3 (via adapters), structlog, tenacity
Author: Large Message Client Team
"""

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from large_message.config.criteria import DefaultMessageSizeCriteria, MessageSizeCriteria
from large_message.config.settings import LargeMessageSettings
from large_message.models.message import BatchSendResult, LargeMessage, MessageEnvelope
from large_message.pipeline.batch import BatchAssembler
from large_message.pipeline.cleanup import CleanupCoordinator, PeriodicTtlSweeper
from large_message.pipeline.receive import ReceivePipeline
from large_message.pipeline.send import SendPipeline
from large_message.sqs_queue.base import QueueTransport, SubQueue
from large_message.storage.base import BlobStore
from large_message.storage.naming import BlobNameResolver, MessageBodyReplacer
from large_message.storage.payload_store import PayloadStore
from large_message.utils.errors import QueueOperationError
from large_message.utils.logger import configure_logging, get_logger
from large_message.utils.retry import RetryExecutor
from large_message.utils.tracing import LoggingTracer, NullTracer, Tracer

logger = get_logger(__name__)

Body = Union[str, bytes]


def _envelope_of(message: LargeMessage) -> MessageEnvelope:
    if message.envelope is None:
        raise ValueError("message has no transport envelope; only received messages can be settled")
    return message.envelope


def processing_failure_description(error: Exception) -> str:
    return f"Processing failed: {error}"


class LargeMessageClient:
    """
    Queue client that offloads oversized payloads to a blob store.

    Attributes:
        transport: Queue transport (SQS or in-memory)
        payload_store: Retried facade over the blob store
        settings: Behavioural configuration

    Example:
        >>> client = LargeMessageClient(InMemoryQueueTransport(), InMemoryBlobStore())
        >>> client.send_message("x" * 300_000)
        >>> [message] = client.receive_messages(max_messages=1)
        >>> client.complete_message(message)
    """

    def __init__(
        self,
        transport: QueueTransport,
        blob_store: BlobStore,
        settings: Optional[LargeMessageSettings] = None,
        criteria: Optional[MessageSizeCriteria] = None,
        blob_name_resolver: Optional[BlobNameResolver] = None,
        body_replacer: Optional[MessageBodyReplacer] = None,
        tracer: Optional[Tracer] = None,
        retry: Optional[RetryExecutor] = None,
    ):
        self.settings = settings or LargeMessageSettings()
        self.transport = transport
        self.retry = retry or RetryExecutor(self.settings.retry_policy())
        self.tracer = tracer or (LoggingTracer() if self.settings.tracing_enabled else NullTracer())
        self.payload_store = PayloadStore(
            blob_store,
            retry=self.retry,
            ttl_days=self.settings.blob_ttl_days,
            default_content_type=self.settings.default_content_type,
        )
        self.send_pipeline = SendPipeline(
            transport,
            self.payload_store,
            self.settings,
            retry=self.retry,
            criteria=criteria or DefaultMessageSizeCriteria(
                self.settings.message_size_threshold, self.settings.always_through_blob
            ),
            blob_name_resolver=blob_name_resolver,
            body_replacer=body_replacer,
            tracer=self.tracer,
        )
        self.batch_assembler = BatchAssembler(transport, self.retry)
        self.receive_pipeline = ReceivePipeline(self.payload_store, self.settings, self.tracer)
        self.cleanup = CleanupCoordinator(self.payload_store, self.settings)
        self.ttl_sweeper: Optional[PeriodicTtlSweeper] = None

        if self.settings.blob_ttl_days > 0 and self.settings.ttl_cleanup_interval_minutes > 0:
            self.ttl_sweeper = PeriodicTtlSweeper(
                self.cleanup, self.settings.ttl_cleanup_interval_minutes * 60
            )
            self.ttl_sweeper.start()

        logger.info(
            "Large message client initialized",
            message_size_threshold=self.settings.message_size_threshold,
            payload_support_enabled=self.settings.payload_support_enabled,
            container_name=self.payload_store.container_name
        )

    @classmethod
    def from_settings(cls, settings: Optional[LargeMessageSettings] = None, **kwargs: Any) -> "LargeMessageClient":
        """
        Build a client on SQS and S3 from configuration.

        Raises:
            ValueError: If queue_url or bucket_name is not configured
        """
        from large_message.sqs_queue.sqs import SqsTransport
        from large_message.storage.s3 import S3BlobStore

        settings = settings or LargeMessageSettings()
        configure_logging(settings.log_level)
        if not settings.queue_url or not settings.bucket_name:
            raise ValueError("queue_url and bucket_name must be configured")

        transport = SqsTransport(
            settings.queue_url,
            dead_letter_queue_url=settings.dead_letter_queue_url,
            region_name=settings.aws_region,
        )
        blob_store = S3BlobStore(
            settings.bucket_name,
            region_name=settings.aws_region,
            storage_class=settings.blob_storage_class,
        )
        return cls(transport, blob_store, settings=settings, **kwargs)

    # Sending

    def send_message(
        self,
        body: Body,
        properties: Optional[Mapping[str, Any]] = None,
        session_id: Optional[str] = None,
        message_id: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> MessageEnvelope:
        """
        Send one message, offloading the payload when it is too large.

        Returns:
            The envelope put on the queue (pointer body when offloaded)

        Raises:
            PropertyValidationError: If properties are invalid (nothing is sent)
            RetryExhaustedError: If the offload or the send keeps failing
        """
        return self.send_pipeline.send(body, properties, session_id, message_id, content_type)

    def send_messages(
        self,
        bodies: Iterable[Body],
        properties: Optional[Mapping[str, Any]] = None,
        session_id: Optional[str] = None,
    ) -> List[MessageEnvelope]:
        """Send each body as its own message, in order."""
        return [self.send_message(body, properties, session_id) for body in bodies]

    def send_message_batch(
        self,
        bodies: Iterable[Body],
        properties: Optional[Mapping[str, Any]] = None,
        session_id: Optional[str] = None,
    ) -> BatchSendResult:
        """
        Prepare every body, then send them in as few transport batches as fit.

        Messages that do not fit an empty batch are sent individually.
        """
        envelopes = [
            self.send_pipeline.prepare(body, properties, session_id) for body in bodies
        ]
        with self.tracer.span("large_message.send_batch", count=len(envelopes)):
            return self.batch_assembler.send(envelopes)

    def schedule_message(
        self,
        body: Body,
        scheduled_time: datetime,
        properties: Optional[Mapping[str, Any]] = None,
        session_id: Optional[str] = None,
    ) -> Optional[int]:
        """Send a message that becomes visible at `scheduled_time`; returns its sequence number."""
        return self.send_pipeline.schedule(body, scheduled_time, properties, session_id)

    # Receiving

    def _receive(
        self,
        max_messages: int,
        wait_seconds: Optional[float],
        sub_queue: SubQueue,
    ) -> List[MessageEnvelope]:
        wait = self.settings.receive_wait_seconds if wait_seconds is None else wait_seconds
        return self.retry.execute(self.transport.receive, max_messages, wait, sub_queue)

    def _resolve_all(self, envelopes: List[MessageEnvelope]) -> List[LargeMessage]:
        # None of the round reaches the caller on failure, so every lock is released
        messages = []
        for envelope in envelopes:
            try:
                messages.append(self.receive_pipeline.resolve(envelope))
            except Exception:
                self._release(envelopes)
                raise
        return messages

    def _release(self, envelopes: Iterable[MessageEnvelope]) -> None:
        for envelope in envelopes:
            try:
                self.retry.execute(self.transport.abandon, envelope)
            except Exception as e:
                logger.error(
                    "Failed to release message",
                    message_id=envelope.message_id,
                    error=str(e),
                    error_type=type(e).__name__
                )

    def receive_messages(
        self, max_messages: int = 10, wait_seconds: Optional[float] = None
    ) -> List[LargeMessage]:
        """
        Receive messages and resolve offloaded payloads.

        If any payload cannot be resolved, every message of the round is
        abandoned before the error propagates.
        """
        envelopes = self._receive(max_messages, wait_seconds, SubQueue.NONE)
        messages = self._resolve_all(envelopes)
        logger.debug("Messages received", count=len(messages))
        return messages

    def receive_dead_letter_messages(
        self, max_messages: int = 10, wait_seconds: Optional[float] = None
    ) -> List[LargeMessage]:
        """Receive from the dead-letter queue; reason and description are carried through."""
        envelopes = self._receive(max_messages, wait_seconds, SubQueue.DEAD_LETTER)
        return self._resolve_all(envelopes)

    def receive_deferred_message(self, sequence_number: int) -> Optional[LargeMessage]:
        envelope = self.retry.execute(self.transport.receive_deferred, sequence_number)
        if envelope is None:
            logger.warning("Deferred message not found", sequence_number=sequence_number)
            return None
        return self.receive_pipeline.resolve(envelope)

    def receive_deferred_messages(self, sequence_numbers: Iterable[int]) -> List[LargeMessage]:
        """Receive several deferred messages; failures are logged and skipped."""
        messages = []
        for sequence_number in sequence_numbers:
            try:
                message = self.receive_deferred_message(sequence_number)
            except Exception as e:
                logger.error(
                    "Failed to receive deferred message",
                    sequence_number=sequence_number,
                    error=str(e),
                    error_type=type(e).__name__
                )
                continue
            if message is not None:
                messages.append(message)
        return messages

    # Settlement

    def complete_message(self, message: LargeMessage) -> None:
        self.retry.execute(self.transport.complete, _envelope_of(message))

    def abandon_message(self, message: LargeMessage) -> None:
        self.retry.execute(self.transport.abandon, _envelope_of(message))

    def defer_message(self, message: LargeMessage) -> None:
        self.retry.execute(self.transport.defer, _envelope_of(message))
        logger.info("Message deferred", message_id=message.message_id, sequence_number=message.sequence_number)

    def renew_message_lock(self, message: LargeMessage) -> datetime:
        return self.retry.execute(self.transport.renew_lock, _envelope_of(message))

    def renew_message_lock_batch(self, messages: Iterable[LargeMessage]) -> Dict[str, datetime]:
        """Renew each lock independently; returns expiries keyed by message id."""
        renewed = {}
        failed = 0
        for message in messages:
            try:
                renewed[message.message_id] = self.renew_message_lock(message)
            except Exception as e:
                failed += 1
                logger.error(
                    "Failed to renew message lock",
                    message_id=message.message_id,
                    error=str(e),
                    error_type=type(e).__name__
                )
        logger.info("Batch lock renewal completed", renewed=len(renewed), failed=failed)
        return renewed

    def dead_letter_message(
        self,
        message: LargeMessage,
        reason: Optional[str] = None,
        description: Optional[str] = None,
    ) -> None:
        self.retry.execute(
            self.transport.dead_letter,
            _envelope_of(message),
            reason or self.settings.dead_letter_reason,
            description,
        )

    # Processing

    def _handle_failure(self, envelope: MessageEnvelope, error: Exception) -> Optional[Exception]:
        """Settle a failed message; returns the error the caller should raise, if any."""
        logger.error(
            "Error processing message",
            message_id=envelope.message_id,
            error=str(error),
            error_type=type(error).__name__
        )
        try:
            if not self.settings.dead_letter_on_failure:
                self.retry.execute(self.transport.abandon, envelope)
                return error
            self.retry.execute(
                self.transport.dead_letter,
                envelope,
                self.settings.dead_letter_reason,
                processing_failure_description(error),
            )
        except Exception as e:
            logger.error(
                "Failed to settle message",
                message_id=envelope.message_id,
                error=str(e),
                error_type=type(e).__name__
            )
            return e
        logger.info("Message dead-lettered due to processing failure", message_id=envelope.message_id)
        return None

    def _complete(self, envelope: MessageEnvelope) -> Optional[Exception]:
        try:
            self.retry.execute(self.transport.complete, envelope)
        except Exception as e:
            logger.error(
                "Failed to complete message",
                message_id=envelope.message_id,
                error=str(e),
                error_type=type(e).__name__
            )
            return e
        return None

    def process_messages(
        self,
        handler: Callable[[LargeMessage], Any],
        max_messages: int = 10,
        wait_seconds: Optional[float] = None,
    ) -> int:
        """
        Receive one round of messages and run `handler` on each.

        A message is completed when the handler returns. When resolution or
        the handler fails, the message is dead-lettered if
        dead_letter_on_failure is set; otherwise it is abandoned. Each
        message is settled on its own, and the first error left unsettled
        is raised once the whole round has been handled.

        Returns:
            Number of messages handled successfully
        """
        handled = 0
        first_error = None
        for envelope in self._receive(max_messages, wait_seconds, SubQueue.NONE):
            try:
                message = self.receive_pipeline.resolve(envelope)
                handler(message)
            except Exception as e:
                error = self._handle_failure(envelope, e)
            else:
                error = self._complete(envelope)
                if error is None:
                    handled += 1
            if error is not None and first_error is None:
                first_error = error
        if first_error is not None:
            raise first_error
        return handled

    def process_dead_letter_messages(
        self,
        handler: Callable[[LargeMessage], Any],
        max_messages: int = 10,
        wait_seconds: Optional[float] = None,
    ) -> int:
        """
        Run `handler` on dead-lettered messages, completing each on success.

        A failed message is abandoned back to the dead-letter queue; the
        first failure is raised after the rest of the round is handled.
        """
        handled = 0
        first_error = None
        for envelope in self._receive(max_messages, wait_seconds, SubQueue.DEAD_LETTER):
            try:
                message = self.receive_pipeline.resolve(envelope)
                handler(message)
            except Exception as e:
                logger.error(
                    "Error processing dead-letter message",
                    message_id=envelope.message_id,
                    error=str(e)
                )
                self._release([envelope])
                error = e
            else:
                error = self._complete(envelope)
                if error is None:
                    handled += 1
            if error is not None and first_error is None:
                first_error = error
        if first_error is not None:
            raise first_error
        return handled

    # Payload cleanup

    def delete_payload(self, message: LargeMessage) -> bool:
        """Delete the blob behind a received message; failures are logged, not raised."""
        return self.cleanup.delete_payload(message)

    def delete_payload_batch(self, messages: Iterable[LargeMessage]) -> int:
        return self.cleanup.delete_payload_batch(messages)

    def cleanup_expired_payloads(self) -> int:
        return self.cleanup.cleanup_expired_payloads()

    def generate_payload_url(
        self, message: LargeMessage, valid_for: timedelta = timedelta(hours=1)
    ) -> Optional[str]:
        """Time-limited read URL for an offloaded payload; None for inline messages."""
        if message.blob_pointer is None:
            return None
        return self.payload_store.generate_read_url(message.blob_pointer, valid_for)

    def close(self) -> None:
        if self.ttl_sweeper is not None:
            self.ttl_sweeper.stop()
            self.ttl_sweeper = None
        try:
            self.transport.close()
        except QueueOperationError as e:
            logger.warning("Failed to close transport", error=str(e))
        logger.info("Large message client closed")

    def __enter__(self) -> "LargeMessageClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

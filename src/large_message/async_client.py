"""
Module: async_client.py
Description: Non-blocking large message client.

Same operations as LargeMessageClient, awaited. Each call runs the stage
chain (validate, offload, send) as one coroutine. Batch-oriented
variants start one coroutine per item with asyncio.gather and do not cap
concurrency.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Union

from large_message.client import _envelope_of, processing_failure_description
from large_message.config.criteria import DefaultMessageSizeCriteria, MessageSizeCriteria
from large_message.config.settings import LargeMessageSettings
from large_message.models.message import BatchSendResult, LargeMessage, MessageEnvelope
from large_message.pipeline.batch import AsyncBatchAssembler
from large_message.pipeline.cleanup import AsyncCleanupCoordinator
from large_message.pipeline.receive import AsyncReceivePipeline
from large_message.pipeline.send import AsyncSendPipeline
from large_message.sqs_queue.base import AsyncQueueTransport, SubQueue
from large_message.storage.base import AsyncBlobStore
from large_message.storage.naming import BlobNameResolver, MessageBodyReplacer
from large_message.storage.payload_store import AsyncPayloadStore
from large_message.utils.logger import configure_logging, get_logger
from large_message.utils.retry import AsyncRetryExecutor
from large_message.utils.tracing import LoggingTracer, NullTracer, Tracer

logger = get_logger(__name__)

Body = Union[str, bytes]


class AsyncLargeMessageClient:
    """
    Async queue client that offloads oversized payloads to a blob store.

    Example:
        >>> async with AsyncLargeMessageClient.from_settings() as client:
        ...     await client.send_message(b"..." * 100_000)
    """

    def __init__(
        self,
        transport: AsyncQueueTransport,
        blob_store: AsyncBlobStore,
        settings: Optional[LargeMessageSettings] = None,
        criteria: Optional[MessageSizeCriteria] = None,
        blob_name_resolver: Optional[BlobNameResolver] = None,
        body_replacer: Optional[MessageBodyReplacer] = None,
        tracer: Optional[Tracer] = None,
        retry: Optional[AsyncRetryExecutor] = None,
    ):
        self.settings = settings or LargeMessageSettings()
        self.transport = transport
        self.retry = retry or AsyncRetryExecutor(self.settings.retry_policy())
        self.tracer = tracer or (LoggingTracer() if self.settings.tracing_enabled else NullTracer())
        self.payload_store = AsyncPayloadStore(
            blob_store,
            retry=self.retry,
            ttl_days=self.settings.blob_ttl_days,
            default_content_type=self.settings.default_content_type,
        )
        self.send_pipeline = AsyncSendPipeline(
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
        self.batch_assembler = AsyncBatchAssembler(transport, self.retry)
        self.receive_pipeline = AsyncReceivePipeline(self.payload_store, self.settings, self.tracer)
        self.cleanup = AsyncCleanupCoordinator(self.payload_store, self.settings)

    @classmethod
    def from_settings(
        cls, settings: Optional[LargeMessageSettings] = None, **kwargs: Any
    ) -> "AsyncLargeMessageClient":
        from aioboto3 import Session

        from large_message.sqs_queue.sqs_async import AsyncSqsTransport
        from large_message.storage.s3_async import AsyncS3BlobStore

        settings = settings or LargeMessageSettings()
        configure_logging(settings.log_level)
        if not settings.queue_url or not settings.bucket_name:
            raise ValueError("queue_url and bucket_name must be configured")

        session = Session()
        transport = AsyncSqsTransport(
            settings.queue_url,
            dead_letter_queue_url=settings.dead_letter_queue_url,
            region_name=settings.aws_region,
            session=session,
        )
        blob_store = AsyncS3BlobStore(
            settings.bucket_name,
            region_name=settings.aws_region,
            storage_class=settings.blob_storage_class,
            session=session,
        )
        return cls(transport, blob_store, settings=settings, **kwargs)

    async def send_message(
        self,
        body: Body,
        properties: Optional[Mapping[str, Any]] = None,
        session_id: Optional[str] = None,
        message_id: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> MessageEnvelope:
        return await self.send_pipeline.send(body, properties, session_id, message_id, content_type)

    async def send_messages(
        self,
        bodies: Iterable[Body],
        properties: Optional[Mapping[str, Any]] = None,
        session_id: Optional[str] = None,
    ) -> List[MessageEnvelope]:
        """Send every body concurrently, one coroutine per message."""
        return list(await asyncio.gather(
            *(self.send_message(body, properties, session_id) for body in bodies)
        ))

    async def send_message_batch(
        self,
        bodies: Iterable[Body],
        properties: Optional[Mapping[str, Any]] = None,
        session_id: Optional[str] = None,
    ) -> BatchSendResult:
        envelopes = [
            await self.send_pipeline.prepare(body, properties, session_id) for body in bodies
        ]
        return await self.batch_assembler.send(envelopes)

    async def schedule_message(
        self,
        body: Body,
        scheduled_time: datetime,
        properties: Optional[Mapping[str, Any]] = None,
        session_id: Optional[str] = None,
    ) -> Optional[int]:
        return await self.send_pipeline.schedule(body, scheduled_time, properties, session_id)

    async def _receive(
        self, max_messages: int, wait_seconds: Optional[float], sub_queue: SubQueue
    ) -> List[MessageEnvelope]:
        wait = self.settings.receive_wait_seconds if wait_seconds is None else wait_seconds
        return await self.retry.execute(self.transport.receive, max_messages, wait, sub_queue)

    async def _resolve_all(self, envelopes: List[MessageEnvelope]) -> List[LargeMessage]:
        messages = []
        for envelope in envelopes:
            try:
                messages.append(await self.receive_pipeline.resolve(envelope))
            except Exception:
                await self._release(envelopes)
                raise
        return messages

    async def _release(self, envelopes: Iterable[MessageEnvelope]) -> None:
        for envelope in envelopes:
            try:
                await self.retry.execute(self.transport.abandon, envelope)
            except Exception as e:
                logger.error(
                    "Failed to release message",
                    message_id=envelope.message_id,
                    error=str(e)
                )

    async def receive_messages(
        self, max_messages: int = 10, wait_seconds: Optional[float] = None
    ) -> List[LargeMessage]:
        """Receive and resolve one round; a resolution failure abandons the whole round."""
        envelopes = await self._receive(max_messages, wait_seconds, SubQueue.NONE)
        return await self._resolve_all(envelopes)

    async def receive_dead_letter_messages(
        self, max_messages: int = 10, wait_seconds: Optional[float] = None
    ) -> List[LargeMessage]:
        envelopes = await self._receive(max_messages, wait_seconds, SubQueue.DEAD_LETTER)
        return await self._resolve_all(envelopes)

    async def receive_deferred_message(self, sequence_number: int) -> Optional[LargeMessage]:
        envelope = await self.retry.execute(self.transport.receive_deferred, sequence_number)
        if envelope is None:
            logger.warning("Deferred message not found", sequence_number=sequence_number)
            return None
        return await self.receive_pipeline.resolve(envelope)

    async def receive_deferred_messages(self, sequence_numbers: Iterable[int]) -> List[LargeMessage]:
        messages = []
        for sequence_number in sequence_numbers:
            try:
                message = await self.receive_deferred_message(sequence_number)
            except Exception as e:
                logger.error(
                    "Failed to receive deferred message",
                    sequence_number=sequence_number,
                    error=str(e)
                )
                continue
            if message is not None:
                messages.append(message)
        return messages

    async def complete_message(self, message: LargeMessage) -> None:
        await self.retry.execute(self.transport.complete, _envelope_of(message))

    async def abandon_message(self, message: LargeMessage) -> None:
        await self.retry.execute(self.transport.abandon, _envelope_of(message))

    async def defer_message(self, message: LargeMessage) -> None:
        await self.retry.execute(self.transport.defer, _envelope_of(message))

    async def renew_message_lock(self, message: LargeMessage) -> datetime:
        return await self.retry.execute(self.transport.renew_lock, _envelope_of(message))

    async def renew_message_lock_batch(self, messages: Iterable[LargeMessage]) -> Dict[str, datetime]:
        """Renew every lock concurrently; failed renewals are logged and left out."""
        messages = list(messages)
        results = await asyncio.gather(
            *(self.renew_message_lock(m) for m in messages), return_exceptions=True
        )
        renewed = {}
        for message, result in zip(messages, results):
            if isinstance(result, Exception):
                logger.error(
                    "Failed to renew message lock",
                    message_id=message.message_id,
                    error=str(result)
                )
            else:
                renewed[message.message_id] = result
        return renewed

    async def dead_letter_message(
        self,
        message: LargeMessage,
        reason: Optional[str] = None,
        description: Optional[str] = None,
    ) -> None:
        await self.retry.execute(
            self.transport.dead_letter,
            _envelope_of(message),
            reason or self.settings.dead_letter_reason,
            description,
        )

    async def _settle_failure(self, envelope: MessageEnvelope, error: Exception) -> Optional[Exception]:
        logger.error(
            "Error processing message",
            message_id=envelope.message_id,
            error=str(error),
            error_type=type(error).__name__
        )
        try:
            if not self.settings.dead_letter_on_failure:
                await self.retry.execute(self.transport.abandon, envelope)
                return error
            await self.retry.execute(
                self.transport.dead_letter,
                envelope,
                self.settings.dead_letter_reason,
                processing_failure_description(error),
            )
        except Exception as e:
            logger.error("Failed to settle message", message_id=envelope.message_id, error=str(e))
            return e
        return None

    async def process_messages(
        self,
        handler: Callable[[LargeMessage], Awaitable[Any]],
        max_messages: int = 10,
        wait_seconds: Optional[float] = None,
    ) -> int:
        """
        Receive one round of messages and await `handler` on each.

        Completion, dead-lettering and abandonment follow
        LargeMessageClient.process_messages: every message of the round is
        settled before the first unsettled error is raised.
        """
        handled = 0
        first_error = None
        for envelope in await self._receive(max_messages, wait_seconds, SubQueue.NONE):
            try:
                message = await self.receive_pipeline.resolve(envelope)
                await handler(message)
            except Exception as e:
                error = await self._settle_failure(envelope, e)
            else:
                try:
                    await self.retry.execute(self.transport.complete, envelope)
                except Exception as e:
                    logger.error("Failed to complete message", message_id=envelope.message_id, error=str(e))
                    error = e
                else:
                    error = None
                    handled += 1
            if error is not None and first_error is None:
                first_error = error
        if first_error is not None:
            raise first_error
        return handled

    async def run_processor(
        self,
        handler: Callable[[LargeMessage], Awaitable[Any]],
        stop_event: asyncio.Event,
        max_messages: int = 10,
        wait_seconds: Optional[float] = None,
    ) -> int:
        """Call process_messages until `stop_event` is set; returns the total handled."""
        total = 0
        logger.info("Message processor started")
        while not stop_event.is_set():
            total += await self.process_messages(handler, max_messages, wait_seconds)
            # Yield so a stop request from another task is seen even when idle
            await asyncio.sleep(0)
        logger.info("Message processor stopped", handled=total)
        return total

    async def delete_payload(self, message: LargeMessage) -> bool:
        return await self.cleanup.delete_payload(message)

    async def delete_payload_batch(self, messages: Iterable[LargeMessage]) -> int:
        return await self.cleanup.delete_payload_batch(messages)

    async def cleanup_expired_payloads(self) -> int:
        return await self.cleanup.cleanup_expired_payloads()

    async def generate_payload_url(
        self, message: LargeMessage, valid_for: timedelta = timedelta(hours=1)
    ) -> Optional[str]:
        if message.blob_pointer is None:
            return None
        return await self.payload_store.generate_read_url(message.blob_pointer, valid_for)

    async def close(self) -> None:
        await self.transport.close()

    async def __aenter__(self) -> "AsyncLargeMessageClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

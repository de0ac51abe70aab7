"""
Module: send.py
Description: Send pipeline: validate, decide, offload, tag, dispatch.

prepare() turns a caller body into the envelope that goes on the queue.
When the encoded body is over the threshold (or the criteria ask for it)
the payload is written once to the payload store and the body becomes a
pointer. Dispatch is retried separately from the offload, so a failing
send never causes a second blob write.

Key Components:
- SendPipeline: blocking pipeline over QueueTransport and PayloadStore
- AsyncSendPipeline: same stages awaited in order

Dependencies: pydantic (models), tenacity (via RetryExecutor)
Author: Large Message Client Team
"""

from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from large_message.config.constants import (
    BLOB_POINTER_MARKER,
    LARGE_MESSAGE_CLIENT_USER_AGENT,
    USER_AGENT_VALUE,
)
from large_message.config.criteria import MessageSizeCriteria, encoded_size
from large_message.config.settings import LargeMessageSettings
from large_message.models.message import MessageEnvelope
from large_message.models.pointer import BlobPointer
from large_message.sqs_queue.base import AsyncQueueTransport, QueueTransport
from large_message.storage.naming import (
    BlobNameResolver,
    DefaultBlobNameResolver,
    DefaultMessageBodyReplacer,
    MessageBodyReplacer,
)
from large_message.storage.payload_store import AsyncPayloadStore, PayloadStore, resolve_content_type
from large_message.utils.dedup import compute_content_hash
from large_message.utils.logger import get_logger
from large_message.utils.properties import validate_properties
from large_message.utils.retry import AsyncRetryExecutor, RetryExecutor
from large_message.utils.tracing import NullTracer, Tracer

logger = get_logger(__name__)

Body = Union[str, bytes]


class _SendStages:
    """Pure stages shared by the blocking and async pipelines."""

    def __init__(
        self,
        settings: LargeMessageSettings,
        criteria: Optional[MessageSizeCriteria] = None,
        blob_name_resolver: Optional[BlobNameResolver] = None,
        body_replacer: Optional[MessageBodyReplacer] = None,
        tracer: Optional[Tracer] = None,
    ):
        self.settings = settings
        self.criteria = criteria
        self.blob_name_resolver = blob_name_resolver or DefaultBlobNameResolver(
            settings.blob_key_prefix
        )
        self.body_replacer = body_replacer or DefaultMessageBodyReplacer()
        self.tracer = tracer or NullTracer()

    def _begin(
        self, body: Body, properties: Optional[Mapping[str, Any]]
    ) -> Tuple[Dict[str, Any], int, bool]:
        if body is None:
            raise ValueError("body must not be None")
        validate_properties(properties, self.settings.max_allowed_properties)

        props = dict(properties or {})
        size = encoded_size(body)
        offload = self.should_offload(body, props, size)
        return props, size, offload

    def should_offload(self, body: Body, properties: Mapping[str, Any], size: int) -> bool:
        if not self.settings.payload_support_enabled:
            return False
        if self.settings.always_through_blob or size > self.settings.message_size_threshold:
            return True
        return bool(self.criteria and self.criteria.should_offload(body, properties))

    def _replace(
        self, body: Body, props: Dict[str, Any], size: int, pointer: BlobPointer
    ) -> Body:
        props[self.settings.reserved_attribute_name] = size
        props[BLOB_POINTER_MARKER] = True
        return self.body_replacer.replace(body, pointer)

    def _envelope(
        self,
        original_body: Body,
        body: Body,
        props: Dict[str, Any],
        session_id: Optional[str],
        message_id: Optional[str],
        content_type: Optional[str],
    ) -> MessageEnvelope:
        if self.settings.enable_duplicate_detection_id:
            message_id = compute_content_hash(original_body)

        props[LARGE_MESSAGE_CLIENT_USER_AGENT] = USER_AGENT_VALUE
        self.tracer.inject(props)

        return MessageEnvelope(
            body=body,
            properties=props,
            session_id=session_id,
            message_id=message_id,
            content_type=resolve_content_type(
                original_body, content_type, self.settings.default_content_type
            ),
        )


class SendPipeline(_SendStages):
    """
    Blocking send pipeline.

    Attributes:
        transport: Queue transport receiving the prepared envelopes
        payload_store: Retried payload store used for offloads
        retry: Executor wrapping transport dispatch
    """

    def __init__(
        self,
        transport: QueueTransport,
        payload_store: PayloadStore,
        settings: LargeMessageSettings,
        retry: Optional[RetryExecutor] = None,
        criteria: Optional[MessageSizeCriteria] = None,
        blob_name_resolver: Optional[BlobNameResolver] = None,
        body_replacer: Optional[MessageBodyReplacer] = None,
        tracer: Optional[Tracer] = None,
    ):
        super().__init__(settings, criteria, blob_name_resolver, body_replacer, tracer)
        self.transport = transport
        self.payload_store = payload_store
        self.retry = retry or RetryExecutor(settings.retry_policy())

    def prepare(
        self,
        body: Body,
        properties: Optional[Mapping[str, Any]] = None,
        session_id: Optional[str] = None,
        message_id: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> MessageEnvelope:
        """
        Build the outgoing envelope, offloading the payload when needed.

        Raises:
            PropertyValidationError: Before any store interaction
            RetryExhaustedError: If the offload write keeps failing
        """
        props, size, offload = self._begin(body, properties)

        outgoing = body
        if offload:
            blob_name = self.blob_name_resolver.resolve(body, props)
            pointer = self.payload_store.put(blob_name, body, content_type)
            outgoing = self._replace(body, props, size, pointer)

        envelope = self._envelope(body, outgoing, props, session_id, message_id, content_type)
        logger.debug("Message prepared", size=size, offloaded=offload, message_id=envelope.message_id)
        return envelope

    def dispatch(self, envelope: MessageEnvelope) -> Optional[str]:
        return self.retry.execute(self.transport.send, envelope)

    def send(
        self,
        body: Body,
        properties: Optional[Mapping[str, Any]] = None,
        session_id: Optional[str] = None,
        message_id: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> MessageEnvelope:
        """Prepare and dispatch one message; returns the envelope sent."""
        with self.tracer.span("large_message.send", session_id=session_id):
            envelope = self.prepare(body, properties, session_id, message_id, content_type)
            transport_id = self.dispatch(envelope)
        if envelope.message_id is None and transport_id:
            envelope.message_id = transport_id
        return envelope

    def schedule(
        self,
        body: Body,
        scheduled_time: datetime,
        properties: Optional[Mapping[str, Any]] = None,
        session_id: Optional[str] = None,
        message_id: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> Optional[int]:
        """Prepare one message and enqueue it at `scheduled_time`."""
        with self.tracer.span("large_message.schedule", session_id=session_id):
            envelope = self.prepare(body, properties, session_id, message_id, content_type)
            return self.retry.execute(self.transport.schedule, envelope, scheduled_time)


class AsyncSendPipeline(_SendStages):
    """Non-blocking send pipeline; stages run as one awaited chain."""

    def __init__(
        self,
        transport: AsyncQueueTransport,
        payload_store: AsyncPayloadStore,
        settings: LargeMessageSettings,
        retry: Optional[AsyncRetryExecutor] = None,
        criteria: Optional[MessageSizeCriteria] = None,
        blob_name_resolver: Optional[BlobNameResolver] = None,
        body_replacer: Optional[MessageBodyReplacer] = None,
        tracer: Optional[Tracer] = None,
    ):
        super().__init__(settings, criteria, blob_name_resolver, body_replacer, tracer)
        self.transport = transport
        self.payload_store = payload_store
        self.retry = retry or AsyncRetryExecutor(settings.retry_policy())

    async def prepare(
        self,
        body: Body,
        properties: Optional[Mapping[str, Any]] = None,
        session_id: Optional[str] = None,
        message_id: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> MessageEnvelope:
        props, size, offload = self._begin(body, properties)

        outgoing = body
        if offload:
            blob_name = self.blob_name_resolver.resolve(body, props)
            pointer = await self.payload_store.put(blob_name, body, content_type)
            outgoing = self._replace(body, props, size, pointer)

        return self._envelope(body, outgoing, props, session_id, message_id, content_type)

    async def dispatch(self, envelope: MessageEnvelope) -> Optional[str]:
        return await self.retry.execute(self.transport.send, envelope)

    async def send(
        self,
        body: Body,
        properties: Optional[Mapping[str, Any]] = None,
        session_id: Optional[str] = None,
        message_id: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> MessageEnvelope:
        with self.tracer.span("large_message.send", session_id=session_id):
            envelope = await self.prepare(body, properties, session_id, message_id, content_type)
            transport_id = await self.dispatch(envelope)
        if envelope.message_id is None and transport_id:
            envelope.message_id = transport_id
        return envelope

    async def schedule(
        self,
        body: Body,
        scheduled_time: datetime,
        properties: Optional[Mapping[str, Any]] = None,
        session_id: Optional[str] = None,
        message_id: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> Optional[int]:
        with self.tracer.span("large_message.schedule", session_id=session_id):
            envelope = await self.prepare(body, properties, session_id, message_id, content_type)
            return await self.retry.execute(self.transport.schedule, envelope, scheduled_time)

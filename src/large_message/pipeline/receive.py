"""
Module: receive.py
Description: Resolves received envelopes into LargeMessages.

A message whose pointer marker is set has its body decoded as a
BlobPointer and replaced by the stored payload. Reserved bookkeeping
properties (pointer marker, both size-marker spellings, version tag) and
trace context are removed from what the caller sees.
"""

from typing import Any, Dict, Optional, Tuple

from large_message.config.constants import (
    BLOB_POINTER_MARKER,
    LARGE_MESSAGE_CLIENT_USER_AGENT,
    SIZE_MARKER_NAMES,
)
from large_message.config.settings import LargeMessageSettings
from large_message.models.message import LargeMessage, MessageEnvelope
from large_message.models.pointer import BlobPointer, decode_pointer
from large_message.storage.payload_store import AsyncPayloadStore, PayloadStore
from large_message.utils.errors import PayloadNotFoundError
from large_message.utils.logger import get_logger
from large_message.utils.tracing import NullTracer, Tracer

logger = get_logger(__name__)


def is_pointer_marker_set(value: Any) -> bool:
    """The marker is a boolean; some producers send the string "true"."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


class _ReceiveStages:
    def __init__(self, settings: LargeMessageSettings, tracer: Optional[Tracer] = None):
        self.settings = settings
        self.tracer = tracer or NullTracer()

    def _clean(self, envelope: MessageEnvelope) -> Tuple[Dict[str, Any], bool]:
        props = dict(envelope.properties)
        marker = props.pop(BLOB_POINTER_MARKER, None)
        for name in SIZE_MARKER_NAMES:
            props.pop(name, None)
        props.pop(LARGE_MESSAGE_CLIENT_USER_AGENT, None)
        self.tracer.extract(props)
        is_blob = is_pointer_marker_set(marker) and self.settings.payload_support_enabled
        return props, is_blob

    def _missing(self, pointer: BlobPointer, envelope: MessageEnvelope) -> bytes:
        if self.settings.ignore_payload_not_found:
            logger.warning(
                "Payload not found, delivering empty body",
                message_id=envelope.message_id,
                container_name=pointer.container_name,
                blob_name=pointer.blob_name
            )
            return b""
        logger.error(
            "Payload not found",
            message_id=envelope.message_id,
            container_name=pointer.container_name,
            blob_name=pointer.blob_name
        )
        raise PayloadNotFoundError(pointer.container_name, pointer.blob_name)

    @staticmethod
    def _message(
        envelope: MessageEnvelope,
        body: bytes,
        props: Dict[str, Any],
        pointer: Optional[BlobPointer],
    ) -> LargeMessage:
        return LargeMessage(
            message_id=envelope.message_id,
            body=body,
            properties=props,
            payload_from_blob=pointer is not None,
            blob_pointer=pointer,
            delivery_count=envelope.delivery_count,
            dead_letter_reason=envelope.dead_letter_reason,
            dead_letter_description=envelope.dead_letter_description,
            session_id=envelope.session_id,
            sequence_number=envelope.sequence_number,
            envelope=envelope,
        )


class ReceivePipeline(_ReceiveStages):
    """Blocking receive pipeline; blob reads go through the retried PayloadStore."""

    def __init__(
        self,
        payload_store: PayloadStore,
        settings: LargeMessageSettings,
        tracer: Optional[Tracer] = None,
    ):
        super().__init__(settings, tracer)
        self.payload_store = payload_store

    def resolve(self, envelope: MessageEnvelope) -> LargeMessage:
        """
        Resolve one received envelope.

        Raises:
            InvalidPointerError: If a flagged body is not a valid pointer
            PayloadNotFoundError: If the blob is missing and not ignored
            RetryExhaustedError: If the blob read keeps failing
        """
        props, is_blob = self._clean(envelope)
        if not is_blob:
            return self._message(envelope, envelope.body, props, None)

        pointer = decode_pointer(envelope.body)
        with self.tracer.span("large_message.resolve", blob_name=pointer.blob_name):
            data = self.payload_store.get(pointer)
        if data is None:
            data = self._missing(pointer, envelope)
        return self._message(envelope, data, props, pointer)


class AsyncReceivePipeline(_ReceiveStages):
    def __init__(
        self,
        payload_store: AsyncPayloadStore,
        settings: LargeMessageSettings,
        tracer: Optional[Tracer] = None,
    ):
        super().__init__(settings, tracer)
        self.payload_store = payload_store

    async def resolve(self, envelope: MessageEnvelope) -> LargeMessage:
        props, is_blob = self._clean(envelope)
        if not is_blob:
            return self._message(envelope, envelope.body, props, None)

        pointer = decode_pointer(envelope.body)
        with self.tracer.span("large_message.resolve", blob_name=pointer.blob_name):
            data = await self.payload_store.get(pointer)
        if data is None:
            data = self._missing(pointer, envelope)
        return self._message(envelope, data, props, pointer)

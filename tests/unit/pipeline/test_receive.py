"""
Module: test_receive.py
Description: Unit tests for resolving received envelopes.
"""

import pytest

from large_message.config.constants import (
    BLOB_POINTER_MARKER,
    LARGE_MESSAGE_CLIENT_USER_AGENT,
    LEGACY_RESERVED_ATTRIBUTE_NAME,
    RESERVED_ATTRIBUTE_NAME,
)
from large_message.models.message import MessageEnvelope
from large_message.models.pointer import BlobPointer, encode_pointer
from large_message.pipeline.receive import AsyncReceivePipeline, ReceivePipeline, is_pointer_marker_set
from large_message.storage.memory import AsyncInMemoryBlobStore, InMemoryBlobStore
from large_message.storage.payload_store import AsyncPayloadStore, PayloadStore
from large_message.utils.errors import InvalidPointerError, PayloadNotFoundError
from large_message.utils.tracing import LoggingTracer

CONTAINER = "test-large-message-payloads"


@pytest.fixture
def store():
    return InMemoryBlobStore(container_name=CONTAINER)


def _pipeline(store, settings, tracer=None):
    return ReceivePipeline(PayloadStore(store), settings, tracer)


def _offloaded(store, data=b"big payload", **properties):
    pointer = store.put("blob-1", data, "text/plain")
    props = {
        BLOB_POINTER_MARKER: True,
        RESERVED_ATTRIBUTE_NAME: len(data),
        LARGE_MESSAGE_CLIENT_USER_AGENT: "LargeMessageClient/1.0.0",
    }
    props.update(properties)
    return MessageEnvelope(
        body=encode_pointer(pointer), properties=props, message_id="m-1", delivery_count=1
    )


class TestPointerMarker:
    @pytest.mark.parametrize("value,expected", [
        (True, True),
        (False, False),
        ("true", True),
        ("TRUE", True),
        ("false", False),
        (1, False),
        (None, False),
    ])
    def test_is_pointer_marker_set(self, value, expected):
        assert is_pointer_marker_set(value) is expected


class TestReceivePipeline:
    def test_inline_message_passes_through(self, store, test_settings):
        envelope = MessageEnvelope(
            body=b"inline",
            properties={"k": "v", LARGE_MESSAGE_CLIENT_USER_AGENT: "LargeMessageClient/1.0.0"},
            message_id="m-1",
            session_id="s-1",
            sequence_number=7,
        )

        message = _pipeline(store, test_settings).resolve(envelope)

        assert message.body == b"inline"
        assert message.properties == {"k": "v"}
        assert not message.payload_from_blob
        assert message.blob_pointer is None
        assert message.session_id == "s-1"
        assert message.sequence_number == 7
        assert message.envelope is envelope

    def test_offloaded_message_resolved(self, store, test_settings):
        message = _pipeline(store, test_settings).resolve(_offloaded(store, k="v"))

        assert message.body == b"big payload"
        assert message.payload_from_blob
        assert message.blob_pointer == BlobPointer(container_name=CONTAINER, blob_name="blob-1")
        assert message.properties == {"k": "v"}

    def test_legacy_size_marker_removed(self, store, test_settings):
        envelope = _offloaded(store)
        envelope.properties[LEGACY_RESERVED_ATTRIBUTE_NAME] = 11

        message = _pipeline(store, test_settings).resolve(envelope)

        assert message.properties == {}

    def test_string_marker_accepted(self, store, test_settings):
        envelope = _offloaded(store)
        envelope.properties[BLOB_POINTER_MARKER] = "true"

        assert _pipeline(store, test_settings).resolve(envelope).payload_from_blob

    def test_missing_payload_raises(self, store, test_settings):
        envelope = _offloaded(store)
        store.delete(BlobPointer(container_name=CONTAINER, blob_name="blob-1"))

        with pytest.raises(PayloadNotFoundError):
            _pipeline(store, test_settings).resolve(envelope)

    def test_missing_payload_ignored(self, store, settings_factory):
        envelope = _offloaded(store)
        store.delete(BlobPointer(container_name=CONTAINER, blob_name="blob-1"))

        message = _pipeline(store, settings_factory(ignore_payload_not_found=True)).resolve(envelope)

        assert message.body == b""
        assert message.payload_from_blob

    def test_invalid_pointer_raises(self, store, test_settings):
        envelope = MessageEnvelope(body=b"not json", properties={BLOB_POINTER_MARKER: True})

        with pytest.raises(InvalidPointerError):
            _pipeline(store, test_settings).resolve(envelope)

    def test_payload_support_disabled_leaves_pointer(self, store, settings_factory):
        envelope = _offloaded(store)

        message = _pipeline(store, settings_factory(payload_support_enabled=False)).resolve(envelope)

        assert message.body == envelope.body
        assert not message.payload_from_blob

    def test_traceparent_removed(self, store, test_settings):
        envelope = MessageEnvelope(
            body=b"inline",
            properties={"traceparent": "00-" + "a" * 32 + "-" + "b" * 16 + "-01", "k": "v"},
        )

        message = _pipeline(store, test_settings, LoggingTracer()).resolve(envelope)

        assert message.properties == {"k": "v"}


class TestAsyncReceivePipeline:
    @pytest.mark.asyncio
    async def test_offloaded_message_resolved(self, store, test_settings):
        envelope = _offloaded(store)
        pipeline = AsyncReceivePipeline(
            AsyncPayloadStore(AsyncInMemoryBlobStore(store)), test_settings
        )

        message = await pipeline.resolve(envelope)

        assert message.body == b"big payload"
        assert message.properties == {}

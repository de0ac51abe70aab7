"""
Module: test_async_client.py
Description: Unit tests for AsyncLargeMessageClient over in-memory adapters.
"""

import asyncio

import pytest

from large_message.async_client import AsyncLargeMessageClient
from large_message.sqs_queue.base import SubQueue
from large_message.sqs_queue.memory import AsyncInMemoryQueueTransport, InMemoryQueueTransport
from large_message.storage.memory import AsyncInMemoryBlobStore, InMemoryBlobStore
from large_message.utils.errors import PayloadNotFoundError

LARGE_BODY = "y" * 5000


@pytest.fixture
def queue():
    return InMemoryQueueTransport()


@pytest.fixture
def blobs():
    return InMemoryBlobStore(container_name="test-large-message-payloads")


@pytest.fixture
def async_client(queue, blobs, test_settings):
    return AsyncLargeMessageClient(
        AsyncInMemoryQueueTransport(queue), AsyncInMemoryBlobStore(blobs), settings=test_settings
    )


class TestAsyncLargeMessageClient:
    @pytest.mark.asyncio
    async def test_send_and_receive(self, async_client, blobs):
        await async_client.send_message("small")
        await async_client.send_message(LARGE_BODY, properties={"k": "v"})

        small, large = await async_client.receive_messages()

        assert small.text == "small"
        assert large.text == LARGE_BODY
        assert large.properties == {"k": "v"}
        assert large.payload_from_blob
        assert len(blobs) == 1

    @pytest.mark.asyncio
    async def test_send_messages_concurrently(self, async_client, queue):
        envelopes = await async_client.send_messages(["a", "b", LARGE_BODY])

        assert len(envelopes) == 3
        assert len(queue.sent) == 3

    @pytest.mark.asyncio
    async def test_send_message_batch(self, async_client, queue):
        result = await async_client.send_message_batch(["a", "b", LARGE_BODY])

        assert result.total_sent == 3
        assert queue.batches_sent == 1

    @pytest.mark.asyncio
    async def test_process_messages(self, async_client, queue):
        await async_client.send_messages(["ok", "fail"])
        seen = []

        async def handler(message):
            if message.text == "fail":
                raise RuntimeError("boom")
            seen.append(message.text)

        handled = await async_client.process_messages(handler)

        assert handled == 1
        assert seen == ["ok"]
        assert queue.pending_count() == 0
        [dead] = await async_client.receive_dead_letter_messages()
        assert dead.dead_letter_description == "Processing failed: boom"

    @pytest.mark.asyncio
    async def test_defer_and_renew(self, async_client):
        await async_client.send_messages(["a", "b"])
        first, second = await async_client.receive_messages()

        await async_client.defer_message(first)
        renewed = await async_client.renew_message_lock_batch([first, second])
        deferred = await async_client.receive_deferred_messages([first.sequence_number])

        assert list(renewed) == [second.message_id]
        assert [m.text for m in deferred] == ["a"]

    @pytest.mark.asyncio
    async def test_cleanup(self, async_client, blobs):
        await async_client.send_messages([LARGE_BODY, LARGE_BODY])
        messages = await async_client.receive_messages()

        assert await async_client.generate_payload_url(messages[0])
        assert await async_client.delete_payload_batch(messages) == 2
        assert len(blobs) == 0

    @pytest.mark.asyncio
    async def test_run_processor_until_stopped(self, async_client, queue):
        await async_client.send_messages(["a", "b", "c"])
        stop = asyncio.Event()
        seen = []

        async def handler(message):
            seen.append(message.text)
            if len(seen) == 3:
                stop.set()

        total = await asyncio.wait_for(async_client.run_processor(handler, stop), timeout=5)

        assert total == 3
        assert sorted(seen) == ["a", "b", "c"]
        assert queue.pending_count(SubQueue.NONE) == 0

    @pytest.mark.asyncio
    async def test_failure_does_not_strand_rest_of_round(self, queue, blobs, settings_factory):
        client = AsyncLargeMessageClient(
            AsyncInMemoryQueueTransport(queue),
            AsyncInMemoryBlobStore(blobs),
            settings=settings_factory(dead_letter_on_failure=False),
        )
        await client.send_messages(["poison", "b", "c"])
        seen = []

        async def handler(message):
            if message.text == "poison":
                raise RuntimeError("boom")
            seen.append(message.text)

        with pytest.raises(RuntimeError, match="boom"):
            await client.process_messages(handler)

        assert sorted(seen) == ["b", "c"]
        assert queue.pending_count(SubQueue.NONE) == 1
        [again] = await client.receive_messages()
        assert again.delivery_count == 2

    @pytest.mark.asyncio
    async def test_unresolvable_payload_releases_whole_round(self, async_client, queue, blobs):
        await async_client.send_messages([LARGE_BODY, "b"])
        blobs._blobs.clear()

        with pytest.raises(PayloadNotFoundError):
            await async_client.receive_messages()

        assert len(queue.receive(10, 0)) == 2

    @pytest.mark.asyncio
    async def test_context_manager(self, queue, blobs, test_settings):
        async with AsyncLargeMessageClient(
            AsyncInMemoryQueueTransport(queue), AsyncInMemoryBlobStore(blobs), settings=test_settings
        ) as client:
            await client.send_message("hello")

        assert len(queue.sent) == 1

"""
Module: test_client.py
Description: Unit tests for LargeMessageClient over in-memory adapters.

Exercises the full send -> receive -> settle -> cleanup flow, batch sends,
scheduling, deferral, dead-lettering, message processing and lock renewal.
"""

from datetime import datetime, timedelta, timezone

import pytest

from large_message.client import LargeMessageClient
from large_message.config.constants import BLOB_POINTER_MARKER
from large_message.models.message import LargeMessage
from large_message.sqs_queue.base import SubQueue
from large_message.sqs_queue.memory import InMemoryQueueTransport
from large_message.storage.memory import InMemoryBlobStore
from large_message.utils.errors import PayloadNotFoundError, QueueOperationError

LARGE_BODY = "x" * 5000


class TestSendAndReceive:
    def test_small_message_inline(self, client, blob_store):
        client.send_message("hello", properties={"k": "v"})

        [message] = client.receive_messages()

        assert message.text == "hello"
        assert message.properties == {"k": "v"}
        assert not message.payload_from_blob
        assert len(blob_store) == 0

    def test_large_message_offloaded(self, client, blob_store, transport):
        sent = client.send_message(LARGE_BODY, properties={"k": "v"})

        assert sent.properties[BLOB_POINTER_MARKER] is True
        assert len(transport.sent[0].body) < 200
        assert len(blob_store) == 1

        [message] = client.receive_messages()

        assert message.text == LARGE_BODY
        assert message.properties == {"k": "v"}
        assert message.payload_from_blob
        assert message.delivery_count == 1

    def test_binary_payload_round_trip(self, client):
        payload = bytes(range(256)) * 20

        client.send_message(payload)
        [message] = client.receive_messages()

        assert message.body == payload

    def test_missing_payload_surfaces_error(self, client, blob_store):
        client.send_message(LARGE_BODY)
        for name in blob_store.list_blobs():
            blob_store._blobs.pop(name)

        with pytest.raises(PayloadNotFoundError):
            client.receive_messages()

    def test_send_messages_in_order(self, client):
        client.send_messages(["a", "b", LARGE_BODY])

        bodies = [m.text for m in client.receive_messages()]

        assert bodies == ["a", "b", LARGE_BODY]

    def test_session_id_carried(self, client):
        client.send_message("hello", session_id="s-1")

        [message] = client.receive_messages()

        assert message.session_id == "s-1"

    def test_unresolvable_payload_releases_whole_round(self, client, blob_store, transport):
        client.send_messages(["a", LARGE_BODY, "c"])
        for name in blob_store.list_blobs():
            blob_store._blobs.pop(name)

        with pytest.raises(PayloadNotFoundError):
            client.receive_messages()

        envelopes = transport.receive(10, 0)
        assert len(envelopes) == 3
        assert [e.delivery_count for e in envelopes] == [2, 2, 2]


class TestBatchSend:
    def test_send_message_batch(self, test_settings):
        transport = InMemoryQueueTransport(max_batch_entries=3, max_batch_size_bytes=1000)
        with LargeMessageClient(transport, InMemoryBlobStore(), settings=test_settings) as client:
            result = client.send_message_batch(["a", "b", "c", "d", LARGE_BODY])

            assert result.total_sent == 5
            assert result.individual_count == 0
            assert result.batch_count == 2
            bodies = [m.text for m in client.receive_messages()]

        assert bodies == ["a", "b", "c", "d", LARGE_BODY]

    def test_oversized_pointer_message_sent_individually(self, test_settings):
        transport = InMemoryQueueTransport(max_batch_size_bytes=10)
        with LargeMessageClient(transport, InMemoryBlobStore(), settings=test_settings) as client:
            result = client.send_message_batch(["small", LARGE_BODY])

        assert result.batched_count == 1
        assert result.individual_count == 1


class TestSettlement:
    def test_complete_removes_message(self, client, transport):
        client.send_message("hello")
        [message] = client.receive_messages()

        client.complete_message(message)

        assert transport.pending_count() == 0

    def test_complete_does_not_delete_payload(self, client, blob_store):
        client.send_message(LARGE_BODY)
        [message] = client.receive_messages()

        client.complete_message(message)

        assert len(blob_store) == 1
        assert client.delete_payload(message)
        assert len(blob_store) == 0

    def test_abandon_redelivers(self, client):
        client.send_message("hello")
        [message] = client.receive_messages()

        client.abandon_message(message)
        [again] = client.receive_messages()

        assert again.delivery_count == 2

    def test_defer_and_receive_deferred(self, client):
        client.send_message(LARGE_BODY)
        [message] = client.receive_messages()

        client.defer_message(message)

        assert client.receive_messages() == []
        [deferred] = client.receive_deferred_messages([message.sequence_number, 999])
        assert deferred.text == LARGE_BODY
        assert client.receive_deferred_message(999) is None

    def test_dead_letter_with_reason(self, client):
        client.send_message("poison")
        [message] = client.receive_messages()

        client.dead_letter_message(message, description="bad data")

        [dead] = client.receive_dead_letter_messages()
        assert dead.dead_letter_reason == client.settings.dead_letter_reason
        assert dead.dead_letter_description == "bad data"
        assert dead.text == "poison"

    def test_settling_unreceived_message_rejected(self, client):
        with pytest.raises(ValueError):
            client.complete_message(LargeMessage(body=b"x"))

    def test_renew_lock_batch_skips_failures(self, client):
        client.send_message("a")
        client.send_message("b")
        first, second = client.receive_messages()
        client.complete_message(second)

        renewed = client.renew_message_lock_batch([first, second])

        assert list(renewed) == [first.message_id]
        assert renewed[first.message_id] > datetime.now(timezone.utc)


class TestScheduling:
    def test_schedule_message(self, client, transport):
        sequence_number = client.schedule_message(
            LARGE_BODY, datetime.now(timezone.utc) + timedelta(minutes=5)
        )

        assert sequence_number == 1
        assert client.receive_messages() == []
        assert transport.pending_count() == 1


class TestProcessMessages:
    def test_success_completes(self, client, transport):
        client.send_messages(["a", LARGE_BODY])
        seen = []

        handled = client.process_messages(lambda m: seen.append(m.text))

        assert handled == 2
        assert seen == ["a", LARGE_BODY]
        assert transport.pending_count() == 0

    def test_failure_dead_letters(self, client, transport):
        client.send_message("poison")

        def handler(message):
            raise RuntimeError("boom")

        handled = client.process_messages(handler)

        assert handled == 0
        [dead] = client.receive_dead_letter_messages()
        assert dead.dead_letter_reason == client.settings.dead_letter_reason
        assert dead.dead_letter_description == "Processing failed: boom"

    def test_failure_abandons_and_raises_when_dead_lettering_disabled(self, settings_factory):
        transport = InMemoryQueueTransport()
        client = LargeMessageClient(
            transport, InMemoryBlobStore(), settings=settings_factory(dead_letter_on_failure=False)
        )
        client.send_message("poison")

        def handler(message):
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            client.process_messages(handler)

        [again] = client.receive_messages()
        assert again.delivery_count == 2
        assert transport.pending_count(SubQueue.DEAD_LETTER) == 0

    def test_failure_does_not_strand_rest_of_round(self, settings_factory):
        transport = InMemoryQueueTransport()
        client = LargeMessageClient(
            transport, InMemoryBlobStore(), settings=settings_factory(dead_letter_on_failure=False)
        )
        client.send_messages(["poison", "b", LARGE_BODY])
        seen = []

        def handler(message):
            if message.text == "poison":
                raise RuntimeError("boom")
            seen.append(message.text)

        with pytest.raises(RuntimeError, match="boom"):
            client.process_messages(handler)

        assert seen == ["b", LARGE_BODY]
        [again] = client.receive_messages()
        assert again.text == "poison"
        assert again.delivery_count == 2

    def test_dead_letter_failure_abandons_and_continues(self, client, transport):
        client.send_messages(["first", "second"])
        for message in client.receive_messages():
            client.dead_letter_message(message, reason="Manual")
        seen = []

        def handler(message):
            if message.text == "first":
                raise RuntimeError("still broken")
            seen.append(message.text)

        with pytest.raises(RuntimeError, match="still broken"):
            client.process_dead_letter_messages(handler)

        assert seen == ["second"]
        [remaining] = client.receive_dead_letter_messages()
        assert remaining.text == "first"

    def test_process_dead_letter_messages(self, client, transport):
        client.send_message("poison")
        [message] = client.receive_messages()
        client.dead_letter_message(message, reason="Manual")
        reasons = []

        handled = client.process_dead_letter_messages(lambda m: reasons.append(m.dead_letter_reason))

        assert handled == 1
        assert reasons == ["Manual"]
        assert transport.pending_count(SubQueue.DEAD_LETTER) == 0


class TestCleanup:
    def test_delete_payload_batch(self, client, blob_store):
        client.send_messages([LARGE_BODY, LARGE_BODY, "small"])
        messages = client.receive_messages()

        assert client.delete_payload_batch(messages) == 2
        assert len(blob_store) == 0

    def test_generate_payload_url(self, client):
        client.send_messages(["small", LARGE_BODY])
        inline, offloaded = client.receive_messages()

        assert client.generate_payload_url(inline) is None
        assert client.generate_payload_url(offloaded).startswith("memory://")

    def test_cleanup_expired_payloads_disabled_by_default(self, client):
        client.send_message(LARGE_BODY)

        assert client.cleanup_expired_payloads() == 0

    def test_ttl_metadata_written(self, settings_factory, blob_store, transport):
        client = LargeMessageClient(transport, blob_store, settings=settings_factory(blob_ttl_days=3))
        client.send_message(LARGE_BODY)

        [name] = blob_store.list_blobs()

        assert "expiresAt" in blob_store.get_metadata(name)
        client.close()


class TestLifecycle:
    def test_ttl_sweeper_started_and_stopped(self, settings_factory):
        client = LargeMessageClient(
            InMemoryQueueTransport(),
            InMemoryBlobStore(),
            settings=settings_factory(blob_ttl_days=1, ttl_cleanup_interval_minutes=60),
        )

        assert client.ttl_sweeper is not None and client.ttl_sweeper.running
        client.close()
        assert client.ttl_sweeper is None

    def test_close_tolerates_transport_error(self, test_settings):
        class ClosingTransport(InMemoryQueueTransport):
            def close(self):
                raise QueueOperationError("already closed")

        client = LargeMessageClient(ClosingTransport(), InMemoryBlobStore(), settings=test_settings)

        client.close()

    def test_from_settings_requires_queue_and_bucket(self, test_settings):
        with pytest.raises(ValueError):
            LargeMessageClient.from_settings(test_settings)

"""
Module: test_sqs.py
Description: Unit tests for SqsTransport against moto's SQS mock.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from botocore.exceptions import ClientError

from large_message.models.message import MessageEnvelope
from large_message.sqs_queue.base import SubQueue
from large_message.sqs_queue.sqs import ReceiptHandleRegistry, SqsTransport, schedule_delay_seconds
from large_message.utils.errors import QueueOperationError, UnsupportedOperationError


@pytest.fixture
def sqs_transport(sqs_client, sqs_queues):
    queue_url, dlq_url = sqs_queues
    return SqsTransport(queue_url, dead_letter_queue_url=dlq_url, client=sqs_client)


class TestScheduleDelay:
    def test_rounds_up(self):
        now = datetime(2030, 1, 1, tzinfo=timezone.utc)
        assert schedule_delay_seconds(now + timedelta(seconds=10, milliseconds=1), now) == 11

    def test_past_time_is_zero(self):
        now = datetime(2030, 1, 1, tzinfo=timezone.utc)
        assert schedule_delay_seconds(now - timedelta(minutes=5), now) == 0

    def test_naive_time_is_utc(self):
        now = datetime(2030, 1, 1, tzinfo=timezone.utc)
        assert schedule_delay_seconds(datetime(2030, 1, 1, 0, 1), now) == 60

    def test_over_limit_raises(self):
        now = datetime(2030, 1, 1, tzinfo=timezone.utc)
        with pytest.raises(ValueError):
            schedule_delay_seconds(now + timedelta(seconds=901), now)


class TestSqsTransport:
    """Test cases for SqsTransport."""

    def test_initialization_invalid_url(self):
        with pytest.raises(ValueError, match="queue_url must be a non-empty string"):
            SqsTransport("")

    def test_send_and_receive(self, sqs_transport):
        sqs_id = sqs_transport.send(
            MessageEnvelope(body="hello", properties={"k": 1}, message_id="m-1")
        )

        received = sqs_transport.receive(10, 0)

        assert sqs_id
        assert len(received) == 1
        assert received[0].body == b"hello"
        assert received[0].properties == {"k": 1}
        assert received[0].message_id == "m-1"
        assert received[0].delivery_count == 1
        assert received[0].lock_token

    def test_complete_deletes(self, sqs_transport, sqs_client, sqs_queues):
        sqs_transport.send(MessageEnvelope(body="hello"))
        envelope = sqs_transport.receive(1, 0)[0]

        sqs_transport.complete(envelope)

        attributes = sqs_client.get_queue_attributes(
            QueueUrl=sqs_queues[0], AttributeNames=['ApproximateNumberOfMessages', 'ApproximateNumberOfMessagesNotVisible']
        )['Attributes']
        assert attributes['ApproximateNumberOfMessages'] == '0'
        assert attributes['ApproximateNumberOfMessagesNotVisible'] == '0'

    def test_abandon_makes_message_visible(self, sqs_transport):
        sqs_transport.send(MessageEnvelope(body="hello"))
        envelope = sqs_transport.receive(1, 0)[0]

        sqs_transport.abandon(envelope)
        again = sqs_transport.receive(1, 0)

        assert len(again) == 1
        assert again[0].delivery_count == 2

    def test_settle_requires_receipt_handle(self, sqs_transport):
        with pytest.raises(ValueError):
            sqs_transport.complete(MessageEnvelope(body="never received"))

    def test_renew_lock_returns_future_expiry(self, sqs_transport):
        sqs_transport.send(MessageEnvelope(body="hello"))
        envelope = sqs_transport.receive(1, 0)[0]

        expiry = sqs_transport.renew_lock(envelope)

        assert expiry > datetime.now(timezone.utc)

    def test_send_batch(self, sqs_transport):
        batch = sqs_transport.create_batch()
        for i in range(3):
            assert batch.try_add(MessageEnvelope(body=f"m{i}"))

        sqs_transport.send_batch(batch)

        bodies = set()
        for _ in range(3):
            bodies.update(e.body for e in sqs_transport.receive(10, 0))
        assert bodies == {b"m0", b"m1", b"m2"}

    def test_send_batch_partial_failure_keeps_failed_entries(self, sqs_transport):
        batch = sqs_transport.create_batch()
        for i in range(3):
            batch.try_add(MessageEnvelope(body=f"m{i}"))
        response = {
            'Successful': [{'Id': '0'}, {'Id': '2'}],
            'Failed': [{'Id': '1', 'Code': 'InternalError', 'SenderFault': False}],
        }

        with patch.object(sqs_transport.client, 'send_message_batch', return_value=response):
            with pytest.raises(QueueOperationError):
                sqs_transport.send_batch(batch)

        assert [e.body for e in batch.envelopes] == [b"m1"]
        assert len(batch.entries) == 1

    def test_send_error_wrapped(self, sqs_transport):
        error = ClientError(
            error_response={'Error': {'Code': 'ServiceUnavailable', 'Message': 'Try later'}},
            operation_name='SendMessage'
        )
        with patch.object(sqs_transport.client, 'send_message', side_effect=error):
            with pytest.raises(QueueOperationError, match="ServiceUnavailable"):
                sqs_transport.send(MessageEnvelope(body="hello"))

    def test_dead_letter_moves_message(self, sqs_transport):
        sqs_transport.send(MessageEnvelope(body="poison", message_id="m-1"))
        envelope = sqs_transport.receive(1, 0)[0]

        sqs_transport.dead_letter(envelope, "ProcessingError", "Processing failed: boom")

        assert sqs_transport.receive(10, 0) == []
        dead = sqs_transport.receive(10, 0, SubQueue.DEAD_LETTER)
        assert len(dead) == 1
        assert dead[0].message_id == "m-1"
        assert dead[0].dead_letter_reason == "ProcessingError"
        assert dead[0].dead_letter_description == "Processing failed: boom"

        # Settling a dead-lettered message targets the dead-letter queue
        sqs_transport.complete(dead[0])
        assert sqs_transport.receive(10, 0, SubQueue.DEAD_LETTER) == []

    def test_abandoned_dead_letter_handle_forgotten(self, sqs_transport):
        sqs_transport.send(MessageEnvelope(body="poison"))
        sqs_transport.dead_letter(sqs_transport.receive(1, 0)[0], "ProcessingError")
        [dead] = sqs_transport.receive(10, 0, SubQueue.DEAD_LETTER)
        assert dead.lock_token in sqs_transport._dead_letter_handles

        sqs_transport.abandon(dead)

        assert dead.lock_token not in sqs_transport._dead_letter_handles
        assert len(sqs_transport.receive(10, 0, SubQueue.DEAD_LETTER)) == 1

    def test_dead_letter_without_queue_unsupported(self, sqs_client, sqs_queues):
        transport = SqsTransport(sqs_queues[0], client=sqs_client)
        transport.send(MessageEnvelope(body="poison"))
        envelope = transport.receive(1, 0)[0]

        with pytest.raises(UnsupportedOperationError):
            transport.dead_letter(envelope, "ProcessingError")
        with pytest.raises(UnsupportedOperationError):
            transport.receive(1, 0, SubQueue.DEAD_LETTER)

    def test_deferral_unsupported(self, sqs_transport):
        with pytest.raises(UnsupportedOperationError):
            sqs_transport.defer(MessageEnvelope(body="x", lock_token="h"))
        with pytest.raises(UnsupportedOperationError):
            sqs_transport.receive_deferred(1)

    def test_schedule_past_time_is_immediate(self, sqs_transport):
        sqs_transport.schedule(
            MessageEnvelope(body="later"), datetime.now(timezone.utc) - timedelta(seconds=5)
        )

        assert [e.body for e in sqs_transport.receive(10, 0)] == [b"later"]

    def test_schedule_beyond_limit_rejected(self, sqs_transport):
        with pytest.raises(ValueError):
            sqs_transport.schedule(
                MessageEnvelope(body="later"), datetime.now(timezone.utc) + timedelta(hours=1)
            )

    def test_schedule_on_fifo_unsupported(self, sqs_client):
        queue_url = sqs_client.create_queue(
            QueueName="test-large-messages.fifo", Attributes={'FifoQueue': 'true'}
        )['QueueUrl']
        transport = SqsTransport(queue_url, client=sqs_client)

        with pytest.raises(UnsupportedOperationError):
            transport.schedule(MessageEnvelope(body="x"), datetime.now(timezone.utc))

    def test_fifo_send_uses_session_as_group(self, sqs_client):
        queue_url = sqs_client.create_queue(
            QueueName="test-large-messages.fifo", Attributes={'FifoQueue': 'true'}
        )['QueueUrl']
        transport = SqsTransport(queue_url, client=sqs_client)

        transport.send(MessageEnvelope(body="x", session_id="s-1", message_id="m-1"))
        received = transport.receive(1, 0)

        assert received[0].session_id == "s-1"


class TestReceiptHandleRegistry:
    def test_add_and_discard(self):
        registry = ReceiptHandleRegistry()

        registry.add(["h-1", "h-2"])
        registry.discard("h-1")
        registry.discard("never-added")

        assert "h-1" not in registry
        assert "h-2" in registry
        assert len(registry) == 1

    def test_oldest_handles_evicted_at_capacity(self):
        registry = ReceiptHandleRegistry(max_size=2)

        registry.add(["h-1", "h-2"])
        registry.add(["h-3"])

        assert "h-1" not in registry
        assert "h-2" in registry and "h-3" in registry
        assert len(registry) == 2

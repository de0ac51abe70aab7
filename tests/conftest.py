"""
Module: conftest.py
Description: Shared pytest fixtures for large message client tests.

Provides settings that ignore the environment, in-memory transports and
blob stores, and moto-backed S3/SQS resources for adapter and end-to-end
tests.
"""

import boto3
import pytest
from moto import mock_aws

from large_message.client import LargeMessageClient
from large_message.config.settings import LargeMessageSettings
from large_message.sqs_queue.memory import InMemoryQueueTransport
from large_message.storage.memory import InMemoryBlobStore
from large_message.utils.retry import RetryExecutor, RetryPolicy

TEST_REGION = "us-east-1"
TEST_BUCKET = "test-large-message-payloads"


def make_settings(**overrides) -> LargeMessageSettings:
    """Settings with fast retries and no .env loading."""
    values = dict(
        log_level="DEBUG",
        message_size_threshold=1024,
        retry_max_attempts=3,
        retry_backoff_seconds=0.0,
        retry_max_backoff_seconds=0.0,
        receive_wait_seconds=0,
        aws_region=TEST_REGION,
    )
    values.update(overrides)
    return LargeMessageSettings(_env_file=None, **values)


class RecordingSleep:
    """Sleep replacement recording requested delays."""

    def __init__(self):
        self.delays = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def test_settings():
    """
    Provide test configuration settings.

    Small threshold (1 KiB) so offloading is cheap to trigger; retries
    never sleep.
    """
    return make_settings()


@pytest.fixture
def no_sleep_retry():
    """RetryExecutor with three attempts that records instead of sleeping."""
    return RetryExecutor(RetryPolicy(max_attempts=3, base_delay=0.0, max_delay=0.0), sleep=RecordingSleep())


@pytest.fixture
def blob_store():
    return InMemoryBlobStore(container_name=TEST_BUCKET)


@pytest.fixture
def transport():
    return InMemoryQueueTransport()


@pytest.fixture
def client(transport, blob_store, test_settings):
    """LargeMessageClient over in-memory transport and blob store."""
    large_message_client = LargeMessageClient(transport, blob_store, settings=test_settings)
    yield large_message_client
    large_message_client.close()


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake AWS credentials so boto3 never reaches real accounts."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", TEST_REGION)


@pytest.fixture
def mock_aws_env(aws_credentials):
    """Run the test inside a moto mock of every AWS service."""
    with mock_aws():
        yield


@pytest.fixture
def s3_client(mock_aws_env):
    return boto3.client("s3", region_name=TEST_REGION)


@pytest.fixture
def sqs_client(mock_aws_env):
    return boto3.client("sqs", region_name=TEST_REGION)


@pytest.fixture
def sqs_queues(sqs_client):
    """Create a main queue and its dead-letter queue; returns (queue_url, dlq_url)."""
    dlq_url = sqs_client.create_queue(QueueName="test-large-messages-dlq")["QueueUrl"]
    queue_url = sqs_client.create_queue(QueueName="test-large-messages")["QueueUrl"]
    return queue_url, dlq_url


@pytest.fixture
def settings_factory():
    """Build test settings with overrides, e.g. settings_factory(always_through_blob=True)."""
    return make_settings


@pytest.fixture
def recording_sleep():
    return RecordingSleep()

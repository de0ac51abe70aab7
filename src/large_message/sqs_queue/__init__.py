"""
Module: sqs_queue
Description: Queue transports.

- base: QueueTransport / AsyncQueueTransport interfaces
- sqs, sqs_async: Amazon SQS implementations (boto3, aioboto3)
- memory: in-process implementation with every operation supported
"""

from .base import AsyncQueueTransport, MessageBatch, QueueTransport, SubQueue
from .memory import AsyncInMemoryQueueTransport, InMemoryQueueTransport

__all__ = [
    "AsyncQueueTransport",
    "MessageBatch",
    "QueueTransport",
    "SubQueue",
    "AsyncInMemoryQueueTransport",
    "InMemoryQueueTransport",
]

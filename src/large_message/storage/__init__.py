"""
Module: storage
Description: Package initialization for the payload storage layer.

- base: BlobStore / AsyncBlobStore interfaces
- s3, s3_async: S3 implementations (boto3, aioboto3)
- memory: in-process implementation
- payload_store: retried facade used by the pipelines
- naming: blob naming and body replacement strategies
- receive_only: presigned URL downloads
"""

from .base import AsyncBlobStore, BlobStore
from .memory import AsyncInMemoryBlobStore, InMemoryBlobStore
from .payload_store import AsyncPayloadStore, PayloadStore
from .receive_only import ReceiveOnlyPayloadResolver

__all__ = [
    "AsyncBlobStore",
    "BlobStore",
    "InMemoryBlobStore",
    "AsyncInMemoryBlobStore",
    "AsyncPayloadStore",
    "PayloadStore",
    "ReceiveOnlyPayloadResolver",
]

"""
Module: payload_store.py
Description: Retried payload store facade over a blob store.

The facade is what the send, receive and cleanup pipelines talk to. It
turns bodies into bytes, picks the content type, stamps TTL metadata and
runs every blob store call through the retry executor.

Key Components:
- PayloadStore: facade over a BlobStore with RetryExecutor
- AsyncPayloadStore: facade over an AsyncBlobStore with AsyncRetryExecutor
- build_metadata(): contentType + optional expiresAt metadata

Dependencies: datetime, typing
Author: Large Message Client Team
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Union

from large_message.config.constants import (
    CONTENT_TYPE_METADATA_KEY,
    DEFAULT_BINARY_CONTENT_TYPE,
    DEFAULT_TEXT_CONTENT_TYPE,
    EXPIRES_AT_METADATA_KEY,
)
from large_message.models.pointer import BlobPointer
from large_message.storage.base import AsyncBlobStore, BlobStore
from large_message.utils.logger import get_logger
from large_message.utils.retry import AsyncRetryExecutor, RetryExecutor

logger = get_logger(__name__)


def to_bytes(body: Union[str, bytes]) -> bytes:
    if isinstance(body, str):
        return body.encode("utf-8")
    return bytes(body)


def resolve_content_type(
    body: Union[str, bytes],
    content_type: Optional[str],
    default_text_content_type: str = DEFAULT_TEXT_CONTENT_TYPE,
) -> str:
    """Explicit content type wins; otherwise text vs binary default."""
    if content_type:
        return content_type
    if isinstance(body, str):
        return default_text_content_type
    return DEFAULT_BINARY_CONTENT_TYPE


def build_metadata(
    content_type: str,
    ttl_days: int = 0,
    now: Optional[datetime] = None,
) -> Dict[str, str]:
    """
    Build blob metadata for an offloaded payload.

    Args:
        content_type: Resolved content type
        ttl_days: Days until expiry; 0 or less omits expiresAt
        now: Reference time (defaults to current UTC time)
    """
    metadata = {CONTENT_TYPE_METADATA_KEY: content_type}
    if ttl_days > 0:
        now = now or datetime.now(timezone.utc)
        metadata[EXPIRES_AT_METADATA_KEY] = (now + timedelta(days=ttl_days)).isoformat()
    return metadata


class PayloadStore:
    """
    Blocking payload store facade.

    Attributes:
        blob_store: Underlying blob store collaborator
        retry: Retry executor wrapping every blob store call
        ttl_days: Days until stored payloads expire (0 disables)
        default_content_type: Content type for text payloads
    """

    def __init__(
        self,
        blob_store: BlobStore,
        retry: Optional[RetryExecutor] = None,
        ttl_days: int = 0,
        default_content_type: str = DEFAULT_TEXT_CONTENT_TYPE,
    ):
        self.blob_store = blob_store
        self.retry = retry or RetryExecutor()
        self.ttl_days = ttl_days
        self.default_content_type = default_content_type

    @property
    def container_name(self) -> str:
        return self.blob_store.container_name

    def put(
        self,
        blob_name: str,
        body: Union[str, bytes],
        content_type: Optional[str] = None,
    ) -> BlobPointer:
        """Store a payload and return its pointer."""
        resolved_type = resolve_content_type(body, content_type, self.default_content_type)
        metadata = build_metadata(resolved_type, self.ttl_days)
        data = to_bytes(body)

        pointer = self.retry.execute(
            self.blob_store.put, blob_name, data, resolved_type, metadata
        )
        logger.info(
            "Payload offloaded",
            container_name=pointer.container_name,
            blob_name=pointer.blob_name,
            size=len(data),
            content_type=resolved_type
        )
        return pointer

    def get(self, pointer: BlobPointer) -> Optional[bytes]:
        """Fetch a payload; None when the blob does not exist."""
        return self.retry.execute(self.blob_store.get, pointer)

    def delete(self, pointer: BlobPointer) -> None:
        self.retry.execute(self.blob_store.delete, pointer)
        logger.debug("Payload deleted", blob_name=pointer.blob_name)

    def list_blobs(self) -> Iterable[str]:
        return self.retry.execute(lambda: list(self.blob_store.list_blobs()))

    def get_metadata(self, blob_name: str) -> Dict[str, str]:
        return self.retry.execute(self.blob_store.get_metadata, blob_name)

    def generate_read_url(self, pointer: BlobPointer, valid_for: timedelta) -> str:
        return self.blob_store.generate_read_url(pointer, valid_for)


class AsyncPayloadStore:
    """Non-blocking payload store facade."""

    def __init__(
        self,
        blob_store: AsyncBlobStore,
        retry: Optional[AsyncRetryExecutor] = None,
        ttl_days: int = 0,
        default_content_type: str = DEFAULT_TEXT_CONTENT_TYPE,
    ):
        self.blob_store = blob_store
        self.retry = retry or AsyncRetryExecutor()
        self.ttl_days = ttl_days
        self.default_content_type = default_content_type

    @property
    def container_name(self) -> str:
        return self.blob_store.container_name

    async def put(
        self,
        blob_name: str,
        body: Union[str, bytes],
        content_type: Optional[str] = None,
    ) -> BlobPointer:
        resolved_type = resolve_content_type(body, content_type, self.default_content_type)
        metadata = build_metadata(resolved_type, self.ttl_days)
        data = to_bytes(body)

        pointer = await self.retry.execute(
            self.blob_store.put, blob_name, data, resolved_type, metadata
        )
        logger.info(
            "Payload offloaded",
            container_name=pointer.container_name,
            blob_name=pointer.blob_name,
            size=len(data),
            content_type=resolved_type
        )
        return pointer

    async def get(self, pointer: BlobPointer) -> Optional[bytes]:
        return await self.retry.execute(self.blob_store.get, pointer)

    async def delete(self, pointer: BlobPointer) -> None:
        await self.retry.execute(self.blob_store.delete, pointer)
        logger.debug("Payload deleted", blob_name=pointer.blob_name)

    async def list_blobs(self) -> List[str]:
        return await self.retry.execute(self.blob_store.list_blobs)

    async def get_metadata(self, blob_name: str) -> Dict[str, str]:
        return await self.retry.execute(self.blob_store.get_metadata, blob_name)

    async def generate_read_url(self, pointer: BlobPointer, valid_for: timedelta) -> str:
        return await self.blob_store.generate_read_url(pointer, valid_for)

"""
Module: storage/base.py
Description: Blob store interfaces consumed by the payload store facade.

Implementations: S3BlobStore (boto3), AsyncS3BlobStore (aioboto3) and
InMemoryBlobStore. Deleting a missing blob is not an error, and get()
reports a missing blob by returning None rather than raising.
"""

from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Dict, Iterable, List, Optional

from large_message.models.pointer import BlobPointer


class BlobStore(ABC):
    """Blocking blob store interface."""

    container_name: str

    @abstractmethod
    def put(
        self,
        blob_name: str,
        data: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> BlobPointer:
        """Store `data` under `blob_name` and return a pointer to it."""

    @abstractmethod
    def get(self, pointer: BlobPointer) -> Optional[bytes]:
        """Return the blob content, or None if it does not exist."""

    @abstractmethod
    def delete(self, pointer: BlobPointer) -> None:
        """Delete the blob; deleting a missing blob succeeds."""

    @abstractmethod
    def list_blobs(self) -> Iterable[str]:
        """Iterate over the names of all blobs in the container."""

    @abstractmethod
    def get_metadata(self, blob_name: str) -> Dict[str, str]:
        """Return the user metadata of one blob."""

    @abstractmethod
    def generate_read_url(self, pointer: BlobPointer, valid_for: timedelta) -> str:
        """Return a URL granting read access to the blob for `valid_for`."""


class AsyncBlobStore(ABC):
    """Non-blocking counterpart of BlobStore."""

    container_name: str

    @abstractmethod
    async def put(
        self,
        blob_name: str,
        data: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> BlobPointer:
        ...

    @abstractmethod
    async def get(self, pointer: BlobPointer) -> Optional[bytes]:
        ...

    @abstractmethod
    async def delete(self, pointer: BlobPointer) -> None:
        ...

    @abstractmethod
    async def list_blobs(self) -> List[str]:
        ...

    @abstractmethod
    async def get_metadata(self, blob_name: str) -> Dict[str, str]:
        ...

    @abstractmethod
    async def generate_read_url(self, pointer: BlobPointer, valid_for: timedelta) -> str:
        ...

"""
Module: memory.py
Description: In-process blob store for local development and tests.
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from large_message.models.pointer import BlobPointer
from large_message.storage.base import AsyncBlobStore, BlobStore


class InMemoryBlobStore(BlobStore):
    """
    Dictionary-backed blob store.

    Blobs are kept as (data, content_type, metadata) tuples keyed by name.
    All access goes through one lock, so the store can be shared by
    concurrent pipeline calls.
    """

    def __init__(self, container_name: str = "payloads"):
        self.container_name = container_name
        self._blobs: Dict[str, Tuple[bytes, str, Dict[str, str]]] = {}
        self._lock = threading.Lock()

    def put(
        self,
        blob_name: str,
        data: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> BlobPointer:
        with self._lock:
            self._blobs[blob_name] = (bytes(data), content_type, dict(metadata or {}))
        return BlobPointer(container_name=self.container_name, blob_name=blob_name)

    def get(self, pointer: BlobPointer) -> Optional[bytes]:
        if pointer.container_name != self.container_name:
            return None
        with self._lock:
            entry = self._blobs.get(pointer.blob_name)
        return entry[0] if entry else None

    def delete(self, pointer: BlobPointer) -> None:
        if pointer.container_name != self.container_name:
            return
        with self._lock:
            self._blobs.pop(pointer.blob_name, None)

    def list_blobs(self) -> List[str]:
        with self._lock:
            return list(self._blobs)

    def get_metadata(self, blob_name: str) -> Dict[str, str]:
        with self._lock:
            entry = self._blobs.get(blob_name)
        if entry is None:
            return {}
        return dict(entry[2])

    def get_content_type(self, blob_name: str) -> Optional[str]:
        with self._lock:
            entry = self._blobs.get(blob_name)
        return entry[1] if entry else None

    def generate_read_url(self, pointer: BlobPointer, valid_for: timedelta) -> str:
        expires = datetime.now(timezone.utc) + valid_for
        return f"memory://{pointer.container_name}/{pointer.blob_name}?expires={expires.isoformat()}"

    def __len__(self) -> int:
        with self._lock:
            return len(self._blobs)


class AsyncInMemoryBlobStore(AsyncBlobStore):
    """Async facade over an InMemoryBlobStore; operations never block."""

    def __init__(self, store: Optional[InMemoryBlobStore] = None):
        self.store = store or InMemoryBlobStore()
        self.container_name = self.store.container_name

    async def put(
        self,
        blob_name: str,
        data: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> BlobPointer:
        return self.store.put(blob_name, data, content_type, metadata)

    async def get(self, pointer: BlobPointer) -> Optional[bytes]:
        return self.store.get(pointer)

    async def delete(self, pointer: BlobPointer) -> None:
        self.store.delete(pointer)

    async def list_blobs(self) -> List[str]:
        return self.store.list_blobs()

    async def get_metadata(self, blob_name: str) -> Dict[str, str]:
        return self.store.get_metadata(blob_name)

    async def generate_read_url(self, pointer: BlobPointer, valid_for: timedelta) -> str:
        return self.store.generate_read_url(pointer, valid_for)

    def __len__(self) -> int:
        return len(self.store)

"""
Module: cleanup.py
Description: Deletion of offloaded payloads.

Key Components:
- CleanupCoordinator: single delete, batch delete and TTL sweep
- AsyncCleanupCoordinator: async variant; batch deletes run concurrently
- PeriodicTtlSweeper: background thread running the TTL sweep

Cleanup never raises for a failed delete. Failures are logged with the
blob name and counted; the remaining items are still processed.

Dependencies: threading, asyncio, datetime
Author: Large Message Client Team
"""

import asyncio
import threading
from datetime import datetime, timezone
from typing import Iterable, Mapping, Optional

from large_message.config.constants import EXPIRES_AT_METADATA_KEY
from large_message.config.settings import LargeMessageSettings
from large_message.models.message import LargeMessage
from large_message.models.pointer import BlobPointer
from large_message.storage.payload_store import AsyncPayloadStore, PayloadStore
from large_message.utils.logger import get_logger

logger = get_logger(__name__)


def read_expiry(metadata: Mapping[str, str]) -> Optional[datetime]:
    """
    Return the expiry recorded in blob metadata, or None when absent.

    S3 lowercases user metadata keys, so the lookup ignores case. Naive
    timestamps are taken as UTC.

    Raises:
        ValueError: If the value is not an ISO 8601 timestamp
    """
    wanted = EXPIRES_AT_METADATA_KEY.lower()
    value = next((v for k, v in metadata.items() if k.lower() == wanted), None)
    if not value:
        return None
    expires_at = datetime.fromisoformat(value)
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at


class _CleanupRules:
    def __init__(self, settings: LargeMessageSettings):
        self.settings = settings

    def should_delete(self, message: LargeMessage) -> bool:
        return (
            self.settings.cleanup_blob_on_delete
            and self.settings.payload_support_enabled
            and message.payload_from_blob
            and message.blob_pointer is not None
        )

    @staticmethod
    def _log_failure(action: str, blob_name: str, error: Exception) -> None:
        logger.error(
            f"Failed to {action}",
            blob_name=blob_name,
            error=str(error),
            error_type=type(error).__name__
        )


class CleanupCoordinator(_CleanupRules):
    """Deletes payloads of handled messages and expired payloads."""

    def __init__(self, payload_store: PayloadStore, settings: LargeMessageSettings):
        super().__init__(settings)
        self.payload_store = payload_store

    def delete_payload(self, message: LargeMessage) -> bool:
        """Delete the blob behind `message`; returns True only if a delete succeeded."""
        if not self.should_delete(message):
            return False
        return self._delete(message.blob_pointer)

    def _delete(self, pointer: BlobPointer) -> bool:
        try:
            self.payload_store.delete(pointer)
            return True
        except Exception as e:
            self._log_failure("delete payload", pointer.blob_name, e)
            return False

    def delete_payload_batch(self, messages: Iterable[LargeMessage]) -> int:
        """Delete each message's blob independently; returns the success count."""
        deleted = sum(1 for message in messages if self.delete_payload(message))
        logger.info("Payload batch delete completed", deleted=deleted)
        return deleted

    def cleanup_expired_payloads(self, now: Optional[datetime] = None) -> int:
        """
        Delete every payload whose expiresAt metadata is in the past.

        Returns:
            Number of payloads deleted (0 when blob TTL is disabled)
        """
        if self.settings.blob_ttl_days <= 0:
            return 0

        now = now or datetime.now(timezone.utc)
        deleted = 0
        for blob_name in self.payload_store.list_blobs():
            try:
                expires_at = read_expiry(self.payload_store.get_metadata(blob_name))
                if expires_at is None or expires_at > now:
                    continue
                self.payload_store.delete(
                    BlobPointer(container_name=self.payload_store.container_name, blob_name=blob_name)
                )
                deleted += 1
            except Exception as e:
                self._log_failure("clean up expired payload", blob_name, e)

        logger.info("Expired payload sweep completed", deleted=deleted)
        return deleted


class AsyncCleanupCoordinator(_CleanupRules):
    def __init__(self, payload_store: AsyncPayloadStore, settings: LargeMessageSettings):
        super().__init__(settings)
        self.payload_store = payload_store

    async def delete_payload(self, message: LargeMessage) -> bool:
        if not self.should_delete(message):
            return False
        try:
            await self.payload_store.delete(message.blob_pointer)
            return True
        except Exception as e:
            self._log_failure("delete payload", message.blob_pointer.blob_name, e)
            return False

    async def delete_payload_batch(self, messages: Iterable[LargeMessage]) -> int:
        results = await asyncio.gather(*(self.delete_payload(m) for m in messages))
        return sum(1 for ok in results if ok)

    async def cleanup_expired_payloads(self, now: Optional[datetime] = None) -> int:
        if self.settings.blob_ttl_days <= 0:
            return 0

        now = now or datetime.now(timezone.utc)
        deleted = 0
        for blob_name in await self.payload_store.list_blobs():
            try:
                expires_at = read_expiry(await self.payload_store.get_metadata(blob_name))
                if expires_at is None or expires_at > now:
                    continue
                await self.payload_store.delete(
                    BlobPointer(container_name=self.payload_store.container_name, blob_name=blob_name)
                )
                deleted += 1
            except Exception as e:
                self._log_failure("clean up expired payload", blob_name, e)
        return deleted


class PeriodicTtlSweeper:
    """
    Runs CleanupCoordinator.cleanup_expired_payloads on a daemon thread.

    Example:
        >>> sweeper = PeriodicTtlSweeper(coordinator, interval_seconds=3600)
        >>> sweeper.start()
        >>> sweeper.stop()
    """

    def __init__(self, coordinator: CleanupCoordinator, interval_seconds: float):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.coordinator = coordinator
        self.interval_seconds = interval_seconds
        self.runs = 0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="large-message-ttl-sweeper", daemon=True
        )
        self._thread.start()
        logger.info("TTL sweeper started", interval_seconds=self.interval_seconds)

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.coordinator.cleanup_expired_payloads()
            except Exception as e:
                logger.error("TTL sweep failed", error=str(e), error_type=type(e).__name__)
            self.runs += 1

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("TTL sweeper stopped")

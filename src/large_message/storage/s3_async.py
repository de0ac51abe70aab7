"""
Module: s3_async.py
Description: Async S3 blob store built on aioboto3.

Same behaviour as S3BlobStore; each operation opens a short-lived client
from the shared aioboto3 session. The bucket must already exist.
"""

from datetime import timedelta
from typing import Dict, List, Optional

from aioboto3 import Session
from botocore.exceptions import ClientError

from large_message.models.pointer import BlobPointer
from large_message.storage.base import AsyncBlobStore
from large_message.storage.s3 import NOT_FOUND_CODES, _error_code, _error_message
from large_message.utils.errors import PayloadStoreError
from large_message.utils.logger import get_logger

logger = get_logger(__name__)


class AsyncS3BlobStore(AsyncBlobStore):
    """aioboto3-backed blob store."""

    def __init__(
        self,
        bucket_name: str,
        region_name: Optional[str] = None,
        storage_class: Optional[str] = None,
        session: Optional[Session] = None,
    ):
        if not bucket_name or not isinstance(bucket_name, str):
            raise ValueError("bucket_name must be a non-empty string")

        self.bucket_name = bucket_name
        self.region_name = region_name
        self.storage_class = storage_class
        self.session = session or Session()

        logger.info("Async S3 blob store initialized", bucket_name=bucket_name)

    @property
    def container_name(self) -> str:
        return self.bucket_name

    def _client(self):
        return self.session.client('s3', region_name=self.region_name)

    async def put(
        self,
        blob_name: str,
        data: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> BlobPointer:
        params = {
            'Bucket': self.bucket_name,
            'Key': blob_name,
            'Body': data,
            'ContentType': content_type,
            'Metadata': dict(metadata or {}),
        }
        if self.storage_class:
            params['StorageClass'] = self.storage_class

        try:
            async with self._client() as s3:
                await s3.put_object(**params)
        except ClientError as e:
            logger.error(
                "Failed to store payload in S3",
                bucket_name=self.bucket_name,
                blob_name=blob_name,
                error_code=_error_code(e),
                error_message=_error_message(e)
            )
            raise PayloadStoreError(f"Failed to store payload {blob_name}") from e

        logger.debug("Payload stored in S3", blob_name=blob_name, size=len(data))
        return BlobPointer(container_name=self.bucket_name, blob_name=blob_name)

    async def get(self, pointer: BlobPointer) -> Optional[bytes]:
        try:
            async with self._client() as s3:
                response = await s3.get_object(
                    Bucket=pointer.container_name,
                    Key=pointer.blob_name
                )
                async with response['Body'] as stream:
                    return await stream.read()
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                logger.warning("Payload not found in S3", blob_name=pointer.blob_name)
                return None
            logger.error(
                "Failed to retrieve payload from S3",
                blob_name=pointer.blob_name,
                error_code=_error_code(e),
                error_message=_error_message(e)
            )
            raise PayloadStoreError(f"Failed to retrieve payload {pointer.blob_name}") from e

    async def delete(self, pointer: BlobPointer) -> None:
        try:
            async with self._client() as s3:
                await s3.delete_object(Bucket=pointer.container_name, Key=pointer.blob_name)
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                return
            logger.error(
                "Failed to delete payload from S3",
                blob_name=pointer.blob_name,
                error_code=_error_code(e),
                error_message=_error_message(e)
            )
            raise PayloadStoreError(f"Failed to delete payload {pointer.blob_name}") from e

    async def list_blobs(self) -> List[str]:
        names = []
        try:
            async with self._client() as s3:
                paginator = s3.get_paginator('list_objects_v2')
                async for page in paginator.paginate(Bucket=self.bucket_name):
                    names.extend(item['Key'] for item in page.get('Contents', []))
        except ClientError as e:
            logger.error(
                "Failed to list payloads in S3",
                bucket_name=self.bucket_name,
                error_code=_error_code(e),
                error_message=_error_message(e)
            )
            raise PayloadStoreError(f"Failed to list bucket {self.bucket_name}") from e
        return names

    async def get_metadata(self, blob_name: str) -> Dict[str, str]:
        try:
            async with self._client() as s3:
                response = await s3.head_object(Bucket=self.bucket_name, Key=blob_name)
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                return {}
            raise PayloadStoreError(
                f"Failed to read metadata of {blob_name}: {_error_code(e)}"
            ) from e
        return response.get('Metadata', {})

    async def generate_read_url(self, pointer: BlobPointer, valid_for: timedelta) -> str:
        async with self._client() as s3:
            return await s3.generate_presigned_url(
                'get_object',
                Params={'Bucket': pointer.container_name, 'Key': pointer.blob_name},
                ExpiresIn=int(valid_for.total_seconds())
            )

"""
Module: s3.py
Description: S3 blob store for offloaded message payloads.

Stores payloads as S3 objects in a single bucket (the pointer's
container), reads them back, deletes them, and lists them with their
user metadata for the TTL sweep. Read URLs are S3 presigned GET URLs.

Key Components:
- S3BlobStore: boto3 implementation of BlobStore
- Bucket bootstrap: creates the bucket when it does not exist
- Error handling: ClientErrors logged with code/message and wrapped

Dependencies: boto3, botocore, datetime, typing
Author: Large Message Client Team
"""

from datetime import timedelta
from typing import Dict, Iterator, Optional

import boto3
from botocore.exceptions import ClientError

from large_message.models.pointer import BlobPointer
from large_message.storage.base import BlobStore
from large_message.utils.errors import PayloadStoreError
from large_message.utils.logger import get_logger

logger = get_logger(__name__)

NOT_FOUND_CODES = frozenset({"NoSuchKey", "404", "NotFound"})


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


def _error_message(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Message", "")


class S3BlobStore(BlobStore):
    """
    S3-backed blob store.

    Attributes:
        bucket_name: Bucket holding offloaded payloads (the container name)
        storage_class: Optional S3 storage class applied on upload
        client: boto3 S3 client

    Example:
        >>> store = S3BlobStore(bucket_name="large-message-payloads")
        >>> pointer = store.put("msg-1", b"...", "text/plain; charset=utf-8")
        >>> store.get(pointer)
    """

    def __init__(
        self,
        bucket_name: str,
        region_name: Optional[str] = None,
        storage_class: Optional[str] = None,
        create_bucket: bool = True,
        client=None,
    ):
        """
        Initialize S3 blob store.

        Args:
            bucket_name: Name of the S3 bucket
            region_name: AWS region for the client and for bucket creation
            storage_class: S3 storage class for uploads (None for STANDARD)
            create_bucket: Create the bucket if it does not exist
            client: Pre-built boto3 S3 client

        Raises:
            ValueError: If bucket_name is empty or invalid
        """
        if not bucket_name or not isinstance(bucket_name, str):
            raise ValueError("bucket_name must be a non-empty string")

        self.bucket_name = bucket_name
        self.region_name = region_name
        self.storage_class = storage_class
        self.client = client or boto3.client('s3', region_name=region_name)

        if create_bucket:
            self._ensure_bucket()

        logger.info(
            "S3 blob store initialized",
            bucket_name=bucket_name,
            storage_class=storage_class
        )

    @property
    def container_name(self) -> str:
        return self.bucket_name

    def _ensure_bucket(self) -> None:
        try:
            self.client.head_bucket(Bucket=self.bucket_name)
            logger.debug("Bucket already exists", bucket_name=self.bucket_name)
            return
        except ClientError as e:
            if _error_code(e) not in NOT_FOUND_CODES | {"NoSuchBucket"}:
                logger.error(
                    "Failed to check bucket",
                    bucket_name=self.bucket_name,
                    error_code=_error_code(e),
                    error_message=_error_message(e)
                )
                raise PayloadStoreError(f"Failed to check bucket {self.bucket_name}") from e

        logger.info("Bucket does not exist, creating it", bucket_name=self.bucket_name)
        params = {'Bucket': self.bucket_name}
        if self.region_name and self.region_name != 'us-east-1':
            params['CreateBucketConfiguration'] = {'LocationConstraint': self.region_name}
        self.client.create_bucket(**params)

    def put(
        self,
        blob_name: str,
        data: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> BlobPointer:
        """
        Upload a payload.

        Args:
            blob_name: Object key
            data: Payload bytes
            content_type: MIME type stored as the object's Content-Type
            metadata: User metadata (e.g. expiresAt)

        Returns:
            Pointer to the stored object

        Raises:
            PayloadStoreError: If the upload fails
        """
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
            self.client.put_object(**params)
        except ClientError as e:
            logger.error(
                "Failed to store payload in S3",
                bucket_name=self.bucket_name,
                blob_name=blob_name,
                error_code=_error_code(e),
                error_message=_error_message(e)
            )
            raise PayloadStoreError(f"Failed to store payload {blob_name}") from e

        logger.debug(
            "Payload stored in S3",
            bucket_name=self.bucket_name,
            blob_name=blob_name,
            size=len(data)
        )
        return BlobPointer(container_name=self.bucket_name, blob_name=blob_name)

    def get(self, pointer: BlobPointer) -> Optional[bytes]:
        """Download a payload; None when the object does not exist."""
        try:
            response = self.client.get_object(
                Bucket=pointer.container_name,
                Key=pointer.blob_name
            )
            return response['Body'].read()
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                logger.warning(
                    "Payload not found in S3",
                    bucket_name=pointer.container_name,
                    blob_name=pointer.blob_name
                )
                return None
            logger.error(
                "Failed to retrieve payload from S3",
                bucket_name=pointer.container_name,
                blob_name=pointer.blob_name,
                error_code=_error_code(e),
                error_message=_error_message(e)
            )
            raise PayloadStoreError(f"Failed to retrieve payload {pointer.blob_name}") from e

    def delete(self, pointer: BlobPointer) -> None:
        """Delete a payload. S3 treats deleting a missing key as success."""
        try:
            self.client.delete_object(Bucket=pointer.container_name, Key=pointer.blob_name)
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                logger.debug("Payload already deleted", blob_name=pointer.blob_name)
                return
            logger.error(
                "Failed to delete payload from S3",
                bucket_name=pointer.container_name,
                blob_name=pointer.blob_name,
                error_code=_error_code(e),
                error_message=_error_message(e)
            )
            raise PayloadStoreError(f"Failed to delete payload {pointer.blob_name}") from e

        logger.debug(
            "Payload deleted from S3",
            bucket_name=pointer.container_name,
            blob_name=pointer.blob_name
        )

    def list_blobs(self) -> Iterator[str]:
        """Iterate over every object key in the bucket."""
        paginator = self.client.get_paginator('list_objects_v2')
        try:
            for page in paginator.paginate(Bucket=self.bucket_name):
                for item in page.get('Contents', []):
                    yield item['Key']
        except ClientError as e:
            logger.error(
                "Failed to list payloads in S3",
                bucket_name=self.bucket_name,
                error_code=_error_code(e),
                error_message=_error_message(e)
            )
            raise PayloadStoreError(f"Failed to list bucket {self.bucket_name}") from e

    def get_metadata(self, blob_name: str) -> Dict[str, str]:
        """
        Return user metadata of an object (keys as S3 reports them, lowercase).

        An object deleted since it was listed has no metadata; {} is returned.
        """
        try:
            response = self.client.head_object(Bucket=self.bucket_name, Key=blob_name)
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                return {}
            raise PayloadStoreError(
                f"Failed to read metadata of {blob_name}: {_error_code(e)}"
            ) from e
        return response.get('Metadata', {})

    def generate_read_url(self, pointer: BlobPointer, valid_for: timedelta) -> str:
        """Generate a presigned GET URL valid for `valid_for`."""
        logger.debug("Generating presigned URL", blob_name=pointer.blob_name)
        return self.client.generate_presigned_url(
            'get_object',
            Params={'Bucket': pointer.container_name, 'Key': pointer.blob_name},
            ExpiresIn=int(valid_for.total_seconds())
        )

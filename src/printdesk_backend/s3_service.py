"""
S3 service module for storing print job attachments and issuing presigned URLs.

This module provides the file store gateway used by the lifecycle engine:
- Uploading attachment bytes to S3
- Generating presigned URLs for secure, time-limited downloads
- Deleting attachments

The S3 bucket name is configured via the S3_BUCKET_NAME environment variable
(or ``storage.bucket`` in the config file). Unlike a best-effort uploader,
every failure here raises StorageError so that the owning job operation
fails visibly; retries are left to the caller.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .errors import StorageError

logger = logging.getLogger(__name__)


class FileStore(Protocol):
    """Operations the lifecycle engine requires of a blob store."""

    def store(self, path: str, data: bytes, content_type: str) -> str: ...

    def issue_temporary_url(self, path: str, ttl_seconds: int) -> str: ...

    def delete(self, path: str) -> None: ...


class S3FileStore:
    """
    File store backed by a single S3 bucket.

    Args:
        bucket: Name of the bucket holding attachments
        region: Optional AWS region for the client
        client: Pre-built boto3 S3 client (tests inject a stubbed one)
    """

    def __init__(self, bucket: str, region: Optional[str] = None, client: Any = None) -> None:
        self.bucket = bucket
        self._region = region
        self._client = client

    def _get_client(self) -> Any:
        """
        Get or create the S3 client.

        Raises:
            StorageError: If no bucket is configured or the client cannot be built
        """
        if not self.bucket:
            logger.warning("S3_BUCKET_NAME not configured")
            raise StorageError("connect", "", "S3 bucket is not configured")
        if self._client is None:
            try:
                self._client = boto3.client("s3", region_name=self._region) if self._region else boto3.client("s3")
            except BotoCoreError as e:
                logger.error(f"Failed to create S3 client: {e}")
                raise StorageError("connect", self.bucket, str(e)) from e
        return self._client

    def store(self, path: str, data: bytes, content_type: str) -> str:
        """
        Upload bytes to S3.

        Args:
            path: S3 object key (path within the bucket)
            data: File content
            content_type: MIME type recorded on the object

        Returns:
            The object key, usable as a storage reference

        Raises:
            StorageError: If the upload fails
        """
        client = self._get_client()
        try:
            logger.info(f"Uploading {len(data)} bytes to s3://{self.bucket}/{path}")
            client.put_object(Bucket=self.bucket, Key=path, Body=data, ContentType=content_type)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 upload failed: {e}")
            raise StorageError("upload", path, str(e)) from e
        return path

    def issue_temporary_url(self, path: str, ttl_seconds: int) -> str:
        """
        Generate a presigned URL for downloading an attachment.

        Args:
            path: S3 object key
            ttl_seconds: URL expiration time in seconds

        Returns:
            Presigned URL string, valid until ttl_seconds elapse

        Raises:
            StorageError: If URL generation fails
        """
        client = self._get_client()
        try:
            url = client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": path},
                ExpiresIn=ttl_seconds,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to generate presigned URL: {e}")
            raise StorageError("presign", path, str(e)) from e
        logger.info(f"Generated presigned URL for {path} (expires in {ttl_seconds}s)")
        return url

    def delete(self, path: str) -> None:
        client = self._get_client()
        try:
            client.delete_object(Bucket=self.bucket, Key=path)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 delete failed: {e}")
            raise StorageError("delete", path, str(e)) from e
        logger.info(f"Deleted s3://{self.bucket}/{path}")

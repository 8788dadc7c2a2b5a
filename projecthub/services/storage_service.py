"""
services/storage_service.py
---------------------------
Blob-storage collaborator for document bytes.

BlobStorage is the interface the document service depends on:
  upload(data, destination_path, content_type) -> path
  delete(path)
  signed_url(path, ttl_seconds) -> url
All three raise StorageError on failure.

S3BlobStorage is the production implementation (any S3-compatible
endpoint). boto3 is synchronous, so calls run in a worker thread to keep
the event loop free.
"""

import asyncio
import os
import secrets
import time
from abc import ABC, abstractmethod
from typing import Optional

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from projecthub.core.config import settings
from projecthub.core.errors import StorageError
from projecthub.core.logging import get_logger

logger = get_logger(__name__)


def build_object_path(project_id: str, filename: str) -> str:
    """
    Storage key for a new upload: namespaced by project, randomised name.

    Two uploads of "report.pdf" into the same project at the same moment
    still land on different keys.
    """
    _, ext = os.path.splitext(filename)
    stamp = int(time.time() * 1000)
    token = secrets.token_hex(4)
    return f"{project_id}/{stamp}-{token}{ext.lower()}"


class BlobStorage(ABC):

    @abstractmethod
    async def upload(
        self, data: bytes, destination_path: str, content_type: Optional[str]
    ) -> str:
        ...

    @abstractmethod
    async def delete(self, path: str) -> None:
        ...

    @abstractmethod
    async def signed_url(self, path: str, ttl_seconds: int) -> str:
        ...


class S3BlobStorage(BlobStorage):

    def __init__(
        self,
        bucket: str,
        endpoint_url: Optional[str] = None,
        region: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        client=None,
    ) -> None:
        self.bucket = bucket
        self._client = client or boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            region_name=region,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            config=Config(signature_version="s3v4"),
        )

    @classmethod
    def from_settings(cls) -> "S3BlobStorage":
        return cls(
            bucket=settings.STORAGE_BUCKET,
            endpoint_url=settings.STORAGE_ENDPOINT_URL,
            region=settings.STORAGE_REGION,
            access_key_id=settings.STORAGE_ACCESS_KEY_ID,
            secret_access_key=settings.STORAGE_SECRET_ACCESS_KEY,
        )

    async def upload(
        self, data: bytes, destination_path: str, content_type: Optional[str]
    ) -> str:
        extra = {"ContentType": content_type} if content_type else {}
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self.bucket,
                Key=destination_path,
                Body=data,
                CacheControl="max-age=3600",
                **extra,
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error("Storage upload failed", path=destination_path, error=str(exc))
            raise StorageError(f"Failed to upload file: {exc}", path=destination_path) from exc

        logger.info("Blob uploaded", path=destination_path, size=len(data))
        return destination_path

    async def delete(self, path: str) -> None:
        try:
            await asyncio.to_thread(
                self._client.delete_object, Bucket=self.bucket, Key=path
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error("Storage delete failed", path=path, error=str(exc))
            raise StorageError(f"Failed to delete file: {exc}", path=path) from exc

        logger.info("Blob deleted", path=path)

    async def signed_url(self, path: str, ttl_seconds: int) -> str:
        try:
            return await asyncio.to_thread(
                self._client.generate_presigned_url,
                "get_object",
                Params={"Bucket": self.bucket, "Key": path},
                ExpiresIn=ttl_seconds,
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error("Signed URL generation failed", path=path, error=str(exc))
            raise StorageError(f"Failed to sign URL: {exc}", path=path) from exc

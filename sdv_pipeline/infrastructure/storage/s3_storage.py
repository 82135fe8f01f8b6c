"""
S3 (and S3-compatible) storage implementation backed by boto3.
"""

import logging
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .base import StorageBackend, StorageFileInfo
from ...core.config import StorageSettings, get_settings
from ...core.exceptions import FileStorageError

logger = logging.getLogger(__name__)


class S3Storage(StorageBackend):
    name = "s3"

    def __init__(self, settings: Optional[StorageSettings] = None, client=None):
        self.settings = settings or get_settings().storage
        if not self.settings.aws_s3_bucket:
            raise FileStorageError("STORAGE_AWS_S3_BUCKET is not configured")

        self.bucket = self.settings.aws_s3_bucket
        self.client = client or boto3.client(
            "s3",
            region_name=self.settings.aws_s3_region,
            aws_access_key_id=self.settings.aws_s3_access_key_id,
            aws_secret_access_key=self.settings.aws_s3_secret_access_key,
            endpoint_url=self.settings.aws_s3_endpoint_url,
        )

    def put(self, path: str, data: bytes) -> StorageFileInfo:
        try:
            self.client.put_object(Bucket=self.bucket, Key=path, Body=data, ContentType="text/csv")
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to upload s3://{self.bucket}/{path}: {e}")
            raise FileStorageError(f"Failed to upload object: {e}", path=path)
        return StorageFileInfo.for_bytes(path, data, backend=self.name, bucket=self.bucket)

    def get(self, path: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=path)
            return response["Body"].read()
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                raise FileStorageError(f"File not found: {path}", path=path)
            logger.error(f"Failed to download s3://{self.bucket}/{path}: {e}")
            raise FileStorageError(f"Failed to download object: {e}", path=path)
        except BotoCoreError as e:
            logger.error(f"Failed to download s3://{self.bucket}/{path}: {e}")
            raise FileStorageError(f"Failed to download object: {e}", path=path)

    def delete(self, path: str) -> bool:
        existed = self.exists(path)
        try:
            self.client.delete_object(Bucket=self.bucket, Key=path)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to delete s3://{self.bucket}/{path}: {e}")
            raise FileStorageError(f"Failed to delete object: {e}", path=path)
        return existed

    def exists(self, path: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=path)
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return False
            raise FileStorageError(f"Failed to stat object: {e}", path=path)
        except BotoCoreError as e:
            raise FileStorageError(f"Failed to stat object: {e}", path=path)

"""S3 blob storage for uploaded product documents.

Objects live under ``<organization_id>/<uuid>.<ext>``. Binaries are never
proxied to anonymous viewers; downloads go through short-lived presigned URLs.
"""
from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.config import get_settings

logger = logging.getLogger(__name__)


class StorageError(RuntimeError):
    pass


def build_storage_path(organization_id: Any, filename: str) -> str:
    name = str(filename or "")
    ext = name.rsplit(".", 1)[-1].lower() if "." in name else "bin"
    return f"{organization_id}/{uuid.uuid4()}.{ext}"


class DocumentStorage:
    def __init__(self, client: Optional[Any] = None, bucket: Optional[str] = None) -> None:
        settings = get_settings()
        self.bucket = bucket or settings.s3_bucket
        self._signed_url_ttl = settings.signed_url_ttl_seconds
        if client is not None:
            self._client = client
        else:
            self._client = boto3.client(
                "s3",
                aws_access_key_id=settings.aws_access_key_id or None,
                aws_secret_access_key=settings.aws_secret_access_key or None,
                region_name=settings.s3_region,
                endpoint_url=settings.s3_endpoint_url or None,
                config=Config(signature_version="s3v4"),
            )

    def upload_bytes(self, key: str, data: bytes, content_type: str) -> str:
        try:
            self._client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        except (ClientError, BotoCoreError) as exc:
            logger.error("Failed to upload s3://%s/%s: %s", self.bucket, key, exc)
            raise StorageError(f"Failed to upload file: {exc}") from exc
        logger.info("Uploaded s3://%s/%s (%s bytes)", self.bucket, key, len(data))
        return key

    def download_bytes(self, key: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except (ClientError, BotoCoreError) as exc:
            logger.error("Failed to download s3://%s/%s: %s", self.bucket, key, exc)
            raise StorageError(f"Failed to download file: {exc}") from exc

    def create_signed_url(
        self,
        key: str,
        ttl_seconds: Optional[int] = None,
        download_filename: Optional[str] = None,
    ) -> str:
        params = {"Bucket": self.bucket, "Key": key}
        if download_filename:
            safe_name = download_filename.replace('"', "")
            params["ResponseContentDisposition"] = f'attachment; filename="{safe_name}"'
        try:
            return self._client.generate_presigned_url(
                "get_object",
                Params=params,
                ExpiresIn=int(ttl_seconds or self._signed_url_ttl),
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error("Failed to sign download URL for %s: %s", key, exc)
            raise StorageError(f"Failed to create download URL: {exc}") from exc

    def delete_object(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            logger.error("Failed to delete s3://%s/%s: %s", self.bucket, key, exc)
            raise StorageError(f"Failed to delete file: {exc}") from exc
        logger.info("Deleted s3://%s/%s", self.bucket, key)

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Protocol

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..core.config import get_settings

logger = logging.getLogger(__name__)

# Bucket / folder holding post images, mirrors the hosted `post-images` bucket
POST_IMAGES_PREFIX = "post-images"


class StorageError(RuntimeError):
    pass


class ImageStorage(Protocol):
    def upload(self, path: str, data: bytes, content_type: str) -> str: ...
    def download(self, path: str) -> bytes: ...
    def public_url(self, path: str) -> str: ...


class S3Storage:
    """S3-compatible object storage. Keys live under `post-images/`."""

    def __init__(self) -> None:
        settings = get_settings()
        if not settings.S3_BUCKET:
            raise RuntimeError("S3_BUCKET is not configured")
        self.bucket = settings.S3_BUCKET
        self.region = settings.S3_REGION or "us-east-1"
        self.public_base = settings.S3_PUBLIC_URL_BASE
        self.client = boto3.client(
            "s3",
            region_name=settings.S3_REGION or None,
            aws_access_key_id=settings.S3_ACCESS_KEY_ID or None,
            aws_secret_access_key=settings.S3_SECRET_ACCESS_KEY or None,
            endpoint_url=settings.S3_ENDPOINT_URL or None,
            config=BotoConfig(s3={"addressing_style": "virtual"}),
        )

    def _key(self, path: str) -> str:
        return f"{POST_IMAGES_PREFIX}/{path.lstrip('/')}"

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=self._key(path),
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Upload failed for {path}: {e}") from e
        return path

    def download(self, path: str) -> bytes:
        try:
            obj = self.client.get_object(Bucket=self.bucket, Key=self._key(path))
            return obj["Body"].read()
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Download failed for {path}: {e}") from e

    def public_url(self, path: str) -> str:
        key = self._key(path)
        if self.public_base:
            return f"{self.public_base.rstrip('/')}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"


class LocalStorage:
    """Folder-backed storage for development and tests."""

    def __init__(self, root: str | None = None) -> None:
        self.root = os.path.abspath(root or get_settings().LOCAL_STORAGE_DIR)

    def _full_path(self, path: str) -> str:
        full = os.path.abspath(os.path.join(self.root, POST_IMAGES_PREFIX, path.lstrip("/")))
        if full != self.root and not full.startswith(self.root + os.sep):
            raise StorageError(f"Path escapes storage root: {path}")
        return full

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        full = self._full_path(path)
        os.makedirs(os.path.dirname(full), exist_ok=True)
        with open(full, "wb") as f:
            f.write(data)
        return path

    def download(self, path: str) -> bytes:
        full = self._full_path(path)
        if not os.path.exists(full):
            raise StorageError(f"No such object: {path}")
        with open(full, "rb") as f:
            return f.read()

    def public_url(self, path: str) -> str:
        return f"/storage/{POST_IMAGES_PREFIX}/{path.lstrip('/')}"


@lru_cache(maxsize=1)
def get_storage() -> ImageStorage:
    """S3 when a bucket is configured. Only the dev environment may fall back to a local folder."""
    settings = get_settings()
    if settings.S3_BUCKET:
        return S3Storage()
    if settings.ENV != "dev":
        raise RuntimeError("S3_BUCKET is not configured")
    logger.info("S3_BUCKET unset, using local storage", extra={"step": "storage_init"})
    return LocalStorage()

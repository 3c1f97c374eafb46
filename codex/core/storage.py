"""
Blob storage for prompt and response content, on local filesystem or AWS S3.

Content is addressed by key ("prompt_<ts>_<rand>", "response_<ts>_<rand>").
Deleting a key that does not exist is not an error.
"""

import logging
import os
import re
import time
import uuid
from typing import Optional
import boto3
from botocore.exceptions import ClientError
from codex.core.config import settings

logger = logging.getLogger(__name__)

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


class BlobStorageError(Exception):
    pass


def new_content_key(prefix: str) -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


class StorageBackend:
    """Abstract base class for storage backends"""

    def put_content(self, content: str, prefix: str = "prompt") -> str:
        """Store text content and return its key"""
        raise NotImplementedError

    def get_content(self, key: str) -> Optional[str]:
        """Return stored content, or None if the key is unknown"""
        raise NotImplementedError

    def delete_content(self, key: str) -> bool:
        """Delete content; returns False if nothing was stored under key"""
        raise NotImplementedError


class LocalStorage(StorageBackend):
    """Local filesystem storage backend"""

    def __init__(self, base_dir: Optional[str] = None):
        self.base_dir = base_dir or settings.LOCAL_STORAGE_DIR
        os.makedirs(self.base_dir, exist_ok=True)

    def _path(self, key: str) -> str:
        # Keys are generated by new_content_key; reject anything path-like
        if not _SAFE_KEY.match(key):
            raise BlobStorageError(f"Invalid content key: {key!r}")
        return os.path.join(self.base_dir, key)

    def put_content(self, content: str, prefix: str = "prompt") -> str:
        key = new_content_key(prefix)
        with open(self._path(key), "w", encoding="utf-8") as f:
            f.write(content)
        return key

    def get_content(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not os.path.exists(path):
            return None
        with open(path, "r", encoding="utf-8") as f:
            return f.read()

    def delete_content(self, key: str) -> bool:
        path = self._path(key)
        if not os.path.exists(path):
            return False
        try:
            os.remove(path)
        except OSError as e:
            raise BlobStorageError(f"Failed to delete {key}: {e}") from e
        return True


class S3Storage(StorageBackend):
    """AWS S3 storage backend"""

    KEY_PREFIX = "content/"

    def __init__(self):
        self.bucket_name = settings.S3_BUCKET_NAME

        # If AWS_ACCESS_KEY_ID is not set, boto3 will use IAM roles (for EC2/ECS)
        if settings.AWS_ACCESS_KEY_ID and settings.AWS_SECRET_ACCESS_KEY:
            self.s3_client = boto3.client(
                's3',
                aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
                aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
                region_name=settings.AWS_REGION
            )
        else:
            self.s3_client = boto3.client('s3', region_name=settings.AWS_REGION)

    def put_content(self, content: str, prefix: str = "prompt") -> str:
        key = new_content_key(prefix)
        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=self.KEY_PREFIX + key,
                Body=content.encode("utf-8"),
                ContentType="text/plain; charset=utf-8",
                ServerSideEncryption="AES256",
            )
        except ClientError as e:
            logger.error(f"S3 put failed for {key}: {e}")
            raise BlobStorageError(f"Failed to store content in S3: {e}") from e
        return key

    def get_content(self, key: str) -> Optional[str]:
        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=self.KEY_PREFIX + key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                return None
            logger.error(f"S3 get failed for {key}: {e}")
            raise BlobStorageError(f"Failed to read content from S3: {e}") from e
        return response["Body"].read().decode("utf-8")

    def delete_content(self, key: str) -> bool:
        # S3 DeleteObject succeeds for missing keys
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=self.KEY_PREFIX + key)
        except ClientError as e:
            logger.error(f"S3 delete failed for {key}: {e}")
            raise BlobStorageError(f"Failed to delete content from S3: {e}") from e
        return True


def get_storage_backend() -> StorageBackend:
    """Get storage backend based on USE_S3 setting"""
    if settings.USE_S3:
        if not settings.S3_BUCKET_NAME:
            raise ValueError("S3_BUCKET_NAME must be set when USE_S3=True")
        return S3Storage()
    return LocalStorage()


_storage: Optional[StorageBackend] = None


def get_storage() -> StorageBackend:
    """Shared storage backend, created on first use (also a FastAPI dependency)"""
    global _storage
    if _storage is None:
        _storage = get_storage_backend()
    return _storage

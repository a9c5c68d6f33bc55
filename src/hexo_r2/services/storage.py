"""S3-compatible object storage (Cloudflare R2) gateway."""

import asyncio
import logging
from pathlib import PurePosixPath
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from hexo_r2.config import Settings
from hexo_r2.services.resolver import DEFAULT_EXTENSION

logger = logging.getLogger("hexo_r2.storage")

CONTENT_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".avif": "image/avif",
    ".svg": "image/svg+xml",
    ".bmp": "image/bmp",
    ".ico": "image/x-icon",
}


class StorageError(Exception):
    """Raised when an upload to the object store fails."""


def content_type_for(filename: str) -> str:
    """Get content type based on file extension."""
    ext = PurePosixPath(filename).suffix.lower() or DEFAULT_EXTENSION
    return CONTENT_TYPES.get(ext, "application/octet-stream")


class ObjectStore:
    """Existence checks and uploads against the configured bucket."""

    def __init__(self, settings: Settings, dry_run: bool = False, client: Any = None) -> None:
        self.settings = settings
        self.dry_run = dry_run
        self._client = client

    def _get_client(self) -> Any:
        """Get or create the S3 client."""
        if self._client is None:
            self._client = boto3.client(
                "s3",
                endpoint_url=self.settings.r2_endpoint_url,
                aws_access_key_id=self.settings.r2_access_key_id,
                aws_secret_access_key=self.settings.r2_secret_access_key,
                region_name="auto",
            )
        return self._client

    def public_url(self, key: str) -> str:
        return f"{self.settings.r2_public_base_url}/{key}"

    async def exists(self, key: str) -> bool:
        """
        Check whether an object exists.

        Any error counts as "does not exist". Always False in dry run,
        without touching the network.
        """
        if self.dry_run:
            return False

        client = self._get_client()
        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(
                None,
                lambda: client.head_object(Bucket=self.settings.r2_bucket, Key=key),
            )
        except Exception as exc:
            logger.debug("head_object %s: %s", key, exc)
            return False
        return True

    async def upload(self, key: str, data: bytes, content_type: str) -> str:
        """
        Upload bytes and return the object's public URL.

        In dry run, logs the intended upload and returns the would-be URL.

        Raises:
            StorageError: If the object store rejects the upload
        """
        if self.dry_run:
            logger.info("[dry-run] Would upload %s (%d bytes, %s)", key, len(data), content_type)
            return self.public_url(key)

        client = self._get_client()
        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(
                None,
                lambda: client.put_object(
                    Bucket=self.settings.r2_bucket,
                    Key=key,
                    Body=data,
                    ContentType=content_type,
                ),
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Upload failed for {key}: {exc}") from exc

        return self.public_url(key)

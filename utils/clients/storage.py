"""
Object storage client for screenshot and share card uploads.

Uploads are keyed by a caller-supplied path (``{roast_id}/desktop.jpg``)
and served publicly from PUBLIC_ASSET_BASE_URL once written.
"""

import asyncio
import logging
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from config import settings

logger = logging.getLogger(__name__)

IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000, immutable"


class StorageError(RuntimeError):
    """Raised when an upload to object storage fails"""


class S3Storage:
    """Uploads immutable assets to an S3 bucket"""

    def __init__(
        self,
        bucket: Optional[str] = None,
        region: Optional[str] = None,
        public_base_url: Optional[str] = None,
        client=None,
    ):
        self.bucket = bucket or settings.S3_BUCKET
        self.public_base_url = (public_base_url or settings.public_asset_base_url).rstrip("/")
        self._s3 = client or boto3.client("s3", region_name=region or settings.AWS_REGION)

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"

    async def upload(
        self, data: bytes, key: str, content_type: str = "image/jpeg"
    ) -> str:
        """
        Upload bytes under ``key`` and return the public URL.

        Raises:
            StorageError: If the bucket rejects the write or cannot be reached
        """
        try:
            await asyncio.to_thread(
                self._s3.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                CacheControl=IMMUTABLE_CACHE_CONTROL,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"❌ Upload of s3://{self.bucket}/{key} failed: {e}")
            raise StorageError(f"Failed to upload {key}: {e}") from e

        logger.debug(f"Uploaded s3://{self.bucket}/{key} ({len(data)} bytes)")
        return self.public_url(key)

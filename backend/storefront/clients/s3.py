"""
S3 object store for product images.

Images are written under <image_prefix>/<uuid> with a public URL of the
form https://<bucket>.s3.<region>.amazonaws.com/<key>; delete() accepts
that URL back.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any
from urllib.parse import urlparse

from botocore.exceptions import ClientError

from .aws import AwsClient

logger = logging.getLogger(__name__)


class S3ObjectStore(AwsClient):
    """ObjectStore backed by an S3 bucket."""

    service_name = "s3"

    def __init__(self, config: Any) -> None:
        super().__init__(
            region=config.region,
            endpoint_url=config.endpoint_url,
            access_key_id=config.access_key_id,
            secret_access_key=config.secret_access_key,
        )
        self.bucket = config.bucket
        self.prefix = config.image_prefix.strip("/")

    def url_for(self, key: str) -> str:
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def key_for(self, url: str) -> str:
        """Recover the object key from a URL produced by url_for()."""
        path = urlparse(url).path.lstrip("/")
        if self.endpoint_url and path.startswith(f"{self.bucket}/"):
            path = path[len(self.bucket) + 1 :]
        return path

    async def upload(self, data: bytes, content_type: str) -> str:
        key = f"{self.prefix}/{uuid.uuid4()}" if self.prefix else str(uuid.uuid4())
        try:
            await self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except ClientError as e:
            raise self.upstream_error("PutObject", e) from e

        logger.debug("Image uploaded", extra={"bucket": self.bucket, "key": key, "bytes": len(data)})
        return self.url_for(key)

    async def delete(self, url: str) -> None:
        key = self.key_for(url)
        if not key:
            return
        try:
            await self.client.delete_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            raise self.upstream_error("DeleteObject", e) from e

"""
Object storage client (Amazon S3)

Stored objects are addressed by key; the service only hands out public URLs,
so deletion works from a URL as well.
"""

import logging
import os
from functools import lru_cache
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from errors import UploadFailed

logger = logging.getLogger(__name__)

AWS_REGION = os.getenv("AWS_REGION", "us-east-1")
AWS_S3_BUCKET_NAME = os.getenv("AWS_S3_BUCKET_NAME")
S3_PUBLIC_BASE_URL = os.getenv("S3_PUBLIC_BASE_URL")


class ObjectStore:
    def __init__(self, client, bucket: Optional[str], public_base_url: Optional[str] = None, region: str = AWS_REGION):
        self.client = client
        self.bucket = bucket
        self.base_url = (public_base_url or f"https://{bucket}.s3.{region}.amazonaws.com").rstrip("/")

    def url_for(self, key: str) -> str:
        return f"{self.base_url}/{key}"

    def owns(self, url: Optional[str]) -> bool:
        return bool(url) and url.startswith(self.base_url + "/")

    def key_for(self, url: str) -> str:
        if self.owns(url):
            return url[len(self.base_url) + 1:]
        return url

    def put(self, key: str, data: bytes, content_type: str) -> str:
        if not self.bucket:
            raise UploadFailed("Object storage is not configured")
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        except (BotoCoreError, ClientError):
            logger.exception("S3 upload of %s failed", key)
            raise UploadFailed("Failed to upload file to storage")
        return self.url_for(key)

    def delete(self, url: str) -> None:
        if not self.bucket:
            raise UploadFailed("Object storage is not configured")
        key = self.key_for(url)
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError):
            logger.exception("S3 delete of %s failed", key)
            raise UploadFailed("Failed to delete file from storage")


@lru_cache(maxsize=1)
def get_object_store() -> ObjectStore:
    client = boto3.client("s3", region_name=AWS_REGION)
    if not AWS_S3_BUCKET_NAME:
        logger.warning("AWS_S3_BUCKET_NAME is not set; uploads will fail")
    return ObjectStore(client, AWS_S3_BUCKET_NAME, S3_PUBLIC_BASE_URL, AWS_REGION)

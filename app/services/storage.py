import logging
from typing import Any, Dict, Optional
from urllib.parse import unquote, urlparse

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import Request
from starlette.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)

class StorageError(Exception):
    pass

class ObjectStorage:
    """S3 bucket wrapper issuing presigned URLs and reading objects"""

    def __init__(self, bucket: str, region: str, client: Optional[Any] = None):
        self.bucket = bucket
        self.region = region
        self.s3 = client or boto3.client(
            "s3",
            region_name=region,
            config=Config(signature_version="s3v4"),
        )

    def public_url(self, key: str) -> str:
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    @staticmethod
    def key_from_url(url: str) -> str:
        """https://bucket.s3.region.amazonaws.com/images/x.png -> images/x.png"""
        parsed = urlparse(url)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"Invalid object URL: {url}")
        return unquote(parsed.path.lstrip("/"))

    def presign_upload(self, key: str, content_type: str, filename: str, metadata: Dict[str, str], expires_in: int = 60) -> str:
        return self.s3.generate_presigned_url(
            "put_object",
            Params={
                "Bucket": self.bucket,
                "Key": key,
                "ContentType": content_type,
                "ContentDisposition": f'inline; filename="{filename}"',
                "Metadata": metadata,
            },
            ExpiresIn=expires_in,
        )

    def presign_download(self, key: str, filename: str, expires_in: int = 300) -> str:
        return self.s3.generate_presigned_url(
            "get_object",
            Params={
                "Bucket": self.bucket,
                "Key": key,
                "ResponseContentDisposition": f'attachment; filename="{filename}"',
            },
            ExpiresIn=expires_in,
        )

    async def get_object(self, key: str) -> Dict[str, Any]:
        """Return {"body": iterator of bytes, "content_type": str}"""
        try:
            response = await run_in_threadpool(self.s3.get_object, Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(str(e)) from e
        return {
            "body": response["Body"].iter_chunks(),
            "content_type": response.get("ContentType"),
        }

def get_storage(request: Request) -> ObjectStorage:
    return request.app.state.storage

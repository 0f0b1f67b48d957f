import os
import uuid
from functools import lru_cache
from typing import BinaryIO, Optional

import boto3
import structlog
from botocore.config import Config

from config import R2Settings, get_settings

logger = structlog.get_logger(__name__)


class R2ImageStorage:
    """Uploads images to a Cloudflare R2 bucket through its S3 API"""

    def __init__(self, settings: R2Settings, client=None):
        self.settings = settings
        self.endpoint = f"https://{settings.account_id}.r2.cloudflarestorage.com"
        self._client = client or boto3.client(
            "s3",
            endpoint_url=self.endpoint,
            aws_access_key_id=settings.access_key_id,
            aws_secret_access_key=settings.secret_access_key,
            region_name="auto",
            config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
        )

    def upload(self, stream: BinaryIO, file_name: str, content_type: Optional[str]) -> str:
        key = f"products/{uuid.uuid4()}-{os.path.basename(file_name or 'upload')}"

        extra_args = {"ACL": "public-read"}
        if content_type:
            extra_args["ContentType"] = content_type
        self._client.upload_fileobj(stream, self.settings.bucket_name, key, ExtraArgs=extra_args)
        logger.info("image_uploaded", key=key, content_type=content_type)

        if self.settings.public_base_url.strip():
            return f"{self.settings.public_base_url.rstrip('/')}/{key}"
        # Direct R2 URL when no public/CDN URL is configured
        return f"{self.endpoint}/{self.settings.bucket_name}/{key}"


@lru_cache
def get_image_storage() -> R2ImageStorage:
    return R2ImageStorage(get_settings().r2)

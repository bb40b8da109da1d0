"""Image upload storage.

Photos keep whatever URL the store hands back in ``image_url``. Two stores
exist: a local directory served under ``/uploads`` and an S3 bucket.
Keys look like ``photos/<epoch-millis>_<original basename>``.
"""

import logging
import mimetypes
import os
import time
from pathlib import Path
from typing import Optional, Protocol

import boto3
from fastapi import Request, UploadFile

from matziplog.config import Settings
from matziplog.errors import ValidationFailed

logger = logging.getLogger(__name__)

UPLOADS_MOUNT = "/uploads"


class ImageStorage(Protocol):
    def save(self, key: str, data: bytes, content_type: str) -> str:
        """Store the bytes and return a public URL."""
        ...


def make_key(filename: Optional[str]) -> str:
    basename = os.path.basename(filename or "") or "image"
    return f"photos/{int(time.time() * 1000)}_{basename}"


class LocalImageStorage:
    def __init__(self, root: str, base_url: str):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")
        self.root.mkdir(parents=True, exist_ok=True)

    def save(self, key: str, data: bytes, content_type: str) -> str:
        dest = self.root / key
        dest.parent.mkdir(parents=True, exist_ok=True)
        with open(dest, "wb") as buffer:
            buffer.write(data)
        return f"{self.base_url}{UPLOADS_MOUNT}/{key}"


class S3ImageStorage:
    def __init__(self, bucket: str, region: str, client=None):
        if client is None:
            client = boto3.client("s3", region_name=region)
        self.client = client
        self.bucket = bucket
        self.region = region

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3ImageStorage":
        kwargs = {"region_name": settings.aws_region}
        if settings.aws_access_key_id and settings.aws_secret_access_key:
            kwargs["aws_access_key_id"] = settings.aws_access_key_id.get_secret_value()
            kwargs["aws_secret_access_key"] = settings.aws_secret_access_key.get_secret_value()
        return cls(settings.s3_bucket_name, settings.aws_region, client=boto3.client("s3", **kwargs))

    def save(self, key: str, data: bytes, content_type: str) -> str:
        self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"


def build_storage(settings: Settings) -> ImageStorage:
    if settings.storage_backend == "s3":
        if not settings.s3_bucket_name:
            raise ValueError("S3_BUCKET_NAME must be set when STORAGE_BACKEND=s3")
        logger.info("Storing images in S3 bucket %s", settings.s3_bucket_name)
        return S3ImageStorage.from_settings(settings)
    logger.info("Storing images under %s", settings.upload_dir)
    return LocalImageStorage(settings.upload_dir, settings.public_base_url)


def get_storage(request: Request) -> ImageStorage:
    return request.app.state.storage


def store_upload(storage: ImageStorage, upload: UploadFile, max_bytes: int) -> str:
    """Validate an uploaded image and hand it to the store."""
    content_type = upload.content_type or mimetypes.guess_type(upload.filename or "")[0] or ""
    if not content_type.startswith("image/"):
        raise ValidationFailed("Only image files are allowed")
    data = upload.file.read(max_bytes + 1)
    if not data:
        raise ValidationFailed("Image file is empty")
    if len(data) > max_bytes:
        raise ValidationFailed(f"Image must be at most {max_bytes // (1024 * 1024)}MB")
    key = make_key(upload.filename)
    url = storage.save(key, data, content_type)
    logger.debug("Stored upload %s (%d bytes)", key, len(data))
    return url

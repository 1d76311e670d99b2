"""S3 / MinIO storage for listing and review photos.

Uploaded images are validated, downscaled and re-encoded with Pillow,
then stored next to a JPEG thumbnail (``<key>_thumb.jpg``).
"""

from __future__ import annotations

import hashlib
import uuid
from io import BytesIO

import boto3
import structlog
from botocore.client import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings
from django.core.files.storage import Storage
from django.utils.deconstruct import deconstructible
from PIL import Image, UnidentifiedImageError

logger = structlog.get_logger(__name__)

ALLOWED_FORMATS = ("JPEG", "PNG", "WEBP")


class InvalidImageError(ValueError):
    """Uploaded file is not an acceptable image."""


@deconstructible
class S3PhotoStorage(Storage):
    """Photo storage with optimization and MinIO support."""

    def __init__(self):
        self.bucket_name = settings.S3_BUCKET_NAME
        self.public_base = (settings.S3_PUBLIC_BASE or "").rstrip("/")
        self.max_size = getattr(settings, "PHOTO_MAX_SIZE", 10 * 1024 * 1024)
        self.max_dimension = getattr(settings, "PHOTO_MAX_DIMENSION", 2048)
        self.thumbnail_size = getattr(settings, "PHOTO_THUMBNAIL_SIZE", (480, 320))
        self._client = None

    @property
    def s3_client(self):
        if self._client is None:
            self._client = boto3.client(
                "s3",
                endpoint_url=settings.S3_ENDPOINT_URL,
                aws_access_key_id=settings.S3_ACCESS_KEY or None,
                aws_secret_access_key=settings.S3_SECRET_KEY or None,
                region_name=settings.S3_REGION,
                config=BotoConfig(
                    signature_version="s3v4",
                    s3={"addressing_style": getattr(settings, "S3_ADDRESSING_STYLE", "path")},
                ),
                use_ssl=settings.S3_USE_SSL,
            )
        return self._client

    # ---------- image utils ----------

    def _validate_image(self, file_obj) -> Image.Image:
        size = getattr(file_obj, "size", None)
        if size is not None and size > self.max_size:
            raise InvalidImageError(f"File too large. Maximum is {self.max_size / 1024 / 1024:.1f} MB")
        try:
            img = Image.open(file_obj)
            img.load()
        except (UnidentifiedImageError, OSError) as exc:
            raise InvalidImageError(f"Invalid image: {exc}") from exc
        if img.format not in ALLOWED_FORMATS:
            raise InvalidImageError(f"Unsupported format: {img.format}")
        return img

    def _optimize_image(self, img: Image.Image, quality: int = 85):
        """Return (bytes_io, ext, width, height, content_type)."""
        if img.mode not in ("RGB", "RGBA"):
            img = img.convert("RGB")
        if img.width > self.max_dimension or img.height > self.max_dimension:
            img.thumbnail((self.max_dimension, self.max_dimension), Image.Resampling.LANCZOS)

        out = BytesIO()
        if img.mode == "RGBA":
            img.save(out, format="WEBP", quality=quality, method=6)
            ext, content_type = "webp", "image/webp"
        else:
            img.save(out, format="JPEG", quality=quality, optimize=True)
            ext, content_type = "jpg", "image/jpeg"
        out.seek(0)
        return out, ext, img.width, img.height, content_type

    def _create_thumbnail(self, img: Image.Image) -> BytesIO:
        thumb = img.copy()
        if thumb.mode == "RGBA":
            background = Image.new("RGB", thumb.size, (255, 255, 255))
            background.paste(thumb, mask=thumb.split()[3])
            thumb = background
        elif thumb.mode not in ("RGB", "L"):
            thumb = thumb.convert("RGB")
        thumb.thumbnail(self.thumbnail_size, Image.Resampling.LANCZOS)
        out = BytesIO()
        thumb.save(out, format="JPEG", quality=80, optimize=True)
        out.seek(0)
        return out

    @staticmethod
    def _generate_basename(name: str, optimized_bytes: bytes) -> str:
        folder = name.rsplit("/", 1)[0] if "/" in name else "photos"
        digest = hashlib.md5(optimized_bytes).hexdigest()[:8]
        return f"{folder}/{digest}_{uuid.uuid4().hex[:8]}"

    @staticmethod
    def thumbnail_name(name: str) -> str:
        return name.rsplit(".", 1)[0] + "_thumb.jpg"

    # ---------- Storage API ----------

    def _save(self, name, content):
        content.seek(0)
        img = self._validate_image(content)
        optimized_io, ext, width, height, content_type = self._optimize_image(img)

        base = self._generate_basename(name, optimized_io.getbuffer())
        key_main = f"{base}.{ext}"

        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=key_main,
                Body=optimized_io.getvalue(),
                ContentType=content_type,
                CacheControl="max-age=31536000",
                Metadata={"original_name": name, "width": str(width), "height": str(height)},
            )
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=self.thumbnail_name(key_main),
                Body=self._create_thumbnail(img).getvalue(),
                ContentType="image/jpeg",
                CacheControl="max-age=31536000",
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("storage.upload_failed", key=key_main, error=str(exc))
            raise

        logger.info("storage.uploaded", key=key_main, width=width, height=height)
        return key_main

    def _open(self, name, mode="rb"):
        from django.core.files.base import ContentFile

        obj = self.s3_client.get_object(Bucket=self.bucket_name, Key=name)
        return ContentFile(obj["Body"].read(), name=name)

    def delete(self, name):
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=name)
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=self.thumbnail_name(name))
        except (BotoCoreError, ClientError) as exc:
            logger.error("storage.delete_failed", key=name, error=str(exc))
            raise
        logger.info("storage.deleted", key=name)

    def exists(self, name):
        try:
            self.s3_client.head_object(Bucket=self.bucket_name, Key=name)
        except ClientError:
            return False
        return True

    def url(self, name):
        """Public URL: S3_PUBLIC_BASE, then endpoint path-style, then presigned."""
        if self.public_base:
            return f"{self.public_base}/{name.lstrip('/')}"
        endpoint = (settings.S3_ENDPOINT_URL or "").rstrip("/")
        if endpoint:
            return f"{endpoint}/{self.bucket_name}/{name.lstrip('/')}"
        return self.s3_client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket_name, "Key": name},
            ExpiresIn=3600,
        )

    def get_thumbnail_url(self, name):
        return self.url(self.thumbnail_name(name))

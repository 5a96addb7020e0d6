"""
Image blob storage shared by restaurants and reviews.

Uploads are validated the same way whichever backend stores them: the file
must be non-empty, at most MAX_IMAGE_BYTES, and one of the allowed image
content types. Stored names are "<uuid4>-<sanitized original name>".
"""

import logging
import os
import re
import uuid
from dataclasses import dataclass
from typing import Optional, Tuple

from ..errors import ConfigurationError, ErrorContext, StorageError, ValidationError

logger = logging.getLogger(__name__)

MAX_IMAGE_BYTES = 5 * 1024 * 1024
ALLOWED_CONTENT_TYPES = ("image/jpeg", "image/png", "image/gif")

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


@dataclass
class ImageUpload:
    """An uploaded image as received from a multipart request."""

    filename: Optional[str]
    content_type: Optional[str]
    data: bytes


def validate_image(upload: ImageUpload) -> None:
    if not upload.data:
        raise ValidationError("Image file is empty")
    if len(upload.data) > MAX_IMAGE_BYTES:
        raise ValidationError(
            "Image file exceeds the 5MB limit",
            ErrorContext(additional_info={"size": len(upload.data)}),
        )
    if upload.content_type not in ALLOWED_CONTENT_TYPES:
        raise ValidationError(
            "Only JPEG, PNG and GIF images are allowed",
            ErrorContext(additional_info={"content_type": upload.content_type}),
        )


def build_file_name(original_name: Optional[str]) -> str:
    base = os.path.basename(original_name or "") or "image"
    return f"{uuid.uuid4()}-{_UNSAFE_CHARS.sub('_', base)}"


def file_name_from_url(url: str) -> str:
    return url.rstrip("/").rsplit("/", 1)[-1]


class ImageStorage:
    """Base class for image backends."""

    def upload_image(self, upload: ImageUpload) -> str:
        """Store the image and return the URL clients use to fetch it."""
        raise NotImplementedError

    def delete_image(self, url: str) -> None:
        raise NotImplementedError

    def read_image(self, file_name: str) -> Tuple[bytes, str]:
        """Return (content, content_type) for a stored image."""
        raise NotImplementedError


def discard_image(storage: ImageStorage, url: Optional[str]) -> None:
    """Delete a blob that no row refers to any more; failures are only logged."""
    if not url:
        return
    try:
        storage.delete_image(url)
    except StorageError as e:
        logger.warning(f"Could not delete image {url}: {e.get_log_message()}")


def get_image_storage() -> ImageStorage:
    """Pick the backend from $IMAGE_STORAGE (local or s3)"""
    default_backend = (
        "s3"
        if os.environ.get("ENVIRONMENT") == "production" or os.environ.get("AWS_LAMBDA_FUNCTION_NAME")
        else "local"
    )
    backend = os.environ.get("IMAGE_STORAGE", default_backend).strip().lower()

    if backend == "s3":
        from .s3_storage import S3ImageStorage

        bucket = os.environ.get("S3_BUCKET_NAME")
        if not bucket:
            raise ConfigurationError("S3_BUCKET_NAME must be set when IMAGE_STORAGE=s3")
        return S3ImageStorage(bucket, os.environ.get("AWS_REGION", "us-east-1"))

    if backend == "local":
        from .file_storage import LocalImageStorage, STORAGE_ROOT

        return LocalImageStorage(STORAGE_ROOT)

    raise ConfigurationError(f"Unknown IMAGE_STORAGE backend: {backend}")

"""S3 storage adapter for uploaded images.

Images are stored under the images/ prefix of a single bucket and referenced
by their public virtual-hosted-style URL.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Tuple

import boto3
from botocore.exceptions import ClientError, NoCredentialsError

from ..errors import ConfigurationError, ErrorContext, NotFoundError, StorageError
from .image_storage import ImageStorage, ImageUpload, build_file_name, file_name_from_url, validate_image

logger = logging.getLogger(__name__)

KEY_PREFIX = "images/"


class S3ImageStorage(ImageStorage):
    """S3-backed image storage"""

    def __init__(self, bucket_name: str, region: str = "us-east-1", s3_client: Optional[Any] = None):
        """Initialize S3 storage

        Args:
            bucket_name: S3 bucket name for storing images
            region: AWS region (default: us-east-1)
            s3_client: preconfigured client, mainly for tests
        """
        self.bucket_name = bucket_name
        self.region = region

        if s3_client is not None:
            self.s3_client = s3_client
            return

        try:
            # Uses IAM role credentials in Lambda
            self.s3_client = boto3.client("s3", region_name=region)
            logger.info(f"S3 image storage initialized: bucket={bucket_name}, region={region}")
        except NoCredentialsError:
            raise ConfigurationError("AWS credentials not found - S3 image storage unavailable")

    def url_for(self, file_name: str) -> str:
        return f"https://{self.bucket_name}.s3.{self.region}.amazonaws.com/{KEY_PREFIX}{file_name}"

    def upload_image(self, upload: ImageUpload) -> str:
        validate_image(upload)
        file_name = build_file_name(upload.filename)
        key = KEY_PREFIX + file_name
        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=upload.data,
                ContentType=upload.content_type,
            )
        except (ClientError, NoCredentialsError) as e:
            logger.error(f"Failed to upload image to S3: {key} - {e}")
            raise StorageError(f"Failed to upload image: {e}", ErrorContext(resource="image", resource_id=key))

        logger.info(f"Uploaded image to S3: {key} ({len(upload.data)} bytes)")
        return self.url_for(file_name)

    def delete_image(self, url: str) -> None:
        key = KEY_PREFIX + file_name_from_url(url)
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, NoCredentialsError) as e:
            logger.error(f"Failed to delete image from S3: {key} - {e}")
            raise StorageError(f"Failed to delete image: {e}", ErrorContext(resource="image", resource_id=key))
        logger.info(f"Deleted image from S3: {key}")

    def read_image(self, file_name: str) -> Tuple[bytes, str]:
        key = KEY_PREFIX + file_name
        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code in ("NoSuchKey", "404"):
                raise NotFoundError(f"Image not found: {file_name}", ErrorContext(resource="image", resource_id=key))
            logger.error(f"Failed to read image from S3: {key} - {e}")
            raise StorageError(f"Failed to read image: {e}", ErrorContext(resource="image", resource_id=key))

        content = response["Body"].read()
        return content, response.get("ContentType") or "application/octet-stream"

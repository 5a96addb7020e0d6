"""
Local file system storage for uploaded images
"""

import logging
import mimetypes
import os
from typing import Tuple

from ..errors import ErrorContext, NotFoundError, StorageError, ValidationError
from .image_storage import ImageStorage, ImageUpload, build_file_name, file_name_from_url, validate_image

logger = logging.getLogger(__name__)

# Storage configuration
STORAGE_ROOT = os.environ.get("IMAGE_STORAGE_ROOT", os.path.join(os.getcwd(), "uploads", "images"))
URL_PREFIX = "/images/"


class LocalImageStorage(ImageStorage):
    """Images stored as files under a root directory, served from /images/<name>"""

    def __init__(self, root: str = STORAGE_ROOT):
        self.root = root

    def ensure_storage_directory(self) -> None:
        """Create storage directory if it doesn't exist"""
        os.makedirs(self.root, exist_ok=True)

    def _path_for(self, file_name: str) -> str:
        if (
            not file_name
            or file_name in (".", "..")
            or "/" in file_name
            or "\\" in file_name
            or file_name != os.path.basename(file_name)
        ):
            raise ValidationError("Invalid image file name", ErrorContext(resource="image", resource_id=file_name))
        return os.path.join(self.root, file_name)

    def upload_image(self, upload: ImageUpload) -> str:
        validate_image(upload)
        file_name = build_file_name(upload.filename)
        try:
            self.ensure_storage_directory()
            with open(self._path_for(file_name), "wb") as f:
                f.write(upload.data)
        except OSError as e:
            logger.error(f"Failed to save image {file_name}: {e}")
            raise StorageError(f"Failed to store image: {e}", ErrorContext(resource="image", resource_id=file_name))

        logger.info(f"Saved image {file_name}: {len(upload.data)} bytes")
        return URL_PREFIX + file_name

    def delete_image(self, url: str) -> None:
        file_name = file_name_from_url(url)
        file_path = self._path_for(file_name)
        if not os.path.exists(file_path):
            logger.warning(f"Image not found for deletion: {file_name}")
            return
        try:
            os.remove(file_path)
        except OSError as e:
            logger.error(f"Failed to delete image {file_name}: {e}")
            raise StorageError(f"Failed to delete image: {e}", ErrorContext(resource="image", resource_id=file_name))
        logger.info(f"Deleted image {file_name}")

    def read_image(self, file_name: str) -> Tuple[bytes, str]:
        file_path = self._path_for(file_name)
        if not os.path.isfile(file_path):
            raise NotFoundError(f"Image not found: {file_name}", ErrorContext(resource="image", resource_id=file_name))
        with open(file_path, "rb") as f:
            content = f.read()
        content_type = mimetypes.guess_type(file_name)[0] or "application/octet-stream"
        return content, content_type

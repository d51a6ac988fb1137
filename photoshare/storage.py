import logging
import os
import shutil
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import IO

from PIL import Image as PILImage

from .config import ALLOWED_CONTENT_TYPES, THUMBNAIL_SIZE
from .errors import ServerError
from .utils import get_nested_path_for_filename

logger = logging.getLogger(__name__)

EXTENSIONS = {"image/png": "png", "image/jpeg": "jpg"}


def is_allowed_content_type(content_type: str) -> bool:
    return content_type in ALLOWED_CONTENT_TYPES


def create_thumbnail(original_path: str, thumbnail_path: str, size: tuple = THUMBNAIL_SIZE):
    """Creates a thumbnail for an image, preserving aspect ratio."""
    with PILImage.open(original_path) as img:
        # Convert to RGB to avoid issues with PNGs with alpha
        img = img.convert("RGB")
        img.thumbnail(size)
        img.save(thumbnail_path, "JPEG", quality=85)


class FileStorage:
    """
    Stores uploaded images under `media_dir/images` with a thumbnail under
    `media_dir/thumbnails`, both in nested directories keyed by filename.
    """

    def __init__(self, media_dir: str):
        self.images_dir = os.path.join(media_dir, "images")
        self.thumbnails_dir = os.path.join(media_dir, "thumbnails")
        os.makedirs(self.images_dir, exist_ok=True)
        os.makedirs(self.thumbnails_dir, exist_ok=True)

    def image_path(self, filename: str) -> str:
        return os.path.join(self.images_dir, get_nested_path_for_filename(filename), filename)

    def thumbnail_path(self, filename: str) -> str:
        thumbnail_filename = f"{os.path.splitext(filename)[0]}.jpg"
        return os.path.join(self.thumbnails_dir, get_nested_path_for_filename(filename), thumbnail_filename)

    def store_uploaded_file(self, stream: IO[bytes], content_type: str) -> str:
        """Saves the upload and its thumbnail, returning the file reference."""
        filename = f"{uuid.uuid4().hex}.{EXTENSIONS.get(content_type, 'jpg')}"
        path = self.image_path(filename)
        thumbnail_path = self.thumbnail_path(filename)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        os.makedirs(os.path.dirname(thumbnail_path), exist_ok=True)
        try:
            with open(path, "wb") as buffer:
                shutil.copyfileobj(stream, buffer)
            create_thumbnail(path, thumbnail_path)
        except (OSError, PILImage.DecompressionBombError) as e:
            if os.path.exists(path):
                os.remove(path)
            raise ServerError(f"Could not store uploaded file: {e}") from e
        return filename

    def remove(self, filename: str):
        for path in (self.image_path(filename), self.thumbnail_path(filename)):
            if os.path.exists(path):
                os.remove(path)


class PhotoCleaner:
    """Removes a deleted photo's files on a background worker."""

    def __init__(self, storage: FileStorage, max_workers: int = 2):
        self.storage = storage
        self.executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="photo-cleaner")

    def clean(self, filename: str):
        future = self.executor.submit(self.storage.remove, filename)
        future.add_done_callback(lambda f: self._report(filename, f))
        return future

    @staticmethod
    def _report(filename, future):
        error = future.exception()
        if error is not None:
            logger.warning("Could not remove files for %s: %s", filename, error)

    def shutdown(self, wait: bool = True):
        self.executor.shutdown(wait=wait)

import logging
import os
import uuid

from shared.core.config import settings

logger = logging.getLogger(__name__)

URL_PREFIX = "/files/"


class BlobNotFound(Exception):
    pass


class LocalBlobStorage:
    """File storage rooted at UPLOAD_DIR. URLs are ``/files/<relative path>``."""

    def __init__(self, root: str = None):
        self.root = os.path.abspath(root or settings.UPLOAD_DIR)

    def _resolve(self, relative_path: str) -> str:
        full_path = os.path.abspath(os.path.join(self.root, relative_path))
        if os.path.commonpath([full_path, self.root]) != self.root:
            raise ValueError(f"Path escapes storage root: {relative_path}")
        return full_path

    def _holds(self, full_path: str, content: bytes) -> bool:
        if not os.path.exists(full_path):
            return False
        with open(full_path, "rb") as f:
            return f.read() == content

    def save(self, content: bytes, relative_path: str) -> str:
        """Store ``content`` at ``relative_path`` unless the file already holds exactly it.

        Writes go through a temp file and ``os.replace`` so a reader never sees a
        partial file at the final path.
        """
        full_path = self._resolve(relative_path)
        os.makedirs(os.path.dirname(full_path), exist_ok=True)
        if self._holds(full_path, content):
            return URL_PREFIX + relative_path

        if os.path.exists(full_path):
            logger.warning("Stored file %s does not match its content, rewriting", relative_path)
        tmp_path = f"{full_path}.{uuid.uuid4().hex}.tmp"
        try:
            with open(tmp_path, "wb") as buffer:
                buffer.write(content)
            os.replace(tmp_path, full_path)
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
        logger.info("Stored %s (%s bytes)", relative_path, len(content))
        return URL_PREFIX + relative_path

    def read(self, url: str) -> bytes:
        full_path = self.path_for(url)
        if not os.path.exists(full_path):
            raise BlobNotFound(url)
        with open(full_path, "rb") as f:
            return f.read()

    def path_for(self, url: str) -> str:
        if not url or not url.startswith(URL_PREFIX):
            raise BlobNotFound(url)
        return self._resolve(url[len(URL_PREFIX):])


def get_blob_storage() -> LocalBlobStorage:
    return LocalBlobStorage()

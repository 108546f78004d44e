import logging
import os

from shared.core.errors import StorageError
from shared.storage.base import StorageProvider

logger = logging.getLogger(__name__)


class LocalStorageProvider(StorageProvider):
    """
    Stores objects as files below `<root>/<bucket>/` and serves them from
    `public_base_url`, which the app mounts as a static directory.
    """

    name = "local"

    def __init__(self, root_dir: str, bucket: str, public_base_url: str):
        self.root_dir = os.path.abspath(root_dir)
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")
        os.makedirs(self.bucket_dir, exist_ok=True)

    @property
    def bucket_dir(self) -> str:
        return os.path.join(self.root_dir, self.bucket)

    def _path(self, key: str) -> str:
        path = os.path.abspath(os.path.join(self.bucket_dir, key))
        if not path.startswith(self.bucket_dir + os.sep):
            raise StorageError(f"Invalid object key '{key}'")
        return path

    def upload(self, key: str, data: bytes, content_type: str) -> str:
        path = self._path(key)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "wb") as buffer:
                buffer.write(data)
        except OSError as e:
            logger.error("Failed to store %s: %s", key, e)
            raise StorageError("File upload failed", details=str(e))
        return self.public_url(key)

    def delete(self, key: str) -> bool:
        path = self._path(key)
        if not os.path.exists(path):
            return False
        os.remove(path)
        return True

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{self.bucket}/{key}"

    def check_health(self) -> dict:
        return {
            "provider": self.name,
            "isConnected": os.access(self.bucket_dir, os.W_OK),
        }

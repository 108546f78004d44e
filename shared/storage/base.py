from abc import ABC, abstractmethod


class StorageProvider(ABC):
    """Object storage for uploaded files. Uploaded objects are publicly readable."""

    name = "base"

    @abstractmethod
    def upload(self, key: str, data: bytes, content_type: str) -> str:
        """Store `data` under `key` and return its public URL."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        ...

    @abstractmethod
    def public_url(self, key: str) -> str:
        ...

    def check_health(self) -> dict:
        return {"provider": self.name, "isConnected": True}

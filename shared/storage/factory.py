from fastapi import Request

from shared.storage.base import StorageProvider
from shared.storage.local import LocalStorageProvider


def build_storage_provider(settings) -> StorageProvider:
    provider = settings.STORAGE_PROVIDER.lower()
    if provider == "local":
        return LocalStorageProvider(
            root_dir=settings.UPLOAD_DIR,
            bucket=settings.STORAGE_BUCKET,
            public_base_url=settings.STORAGE_PUBLIC_URL,
        )
    raise ValueError(f"Unsupported storage provider '{settings.STORAGE_PROVIDER}'")


# Dependency
def get_storage(request: Request) -> StorageProvider:
    return request.app.state.storage

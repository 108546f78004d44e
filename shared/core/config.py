import os
from typing import List

from fastapi import Request
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Always load .env from root
BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(__file__)))
load_dotenv(os.path.join(BASE_DIR, ".env"))


class Settings(BaseSettings):
    NODE_ENV: str = "development"
    PORT: int = 8002
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["http://localhost:8080", "http://127.0.0.1:8002"]

    # Database
    DB_URI: str = "sqlite:///./inventory.db"
    DB_PROVIDER: str = "mongodb"
    DB_POOL_SIZE: int = 50
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    TRANSACTION_RETRIES: int = 3

    # Request deadlines (seconds)
    REQUEST_TIMEOUT_SECONDS: float = 30
    REBUILD_TIMEOUT_SECONDS: float = 120

    # Object storage
    STORAGE_PROVIDER: str = "local"
    STORAGE_BUCKET: str = "inventory-uploads"
    STORAGE_REGION: str | None = None
    STORAGE_PUBLIC_URL: str = "http://localhost:8002/uploads"
    UPLOAD_DIR: str = os.path.join(BASE_DIR, "uploads")
    UPLOAD_PREFIX: str = "inventory"
    MAX_UPLOAD_BYTES: int = 5 * 1024 * 1024

    # Business rules
    INVOICE_NUMBER_WIDTH: int = 6
    REBUILD_SYNC_PRICE: bool = True

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def is_production(self) -> bool:
        return self.NODE_ENV.lower() == "production"


settings = Settings()


# Dependency
def get_settings(request: Request) -> Settings:
    return request.app.state.settings

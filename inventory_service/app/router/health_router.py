# app/router/health_router.py
import logging
import time

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shared.core.config import Settings, get_settings
from shared.core.database import get_db
from shared.storage.base import StorageProvider
from shared.storage.factory import get_storage
from shared.utils.dates import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


def _database_health(db: Session, settings: Settings) -> dict:
    started = time.monotonic()
    try:
        db.execute(text("SELECT 1"))
        healthy = True
    except SQLAlchemyError as e:
        logger.error("Database health check failed: %s", e)
        healthy = False
    return {
        "provider": settings.DB_PROVIDER,
        "dialect": db.get_bind().dialect.name,
        "health": {
            "isConnected": healthy,
            "latencyMs": round((time.monotonic() - started) * 1000, 2),
        },
    }


@router.get("")
def health_check(
        request: Request,
        db: Session = Depends(get_db),
        storage: StorageProvider = Depends(get_storage),
        settings: Settings = Depends(get_settings)):
    database = _database_health(db, settings)
    storage_health = storage.check_health()
    healthy = database["health"]["isConnected"] and storage_health.get("isConnected", False)
    return {
        "status": "ok" if healthy else "degraded",
        "timestamp": utcnow().isoformat() + "Z",
        "uptime": round(time.monotonic() - request.app.state.started_at, 3),
        "environment": settings.NODE_ENV,
        "providers": {
            "database": database,
            "storage": {"provider": settings.STORAGE_PROVIDER, "health": storage_health},
        },
    }

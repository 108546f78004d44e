import logging
import os
import time
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from shared.core.config import Settings, settings as default_settings
from shared.core.database import Base, build_engine, build_session_factory
from shared.core.logging_config import setup_logging
from shared.helpers.exception_handler import setup_exception_handlers
from shared.storage.factory import build_storage_provider

# Register models on Base.metadata
from .models import assets, items, purchases, sales  # noqa: F401
from .router import assets_router, health_router, items_router, purchases_router, sales_router

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or default_settings
    setup_logging(settings.LOG_LEVEL)

    app = FastAPI(title="Inventory Service API")

    # Process-wide clients, built once and reached through app.state
    engine = build_engine(settings)
    Base.metadata.create_all(bind=engine)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.storage = build_storage_provider(settings)
    app.state.started_at = time.monotonic()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    setup_exception_handlers(app)

    # Serve locally stored uploads under STORAGE_PUBLIC_URL
    if settings.STORAGE_PROVIDER.lower() == "local":
        os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
        app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR), name="uploads")

    # Include routers
    app.include_router(health_router.router)
    app.include_router(items_router.router)
    app.include_router(purchases_router.router)
    app.include_router(sales_router.router)
    app.include_router(assets_router.router)

    logger.info("Inventory service ready (env=%s, db=%s, storage=%s)",
                settings.NODE_ENV, engine.dialect.name, settings.STORAGE_PROVIDER)
    return app


app = create_app()
